"""Test settings and site data endpoints"""

from lmeve.storage.files import SETTINGS_FILE, SITE_DATA_FILE


def test_settings_empty(client):
    assert client.get("/api/settings").json() == {"ok": True, "settings": None}


def test_settings_round_trip_masks_secrets(client, storage):
    document = {
        "settings": {
            "database": {"host": "db.local", "username": "lmeve", "password": "dbpass"},
            "esi": {"clientId": "cid", "clientSecret": "csecret"},
        }
    }

    assert client.post("/api/settings", json=document).json() == {"ok": True}

    returned = client.get("/api/settings").json()["settings"]
    assert returned["settings"]["database"]["password"] == "***"
    assert returned["settings"]["esi"]["clientSecret"] == "***"
    assert returned["settings"]["database"]["host"] == "db.local"
    # stored in full on the server
    assert storage.read_json(SETTINGS_FILE)["settings"]["database"]["password"] == "dbpass"


def test_resaving_masked_document_keeps_secrets(client, storage):
    client.post("/api/settings", json={"database": {"host": "a", "password": "dbpass"}})

    masked = client.get("/api/settings").json()["settings"]
    masked["database"]["host"] = "b"
    client.post("/api/settings", json=masked)

    assert storage.read_json(SETTINGS_FILE) == {"database": {"host": "b", "password": "dbpass"}}


def test_settings_rejects_non_object(client):
    response = client.post("/api/settings", json=["not", "an", "object"])
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Invalid JSON body"}


def test_site_data(client):
    assert client.get("/api/site-data", params={"key": "motd"}).json() == {"ok": True, "key": "motd", "value": None}

    assert client.post("/api/site-data", json={"key": "motd", "value": {"text": "Fly safe"}}).json() == {"ok": True}
    client.post("/api/site-data", json={"key": "banner", "value": "on"})

    assert client.get("/api/site-data", params={"key": "motd"}).json()["value"] == {"text": "Fly safe"}
    assert client.get("/api/site-data", params={"key": "banner"}).json()["value"] == "on"


def test_site_data_corrupt_file_is_repaired(client, storage):
    """An unreadable store reads as empty and the next save rewrites it"""
    storage.write_text(SITE_DATA_FILE, "{not json")

    response = client.get("/api/site-data", params={"key": "a"})
    assert response.status_code == 200
    assert response.json() == {"ok": True, "key": "a", "value": None}

    response = client.post("/api/site-data", json={"key": "a", "value": 1})
    assert response.status_code == 200
    assert storage.read_json(SITE_DATA_FILE) == {"a": 1}
    assert client.get("/api/site-data", params={"key": "a"}).json()["value"] == 1


def test_site_data_requires_key(client):
    assert client.get("/api/site-data").status_code == 400
    response = client.post("/api/site-data", json={"value": 1})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required field: key"
