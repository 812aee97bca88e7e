"""Test static data endpoints"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import insert

from lmeve.models.sde import InvType
from lmeve.services.sde_service import version_from_last_modified
from lmeve.storage.files import SDE_CACHE_FILE

SDE_URL = "https://www.fuzzwork.co.uk/dump/mysql-latest.tar.bz2"


def test_get_type_names(client, engine):
    with engine.begin() as conn:
        conn.execute(
            insert(InvType.__table__),
            [{"typeID": 34, "typeName": "Tritanium"}, {"typeID": 35, "typeName": "Pyerite"}, {"typeID": 36, "typeName": "Mexallon"}],
        )

    response = client.post("/api/sde/get-type-names", json={"typeIds": [34, "35", -1, "abc"]})

    data = response.json()
    assert data["ok"] is True
    assert sorted(data["rows"], key=lambda row: row["typeID"]) == [
        {"typeID": 34, "typeName": "Tritanium"},
        {"typeID": 35, "typeName": "Pyerite"},
    ]


def test_get_type_names_validation(client):
    response = client.post("/api/sde/get-type-names", json={"typeIds": []})
    assert response.status_code == 400
    assert response.json()["error"] == "typeIds must be a non-empty array"

    response = client.post("/api/sde/get-type-names", json={"typeIds": [0, -4, "x"]})
    assert response.status_code == 400
    assert response.json()["error"] == "No valid typeIds provided"


def test_version_from_last_modified():
    assert version_from_last_modified("Tue, 14 May 2024 10:00:00 GMT") == "2024-05-14"
    assert version_from_last_modified("garbage") is None
    assert version_from_last_modified(None) is None


def test_sde_latest_remote_then_cache(client, storage, upstream):
    upstream.add("HEAD", SDE_URL, headers={"Last-Modified": "Tue, 14 May 2024 10:00:00 GMT"})

    first = client.get("/api/sde-latest").json()
    second = client.get("/api/sde-latest").json()

    assert first["ok"] is True
    assert first["latestVersion"] == "2024-05-14"
    assert first["source"] == "remote"
    assert second["source"] == "cache"
    assert second["latestVersion"] == "2024-05-14"
    assert second["lastChecked"] == first["lastChecked"]
    assert len(upstream.calls("/dump/mysql-latest.tar.bz2")) == 1
    assert storage.read_json(SDE_CACHE_FILE)["latestVersion"] == "2024-05-14"


def test_sde_latest_without_last_modified(client, upstream):
    upstream.add("HEAD", SDE_URL)
    data = client.get("/api/sde-latest").json()
    assert data["latestVersion"] == datetime.now(timezone.utc).strftime("%Y-%m-%d")


def test_sde_latest_remote_unavailable_uses_stale_cache(client, storage, upstream):
    checked = (datetime.now(timezone.utc) - timedelta(days=2)).replace(microsecond=0).isoformat()
    storage.write_json(SDE_CACHE_FILE, {"latestVersion": "2024-01-01", "lastChecked": checked})
    upstream.add("HEAD", SDE_URL, status=503)

    data = client.get("/api/sde-latest").json()

    assert data["ok"] is True
    assert data["latestVersion"] == "2024-01-01"
    assert data["source"] == "cache"
    assert data["note"] == "remote_unavailable"


def test_sde_latest_unavailable_without_cache(client, upstream):
    upstream.fail("HEAD", SDE_URL)

    response = client.get("/api/sde-latest")

    assert response.status_code == 502
    assert response.json()["error"] == "Failed to fetch SDE latest metadata"


def test_names(client, storage):
    storage.write_json(
        "data/type_names.json",
        [{"type_id": 34, "type_name": "Tritanium"}, {"type_id": 35, "type_name": "Pyerite"}, {"type_id": 36}],
    )

    assert client.get("/api/names", params={"ids": "35,34,36,999,x"}).json() == [
        {"type_id": 35, "type_name": "Pyerite"},
        {"type_id": 34, "type_name": "Tritanium"},
    ]
    assert client.get("/api/names").json() == []


def test_names_without_data_file(client):
    assert client.get("/api/names", params={"ids": "34"}).json() == []


def test_data_resources(client, storage):
    storage.write_text("data/blueprints.json", '[{"typeID": 1}]')

    assert client.get("/api/data", params={"resource": "blueprints"}).json() == [{"typeID": 1}]
    assert client.get("/api/data", params={"resource": " Assets "}).json() == []

    response = client.get("/api/data", params={"resource": "passwords"})
    assert response.status_code == 400
    assert response.json() == {"error": "invalid_resource", "message": "Unknown resource"}
