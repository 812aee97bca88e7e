"""Test EVE SSO callback, refresh and proxy endpoints"""

import base64
from datetime import datetime

from sqlalchemy import insert, select

from lmeve.models.user import User
from lmeve.storage.files import SETTINGS_FILE

TOKEN_URL = "https://login.eveonline.com/v2/oauth/token"
VERIFY_URL = "https://login.eveonline.com/oauth/verify"
CHARACTER_URL = "https://esi.evetech.net/latest/characters/90000001/"

users = User.__table__


def _configure_esi(storage):
    storage.write_json(
        SETTINGS_FILE,
        {"settings": {"esi": {"clientId": "cid", "clientSecret": "csecret", "callbackUrl": "https://app.example/cb"}}},
    )


def _sso_success(upstream, refresh_token="RT"):
    token = {"access_token": "AT", "expires_in": 1199, "token_type": "Bearer"}
    if refresh_token:
        token["refresh_token"] = refresh_token
    upstream.add("POST", TOKEN_URL, json=token)
    upstream.add(
        "GET", VERIFY_URL,
        json={"CharacterID": 90000001, "CharacterName": "Pilot One", "Scopes": "esi-assets.read_corporation_assets.v1"},
    )
    upstream.add("GET", CHARACTER_URL, json={"name": "Pilot One", "corporation_id": 98000001})


def _user_rows(engine):
    with engine.connect() as conn:
        return conn.execute(select(users)).all()


def test_callback_stores_esi_user(client, storage, engine, upstream):
    _configure_esi(storage)
    _sso_success(upstream)

    response = client.post("/api/auth/esi/callback", json={"code": "auth-code"})

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["characterId"] == 90000001
    assert data["characterName"] == "Pilot One"
    assert data["corporationId"] == 98000001
    assert data["tokenType"] == "Bearer"
    assert datetime.strptime(data["expiresAt"], "%Y-%m-%d %H:%M:%S") > datetime.utcnow()

    token_request = upstream.calls("/v2/oauth/token")[0]
    expected = base64.b64encode(b"cid:csecret").decode()
    assert token_request.headers["authorization"] == f"Basic {expected}"
    assert b"grant_type=authorization_code" in token_request.content
    assert b"redirect_uri=https%3A%2F%2Fapp.example%2Fcb" in token_request.content

    rows = _user_rows(engine)
    assert len(rows) == 1
    assert rows[0].username == "Pilot One"
    assert rows[0].auth_method == "esi"
    assert rows[0].role == "corp_member"
    assert rows[0].access_token == "AT"
    assert rows[0].refresh_token == "RT"
    assert rows[0].is_active is True


def test_callback_keeps_existing_role(client, storage, engine, upstream):
    """A returning user gets new tokens but keeps their role"""
    _configure_esi(storage)
    _sso_success(upstream)
    with engine.begin() as conn:
        conn.execute(insert(users), {"username": "Pilot One", "role": "ceo", "auth_method": "esi", "access_token": "OLD"})

    client.post("/api/auth/esi/callback", json={"code": "auth-code"})

    rows = _user_rows(engine)
    assert len(rows) == 1
    assert rows[0].role == "ceo"
    assert rows[0].access_token == "AT"


def test_callback_token_failure_skips_database(client, storage, engine, upstream):
    """A failed token exchange returns ok:false and writes nothing"""
    _configure_esi(storage)
    _sso_success(upstream)
    upstream.add("POST", TOKEN_URL, status=400, json={"error": "invalid_grant"})

    response = client.post("/api/auth/esi/callback", json={"code": "expired"})

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is False
    assert data["error"] == "Token exchange failed"
    assert data["status"] == 400
    assert "invalid_grant" in data["body"]
    assert upstream.calls("/oauth/verify") == []
    assert _user_rows(engine) == []


def test_callback_transport_failure(client, storage, engine, upstream):
    _configure_esi(storage)
    upstream.fail("POST", TOKEN_URL)

    data = client.post("/api/auth/esi/callback", json={"code": "c"}).json()

    assert data["ok"] is False
    assert data["error"] == "Token exchange failed"
    assert _user_rows(engine) == []


def test_callback_invalid_token_response(client, storage, upstream):
    _configure_esi(storage)
    upstream.add("POST", TOKEN_URL, json={"token_type": "Bearer"})

    data = client.post("/api/auth/esi/callback", json={"code": "c"}).json()
    assert data["ok"] is False
    assert data["error"] == "Invalid token response"
    assert "token_type" in data["body"]


def test_callback_verify_failure(client, storage, engine, upstream):
    _configure_esi(storage)
    _sso_success(upstream)
    upstream.add("GET", VERIFY_URL, status=401, text="unauthorized")

    data = client.post("/api/auth/esi/callback", json={"code": "c"}).json()

    assert data["ok"] is False
    assert data["error"] == "SSO verify failed"
    assert _user_rows(engine) == []


def test_callback_character_lookup_failure(client, storage, engine, upstream):
    _configure_esi(storage)
    _sso_success(upstream)
    upstream.add("GET", CHARACTER_URL, status=502, text="bad gateway")

    data = client.post("/api/auth/esi/callback", json={"code": "c"}).json()

    assert data["error"] == "ESI character lookup failed"
    assert _user_rows(engine) == []


def test_callback_with_query_string(client, engine, upstream):
    """GET callbacks take everything, including client credentials, from the query"""
    _sso_success(upstream)

    response = client.get(
        "/api/auth/esi/callback",
        params={"code": "c", "clientId": "qid", "clientSecret": "qsecret", "redirectUri": "https://q/cb"},
    )

    assert response.json()["ok"] is True
    expected = base64.b64encode(b"qid:qsecret").decode()
    assert upstream.calls("/v2/oauth/token")[0].headers["authorization"] == f"Basic {expected}"


def test_callback_requires_code_and_client(client, storage):
    response = client.post("/api/auth/esi/callback", json={})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required field: code"

    response = client.post("/api/auth/esi/callback", json={"code": "c"})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required field: clientId"


def test_refresh_updates_tokens(client, storage, engine, upstream):
    _configure_esi(storage)
    upstream.add("POST", TOKEN_URL, json={"access_token": "AT2", "expires_in": 1200})
    with engine.begin() as conn:
        conn.execute(
            insert(users),
            {"username": "Pilot One", "character_id": 90000001, "auth_method": "esi", "access_token": "AT1", "refresh_token": "RT1"},
        )

    response = client.post("/api/auth/esi/refresh", json={"characterId": 90000001, "refreshToken": "RT1"})

    data = response.json()
    assert data["ok"] is True
    assert data["characterId"] == 90000001
    assert "expiresAt" in data
    assert b"grant_type=refresh_token" in upstream.calls("/v2/oauth/token")[0].content
    row = _user_rows(engine)[0]
    assert row.access_token == "AT2"
    # upstream returned no new refresh token, the old one stays
    assert row.refresh_token == "RT1"
    assert row.token_expiry is not None


def test_refresh_failure(client, storage, upstream):
    _configure_esi(storage)
    upstream.add("POST", TOKEN_URL, status=400, json={"error": "invalid_token"})

    data = client.post("/api/auth/esi/refresh", json={"characterId": 1, "refreshToken": "bad"}).json()

    assert data["ok"] is False
    assert data["error"] == "Refresh failed"
    assert data["status"] == 400


def test_refresh_requires_fields(client):
    response = client.post("/api/auth/esi/refresh", json={"characterId": 1})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required field: refreshToken"


def test_sso_redirect_relay(client):
    response = client.get("/api/esi-callback", params={"code": "abc", "state": "xyz"}, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/?code=abc&state=xyz"
    assert response.headers["cache-control"] == "no-store, max-age=0"
    assert response.headers["pragma"] == "no-cache"

    response = client.get(
        "/api/esi-callback", params={"error": "access_denied", "error_description": "User cancelled"},
        follow_redirects=False,
    )
    assert response.headers["location"] == "/?error=access_denied&error_description=User+cancelled"

    response = client.get("/api/esi-callback", params={"code": "abc"}, follow_redirects=False)
    assert response.headers["location"] == "/?sso_error=missing_params"


def test_token_proxy_validation(client):
    assert client.post("/api/esi/token", json={}).json() == {"ok": False, "error": "grant_type is required"}

    response = client.post("/api/esi/token", json={"grant_type": "authorization_code", "code": "c"})
    assert response.status_code == 400
    assert response.json()["error"] == "code and redirect_uri are required for authorization_code"

    response = client.post("/api/esi/token", json={"grant_type": "password"})
    assert response.json()["error"] == "unsupported grant_type"


def test_token_proxy_passes_upstream_through(client, upstream):
    upstream.add("POST", TOKEN_URL, json={"access_token": "AT", "expires_in": 1199})
    response = client.post(
        "/api/esi/token",
        json={"grant_type": "authorization_code", "code": "c", "redirect_uri": "https://app/cb", "code_verifier": "v"},
    )
    assert response.status_code == 200
    assert response.json() == {"access_token": "AT", "expires_in": 1199, "ok": True}
    assert b"code_verifier=v" in upstream.calls("/v2/oauth/token")[0].content

    upstream.add("POST", TOKEN_URL, status=400, json={"error": "invalid_grant"})
    response = client.post("/api/esi/token", data={"grant_type": "refresh_token", "refresh_token": "r"})
    assert response.status_code == 400
    assert response.json() == {"error": "invalid_grant", "ok": False}


def test_token_proxy_upstream_down(client, upstream):
    upstream.fail("POST", TOKEN_URL)
    response = client.post("/api/esi/token", json={"grant_type": "refresh_token", "refresh_token": "r"})
    assert response.status_code == 502
    assert response.json()["error"] == "upstream_error"


def test_verify_proxy(client, upstream):
    assert client.post("/api/esi/verify", json={}).status_code == 400

    upstream.add("GET", VERIFY_URL, json={"CharacterID": 1, "CharacterName": "Pilot"})
    response = client.post("/api/esi/verify", json={"access_token": "tok"})

    assert response.json() == {"CharacterID": 1, "CharacterName": "Pilot", "ok": True}
    assert upstream.calls("/oauth/verify")[0].headers["authorization"] == "Bearer tok"
