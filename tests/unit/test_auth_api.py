"""Test manual login and session lookup"""

from datetime import datetime, timedelta
import hashlib

from sqlalchemy import create_engine, insert, select
from sqlalchemy.pool import NullPool

from lmeve.database.gateway import DatabaseGateway, get_gateway
from lmeve.main import app
from lmeve.models.user import User
from lmeve.security.auth import ensure_admin, get_password_hash, is_bcrypt_hash, verify_password

users = User.__table__


def _add_user(engine, **values):
    row = {"username": "admin", "role": "admin", "auth_method": "manual", "is_active": True}
    row.update(values)
    with engine.begin() as conn:
        conn.execute(insert(users), row)


def _stored_password(engine, username="admin"):
    with engine.connect() as conn:
        return conn.execute(select(users.c.password).where(users.c.username == username)).scalar()


def test_legacy_sha256_password_is_upgraded(client, engine):
    """A SHA-256 password logs in and is rehashed to bcrypt"""
    _add_user(engine, password=hashlib.sha256(b"12345").hexdigest())

    response = client.post("/api/auth/login", json={"username": "admin", "password": "12345"})

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["user"]["username"] == "admin"
    assert data["user"]["role"] == "admin"
    assert "password" not in data["user"]
    assert is_bcrypt_hash(_stored_password(engine))

    # the upgraded hash keeps working
    response = client.post("/api/auth/login", json={"username": "admin", "password": "12345"})
    assert response.json()["ok"] is True


def test_plain_text_password_is_upgraded(client, engine):
    _add_user(engine, password="letmein")

    response = client.post("/api/auth/login", json={"username": " admin ", "password": "letmein"})

    assert response.json()["ok"] is True
    assert is_bcrypt_hash(_stored_password(engine))


def test_bcrypt_password(client, engine):
    _add_user(engine, password=get_password_hash("s3cret"))

    assert client.post("/api/auth/login", json={"username": "admin", "password": "s3cret"}).status_code == 200

    response = client.post("/api/auth/login", json={"username": "admin", "password": "wrong"})
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "Invalid username or password"}


def test_wrong_legacy_password_is_not_upgraded(client, engine):
    legacy = hashlib.sha256(b"12345").hexdigest()
    _add_user(engine, password=legacy)

    response = client.post("/api/auth/login", json={"username": "admin", "password": "54321"})

    assert response.status_code == 401
    assert _stored_password(engine) == legacy


def test_unknown_user(client, engine):
    response = client.post("/api/auth/login", json={"username": "nobody", "password": "x"})
    assert response.status_code == 401


def test_disabled_user(client, engine):
    _add_user(engine, password="pw", is_active=False)
    response = client.post("/api/auth/login", json={"username": "admin", "password": "pw"})
    assert response.status_code == 403
    assert response.json() == {"ok": False, "error": "User account is disabled"}


def test_empty_stored_password(client, engine):
    _add_user(engine, password="")
    response = client.post("/api/auth/login", json={"username": "admin", "password": ""})
    # empty password in the request is a missing field
    assert response.status_code == 400

    response = client.post("/api/auth/login", json={"username": "admin", "password": "anything"})
    assert response.status_code == 401


def test_login_updates_last_login(client, engine):
    _add_user(engine, password="pw")
    client.post("/api/auth/login", json={"username": "admin", "password": "pw"})

    with engine.connect() as conn:
        last_login = conn.execute(select(users.c.last_login)).scalar()
    assert last_login is not None


def test_login_requires_fields(client):
    response = client.post("/api/auth/login", json={"username": "admin"})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required field: password"


def test_login_unexpected_error(client, tmp_path):
    """Failures outside the login rules become a 500 envelope"""
    empty_url = f"sqlite:///{tmp_path / 'empty.db'}"
    app.dependency_overrides[get_gateway] = lambda: DatabaseGateway(
        engine_factory=lambda config: create_engine(empty_url, poolclass=NullPool)
    )

    response = client.post("/api/auth/login", json={"username": "admin", "password": "pw"})

    assert response.status_code == 500
    data = response.json()
    assert data["ok"] is False
    assert data["error"] == "Unhandled error"
    assert "detail" in data


def test_session_returns_latest_esi_login(client, engine):
    now = datetime.utcnow()
    _add_user(engine, username="Old Pilot", auth_method="esi", character_id=1, last_login=now - timedelta(hours=1))
    _add_user(engine, username="New Pilot", auth_method="esi", character_id=2, last_login=now)
    _add_user(engine, username="admin", auth_method="manual", last_login=now + timedelta(hours=1))

    response = client.get("/api/auth/session")

    data = response.json()
    assert data["ok"] is True
    assert data["user"]["username"] == "New Pilot"
    assert data["user"]["character_id"] == 2


def test_session_without_esi_logins(client, engine):
    assert client.get("/api/auth/session").json() == {"ok": True, "user": None}


def test_ensure_admin_creates_bcrypt_super_admin(engine):
    """Seeding creates a manual super admin that can log in"""
    with engine.connect() as conn:
        assert ensure_admin(conn, "root", "s3cret") is True
        assert ensure_admin(conn, "root", "other") is False

    with engine.connect() as conn:
        row = conn.execute(select(users).where(users.c.username == "root")).first()
    assert row.role == "super_admin"
    assert row.auth_method == "manual"
    assert is_bcrypt_hash(row.password)
    assert verify_password("s3cret", row.password)
