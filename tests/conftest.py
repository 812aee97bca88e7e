"""Pytest configuration and fixtures"""

from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from lmeve.main import app
from lmeve.database.base import Base
from lmeve.database.gateway import DatabaseGateway, get_gateway
from lmeve.services.esi_client import EsiClient, get_esi_client
from lmeve.storage.files import FileStorage, get_storage


class FakeUpstream:
    """Canned SSO/ESI responses keyed by (method, host, path)"""

    def __init__(self):
        self.routes: Dict[Tuple[str, str, str], Any] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        url: str,
        status: int = 200,
        json: Any = None,
        text: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        parsed = httpx.URL(url)
        self.routes[(method.upper(), parsed.host, parsed.path)] = (status, json, text, headers)

    def fail(self, method: str, url: str):
        """Make requests to this URL fail at the transport level"""
        parsed = httpx.URL(url)
        self.routes[(method.upper(), parsed.host, parsed.path)] = None

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.host, request.url.path)
        if key not in self.routes:
            raise httpx.ConnectError("no route", request=request)
        route = self.routes[key]
        if route is None:
            raise httpx.ConnectError("connection refused", request=request)
        status, json, text, headers = route
        if json is not None:
            return httpx.Response(status, json=json, headers=headers)
        return httpx.Response(status, text=text or "", headers=headers)


@pytest.fixture
def storage(tmp_path):
    """Storage rooted in a temp directory"""
    directory = tmp_path / "storage"
    directory.mkdir()
    return FileStorage(directory)


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'lmeve.db'}"


@pytest.fixture
def engine(db_url):
    """Engine with every table created"""
    engine = create_engine(db_url, poolclass=NullPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def gateway(engine, db_url):
    """Gateway that ignores credentials and always opens the test database"""
    return DatabaseGateway(engine_factory=lambda config: create_engine(db_url, poolclass=NullPool))


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def esi(upstream):
    return EsiClient(transport=httpx.MockTransport(upstream.handler))


@pytest.fixture
def client(storage, gateway, esi):
    """Test client fixture"""
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_esi_client] = lambda: esi

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
