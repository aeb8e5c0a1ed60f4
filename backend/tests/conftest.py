"""
Pytest configuration and fixtures for backend tests.
"""

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rest_api.core.dependencies import get_qr_service, get_redis, get_redis_sync
from rest_api.main import create_app
from rest_api.models import Base, DiningTable
from rest_api.repositories import SessionAuditLog, TableRegistry
from rest_api.services.domain import QrSessionService
from shared.config.settings import Settings
from shared.infrastructure.db import get_db
from shared.infrastructure.redis import lua_scripts
from shared.security.auth import sign_jwt
from shared.security.rate_limit import limiter


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 2023-11-14T22:13:20Z
FROZEN_NOW_MS = 1_700_000_000_000


class FrozenClock:
    """Injectable ``now_ms`` callable that only moves when told to."""

    def __init__(self, now_ms: int = FROZEN_NOW_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


def make_settings(**overrides) -> Settings:
    """Settings pinned to known values regardless of the environment."""
    values = {
        "qr_token_length": 24,
        "qr_token_ttl_seconds": 300,
        "qr_session_ttl_seconds": 7200,
        "qr_bind_to_ip": False,
        "qr_table_cache_ttl_seconds": 300,
        "client_url": "https://cafe.example",
        "environment": "development",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """slowapi keeps its counters in process memory between tests."""
    limiter.reset()
    yield


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation, with tables "4" and "7" active
    and "99" deactivated.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    session.add_all([
        DiningTable(static_id="4", name="Table 4", is_active=True),
        DiningTable(static_id="7", name="Table 7", is_active=True),
        DiningTable(static_id="99", name="Table 99", is_active=False),
    ])
    session.commit()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def redis_server():
    """One fake Redis server per test, shared by the async and sync clients."""
    lua_scripts._script_shas.clear()
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server):
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def fake_redis_sync(redis_server):
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def qr_service(db_session, fake_redis, clock):
    """QR session service over the test database and fake Redis."""
    return QrSessionService(
        fake_redis,
        TableRegistry(TestingSessionLocal),
        SessionAuditLog(TestingSessionLocal),
        make_settings(),
        now_ms=clock,
    )


@pytest.fixture
def app(db_session, fake_redis, fake_redis_sync, qr_service):
    """
    Application without its lifespan; collaborators come from overrides.
    """
    application = create_app(lifespan_handler=None)

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_redis] = lambda: fake_redis
    application.dependency_overrides[get_redis_sync] = lambda: fake_redis_sync
    application.dependency_overrides[get_qr_service] = lambda: qr_service
    return application


@pytest.fixture(scope="function")
def client(app):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def check_in(client: TestClient, table_static_id: str = "4") -> dict:
    """Issue and consume a token through the API. Returns the consume body."""
    issued = client.post(f"/api/qr/issue/{table_static_id}")
    assert issued.status_code == 200, issued.json()
    consumed = client.get(f"/api/qr/consume/{issued.json()['token']}")
    assert consumed.status_code == 200, consumed.json()
    return consumed.json()


@pytest.fixture
def checked_in(client):
    """A diner checked in at table 4 (the client now holds the cookie)."""
    return check_in(client, "4")


@pytest.fixture
def admin_headers():
    token = sign_jwt({"sub": "1", "email": "admin@test.com", "roles": ["ADMIN"]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def waiter_headers():
    token = sign_jwt({"sub": "2", "email": "waiter@test.com", "roles": ["WAITER"]})
    return {"Authorization": f"Bearer {token}"}
