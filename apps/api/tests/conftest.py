"""
Pytest configuration and fixtures

Tests never touch a real Redis: the connection manager is built with a factory
returning the in-memory FakeRedis (tests/redis_fakes.py), and the FastAPI app gets
that manager through a dependency override.
"""
import os
import sys

# Fast password hashing for tests; must be set before core.config is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pytest
from fastapi.testclient import TestClient

from core.redis_connection import RedisConnectionManager, get_connection_manager
from services.record_store import RecordStore
from services.session_store import SessionStore
from storage_client.cache import RequestCache
from storage_client.local_store import LocalStore
from storage_client.remote import HealthApiClient
from storage_client.storage import HealthStorage
from tests.api_fakes import SwitchableTransport
from tests.redis_fakes import FakeRedis


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_manager(fake_redis):
    """Connection manager over FakeRedis, no reconnect cooldown."""
    manager = RedisConnectionManager(
        "redis://fake",
        client_factory=lambda: fake_redis,
        cooldown_s=0,
        backoff_base_s=0,
        backoff_max_s=0,
    )
    yield manager
    manager.close()


@pytest.fixture
def record_store(redis_manager):
    return RecordStore(redis_manager)


@pytest.fixture
def session_store(redis_manager):
    return SessionStore(redis_manager)


@pytest.fixture
def app(redis_manager):
    from main import app as fastapi_app

    fastapi_app.dependency_overrides[get_connection_manager] = lambda: redis_manager
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def api_transport(app):
    """In-process transport for the storage client's httpx.AsyncClient."""
    return httpx.ASGITransport(app=app)


@pytest.fixture
def remote_transport(api_transport):
    return SwitchableTransport(api_transport)


@pytest.fixture
def local_store(tmp_path):
    return LocalStore(tmp_path / "local_store.json")


@pytest.fixture
def health_storage(remote_transport, local_store):
    """Client-side storage facade talking to the in-process app."""
    remote = HealthApiClient("http://testserver", transport=remote_transport)
    return HealthStorage(remote=remote, local=local_store, cache=RequestCache())


@pytest.fixture
def auth_headers(client):
    """Register a user and return its bearer headers."""
    response = client.post(
        "/v1/auth/register",
        json={"username": "alice", "password": "correct-horse", "display_name": "Alice"},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['session_token']}"}
