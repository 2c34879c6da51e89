import asyncio
import json
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure the application package is importable when tests run from the repository root.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.backend.main import app
from app.backend import config
from app.backend.api import routes
from app.backend.services.broadcast import BroadcastCoordinator
from app.backend.services.connections import Connection
from app.backend.services.record_store import RecordStore
from app.backend.services.session_registry import SessionRegistry

TEST_JWT_SECRET = "test-secret-for-the-chat-suite-0123456789"


def _clear_caches() -> None:
    config.get_settings.cache_clear()
    routes.get_record_store.cache_clear()
    routes.get_auth_service.cache_clear()
    routes.get_session_registry.cache_clear()
    routes.get_coordinator.cache_clear()


class RecordingConnection(Connection):
    """In-memory connection that keeps a JSON copy of every frame it is sent."""

    def __init__(self, connection_id=None):
        super().__init__(connection_id)
        self.frames = []
        self.close_calls = []

    async def _transmit(self, frame):
        self.frames.append(json.loads(json.dumps(frame)))

    async def _shutdown(self, code, reason):
        self.close_calls.append((code, reason))

    def events(self):
        return [frame["event"] for frame in self.frames]

    def payloads(self, event):
        return [frame["data"] for frame in self.frames if frame["event"] == event]


@pytest.fixture(autouse=True)
def _reset_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("CHAT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CHAT_ENVIRONMENT", "dev")
    monkeypatch.setenv("CHAT_DEBUG_MODE", "true")
    monkeypatch.setenv("CHAT_BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("CHAT_JWT_SECRET", TEST_JWT_SECRET)

    _clear_caches()

    settings = config.get_settings()

    yield settings

    _clear_caches()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def store(tmp_path):
    return RecordStore(tmp_path / "data")


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def coordinator(registry, store):
    return BroadcastCoordinator(registry=registry, store=store)


@pytest.fixture
def make_connection():
    def _make(connection_id=None):
        return RecordingConnection(connection_id)

    return _make


@pytest.fixture
def make_user(store):
    """Create a user directly in the store and return its identity."""

    def _make(username, color=None):
        user = asyncio.run(store.create_user(f"{username}@example.com", username, "not-a-real-hash"))
        if color is not None:
            user = asyncio.run(store.set_user_color(user.id, color))
        return user.identity()

    return _make


@pytest.fixture
def register_user(client):
    """Register a user through the HTTP API; returns ``(user, access_token)``."""

    def _register(username, password="s3cret-pass"):
        response = client.post(
            "/auth/register",
            json={"email": f"{username}@example.com", "username": username, "password": password},
        )
        assert response.status_code == 200, response.text
        payload = response.json()
        return payload["user"], payload["access_token"]

    return _register
