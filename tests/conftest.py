"""Shared fixtures: an event store in a temp dir and a client wired to it."""
import pytest
from fastapi.testclient import TestClient

from database import EventStore, get_store
from main import app


@pytest.fixture
def store(tmp_path) -> EventStore:
    event_store = EventStore(str(tmp_path / "data.json"), str(tmp_path / "track.log"))
    event_store.initialize()
    return event_store


@pytest.fixture
def client(store: EventStore):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend():
    return "asyncio"
