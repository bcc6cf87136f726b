import pytest
from fastapi.testclient import TestClient

from database import MemoryBackend, RecordStore, get_store
from main import app


@pytest.fixture
def store():
    return RecordStore(MemoryBackend())


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
