import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import config
import database
from main import app, get_store
from storage import MemoryStore, MongoStore


def mongomock_store():
    mongomock = pytest.importorskip("mongomock")
    client = mongomock.MongoClient(tz_aware=True)
    db = client[f"ecofinds_test_{ObjectId()}"]
    database.ensure_indexes(db)
    return MongoStore(db, client)


@pytest.fixture
def mongo_store():
    return mongomock_store()


@pytest.fixture
def memory_store():
    store = MemoryStore()
    store.seed_categories(config.DEFAULT_CATEGORIES)
    return store


@pytest.fixture(params=["memory", "mongo"])
def store(request):
    """Every store-level test runs on both implementations"""
    if request.param == "memory":
        store = MemoryStore()
    else:
        store = mongomock_store()
    store.seed_categories(config.DEFAULT_CATEGORIES)
    return store


@pytest.fixture
def client(memory_store):
    app.dependency_overrides[get_store] = lambda: memory_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, email, username="user", password="secret"):
    res = client.post("/api/auth/register", json={
        "email": email,
        "password": password,
        "username": username,
        "full_name": username.title(),
    })
    assert res.status_code == 200, res.text
    body = res.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]


@pytest.fixture
def seller(client):
    return register(client, "alice@example.com", "alice")


@pytest.fixture
def buyer(client):
    return register(client, "bob@example.com", "bob")


@pytest.fixture
def make_user(client):
    def _make(email, username="user", password="secret"):
        return register(client, email, username, password)
    return _make
