import os

os.environ.setdefault("VIDLY_JWT_PRIVATE_KEY", "test-private-key")
os.environ.setdefault("VIDLY_ENV", "test")

from contextlib import contextmanager

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import auth
from database import Store, get_store
from main import app


class RollbackTransaction:
    """Transaction handle for the mock store; abort puts the snapshot back."""

    session = None

    def __init__(self, store, snapshot):
        self.store = store
        self.snapshot = snapshot
        self.aborted = False

    def abort(self):
        if not self.aborted:
            self.store.restore(self.snapshot)
            self.aborted = True


class MockStore(Store):
    """mongomock has no transactions, so snapshot collections and restore on abort."""

    def __init__(self):
        super().__init__(mongomock.MongoClient()["vidly_test"])

    def snapshot(self):
        return {name: list(self.db[name].find()) for name in self.db.list_collection_names()}

    def restore(self, snapshot):
        for name in set(self.db.list_collection_names()) | set(snapshot):
            self.db[name].delete_many({})
            if snapshot.get(name):
                self.db[name].insert_many(snapshot[name])

    @contextmanager
    def transaction(self):
        txn = RollbackTransaction(self, self.snapshot())
        try:
            yield txn
        except Exception:
            txn.abort()
            raise


@pytest.fixture
def store():
    return MockStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def token():
    return auth.create_access_token({"_id": ObjectId(), "isAdmin": False})


@pytest.fixture
def admin_token():
    return auth.create_access_token({"_id": ObjectId(), "isAdmin": True})


@pytest.fixture
def customer(store):
    doc = {"name": "Customer Name", "phone": "12345", "isGold": False}
    store["customers"].insert_one(doc)
    return doc


@pytest.fixture
def genre(store):
    doc = {"name": "Genre Name"}
    store["genres"].insert_one(doc)
    return doc


@pytest.fixture
def movie(store, genre):
    doc = {
        "title": "Movie Title",
        "dailyRentalRate": 2.5,
        "numberInStock": 1,
        "genres": [{"_id": genre["_id"], "name": genre["name"]}],
    }
    store["movies"].insert_one(doc)
    return doc
