# conftest.py - Pytest configuration and shared fixtures

import asyncio
import copy
import random
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from core.config import Settings, get_settings
from core.database import (
    ENERGY_COLL, LEASES_COLL, PAYMENTS_COLL, PROPERTIES_COLL, USERS_COLL, get_database,
)
from metrics.metrics import MetricsCollector

FIXED_NOW = datetime(2025, 3, 15, 10, 30, tzinfo=timezone.utc)


# =====================================
# In-memory stand-in for the Motor calls the services use
# =====================================

def _matches(doc: dict, query: dict) -> bool:
    return all(doc.get(key) == value for key, value in query.items())


def _sort_docs(docs, keys):
    for key, direction in reversed(keys):
        docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
    return docs


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction=None):
        keys = key_or_list if isinstance(key_or_list, list) else [(key_or_list, direction or 1)]
        _sort_docs(self._docs, keys)
        return self

    def skip(self, n):
        self._skip = n
        return self

    def limit(self, n):
        self._limit = n
        return self

    async def to_list(self, length=None):
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        if length:
            docs = docs[:length]
        return copy.deepcopy(docs)


class FakeCollection:
    """
    Equality filters, $set / $inc / $push updates and find/sort/skip/limit.
    With ``yield_on_read`` a read snapshots the document and then yields to the
    event loop, so concurrent callers can observe the same stale version.
    """

    def __init__(self, yield_on_read: bool = False):
        self.docs = []
        self.yield_on_read = yield_on_read

    async def insert_one(self, doc):
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query=None, projection=None, sort=None):
        docs = [d for d in self.docs if _matches(d, query or {})]
        if sort:
            _sort_docs(docs, sort)
        found = copy.deepcopy(docs[0]) if docs else None
        if self.yield_on_read:
            await asyncio.sleep(0)
        return found

    def find(self, query=None, projection=None):
        return FakeCursor([d for d in self.docs if _matches(d, query or {})])

    async def count_documents(self, query):
        return len([d for d in self.docs if _matches(d, query)])

    async def update_one(self, query, update):
        for doc in self.docs:
            if _matches(doc, query):
                for key, value in update.get("$set", {}).items():
                    doc[key] = copy.deepcopy(value)
                for key, value in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + value
                for key, value in update.get("$push", {}).items():
                    doc.setdefault(key, []).append(copy.deepcopy(value))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)


class FakeDatabase(dict):
    def __missing__(self, name):
        self[name] = FakeCollection()
        return self[name]


# =====================================
# Fixtures
# =====================================

@pytest.fixture
def fake_db():
    db = FakeDatabase()
    for name in (USERS_COLL, PROPERTIES_COLL, LEASES_COLL, PAYMENTS_COLL, ENERGY_COLL):
        db[name] = FakeCollection()
    return db


@pytest.fixture
def metrics():
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def test_settings():
    return Settings(PAYMENT_DELAY_SECONDS=0, ENERGY_SIMULATOR_ENABLED=False)


@pytest.fixture
def test_client(fake_db, test_settings):
    """API client wired to the in-memory database; the lifespan (Mongo, Redis, scheduler) is not started."""
    from main import app

    async def _db():
        yield fake_db

    app.dependency_overrides[get_database] = _db
    app.dependency_overrides[get_settings] = lambda: test_settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_property(fake_db):
    async def _make(rent=1000.0, initial_price=5000.0, status="available", tenant_id=None, name="Maple Court 4B"):
        doc = {
            "_id": ObjectId(),
            "name": name,
            "location": "Springfield",
            "initial_price": initial_price,
            "rent": rent,
            "status": status,
            "tenant_id": tenant_id,
            "created_at": FIXED_NOW,
        }
        await fake_db[PROPERTIES_COLL].insert_one(doc)
        return doc
    return _make


@pytest.fixture
def make_tenant(fake_db):
    async def _make(cards=None, email="tenant@example.com"):
        doc = {
            "_id": ObjectId(),
            "name": "Test Tenant",
            "email": email,
            "password_hash": "x",
            "role": "tenant",
            "cards": cards if cards is not None else [{
                "card_id": "card-123",
                "last4": "4242",
                "brand": "visa",
                "expiry_month": 12,
                "expiry_year": 2030,
                "cvv_hash": None,
            }],
            "created_at": FIXED_NOW,
        }
        await fake_db[USERS_COLL].insert_one(doc)
        return doc
    return _make
