"""
Shared fixtures -- an in-memory stand-in for a pymongo Database.

``FakeCollection.aggregate`` does not evaluate pipelines: it records the
call and returns the rows (or raises the error) the test configured.
"""
from __future__ import annotations

from typing import Any

import pytest

from src.compiler.cache import RecommendationCache
from src.compiler.plan import SchemaSnapshot


class FakeCollection:
    def __init__(self, name: str, docs: list[dict] | None = None):
        self.name = name
        self.docs = list(docs or [])
        self.results: list[dict] = []
        self.error: Exception | None = None
        self.find_error: Exception | None = None
        self.calls: list[dict[str, Any]] = []

    def find_one(self, filter: dict | None = None, projection: dict | None = None):
        if self.find_error is not None:
            raise self.find_error
        if not self.docs:
            return None
        doc = dict(self.docs[0])
        for key, flag in (projection or {}).items():
            if not flag:
                doc.pop(key, None)
        return doc

    def aggregate(self, pipeline: list[dict], **kwargs):
        self.calls.append({"pipeline": pipeline, **kwargs})
        if self.error is not None:
            raise self.error
        return iter([dict(r) for r in self.results])


class FakeDatabase:
    name = "test"

    def __init__(self, collections: dict[str, list[dict]] | None = None):
        self.collections = {n: FakeCollection(n, docs) for n, docs in (collections or {}).items()}
        self.error: Exception | None = None

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    def list_collection_names(self) -> list[str]:
        if self.error is not None:
            raise self.error
        return list(self.collections)


@pytest.fixture
def orders_schema() -> SchemaSnapshot:
    return SchemaSnapshot(
        collection_name="orders",
        fields={
            "orderDate": "date",
            "customerName": "string",
            "region": "string",
            "totalAmount": "number",
            "rawDateStr": "string",
        },
    )


@pytest.fixture
def fake_db():
    import datetime

    return FakeDatabase({
        "orders": [{
            "_id": "abc",
            "orderDate": datetime.datetime(2024, 3, 1),
            "region": "East",
            "customerName": "Ada",
            "totalAmount": 120.5,
        }],
        "orders_legacy": [{
            "_id": "def",
            "orderDate": "2024-03-01",
            "region": "East",
            "totalAmount": 99,
        }],
        "system.views": [{"viewOn": "orders"}],
    })


@pytest.fixture
def fresh_cache(monkeypatch):
    """Replace the process-wide recommendation cache with an empty one."""
    import src.compiler.cache as cache_module

    cache = RecommendationCache(ttl=60, max_size=16)
    monkeypatch.setattr(cache_module, "_cache", cache)
    return cache


@pytest.fixture
def make_db():
    """Factory for ad-hoc fake databases: ``make_db({"name": [docs]})``."""
    return FakeDatabase
