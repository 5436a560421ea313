"""
Shared fixtures -- a small seeded copy of the demo collections.

The data lives in a throwaway ``<MONGO_DB>_it`` database that is dropped
when the session ends.
"""
from __future__ import annotations

import pytest

from src.core.config import get_settings


@pytest.fixture(scope="session")
def seeded_db():
    from pipelines.seed.seed_data import seed
    from src.db.connection import get_client

    client = get_client()
    name = f"{get_settings().mongo_db}_it"
    db = client[name]
    seed(db, num_customers=20, num_orders=200)
    yield db
    client.drop_database(name)


@pytest.fixture
def fresh_cache(monkeypatch):
    import src.compiler.cache as cache_module
    from src.compiler.cache import RecommendationCache

    cache = RecommendationCache(ttl=60, max_size=16)
    monkeypatch.setattr(cache_module, "_cache", cache)
    return cache
