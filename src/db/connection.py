"""MongoDB client & database accessors.

Single shared ``MongoClient`` (it pools connections internally), created
lazily on first use.  All copilot pipelines run through
``src.db.executor.execute_pipeline`` against the database returned by
``get_database``.
"""
from __future__ import annotations

from pymongo import MongoClient
from pymongo.database import Database

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_client: MongoClient | None = None


def get_client() -> MongoClient:
    """Return the shared MongoClient (lazy-created, cached)."""
    global _client
    if _client is None:
        settings = get_settings()
        _client = MongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
            tz_aware=True,
        )
        logger.info("Mongo client created  db=%s", settings.mongo_db)
    return _client


def get_database(name: str | None = None) -> Database:
    """Return the configured database (or *name*)."""
    return get_client()[name or get_settings().mongo_db]


def close_client() -> None:
    """Close and forget the shared client (called on API shutdown)."""
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("Mongo client closed")
