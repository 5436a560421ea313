"""
Recommendation cache.

Keeps what is needed to re-render a query's chart recommendations later
(executed pipeline, primary collection, visualization hints keyed by hint
id) under an opaque id handed back to the client.

The cache is an explicitly owned object: expiry happens in ``sweep(now)``,
which the ``CacheSweeper`` background thread calls on an interval.  The
sweeper is started and stopped by its owner (the API lifespan), so tests
can drive ``sweep`` with a fake clock instead.
"""
from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from src.compiler.plan import VisualizationHint
from src.core.config import get_settings
from src.core.errors import RecommendationNotFoundError
from src.core.logging import get_logger

logger = get_logger(__name__)


# ── Cache entry ─────────────────────────────────────────


@dataclass
class RecommendationEntry:
    """Everything needed to re-execute and re-reconcile a query's charts."""
    query: str
    primary_collection: str
    pipeline: list[dict[str, Any]]
    interpretation: str = ""
    hints: dict[str, VisualizationHint] = field(default_factory=dict)


@dataclass
class _Slot:
    entry: RecommendationEntry
    created_at: float
    hit_count: int = 0


# ── Cache implementation ────────────────────────────────


class RecommendationCache:
    """Thread-safe in-memory TTL cache keyed by opaque recommendation id.

    Parameters
    ----------
    ttl : float
        Seconds an entry stays retrievable.
    max_size : int
        Maximum number of entries. Oldest entries are evicted when full.
    """

    def __init__(self, ttl: float | None = None, max_size: int | None = None):
        settings = get_settings()
        self._store: dict[str, _Slot] = {}
        self._lock = threading.Lock()
        self._ttl = settings.recommendation_ttl_seconds if ttl is None else ttl
        self._max_size = settings.recommendation_max_entries if max_size is None else max_size
        self._hits = 0
        self._misses = 0
        self._swept = 0

    # ── Public API ──────────────────────────────────────

    def put(self, entry: RecommendationEntry, now: float | None = None) -> str:
        """Store *entry* and return its new opaque id."""
        now = time.time() if now is None else now
        rec_id = secrets.token_hex(16)
        with self._lock:
            if len(self._store) >= self._max_size:
                self._evict_oldest()
            self._store[rec_id] = _Slot(entry=entry, created_at=now)
            size = len(self._store)
        logger.debug("Recommendation PUT id=%s size=%d", rec_id, size)
        return rec_id

    def get(self, rec_id: str, now: float | None = None) -> RecommendationEntry:
        """Return the entry for *rec_id*.

        Raises
        ------
        RecommendationNotFoundError
            If the id is unknown or its entry has expired.
        """
        now = time.time() if now is None else now
        with self._lock:
            slot = self._store.get(rec_id)
            if slot is not None and now - slot.created_at > self._ttl:
                del self._store[rec_id]
                slot = None
            if slot is None:
                self._misses += 1
                raise RecommendationNotFoundError(
                    "Recommendation not found or expired",
                    {"recommendation_id": rec_id},
                )
            slot.hit_count += 1
            self._hits += 1
            return slot.entry

    def sweep(self, now: float | None = None) -> int:
        """Remove all expired entries. Returns count removed."""
        now = time.time() if now is None else now
        with self._lock:
            expired = [k for k, slot in self._store.items() if now - slot.created_at > self._ttl]
            for k in expired:
                del self._store[k]
            self._swept += len(expired)
        if expired:
            logger.info("Swept %d expired recommendation(s)", len(expired))
        return len(expired)

    def clear(self) -> int:
        with self._lock:
            count = len(self._store)
            self._store.clear()
            return count

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._store),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "swept": self._swept,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    # ── Internals ───────────────────────────────────────

    def _evict_oldest(self) -> None:
        """Remove the entry with the earliest creation time (lock held)."""
        if not self._store:
            return
        oldest_key = min(self._store, key=lambda k: self._store[k].created_at)
        del self._store[oldest_key]


# ── Periodic sweeper ────────────────────────────────────


class CacheSweeper:
    """Background thread calling ``cache.sweep()`` every *interval* seconds."""

    def __init__(self, cache: RecommendationCache, interval: float | None = None):
        self._cache = cache
        self._interval = get_settings().recommendation_sweep_seconds if interval is None else interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="recommendation-sweeper", daemon=True)
        self._thread.start()
        logger.info("Recommendation sweeper started (every %.0fs)", self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Recommendation sweeper stopped")

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._cache.sweep()
            except Exception:
                logger.exception("Recommendation sweep failed")


# ── Process-wide instance ───────────────────────────────

_cache: RecommendationCache | None = None


def get_recommendation_cache() -> RecommendationCache:
    """Return the process-wide cache, creating it on first use."""
    global _cache
    if _cache is None:
        _cache = RecommendationCache()
    return _cache
