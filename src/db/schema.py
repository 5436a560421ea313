"""
Schema snapshot source.

A collection's "schema" is the field → primitive type map of one sampled
document (``_id`` excluded).  Documents stored by the copilot's users are
heterogeneous, so this is a hint for the planner, not a contract; an empty
collection yields an empty map.
"""
from __future__ import annotations

import datetime
import decimal
from typing import Any, Iterable

from bson.decimal128 import Decimal128
from bson.int64 import Int64
from pymongo.database import Database
from pymongo.errors import PyMongoError

from src.compiler.plan import PrimitiveType, SchemaSnapshot
from src.core.errors import CollectionNotFoundError, CopilotError, DocumentStoreError, QueryTimeoutError
from src.core.logging import get_logger

logger = get_logger(__name__)


def _store_error(exc: PyMongoError, action: str, collection: str | None = None) -> CopilotError:
    """Typed error for a driver failure; timeouts (server selection included) map to QueryTimeoutError."""
    details = {"action": action, "collection": collection}
    if exc.timeout:
        logger.error("Document store timed out while %s: %s", action, exc)
        return QueryTimeoutError(f"Document store timed out while {action}", details)
    logger.error("Document store failed while %s: %s", action, exc)
    return DocumentStoreError(f"Document store failed while {action}: {exc}", details)


def infer_primitive_type(value: Any) -> PrimitiveType:
    """Map one BSON value to its PrimitiveType."""
    if value is None:
        return PrimitiveType.NULL
    if isinstance(value, bool):
        return PrimitiveType.BOOLEAN
    if isinstance(value, (int, float, Int64, Decimal128, decimal.Decimal)):
        return PrimitiveType.NUMBER
    if isinstance(value, (datetime.datetime, datetime.date)):
        return PrimitiveType.DATE
    if isinstance(value, str):
        return PrimitiveType.STRING
    if isinstance(value, (list, tuple)):
        return PrimitiveType.ARRAY
    return PrimitiveType.UNKNOWN


def snapshot_collection(db: Database, name: str) -> SchemaSnapshot:
    """Sample one document of *name* and describe its top-level fields."""
    try:
        doc = db[name].find_one({}, projection={"_id": 0})
    except PyMongoError as exc:
        raise _store_error(exc, f"sampling collection '{name}'", name) from exc
    if not doc:
        logger.info("Collection %s is empty -- empty schema snapshot", name)
        return SchemaSnapshot(collection_name=name, fields={})
    fields = {key: infer_primitive_type(val).value for key, val in doc.items()}
    return SchemaSnapshot(collection_name=name, fields=fields)


def list_collection_names(db: Database) -> list[str]:
    """User collections of *db*, sorted, ``system.*`` excluded."""
    try:
        names = db.list_collection_names()
    except PyMongoError as exc:
        raise _store_error(exc, "listing collections") from exc
    return sorted(n for n in names if not n.startswith("system."))


def load_schemas(
    db: Database,
    target_names: Iterable[str] | None = None,
) -> dict[str, SchemaSnapshot]:
    """Snapshot the requested collections (all of them when *target_names* is None).

    Requested names that do not exist are logged and skipped; only the
    found ones proceed.

    Raises
    ------
    CollectionNotFoundError
        If none of the requested collections exist (or the database is empty).
    """
    available = list_collection_names(db)
    if target_names is None:
        names = available
        missing: list[str] = []
    else:
        requested = list(dict.fromkeys(target_names))
        names = [n for n in requested if n in available]
        missing = [n for n in requested if n not in available]
        for name in missing:
            logger.warning("Requested collection '%s' does not exist -- skipped", name)

    if not names:
        raise CollectionNotFoundError(
            "None of the requested collections exist" if target_names is not None
            else "The database has no collections",
            {"requested": missing, "available": available},
        )

    return {name: snapshot_collection(db, name) for name in names}
