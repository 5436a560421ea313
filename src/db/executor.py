"""
Read-only aggregation executor.

All copilot-generated pipelines run through ``execute_pipeline``, which:
  1. Refuses write stages ($out / $merge) before anything is sent
  2. Runs ``aggregate`` on the primary collection with ``maxTimeMS``
  3. Converts ObjectId/Decimal128/datetime to JSON-safe Python types
  4. Wraps every driver failure in a typed error carrying the pipeline

No retries: a broken pipeline is never reported as an empty result.
"""
from __future__ import annotations

import datetime
import decimal
from typing import Any

from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo.database import Database
from pymongo.errors import ExecutionTimeout, PyMongoError

from src.core.config import get_settings
from src.core.errors import PipelineExecutionError, QueryTimeoutError
from src.core.logging import get_logger, log_event
from src.core.utils import to_json

logger = get_logger(__name__)

_WRITE_STAGES = {"$out", "$merge"}


def _serialise_value(val: Any) -> Any:
    """Convert BSON types to JSON-serialisable Python types."""
    if isinstance(val, ObjectId):
        return str(val)
    if isinstance(val, Decimal128):
        return float(val.to_decimal())
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    if isinstance(val, bytes):
        return val.hex()
    if isinstance(val, dict):
        return {k: _serialise_value(v) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [_serialise_value(v) for v in val]
    return val


def serialise_document(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: _serialise_value(v) for k, v in doc.items()}


def _check_read_only(pipeline: list[dict[str, Any]], collection: str) -> None:
    for index, stage in enumerate(pipeline):
        blocked = _WRITE_STAGES.intersection(stage) if isinstance(stage, dict) else set()
        if blocked:
            raise PipelineExecutionError(
                f"Stage {index} uses {', '.join(sorted(blocked))}; only read-only pipelines are allowed",
                pipeline=to_json(pipeline),
                collection=collection,
                details={"stage_index": index},
            )


def execute_pipeline(
    pipeline: list[dict[str, Any]],
    primary_collection: str,
    timeout_ms: int | None = None,
    db: Database | None = None,
) -> list[dict[str, Any]]:
    """Run *pipeline* on *primary_collection* and return rows as serialisable dicts.

    Raises
    ------
    QueryTimeoutError
        If the server aborts the pipeline after ``timeout_ms``.
    PipelineExecutionError
        If the pipeline writes, or the driver / server fails for any other reason.
    """
    if timeout_ms is None:
        timeout_ms = get_settings().query_timeout_ms
    if db is None:
        from src.db.connection import get_database
        db = get_database()

    _check_read_only(pipeline, primary_collection)
    log_event(logger, "Executing pipeline", collection=primary_collection,
              stages=len(pipeline), timeout_ms=timeout_ms)

    try:
        cursor = db[primary_collection].aggregate(pipeline, maxTimeMS=int(timeout_ms))
        rows = [serialise_document(doc) for doc in cursor]
    except ExecutionTimeout as exc:
        logger.error("Pipeline on %s timed out after %dms", primary_collection, timeout_ms)
        raise QueryTimeoutError(
            f"Pipeline exceeded {timeout_ms}ms on collection '{primary_collection}'",
            {"pipeline": to_json(pipeline), "collection": primary_collection},
        ) from exc
    except PyMongoError as exc:
        logger.error("Pipeline execution failed on %s: %s", primary_collection, exc)
        raise PipelineExecutionError(
            f"Pipeline execution failed: {exc}",
            pipeline=to_json(pipeline),
            collection=primary_collection,
        ) from exc

    log_event(logger, "Pipeline done", collection=primary_collection, rows=len(rows))
    return rows
