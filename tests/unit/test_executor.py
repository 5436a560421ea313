"""
Unit tests -- Aggregation executor (fake database).
"""
import datetime
import decimal
import json

import pytest
from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo.errors import ExecutionTimeout, OperationFailure

from src.core.errors import PipelineExecutionError, QueryTimeoutError
from src.db.executor import execute_pipeline


def test_rows_serialised(fake_db):
    oid = ObjectId("65a1b2c3d4e5f6a7b8c9d0e1")
    fake_db["orders"].results = [{
        "_id": oid,
        "when": datetime.datetime(2024, 3, 1, 12, 0),
        "amount": Decimal128("12.50"),
        "price": decimal.Decimal("3.5"),
        "nested": {"ids": [oid]},
    }]
    rows = execute_pipeline([{"$match": {}}], "orders", db=fake_db)
    assert rows == [{
        "_id": "65a1b2c3d4e5f6a7b8c9d0e1",
        "when": "2024-03-01T12:00:00",
        "amount": 12.5,
        "price": 3.5,
        "nested": {"ids": ["65a1b2c3d4e5f6a7b8c9d0e1"]},
    }]
    json.dumps(rows)


def test_timeout_passed_as_max_time(fake_db):
    execute_pipeline([{"$match": {}}], "orders", timeout_ms=1500, db=fake_db)
    assert fake_db["orders"].calls[0]["maxTimeMS"] == 1500


def test_server_error_wrapped_with_context(fake_db):
    fake_db["orders"].error = OperationFailure("Unrecognized expression '$bogus'")
    pipeline = [{"$project": {"x": {"$bogus": 1}}}]
    with pytest.raises(PipelineExecutionError) as exc_info:
        execute_pipeline(pipeline, "orders", db=fake_db)
    err = exc_info.value
    assert err.collection == "orders"
    assert json.loads(err.pipeline) == pipeline
    assert err.details["collection"] == "orders"
    assert "$bogus" in err.message


def test_timeout_is_typed(fake_db):
    fake_db["orders"].error = ExecutionTimeout("operation exceeded time limit")
    with pytest.raises(QueryTimeoutError):
        execute_pipeline([{"$match": {}}], "orders", timeout_ms=10, db=fake_db)


@pytest.mark.parametrize("stage", [{"$out": "copy"}, {"$merge": {"into": "copy"}}])
def test_write_stages_refused_before_submission(fake_db, stage):
    with pytest.raises(PipelineExecutionError, match="read-only"):
        execute_pipeline([{"$match": {}}, stage], "orders", db=fake_db)
    assert fake_db["orders"].calls == []
