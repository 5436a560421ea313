"""
Unit tests -- Schema snapshot source (fake database).
"""
import datetime

import pytest
from bson import ObjectId
from bson.int64 import Int64
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from src.compiler.plan import PrimitiveType
from src.core.errors import CollectionNotFoundError, DocumentStoreError, QueryTimeoutError
from src.db.schema import infer_primitive_type, list_collection_names, load_schemas, snapshot_collection


@pytest.mark.parametrize("value,expected", [
    ("x", PrimitiveType.STRING),
    (3, PrimitiveType.NUMBER),
    (2.5, PrimitiveType.NUMBER),
    (Int64(7), PrimitiveType.NUMBER),
    (True, PrimitiveType.BOOLEAN),
    (datetime.datetime(2024, 1, 1), PrimitiveType.DATE),
    ([1, 2], PrimitiveType.ARRAY),
    (None, PrimitiveType.NULL),
    ({"a": 1}, PrimitiveType.UNKNOWN),
    (ObjectId(), PrimitiveType.UNKNOWN),
])
def test_infer_primitive_type(value, expected):
    assert infer_primitive_type(value) is expected


def test_snapshot_excludes_id(fake_db):
    snap = snapshot_collection(fake_db, "orders")
    assert "_id" not in snap.fields
    assert snap.fields["orderDate"] == "date"
    assert snap.date_fields() == ["orderDate"]


def test_snapshot_of_legacy_dates_is_string(fake_db):
    snap = snapshot_collection(fake_db, "orders_legacy")
    assert snap.fields["orderDate"] == "string"
    assert snap.date_fields() == []


def test_empty_collection_gives_empty_map(make_db):
    db = make_db({"empty": []})
    assert snapshot_collection(db, "empty").fields == {}


def test_list_skips_system_collections(fake_db):
    assert list_collection_names(fake_db) == ["orders", "orders_legacy"]


def test_load_all(fake_db):
    assert list(load_schemas(fake_db)) == ["orders", "orders_legacy"]


def test_load_requested_skips_missing(fake_db):
    schemas = load_schemas(fake_db, ["orders_legacy", "invoices"])
    assert list(schemas) == ["orders_legacy"]


def test_load_none_found_raises(fake_db):
    with pytest.raises(CollectionNotFoundError) as exc_info:
        load_schemas(fake_db, ["invoices"])
    assert exc_info.value.details["requested"] == ["invoices"]


def test_load_empty_database_raises(make_db):
    with pytest.raises(CollectionNotFoundError):
        load_schemas(make_db())


# ── Driver failures ──────────────────────────────────────


def test_unreachable_server_is_typed_timeout(fake_db):
    fake_db.error = ServerSelectionTimeoutError("localhost:27017: connection refused")
    with pytest.raises(QueryTimeoutError) as exc_info:
        load_schemas(fake_db)
    assert exc_info.value.details["action"] == "listing collections"


def test_sampling_failure_is_typed(fake_db):
    fake_db["orders"].find_error = OperationFailure("not authorized on analytics")
    with pytest.raises(DocumentStoreError) as exc_info:
        snapshot_collection(fake_db, "orders")
    assert exc_info.value.details["collection"] == "orders"
    assert "not authorized" in exc_info.value.message
