"""
Unit tests -- Date-field tracker.
"""
from src.compiler.date_tracker import DateFieldSet
from src.compiler.plan import SchemaSnapshot


def test_seed_from_date_and_timestamp_types():
    snap = SchemaSnapshot(
        collection_name="events",
        fields={"createdAt": "date", "ts": "timestamp", "label": "string", "dateLabel": "string"},
    )
    fields = DateFieldSet.seed(snap)
    assert list(fields) == ["createdAt", "ts"]
    # field *names* containing "date" are not seeded, only types
    assert "dateLabel" not in fields


def test_seed_none_is_empty():
    assert len(DateFieldSet.seed(None)) == 0


def test_track_schema_field_is_not_introduced(orders_schema):
    fields = DateFieldSet.seed(orders_schema)
    fields.track("rawDateStr", "stage 0 ($addFields)")
    assert "rawDateStr" in fields
    assert fields.introduced_by_stages == {}


def test_track_and_untrack_new_field(orders_schema):
    fields = DateFieldSet.seed(orders_schema)
    fields.track("shipDate", "stage 1 ($set)")
    assert fields.introduced_by_stages == {"shipDate": "stage 1 ($set)"}
    fields.untrack("shipDate", "stage 2 ($set)")
    assert "shipDate" not in fields
    assert fields.introduced_by_stages == {}


def test_only_snapshot_or_introduced_fields_tracked(orders_schema):
    fields = DateFieldSet.seed(orders_schema)
    fields.track("a", "stage 0 ($project)")
    fields.track("orderDate", "stage 0 ($project)")
    for name in fields:
        assert name in orders_schema.fields or name in fields.introduced_by_stages


def test_copy_is_independent(orders_schema):
    fields = DateFieldSet.seed(orders_schema)
    clone = fields.copy()
    clone.track("x", "stage 0 ($set)")
    assert "x" not in fields
    assert "x" in clone.introduced_by_stages


def test_plain_construction_and_repr():
    fields = DateFieldSet({"orderDate"})
    assert "orderDate" in fields
    assert repr(fields) == "DateFieldSet(['orderDate'])"
