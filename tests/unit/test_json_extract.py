"""
Unit tests -- model output to JSON adapter.
"""
import pytest

from src.compiler.json_extract import extract_json_object, find_balanced_object, normalize_literals
from src.core.errors import PlanParseError


def test_prose_around_object():
    text = 'Sure! Here is the plan:\n{"pipeline": [], "primary_collection": "orders"}\nHope it helps.'
    assert extract_json_object(text) == {"pipeline": [], "primary_collection": "orders"}


def test_code_fence_preferred():
    text = 'Example: {"not": "this"}\n```json\n{"pipeline": [{"$match": {}}]}\n```'
    assert extract_json_object(text) == {"pipeline": [{"$match": {}}]}


def test_braces_inside_strings_ignored():
    text = 'x {"interpretation": "count of {items} \\"quoted }\\"", "n": 1} trailing }'
    assert extract_json_object(text)["n"] == 1


def test_literal_wrappers_normalized():
    text = (
        '{"$match": {"orderDate": {"$gte": ISODate("2024-01-01T00:00:00Z")}, '
        '"_id": ObjectId(\'65a1b2c3d4e5f6a7b8c9d0e1\'), '
        '"qty": NumberLong(42), "price": NumberDecimal("9.99"), "n": NumberInt(3)}}'
    )
    data = extract_json_object(text)
    match = data["$match"]
    assert match["orderDate"]["$gte"] == "2024-01-01T00:00:00Z"
    assert match["_id"] == "65a1b2c3d4e5f6a7b8c9d0e1"
    assert match["qty"] == 42
    assert match["price"] == 9.99
    assert match["n"] == 3


def test_new_date_normalized():
    assert normalize_literals('new Date("2024-05-01")') == '"2024-05-01"'


def test_no_braces_raises():
    with pytest.raises(PlanParseError, match="boundaries"):
        extract_json_object("I could not build a pipeline for that.")


def test_unbalanced_raises():
    assert find_balanced_object('{"a": {"b": 1}') is None
    with pytest.raises(PlanParseError):
        extract_json_object('{"a": {"b": 1}')


def test_invalid_json_raises():
    with pytest.raises(PlanParseError, match="not valid JSON"):
        extract_json_object("{pipeline: [}")


def test_empty_raises():
    with pytest.raises(PlanParseError, match="empty"):
        extract_json_object("   ")
