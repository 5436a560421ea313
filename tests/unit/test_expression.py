"""
Unit tests -- Stage expression tree.
"""
import datetime

import pytest

from src.compiler.expression import (
    ArrayNode,
    FieldRef,
    KeyedNode,
    Scalar,
    is_field_reference,
    parse_expression,
    parse_stage,
    to_plain,
)
from src.core.errors import SanitizeError


@pytest.mark.parametrize("value,expected", [
    ("$orderDate", True),
    ("$_id.month", True),
    ("$$NOW", False),
    ("$", False),
    ("orderDate", False),
    (5, False),
])
def test_is_field_reference(value, expected):
    assert is_field_reference(value) is expected


def test_parse_node_kinds():
    node = parse_expression({"$month": "$orderDate", "n": [1, "$$NOW", None]})
    assert isinstance(node, KeyedNode)
    assert node.get("$month") == FieldRef("orderDate")
    arr = node.get("n")
    assert isinstance(arr, ArrayNode)
    assert arr.items == (Scalar(1), Scalar("$$NOW"), Scalar(None))


def test_operator_and_operand():
    node = parse_expression({"$toDate": "$d"})
    assert node.operator == "$toDate"
    assert node.operand == FieldRef("d")
    doc = parse_expression({"a": 1, "b": 2})
    assert doc.operator is None
    assert doc.operand is None


def test_literal_is_opaque():
    node = parse_expression({"$literal": {"$toDate": "$x"}})
    assert node.operand == Scalar({"$toDate": "$x"})


def test_round_trip_preserves_key_order():
    stage = {"$project": {"b": 1, "a": {"$year": "$d"}, "c": [datetime.date(2024, 1, 1)]}}
    assert to_plain(parse_stage(stage, 0)) == stage
    assert list(to_plain(parse_stage(stage, 0))["$project"]) == ["b", "a", "c"]


def test_unsupported_leaf_reports_path():
    with pytest.raises(SanitizeError) as exc_info:
        parse_expression({"a": {"b": [1, {1, 2}]}})
    assert exc_info.value.details["path"] == "a.b[1]"


def test_parse_stage_requires_single_operator_key():
    with pytest.raises(SanitizeError, match="exactly one"):
        parse_stage({}, 3)
    with pytest.raises(SanitizeError, match="not a stage operator"):
        parse_stage({"project": {}}, 0)
    with pytest.raises(SanitizeError, match="expected an object"):
        parse_stage([], 0)
