"""
Stage expression tree.

Aggregation stages arrive as untyped nested dicts / lists.  They are parsed
into a closed set of immutable node types so the sanitizer can dispatch on
node kind instead of poking at raw keys:

  Scalar     literal leaf (numbers, plain strings, booleans, null, $literal payloads)
  FieldRef   "$field.path" reference
  KeyedNode  ordered key -> expression mapping (operator objects and documents)
  ArrayNode  ordered list of expressions

Rewrites build new nodes; nothing is mutated in place.
"""
from __future__ import annotations

import copy
import datetime
from dataclasses import dataclass
from typing import Any, Iterator, Union

from src.core.errors import SanitizeError

_SCALAR_TYPES = (str, int, float, bool, type(None), datetime.datetime, datetime.date)


@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class FieldRef:
    path: str

    @property
    def expr(self) -> str:
        return f"${self.path}"


@dataclass(frozen=True)
class KeyedNode:
    entries: tuple[tuple[str, "Expression"], ...]

    def keys(self) -> list[str]:
        return [k for k, _ in self.entries]

    def get(self, key: str) -> "Expression | None":
        for k, v in self.entries:
            if k == key:
                return v
        return None

    def items(self) -> Iterator[tuple[str, "Expression"]]:
        return iter(self.entries)

    @property
    def operator(self) -> str | None:
        """The operator name when this node is a single-key ``{"$op": ...}`` object."""
        if len(self.entries) == 1 and self.entries[0][0].startswith("$"):
            return self.entries[0][0]
        return None

    @property
    def operand(self) -> "Expression | None":
        return self.entries[0][1] if self.operator else None


@dataclass(frozen=True)
class ArrayNode:
    items: tuple["Expression", ...]


Expression = Union[Scalar, FieldRef, KeyedNode, ArrayNode]


def is_field_reference(value: Any) -> bool:
    """``$name`` is a field path; ``$$NAME`` is a variable."""
    return isinstance(value, str) and len(value) > 1 and value.startswith("$") and not value.startswith("$$")


def parse_expression(value: Any, path: str = "") -> Expression:
    """Convert a plain JSON-like value into an expression tree.

    Raises ``SanitizeError`` when the value is not a nested key/value structure
    made of dicts, lists and scalar leaves.
    """
    if isinstance(value, dict):
        entries: list[tuple[str, Expression]] = []
        for key, child in value.items():
            if not isinstance(key, str):
                raise SanitizeError(
                    f"Non-string key {key!r} at '{path or '<root>'}'",
                    {"path": path},
                )
            child_path = f"{path}.{key}" if path else key
            if key == "$literal":
                entries.append((key, Scalar(copy.deepcopy(child))))
            else:
                entries.append((key, parse_expression(child, child_path)))
        return KeyedNode(tuple(entries))
    if isinstance(value, (list, tuple)):
        return ArrayNode(tuple(
            parse_expression(item, f"{path}[{i}]") for i, item in enumerate(value)
        ))
    if is_field_reference(value):
        return FieldRef(value[1:])
    if isinstance(value, _SCALAR_TYPES):
        return Scalar(value)
    raise SanitizeError(
        f"Unsupported value of type {type(value).__name__} at '{path or '<root>'}'",
        {"path": path},
    )


def parse_stage(stage: Any, index: int) -> KeyedNode:
    """Parse one pipeline stage; a stage is a single ``{"$stage": spec}`` mapping."""
    if not isinstance(stage, dict):
        raise SanitizeError(
            f"Pipeline stage {index} is a {type(stage).__name__}, expected an object",
            {"stage_index": index},
        )
    if len(stage) != 1:
        raise SanitizeError(
            f"Pipeline stage {index} must have exactly one operator key, got {list(stage)}",
            {"stage_index": index},
        )
    key = next(iter(stage))
    if not isinstance(key, str) or not key.startswith("$"):
        raise SanitizeError(
            f"Pipeline stage {index} key {key!r} is not a stage operator",
            {"stage_index": index},
        )
    node = parse_expression(stage, f"[{index}]")
    assert isinstance(node, KeyedNode)
    return node


def to_plain(node: Expression) -> Any:
    """Convert an expression tree back to plain dicts / lists / scalars."""
    if isinstance(node, Scalar):
        return copy.deepcopy(node.value)
    if isinstance(node, FieldRef):
        return node.expr
    if isinstance(node, KeyedNode):
        return {key: to_plain(child) for key, child in node.entries}
    if isinstance(node, ArrayNode):
        return [to_plain(item) for item in node.items]
    raise TypeError(f"Not an expression node: {node!r}")
