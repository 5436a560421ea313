"""
Small shared utilities.
"""
from __future__ import annotations

import json
import time
from contextlib import contextmanager
from typing import Any, Generator


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def to_json(value: Any) -> str:
    """Compact JSON for logs and error payloads; non-JSON values become strings."""
    return json.dumps(value, default=str, separators=(",", ":"))


def get_nested_value(row: dict[str, Any], path: str | None) -> Any:
    """Resolve a dotted path such as ``_id.month`` inside a result row."""
    if not path:
        return None
    if path in row:
        return row[path]
    current: Any = row
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current
