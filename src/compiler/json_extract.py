"""
Model-output to JSON adapter.

``extract_json_object`` is the only place that touches raw model text: it
finds the first balanced ``{...}`` object, rewrites shell-style literal
wrappers (``ISODate("..")``, ``ObjectId("..")``, ``NumberLong(..)`` ...) into
plain JSON and parses it.  It either returns a dict or raises
``PlanParseError``.
"""
from __future__ import annotations

import json
import re
from typing import Any

from src.core.errors import PlanParseError
from src.core.logging import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json|javascript|js)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

_STRING_WRAPPERS = [
    re.compile(r"""ISODate\(\s*["'](.+?)["']\s*\)"""),
    re.compile(r"""new\s+Date\(\s*["'](.+?)["']\s*\)"""),
    re.compile(r"""ObjectId\(\s*["'](.+?)["']\s*\)"""),
]

_NUMBER_WRAPPERS = [
    re.compile(r"""NumberDecimal\(\s*["']?([-+0-9.eE]+)["']?\s*\)"""),
    re.compile(r"""NumberLong\(\s*["']?([-+0-9]+)["']?\s*\)"""),
    re.compile(r"""NumberInt\(\s*["']?([-+0-9]+)["']?\s*\)"""),
]


def normalize_literals(text: str) -> str:
    """Rewrite document-store literal wrappers into plain JSON literals."""
    for pattern in _STRING_WRAPPERS:
        text = pattern.sub(r'"\1"', text)
    for pattern in _NUMBER_WRAPPERS:
        text = pattern.sub(r"\1", text)
    return text


def find_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring, honouring string literals."""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the first JSON object embedded in free-form model output.

    Raises
    ------
    PlanParseError
        If no balanced object is present or it is not valid JSON after
        literal normalisation.
    """
    if not isinstance(text, str) or not text.strip():
        raise PlanParseError("Model returned an empty response")

    candidate_text = text.strip()
    fenced = _FENCE_RE.search(candidate_text)
    if fenced and "{" in fenced.group(1):
        candidate_text = fenced.group(1)

    candidate = find_balanced_object(candidate_text)
    if candidate is None:
        logger.error("No balanced JSON object in model output (%d chars)", len(text))
        raise PlanParseError(
            "No valid JSON object boundaries found in model output",
            {"output_preview": text[:200]},
        )

    cleaned = normalize_literals(candidate)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error("Model output is not valid JSON: %s", exc)
        raise PlanParseError(
            f"Model output is not valid JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})",
            {"output_preview": cleaned[:200]},
        ) from exc

    if not isinstance(data, dict):
        raise PlanParseError("Model output JSON is not an object")
    return data
