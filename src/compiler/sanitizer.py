"""
Pipeline sanitizer -- heals date-type mistakes in a draft aggregation pipeline.

This is a forward-propagating type-inference pass, NOT a pure function:
``sanitize`` returns a brand-new pipeline (the input is never modified) but
it mutates the ``DateFieldSet`` it is given, stage by stage, so that later
stages see fields introduced or redefined by earlier ones.

Per stage, in pipeline order:

  R1  string-to-date conversions ($dateFromString, $toDate, $convert to date)
      whose operand is -- directly or through one $toString -- a field
      already known to hold dates are replaced by the bare field reference.
      Collections listed in ``forced_collections`` get this rewrite for every
      field reference, tracked or not.
  R2  date-part operators ($year, $month, ..., $dateToString) applied to a
      field that is not known to hold dates are reported as diagnostics and
      left untouched.
  R3  after the stage is rewritten, fields it defines are tracked when their
      expression provably yields a date and untracked otherwise.

Mismatches never raise; only a structurally invalid stage raises
``SanitizeError``.
"""
from __future__ import annotations

import datetime
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Iterator

from src.compiler.date_tracker import DateFieldSet
from src.compiler.expression import (
    ArrayNode,
    Expression,
    FieldRef,
    KeyedNode,
    Scalar,
    parse_stage,
    to_plain,
)
from src.core.config import get_settings
from src.core.errors import SanitizeError
from src.core.logging import get_logger

logger = get_logger(__name__)

# ── Operator tables ─────────────────────────────────────

_CONVERSION_OPERATORS = {"$dateFromString", "$toDate", "$convert"}

_EXTRACTION_OPERATORS = {
    "$year", "$month", "$dayOfMonth", "$dayOfWeek", "$dayOfYear",
    "$hour", "$minute", "$second", "$millisecond", "$dateToString",
}

_DATE_PRODUCING_OPERATORS = {
    "$toDate", "$dateFromString", "$dateFromParts",
    "$dateAdd", "$dateSubtract", "$dateTrunc",
}

_DATE_VARIABLES = {"$$NOW", "$$CLUSTER_TIME"}

# BSON type name / number accepted by $convert for dates
_CONVERT_DATE_TARGETS = ("date", 9)

DIAG_CONVERSION_REMOVED = "conversion_removed"
DIAG_DATE_OPERATOR_MISMATCH = "date_operator_mismatch"


@dataclass(frozen=True)
class SanitizeDiagnostic:
    """One rewrite or suspected defect found while sanitizing."""

    kind: str
    stage_index: int
    path: str
    operator: str
    field: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ── Sanitizer ───────────────────────────────────────────


class PipelineSanitizer:
    """Rewrites a draft pipeline against the known date fields.

    Parameters
    ----------
    forced_collections : iterable of str, optional
        Collections whose schema inference is not trusted; every
        string-to-date conversion on a field reference is removed for them.
        Defaults to ``Settings.forced_conversion_collections``.
    """

    def __init__(self, forced_collections: Iterable[str] | None = None):
        if forced_collections is None:
            forced_collections = get_settings().forced_conversion_collections
        self._forced = set(forced_collections)
        self.diagnostics: list[SanitizeDiagnostic] = []

    def sanitize(
        self,
        pipeline: list[dict[str, Any]],
        date_fields: DateFieldSet,
        primary_collection: str,
    ) -> list[dict[str, Any]]:
        """Return a corrected copy of *pipeline*; updates *date_fields* in place."""
        if not isinstance(pipeline, list):
            raise SanitizeError(
                f"Pipeline must be a list of stages, got {type(pipeline).__name__}",
                {"collection": primary_collection},
            )

        force = primary_collection in self._forced
        if force:
            logger.info("Forced conversion removal is active for collection %s", primary_collection)

        sanitized: list[dict[str, Any]] = []
        for index, raw_stage in enumerate(pipeline):
            stage = parse_stage(raw_stage, index)
            rewritten = self._rewrite(stage, date_fields, force, index, "", is_root=True)
            assert isinstance(rewritten, KeyedNode)
            self._propagate(rewritten, date_fields, index)
            sanitized.append(to_plain(rewritten))

        mismatches = sum(1 for d in self.diagnostics if d.kind == DIAG_DATE_OPERATOR_MISMATCH)
        logger.info(
            "Sanitized %d stage(s) for %s: %d diagnostic(s), %d mismatch(es), date fields=%s",
            len(sanitized), primary_collection, len(self.diagnostics), mismatches,
            ", ".join(date_fields) or "-",
        )
        return sanitized

    # ── R1 / R2: tree rewrite ───────────────────────────

    def _rewrite(
        self,
        node: Expression,
        date_fields: DateFieldSet,
        force: bool,
        stage_index: int,
        path: str,
        is_root: bool = False,
    ) -> Expression:
        if isinstance(node, (Scalar, FieldRef)):
            return node

        if isinstance(node, ArrayNode):
            return ArrayNode(tuple(
                self._rewrite(item, date_fields, force, stage_index, f"{path}[{i}]")
                for i, item in enumerate(node.items)
            ))

        # Children first, so an extraction operator sees its already-healed operand.
        rewritten = KeyedNode(tuple(
            (key, self._rewrite(child, date_fields, force, stage_index, _join(path, key)))
            for key, child in node.entries
        ))
        operator = rewritten.operator

        if operator in _CONVERSION_OPERATORS and not is_root:
            source = _conversion_source(rewritten)
            if source is not None and (source in date_fields or force):
                reason = "tracked date field" if source in date_fields else "forced collection"
                self._record(
                    DIAG_CONVERSION_REMOVED, stage_index, path, operator, source,
                    f"Removed {operator} on '{source}' ({reason}); using the field directly",
                )
                return FieldRef(source)

        if operator in _EXTRACTION_OPERATORS:
            field = _extraction_field(rewritten.operand)
            if field is not None and field not in date_fields:
                self._record(
                    DIAG_DATE_OPERATOR_MISMATCH, stage_index, path, operator, field,
                    f"{operator} applied to '{field}', which is not known to hold dates",
                )

        return rewritten

    def _record(self, kind: str, stage_index: int, path: str, operator: str, field: str, message: str) -> None:
        diagnostic = SanitizeDiagnostic(
            kind=kind, stage_index=stage_index, path=path or "<stage>",
            operator=operator, field=field, message=message,
        )
        self.diagnostics.append(diagnostic)
        if kind == DIAG_DATE_OPERATOR_MISMATCH:
            logger.warning("Stage %d at %s: %s", stage_index, diagnostic.path, message)
        else:
            logger.info("Stage %d at %s: %s", stage_index, diagnostic.path, message)

    # ── R3: field-type propagation ──────────────────────

    def _propagate(self, stage: KeyedNode, date_fields: DateFieldSet, stage_index: int) -> None:
        operator = stage.operator
        spec = stage.operand
        source = f"stage {stage_index} ({operator})"

        if operator in ("$addFields", "$set", "$project") and isinstance(spec, KeyedNode):
            projection = operator == "$project"
            for name, expr in _defined_fields(spec):
                _apply_definition(name, expr, date_fields, source, projection)

        elif operator == "$group" and isinstance(spec, KeyedNode):
            for key, expr in spec.items():
                if key == "_id" and _is_document(expr):
                    for sub_name, sub_expr in _defined_fields(expr, "_id."):
                        _apply_definition(sub_name, sub_expr, date_fields, source, False)
                else:
                    _apply_definition(key, expr, date_fields, source, False)

        elif operator in ("$replaceRoot", "$replaceWith"):
            new_root = spec.get("newRoot") if operator == "$replaceRoot" and isinstance(spec, KeyedNode) else spec
            if _is_document(new_root):
                for name, expr in _defined_fields(new_root):
                    _apply_definition(name, expr, date_fields, source, False)

        elif operator == "$unset":
            names: list[Any] = []
            if isinstance(spec, Scalar):
                names = [spec.value]
            elif isinstance(spec, ArrayNode):
                names = [item.value for item in spec.items if isinstance(item, Scalar)]
            for name in names:
                if isinstance(name, str):
                    date_fields.untrack(name, source)


def sanitize(
    pipeline: list[dict[str, Any]],
    date_fields: DateFieldSet,
    primary_collection: str,
    forced_collections: Iterable[str] | None = None,
) -> list[dict[str, Any]]:
    """Sanitize *pipeline*; mutates *date_fields* as a side effect (see module doc)."""
    return PipelineSanitizer(forced_collections).sanitize(pipeline, date_fields, primary_collection)


# ── Helpers ─────────────────────────────────────────────


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _is_document(node: Expression | None) -> bool:
    """A keyed node that is an embedded document rather than an operator call."""
    return isinstance(node, KeyedNode) and node.operator is None and bool(node.entries)


def _unwrap_field(expr: Expression | None) -> str | None:
    """``$f`` or ``{"$toString": "$f"}`` -> ``f``."""
    if isinstance(expr, FieldRef):
        return expr.path
    if isinstance(expr, KeyedNode) and expr.operator == "$toString":
        inner = expr.operand
        if isinstance(inner, ArrayNode) and len(inner.items) == 1:
            inner = inner.items[0]
        if isinstance(inner, FieldRef):
            return inner.path
    return None


def _conversion_source(node: KeyedNode) -> str | None:
    """Field a string-to-date conversion reads from, if it is a plain field reference."""
    operator, operand = node.operator, node.operand
    if operator == "$toDate":
        if isinstance(operand, ArrayNode) and len(operand.items) == 1:
            operand = operand.items[0]
        return _unwrap_field(operand)
    if not isinstance(operand, KeyedNode):
        return None
    if operator == "$dateFromString":
        return _unwrap_field(operand.get("dateString"))
    if operator == "$convert":
        target = operand.get("to")
        if isinstance(target, Scalar) and target.value in _CONVERT_DATE_TARGETS:
            return _unwrap_field(operand.get("input"))
    return None


def _extraction_field(operand: Expression | None) -> str | None:
    """Field a date-part operator reads from: ``"$f"``, ``["$f"]`` or ``{"date": "$f", ...}``."""
    if isinstance(operand, ArrayNode) and len(operand.items) == 1:
        operand = operand.items[0]
    if isinstance(operand, FieldRef):
        return operand.path
    if isinstance(operand, KeyedNode) and operand.operator is None:
        date_arg = operand.get("date")
        if isinstance(date_arg, FieldRef):
            return date_arg.path
    return None


def _defined_fields(spec: KeyedNode, prefix: str = "") -> Iterator[tuple[str, Expression]]:
    """Yield ``(dotted name, defining expression)`` for each field a document spec defines."""
    for key, expr in spec.items():
        name = f"{prefix}{key}"
        if _is_document(expr):
            yield from _defined_fields(expr, f"{name}.")
        else:
            yield name, expr


def _apply_definition(
    name: str,
    expr: Expression,
    date_fields: DateFieldSet,
    source: str,
    projection: bool,
) -> None:
    if projection and isinstance(expr, Scalar) and isinstance(expr.value, (bool, int)):
        if expr.value:
            return  # inclusion keeps the field as it was
        date_fields.untrack(name, source)
        return
    if produces_date(expr, date_fields):
        date_fields.track(name, source)
    else:
        date_fields.untrack(name, source)


def produces_date(expr: Expression | None, date_fields: DateFieldSet) -> bool:
    """True when *expr* provably evaluates to a date value."""
    if isinstance(expr, FieldRef):
        return expr.path in date_fields
    if isinstance(expr, Scalar):
        if isinstance(expr.value, str):
            return expr.value in _DATE_VARIABLES
        return isinstance(expr.value, datetime.datetime)
    if not isinstance(expr, KeyedNode) or expr.operator is None:
        return False

    operator, operand = expr.operator, expr.operand
    if operator in _DATE_PRODUCING_OPERATORS:
        return True
    if operator == "$convert" and isinstance(operand, KeyedNode):
        target = operand.get("to")
        return isinstance(target, Scalar) and target.value in _CONVERT_DATE_TARGETS
    if operator == "$ifNull" and isinstance(operand, ArrayNode):
        return any(produces_date(item, date_fields) for item in operand.items)
    if operator == "$cond":
        if isinstance(operand, KeyedNode):
            return produces_date(operand.get("then"), date_fields) or produces_date(operand.get("else"), date_fields)
        if isinstance(operand, ArrayNode) and len(operand.items) == 3:
            return produces_date(operand.items[1], date_fields) or produces_date(operand.items[2], date_fields)
        return False
    if operator == "$switch" and isinstance(operand, KeyedNode):
        branches = operand.get("branches")
        if isinstance(branches, ArrayNode):
            for branch in branches.items:
                if isinstance(branch, KeyedNode) and produces_date(branch.get("then"), date_fields):
                    return True
        return produces_date(operand.get("default"), date_fields)
    return False

