"""
Plan resolver -- converts a natural-language question into a DraftPlan.

Two modes:
  mock     → deterministic keyword planner over the schema snapshots
             (no API key needed, great for tests)
  openai / anthropic / gemini → LLM-backed planning via llm_client

The LLM path sends one prompt containing the question and every candidate
schema, then hands the raw text to ``extract_json_object``.  There are no
retries here: malformed output surfaces as ``PlanParseError`` /
``PlanShapeError``.
"""
from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from src.compiler.json_extract import extract_json_object
from src.compiler.plan import (
    AxisSpec,
    DraftPlan,
    PrimitiveType,
    SchemaSnapshot,
    SeriesSpec,
    VisualizationHint,
)
from src.core.config import get_settings
from src.core.errors import CollectionNotFoundError, PlanShapeError
from src.core.logging import get_logger

logger = get_logger(__name__)

_COUNT_KEYWORDS = ["how many", "number of", "count"]
_MONTH_KEYWORDS = ["by month", "per month", "monthly", "each month", "over time", "trend"]
_MOCK_LIMIT = 50


# ── Mock planner ─────────────────────────────────────────


def _mentions(query: str, field: str) -> bool:
    spaced = re.sub(r"([a-z])([A-Z])", r"\1 \2", field).replace("_", " ").lower()
    return field.lower() in query or spaced in query


def _camel(prefix: str, field: str) -> str:
    parts = re.split(r"[_\s]+", re.sub(r"([a-z])([A-Z])", r"\1 \2", field))
    return prefix + "".join(p[:1].upper() + p[1:].lower() for p in parts if p)


def _label(field: str) -> str:
    return re.sub(r"([a-z])([A-Z])", r"\1 \2", field).replace("_", " ").title()


def _pick_collection(query: str, schemas: dict[str, SchemaSnapshot]) -> str:
    for name in schemas:
        if name.lower() in query or name.replace("_", " ").lower() in query:
            return name
    return next(iter(schemas))


def _fields_of(snapshot: SchemaSnapshot, ptype: PrimitiveType) -> list[str]:
    return [name for name, ftype in snapshot.fields.items() if str(ftype) == ptype.value or ftype == ptype]


def _plan_mock(query: str, schemas: dict[str, SchemaSnapshot]) -> DraftPlan:
    """Deterministic keyword-based NL→DraftPlan."""
    q = query.lower().strip()
    primary = _pick_collection(q, schemas)
    snapshot = schemas[primary]

    strings = _fields_of(snapshot, PrimitiveType.STRING)
    numbers = _fields_of(snapshot, PrimitiveType.NUMBER)
    dates = snapshot.date_fields()

    # 1. Category dimension
    group_id: Any = None
    category: str | None = None
    by_month = any(kw in q for kw in _MONTH_KEYWORDS) and bool(dates)
    if by_month:
        category = "month"
        group_id = {"$month": f"${dates[0]}"}
    else:
        mentioned = [f for f in strings if _mentions(q, f)]
        category = mentioned[0] if mentioned else (strings[0] if strings else None)
        group_id = f"${category}" if category else None

    # 2. Value dimension
    mentioned_numbers = [f for f in numbers if _mentions(q, f)]
    wants_count = any(kw in q for kw in _COUNT_KEYWORDS)
    if mentioned_numbers and not wants_count:
        value_name = _camel("total", mentioned_numbers[0])
        accumulator: dict[str, Any] = {"$sum": f"${mentioned_numbers[0]}"}
    elif numbers and not wants_count:
        value_name = _camel("total", numbers[0])
        accumulator = {"$sum": f"${numbers[0]}"}
    else:
        value_name = "count"
        accumulator = {"$sum": 1}

    # 3. Pipeline
    pipeline: list[dict[str, Any]] = [{"$group": {"_id": group_id, value_name: accumulator}}]
    if category:
        pipeline.append({"$project": {"_id": 0, category: "$_id", value_name: 1}})
        pipeline.append({"$sort": {category: 1} if by_month else {value_name: -1}})
        pipeline.append({"$limit": _MOCK_LIMIT})
    else:
        pipeline.append({"$project": {"_id": 0, value_name: 1}})

    interpretation = (
        f"{_label(value_name)} by {_label(category)} in {primary}" if category
        else f"{_label(value_name)} in {primary}"
    )

    hint = None
    if category:
        hint = VisualizationHint(
            type="line" if by_month else "bar",
            title=f"{_label(value_name)} by {_label(category)}",
            axis_spec=AxisSpec(x_axis_type="category", y_axis_type="value"),
            dataset_dimensions=[category, value_name],
        )

    return DraftPlan(
        interpretation=interpretation,
        primary_collection=primary,
        requires_analysis=False,
        pipeline=pipeline,
        visualization_recommended=hint is not None,
        visualization_hint=hint,
        explanation="Keyword-based plan (mock mode).",
    )


# ── LLM planner ─────────────────────────────────────────

_LLM_PROMPT = """\
You are a MongoDB aggregation expert. Convert the natural-language question below \
into ONE aggregation pipeline, joining collections with $lookup only when needed.

Question: "{query}"

Available collections and their sampled field types:
{schemas}

Rules:
  1. Pick the primary collection the pipeline starts from; it MUST be one of: {collections}.
  2. Use the exact field names from the schemas.
  3. Date handling: if a field's type is 'date', apply date operators ($year, $month, \
$dateToString ...) to it directly. Only when the type is 'string' convert it first \
with $dateFromString.
  4. Name computed fields clearly (count, totalSales, averagePrice).
  5. When no order is requested, sort by the category ascending or the value descending.
  6. The final stage must output documents whose field names match \
visualization.option.dataset.dimensions, ordered [category, value].
  7. Use plain JSON only: no ISODate(), ObjectId(), NumberLong().

Respond ONLY with a JSON object of this shape:
{{
  "interpretation": "how the question was understood",
  "primary_collection": "collection_name",
  "requires_analysis": false,
  "pipeline": [{{"$match": {{}}}}, {{"$group": {{}}}}, {{"$sort": {{}}}}],
  "explanation": "what the pipeline does",
  "visualization_recommended_by_ai": true,
  "visualization": {{
    "type": "bar | line | pie | scatter",
    "title": "Descriptive chart title",
    "option": {{
      "xAxis": {{"type": "category"}},
      "yAxis": {{"type": "value"}},
      "dataset": {{"dimensions": ["category_field", "value_field"]}},
      "series": [{{"type": "bar", "encode": {{"x": "category_field", "y": "value_field"}}}}]
    }}
  }}
}}"""


def _build_llm_prompt(query: str, schemas: dict[str, SchemaSnapshot]) -> str:
    schema_payload = {name: snap.to_prompt_dict() for name, snap in schemas.items()}
    return _LLM_PROMPT.format(
        query=query,
        schemas=json.dumps(schema_payload, indent=2, default=str),
        collections=", ".join(schemas),
    )


def _first_mapping(value: Any) -> dict[str, Any]:
    """ECharts accepts an axis as an object or a list of objects."""
    if isinstance(value, list):
        value = value[0] if value else {}
    return value if isinstance(value, dict) else {}


def _as_text(value: Any) -> str | None:
    """Scalars become strings; anything else is dropped."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _parse_series(raw: dict[str, Any]) -> SeriesSpec | None:
    data = dict(raw)
    for key in ("type", "name"):
        if key in data:
            data[key] = _as_text(data[key])
    if not isinstance(data.get("encode", {}), dict):
        data.pop("encode")
    try:
        return SeriesSpec(**data)
    except ValidationError as exc:
        logger.warning("Dropping malformed series template %s: %s", raw, exc.errors(include_url=False))
        return None


def _parse_visualization(vis: Any) -> VisualizationHint | None:
    """Best-effort hint; a malformed hint is logged and dropped, never fatal."""
    if not isinstance(vis, dict):
        return None
    option = vis.get("option") if isinstance(vis.get("option"), dict) else {}

    dims_raw = (
        _first_mapping(option.get("dataset")).get("dimensions")
        or _first_mapping(vis.get("data")).get("dimensions")
        or vis.get("dimensions")
        or []
    )
    dimensions: list[str] = []
    for dim in dims_raw if isinstance(dims_raw, list) else []:
        if isinstance(dim, dict):
            dim = dim.get("name")
        if isinstance(dim, str) and dim:
            dimensions.append(dim)

    series_raw = option.get("series") or []
    if isinstance(series_raw, dict):
        series_raw = [series_raw]
    if not isinstance(series_raw, list):
        series_raw = []
    series = [s for s in (_parse_series(raw) for raw in series_raw if isinstance(raw, dict)) if s is not None]

    title = _as_text(vis.get("title")) or _as_text(_first_mapping(option.get("title")).get("text")) or ""
    chart_type = (_as_text(vis.get("type")) or (series[0].type if series and series[0].type else None) or "bar")
    color = option.get("color")

    try:
        return VisualizationHint(
            id=_as_text(vis.get("id")) or "primary",
            type=chart_type.strip().lower(),
            title=title,
            axis_spec=AxisSpec(
                x_axis_type=_as_text(_first_mapping(option.get("xAxis")).get("type")),
                y_axis_type=_as_text(_first_mapping(option.get("yAxis")).get("type")),
            ),
            dataset_dimensions=dimensions,
            series_templates=series,
            color=color if isinstance(color, list) and all(isinstance(c, str) for c in color) else None,
        )
    except ValidationError as exc:
        logger.warning("Dropping malformed visualization hint: %s", exc.errors(include_url=False))
        return None


def _parse_plan(data: dict[str, Any], schemas: dict[str, SchemaSnapshot]) -> DraftPlan:
    """Shape-check a parsed model response into a DraftPlan."""
    pipeline = data.get("pipeline")
    if not isinstance(pipeline, list):
        raise PlanShapeError("Plan has no 'pipeline' array", {"keys": sorted(data)})
    bad_stages = [i for i, stage in enumerate(pipeline) if not isinstance(stage, dict)]
    if bad_stages:
        raise PlanShapeError(
            "Every pipeline stage must be an object",
            {"stage_indexes": bad_stages},
        )

    primary = data.get("primary_collection", data.get("primaryCollection"))
    if not isinstance(primary, str) or not primary:
        raise PlanShapeError("Plan has no 'primary_collection' string", {"keys": sorted(data)})
    if primary not in schemas:
        raise PlanShapeError(
            f"Plan names primary collection '{primary}', which is not among the target collections",
            {"primary_collection": primary, "available": list(schemas)},
        )

    recommended = data.get("visualization_recommended_by_ai", data.get("visualization_recommended", False))
    try:
        return DraftPlan(
            interpretation=str(data.get("interpretation") or "Query processed successfully"),
            primary_collection=primary,
            requires_analysis=bool(data.get("requires_analysis", False)),
            pipeline=pipeline,
            visualization_recommended=bool(recommended),
            visualization_hint=_parse_visualization(data.get("visualization")),
            explanation=str(data.get("explanation") or ""),
        )
    except ValidationError as exc:
        raise PlanShapeError(
            "Plan does not match the expected shape",
            {"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


def _parse_llm_response(text: str, schemas: dict[str, SchemaSnapshot]) -> DraftPlan:
    return _parse_plan(extract_json_object(text), schemas)


def _plan_llm(query: str, schemas: dict[str, SchemaSnapshot], provider: str, timeout: float | None) -> DraftPlan:
    """Call the LLM and parse its response into a DraftPlan."""
    from src.compiler.llm_client import call_llm

    prompt = _build_llm_prompt(query, schemas)
    response = call_llm(prompt, provider=provider, timeout=timeout)
    return _parse_llm_response(response, schemas)


# ── Public API ───────────────────────────────────────────


def resolve_plan(
    query: str,
    schemas: dict[str, SchemaSnapshot],
    mode: str | None = None,
    timeout: float | None = None,
) -> DraftPlan:
    """Turn *query* into a DraftPlan over the given schema snapshots.

    Modes
    -----
    mock                        -> keyword planner (no API key needed)
    openai / anthropic / gemini -> LLM-backed planning via llm_client
    """
    if not schemas:
        raise CollectionNotFoundError("No collection schemas available to plan against")

    if mode is None:
        mode = get_settings().llm_provider.lower()

    if mode == "mock":
        plan = _plan_mock(query, schemas)
    else:
        plan = _plan_llm(query, schemas, provider=mode, timeout=timeout)

    logger.info("Planner[%s] -> %s", mode, plan.model_dump_json(indent=None))
    return plan
