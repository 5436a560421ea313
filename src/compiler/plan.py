"""
Plan and chart data model -- the structured representations that flow
between the plan resolver, the sanitizer, the executor and the reconciler.

  SchemaSnapshot     field -> primitive type map for one collection
  DraftPlan          the model's unvalidated plan (read-only once built)
  VisualizationHint  advisory chart description from the model
  ChartSpec          the reconciled, renderer-ready chart description
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PrimitiveType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"
    NULL = "null"
    UNKNOWN = "unknown"


_DATE_TYPE_MARKERS = ("date", "timestamp")


class SchemaSnapshot(BaseModel):
    """Field-name -> type map sampled from one collection."""

    model_config = ConfigDict(frozen=True)

    collection_name: str
    fields: dict[str, str] = Field(
        default_factory=dict,
        description="Field name -> PrimitiveType value (other sources may report e.g. 'timestamp')",
    )

    def date_fields(self) -> list[str]:
        """Fields whose declared type name contains 'date' or 'timestamp'."""
        return [
            name for name, ftype in self.fields.items()
            if any(marker in str(_type_name(ftype)).lower() for marker in _DATE_TYPE_MARKERS)
        ]

    def to_prompt_dict(self) -> dict[str, Any]:
        return {
            "collection_name": self.collection_name,
            "schema": {name: {"type": _type_name(ftype)} for name, ftype in self.fields.items()},
        }


def _type_name(ftype: Any) -> str:
    return ftype.value if isinstance(ftype, PrimitiveType) else str(ftype)


# ── Draft plan ──────────────────────────────────────────


class AxisSpec(BaseModel):
    x_axis_type: str | None = None
    y_axis_type: str | None = None


class SeriesSpec(BaseModel):
    """One series template; unknown renderer keys (stack, radius ...) are kept."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None
    name: str | None = None
    encode: dict[str, Any] = Field(default_factory=dict)


class VisualizationHint(BaseModel):
    """Advisory chart description; the reconciler may override any of it."""

    id: str = "primary"
    type: str = "bar"
    title: str = ""
    axis_spec: AxisSpec = Field(default_factory=AxisSpec)
    dataset_dimensions: list[str] = Field(default_factory=list)
    series_templates: list[SeriesSpec] = Field(default_factory=list)
    color: list[str] | None = None


class DraftPlan(BaseModel):
    """Unvalidated aggregation plan produced by the plan resolver."""

    model_config = ConfigDict(frozen=True)

    interpretation: str = ""
    primary_collection: str
    requires_analysis: bool = False
    pipeline: list[dict[str, Any]]
    visualization_recommended: bool = False
    visualization_hint: VisualizationHint | None = None
    explanation: str = ""


# ── Chart specification ─────────────────────────────────


class _Option(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class AxisOption(_Option):
    type: str
    name: str | None = None
    data: list[Any] | None = None
    axis_label: dict[str, Any] | None = Field(None, alias="axisLabel")
    name_location: str = Field("middle", alias="nameLocation")
    name_gap: int | None = Field(None, alias="nameGap")


class SeriesOption(_Option):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    type: str
    name: str | None = None
    encode: dict[str, Any] = Field(default_factory=dict)
    dataset_index: int = Field(0, alias="datasetIndex")


class DatasetOption(_Option):
    source: list[dict[str, Any]]
    dimensions: list[str]


class TooltipPoint(BaseModel):
    """One hovered series value at a category."""

    value: Any = None
    series_name: str | None = None
    marker: str = ""


class TooltipOption(_Option):
    trigger: str = "axis"
    axis_pointer: dict[str, Any] = Field(default_factory=lambda: {"type": "shadow"}, alias="axisPointer")
    category_label: str = Field("Category", alias="categoryLabel")
    value_label: str = Field("Value", alias="valueLabel")

    def render(self, category_value: Any, points: list[TooltipPoint]) -> str:
        """Render the tooltip text for one hovered category.

        First line is ``<category label>: <category value>``; then one line
        per series: ``<marker> <series name or value label> (<value label>): <value>``.
        """
        lines = [f"{self.category_label}: {category_value}"]
        for point in points:
            label = point.series_name or self.value_label
            prefix = f"{point.marker} " if point.marker else ""
            lines.append(f"{prefix}{label} ({self.value_label}): {format_tooltip_value(point.value)}")
        return "\n".join(lines)


def format_tooltip_value(value: Any) -> str:
    """Numbers get thousands separators; everything else is shown raw."""
    if value is None:
        return "N/A"
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        if value.is_integer():
            return f"{int(value):,}"
        return f"{value:,.3f}".rstrip("0").rstrip(".")
    return str(value)


class DataZoomOption(_Option):
    type: str = "slider"
    x_axis_index: int | None = Field(None, alias="xAxisIndex")
    y_axis_index: int | None = Field(None, alias="yAxisIndex")
    start: float = 0
    end: float = 100
    bottom: str | None = None
    right: str | None = None
    top: str | None = None
    height: int | None = None
    width: int | None = None


class GridOption(_Option):
    contain_label: bool = Field(True, alias="containLabel")
    top: str = "15%"
    bottom: str = "15%"
    left: str = "10%"
    right: str = "8%"


class TitleOption(_Option):
    text: str
    subtext: str = ""
    left: str = "center"


class ChartSpec(_Option):
    """Reconciled chart description.  Built once by the reconciler."""

    chart_type: str
    layout: str = "vertical"  # vertical | horizontal | transposed | scatter | radial
    category_field: str | None = None
    value_field: str | None = None
    title: TitleOption
    x_axis: AxisOption | None = Field(None, alias="xAxis")
    y_axis: AxisOption | None = Field(None, alias="yAxis")
    series: list[SeriesOption]
    dataset: DatasetOption
    tooltip: TooltipOption
    grid: GridOption | None = None
    data_zoom: list[DataZoomOption] | None = Field(None, alias="dataZoom")
    color: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def to_option(self) -> dict[str, Any]:
        """Renderer-ready option dict (camelCase keys, no bookkeeping fields)."""
        return self.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"chart_type", "layout", "category_field", "value_field", "warnings"},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "chart_type": self.chart_type,
            "layout": self.layout,
            "category_field": self.category_field,
            "value_field": self.value_field,
            "warnings": list(self.warnings),
            "option": self.to_option(),
        }


# ── Public answer ───────────────────────────────────────


class QueryAnswer(BaseModel):
    """Result of one end-to-end question."""

    query: str
    interpretation: str
    primary_collection: str
    targeted_collections: list[str] = Field(default_factory=list)
    pipeline: list[dict[str, Any]] = Field(default_factory=list)
    results: list[dict[str, Any]] = Field(default_factory=list)
    chart_spec: ChartSpec | None = None
    narrative_answer: str = ""
    can_visualize: bool = False
    explanation: str = ""
    diagnostics: list[dict[str, Any]] = Field(default_factory=list)
    recommendation_id: str | None = None
    latency_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(exclude={"chart_spec"})
        data["chart_spec"] = self.chart_spec.to_dict() if self.chart_spec else None
        return data
