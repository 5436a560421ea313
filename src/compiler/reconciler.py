"""
Visualization reconciler.

Given the plan's advisory VisualizationHint and the executed result rows,
decides the axis roles and builds the renderer-ready ChartSpec that the UI
draws.  The hint is never trusted blindly: dimensions, axis bindings and
series encodings are re-derived from the actual rows.

Layouts:
  - vertical    category on x, value on y (the default)
  - horizontal  bar chart with y=category and x=value; this is the only
                case where rendered axis roles are swapped, and it applies
                to bar charts alone
  - transposed  any other chart kind declaring y=category and x=value; the
                declared axis types are kept (category data on y) but the
                horizontal-bar treatment is not applied
  - scatter     both axes are value axes; dim0 → x, dim1 → y
  - radial      pie charts; no axes, encode {itemName, value}
"""
from __future__ import annotations

import re
from typing import Any

from src.compiler.plan import (
    AxisOption,
    ChartSpec,
    DataZoomOption,
    DatasetOption,
    GridOption,
    SeriesOption,
    TitleOption,
    TooltipOption,
    VisualizationHint,
)
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import get_nested_value, to_json

logger = get_logger(__name__)

# ── Constants ───────────────────────────────────────────

DEFAULT_PALETTE = [
    "#5470C6", "#91CC75", "#FAC858", "#EE6666", "#73C0DE",
    "#3BA272", "#FC8452", "#9A60B4", "#EA7CCC",
]
DEFAULT_TITLE = "Visualization"

LAYOUT_VERTICAL = "vertical"
LAYOUT_HORIZONTAL = "horizontal"
LAYOUT_TRANSPOSED = "transposed"
LAYOUT_SCATTER = "scatter"
LAYOUT_RADIAL = "radial"

_INTERNAL_ID = "_id"
_MAX_DIMENSIONS = 2


# ── Name formatting ─────────────────────────────────────


def format_dimension_name(name: str | None) -> str:
    """``totalSales`` / ``total_sales`` → ``Total Sales``.  Display only."""
    if not name:
        return ""
    spaced = re.sub(r"([A-Z])", r" \1", name).replace("_", " ")
    return " ".join(word[:1].upper() + word[1:].lower() for word in spaced.split())


# ── Helpers ─────────────────────────────────────────────


def _select_dimensions(
    hint: VisualizationHint, results: list[dict[str, Any]], warnings: list[str]
) -> list[str]:
    """Hint dimensions first, else the first row's keys minus ``_id``; at most two."""
    dimensions = list(hint.dataset_dimensions)
    if not dimensions:
        dimensions = [key for key in results[0] if key != _INTERNAL_ID]

    first_row = results[0]
    for dim in dimensions[:_MAX_DIMENSIONS]:
        if get_nested_value(first_row, dim) is None and dim.split(".")[0] not in first_row:
            warnings.append(f"Dimension '{dim}' is not present in the result rows")

    if len(dimensions) > _MAX_DIMENSIONS:
        dropped = dimensions[_MAX_DIMENSIONS:]
        warnings.append(
            f"Only {_MAX_DIMENSIONS} dimensions are supported; ignoring {', '.join(dropped)}"
        )
        dimensions = dimensions[:_MAX_DIMENSIONS]
    return dimensions


def _decide_layout(kind: str, x_type: str, y_type: str, warnings: list[str]) -> str:
    if kind == "pie":
        return LAYOUT_RADIAL
    if x_type == "value" and y_type == "category":
        if kind == "bar":
            return LAYOUT_HORIZONTAL
        warnings.append(
            f"Horizontal-bar layout applies to bar charts only; keeping the category y-axis of the '{kind}' chart"
        )
        return LAYOUT_TRANSPOSED
    if x_type == "value" and y_type == "value":
        return LAYOUT_SCATTER
    if x_type == "category" and y_type == "value":
        return LAYOUT_VERTICAL
    warnings.append(
        f"Axis types x={x_type}, y={y_type} are not supported for a '{kind}' chart; "
        "using category x-axis and value y-axis"
    )
    return LAYOUT_VERTICAL


def _encode(layout: str, category: str | None, value: str | None) -> dict[str, Any]:
    if layout == LAYOUT_RADIAL:
        encode = {"itemName": category, "value": value}
    elif layout in (LAYOUT_HORIZONTAL, LAYOUT_TRANSPOSED):
        encode = {"y": category, "x": value}
    else:
        encode = {"x": category, "y": value}
    return {axis: field for axis, field in encode.items() if field}


def _label_rotation(labels: list[Any]) -> int:
    longest = max((len(str(label)) for label in labels), default=0)
    if longest > 30:
        return 45
    if longest > 20:
        return 30
    if longest > 10:
        return 15
    return 0


def _distinct_count(values: list[Any]) -> int:
    return len({to_json(v) for v in values})


def _build_series(
    hint: VisualizationHint, kind: str, encode: dict[str, Any]
) -> list[SeriesOption]:
    if not hint.series_templates:
        logger.info("No series template in hint; synthesizing one %s series", kind)
        return [SeriesOption(type=kind, encode=encode, dataset_index=0)]

    series: list[SeriesOption] = []
    for template in hint.series_templates:
        extra = {
            k: v for k, v in (template.model_extra or {}).items()
            if k not in ("datasetIndex", "dataset_index", "encode")
        }
        series.append(
            SeriesOption(
                type=template.type or kind,
                name=template.name,
                encode=dict(encode),
                dataset_index=0,
                **extra,
            )
        )
    return series


def _build_axes(
    layout: str,
    category: str | None,
    value: str | None,
    category_data: list[Any],
    grid: dict[str, str],
) -> tuple[AxisOption, AxisOption]:
    cat_label = format_dimension_name(category)
    val_label = format_dimension_name(value)

    if layout == LAYOUT_SCATTER:
        return (
            AxisOption(type="value", name=cat_label or None, name_gap=25),
            AxisOption(type="value", name=val_label or None, name_gap=45),
        )

    if layout in (LAYOUT_HORIZONTAL, LAYOUT_TRANSPOSED):
        grid["left"] = "15%"
        return (
            AxisOption(type="value", name=val_label or None, name_gap=25),
            AxisOption(
                type="category",
                name=cat_label or None,
                data=category_data,
                axis_label={"interval": 0, "width": 120, "overflow": "truncate"},
                name_gap=45,
            ),
        )

    rotation = _label_rotation(category_data)
    longest = max((len(str(label)) for label in category_data), default=0)
    if longest > 30:
        grid["bottom"] = "40%"
    elif longest > 20:
        grid["bottom"] = "30%"
    else:
        grid["bottom"] = "35%"
    return (
        AxisOption(
            type="category",
            name=cat_label or None,
            data=category_data,
            axis_label={"interval": 0, "rotate": rotation},
            name_gap=35 + (15 if rotation > 30 else 0),
        ),
        AxisOption(type="value", name=val_label or None, name_gap=45),
    )


def _build_zoom(layout: str, category_data: list[Any], threshold: int) -> list[DataZoomOption] | None:
    if layout not in (LAYOUT_VERTICAL, LAYOUT_HORIZONTAL, LAYOUT_TRANSPOSED):
        return None
    if _distinct_count(category_data) <= threshold:
        return None
    end = round(min(100.0, threshold / len(category_data) * 100), 2)
    if layout in (LAYOUT_HORIZONTAL, LAYOUT_TRANSPOSED):
        return [DataZoomOption(y_axis_index=0, start=0, end=end, right="3%", top="15%", width=20)]
    return [DataZoomOption(x_axis_index=0, start=0, end=end, bottom="5%", height=20)]


# ── Public API ──────────────────────────────────────────


def reconcile(
    hint: VisualizationHint | None,
    results: list[dict[str, Any]],
    interpretation: str | None = None,
    recommended: bool = True,
) -> ChartSpec | None:
    """Build a ChartSpec from *hint* and *results*.

    Returns ``None`` when no visualization was requested or the result set
    is empty.  Overrides of the hint and dimension truncation are recorded
    in ``ChartSpec.warnings`` and logged.
    """
    if not recommended or not results:
        return None

    hint = hint or VisualizationHint()
    settings = get_settings()
    warnings: list[str] = []

    kind = (hint.type or "bar").lower()
    x_type = hint.axis_spec.x_axis_type or "category"
    y_type = hint.axis_spec.y_axis_type or "value"

    # 1. Dimensions and roles
    dimensions = _select_dimensions(hint, results, warnings)
    category = dimensions[0] if dimensions else None
    value = dimensions[1] if len(dimensions) > 1 else None
    layout = _decide_layout(kind, x_type, y_type, warnings)

    cat_label = format_dimension_name(category)
    val_label = format_dimension_name(value)
    logger.info(
        "Reconciled roles -> layout=%s category=%s (%s) value=%s (%s)",
        layout, category, cat_label, value, val_label,
    )

    # 2. Axes, zoom and grid
    category_data = [get_nested_value(row, category) for row in results] if category else []
    x_axis = y_axis = None
    grid_option = None
    data_zoom = None
    if layout != LAYOUT_RADIAL:
        grid = {"top": "15%", "bottom": "15%", "left": "10%", "right": "8%"}
        x_axis, y_axis = _build_axes(layout, category, value, category_data, grid)
        data_zoom = _build_zoom(layout, category_data, settings.category_zoom_threshold)
        if data_zoom and layout == LAYOUT_VERTICAL and grid["bottom"] == "35%":
            grid["bottom"] = "25%"
        grid_option = GridOption(**grid)

    # 3. Series, tooltip, palette, title
    series = _build_series(hint, "pie" if layout == LAYOUT_RADIAL else kind, _encode(layout, category, value))
    tooltip = TooltipOption(
        trigger="item" if layout == LAYOUT_RADIAL else "axis",
        category_label=cat_label or "Category",
        value_label=val_label or "Value",
    )
    title = (
        format_dimension_name(hint.title)
        or format_dimension_name(interpretation)
        or DEFAULT_TITLE
    )

    for warning in warnings:
        logger.warning("Reconciler: %s", warning)

    return ChartSpec(
        chart_type=kind,
        layout=layout,
        category_field=category,
        value_field=value,
        title=TitleOption(text=title),
        x_axis=x_axis,
        y_axis=y_axis,
        series=series,
        dataset=DatasetOption(source=results, dimensions=dimensions),
        tooltip=tooltip,
        grid=grid_option,
        data_zoom=data_zoom,
        color=list(hint.color) if hint.color else list(DEFAULT_PALETTE),
        warnings=warnings,
    )
