"""Chart formatting layer: mapped rows -> renderable chart data.

Pure functions producing the data, layout config and series config the
frontend chart components expect. Input rows use ``label`` / ``value``
(or ``x`` / ``y`` for scatter) keys.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

from chartquery.agents.contracts import ChartType, coerce_chart_type


CHART_LIBRARY = "shadcn"

CHART_COLORS = (
    "hsl(var(--chart-1))",
    "hsl(var(--chart-2))",
    "hsl(var(--chart-3))",
    "hsl(var(--chart-4))",
    "hsl(var(--chart-5))",
    "#8884d8",
    "#82ca9d",
    "#ffc658",
    "#ff7300",
    "#0088fe",
    "#00c49f",
    "#ffbb28",
    "#ff8042",
    "#8dd1e1",
    "#d084d0",
)

VALUE_LABEL = "จำนวน"
FREQUENCY_LABEL = "ความถี่"

CHART_COMPONENTS = {
    ChartType.BAR: "BarChart",
    ChartType.COLUMN: "BarChart",
    ChartType.LINE: "LineChart",
    ChartType.AREA: "AreaChart",
    ChartType.PIE: "PieChart",
    ChartType.DONUT: "PieChart",
    ChartType.SCATTER: "ScatterChart",
    ChartType.HISTOGRAM: "BarChart",
}

LAYOUTS: dict[ChartType, dict[str, Any]] = {
    ChartType.BAR: {"layout": "horizontal", "margin": {"top": 20, "right": 30, "left": 20, "bottom": 5}},
    ChartType.COLUMN: {"layout": "vertical", "margin": {"top": 20, "right": 30, "left": 20, "bottom": 60}},
    ChartType.LINE: {"margin": {"top": 20, "right": 30, "left": 20, "bottom": 20}},
    ChartType.AREA: {"margin": {"top": 20, "right": 30, "left": 20, "bottom": 20}},
    ChartType.PIE: {"cx": "50%", "cy": "50%", "outerRadius": 100, "dataKey": "value"},
    ChartType.DONUT: {"cx": "50%", "cy": "50%", "innerRadius": 60, "outerRadius": 100, "dataKey": "value"},
    ChartType.SCATTER: {"margin": {"top": 20, "right": 30, "left": 20, "bottom": 20}},
    ChartType.HISTOGRAM: {"margin": {"top": 20, "right": 30, "left": 20, "bottom": 20}},
}


def to_number(value: Any) -> int | float:
    """Convert a cell to a number; anything unparsable becomes 0."""
    if value is None or isinstance(value, bool):
        return int(value or 0)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        number = float(value)
        return int(number) if number.is_integer() else number
    try:
        number = float(str(value).strip())
    except ValueError:
        return 0
    return int(number) if number.is_integer() else number


def _first(item: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _color(index: int) -> str:
    return CHART_COLORS[index % len(CHART_COLORS)]


def _value(item: dict[str, Any], *keys: str) -> int | float:
    return to_number(_first(item, *keys) if keys else None)


def _year_key(point: dict[str, Any]) -> tuple[int, float]:
    try:
        return (0, float(point["year"]))
    except (TypeError, ValueError):
        return (1, 0.0)


def format_categorical(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "name": str(_first(item, "label", "name") or f"Item {i + 1}"),
            "value": _value(item, "value", "count"),
            "fill": _color(i),
        }
        for i, item in enumerate(rows)
    ]


def format_time_series(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    points = [
        {
            "name": str(_first(item, "label", "name", "year") or f"Point {i + 1}"),
            "value": _value(item, "value", "count"),
            "year": _first(item, "year", "label", "name"),
        }
        for i, item in enumerate(rows)
    ]
    # Numeric years ascending; non-numeric points keep their order at the end
    return sorted(points, key=_year_key)


def format_radial(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    values = [_value(item, "value", "count") for item in rows]
    total = sum(values)
    return [
        {
            "name": str(_first(item, "label", "name") or f"Segment {i + 1}"),
            "value": value,
            "percentage": round(value / total * 100) if total > 0 else 0,
            "fill": _color(i),
        }
        for i, (item, value) in enumerate(zip(rows, values))
    ]


def format_scatter(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "x": to_number(_first(item, "x", "value")) if _first(item, "x", "value") is not None else i,
            "y": _value(item, "y", "count"),
            "name": str(_first(item, "label", "name") or f"Point {i + 1}"),
            "fill": _color(i),
        }
        for i, item in enumerate(rows)
    ]


def format_histogram(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "range": str(_first(item, "label", "range", "name") or f"Range {i + 1}"),
            "frequency": _value(item, "value", "frequency", "count"),
            "fill": CHART_COLORS[0],
        }
        for i, item in enumerate(rows)
    ]


def _value_series_config() -> dict[str, Any]:
    return {"value": {"label": VALUE_LABEL, "color": CHART_COLORS[0]}}


def _segment_config() -> dict[str, Any]:
    return {f"segment{i + 1}": {"label": f"Segment {i + 1}", "color": color} for i, color in enumerate(CHART_COLORS)}


def _scatter_config() -> dict[str, Any]:
    return {
        "x": {"label": "X-Axis", "color": CHART_COLORS[0]},
        "y": {"label": "Y-Axis", "color": CHART_COLORS[1]},
    }


def _histogram_config() -> dict[str, Any]:
    return {"frequency": {"label": FREQUENCY_LABEL, "color": CHART_COLORS[0]}}


FORMATTERS: dict[ChartType, tuple[Callable[[list[dict]], list[dict]], Callable[[], dict]]] = {
    ChartType.BAR: (format_categorical, _value_series_config),
    ChartType.COLUMN: (format_categorical, _value_series_config),
    ChartType.LINE: (format_time_series, _value_series_config),
    ChartType.AREA: (format_time_series, _value_series_config),
    ChartType.PIE: (format_radial, _segment_config),
    ChartType.DONUT: (format_radial, _segment_config),
    ChartType.SCATTER: (format_scatter, _scatter_config),
    ChartType.HISTOGRAM: (format_histogram, _histogram_config),
}


def format_chart_data(chart_type: ChartType | str, rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Format mapped rows for one chart type.

    Returns:
        Dict with ``data``, ``config`` and ``chart_config``

    Raises:
        ValueError: If the chart type is not supported
    """
    try:
        chart = coerce_chart_type(chart_type)
    except ValueError:
        raise ValueError(f"Unsupported chart type: {chart_type}") from None

    format_rows, series_config = FORMATTERS[chart]
    return {
        "data": format_rows(rows),
        "config": dict(LAYOUTS[chart]),
        "chart_config": series_config(),
    }


def chart_component(chart_type: ChartType | str) -> str:
    """Frontend component name for a chart type (BarChart when unknown)."""
    try:
        return CHART_COMPONENTS[coerce_chart_type(chart_type)]
    except ValueError:
        return "BarChart"


def build_chart_response(
    chart_type: ChartType | str,
    rows: list[dict[str, Any]],
    title: str,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Assemble the full chart payload returned to the caller.

    ``data`` keeps the mapped rows; ``chart_data`` holds the formatted points.
    """
    chart = coerce_chart_type(chart_type)
    formatted = format_chart_data(chart, rows)
    return {
        "chart_type": chart.value,
        "component": chart_component(chart),
        "title": title,
        "data": rows,
        "chart_data": formatted["data"],
        "config": formatted["config"],
        "chart_config": formatted["chart_config"],
        "metadata": {
            **(metadata or {}),
            "total_data_points": len(formatted["data"]),
            "chart_library": CHART_LIBRARY,
            "formatted_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        },
    }
