"""Map result rows to the ``{label, value}`` series the formatter consumes."""

from decimal import Decimal
from typing import Any

from chartquery.agents.contracts import ChartType
from chartquery.charts.formatter import to_number


# Shown when no query produced rows
FALLBACK_SERIES = (
    {"label": "Sample data 1", "value": 100},
    {"label": "Sample data 2", "value": 200},
    {"label": "Sample data 3", "value": 150},
)


def is_numeric_value(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _label(value: Any) -> str:
    if value is None:
        return "(none)"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def map_row(row: dict[str, Any]) -> dict[str, Any]:
    """Turn one result row into ``{label, value}``.

    The label is the first non-numeric column (or the first column when all
    are numeric); the value is the last numeric column, never negative.
    """
    keys = list(row.keys())
    if not keys:
        return {"label": "(empty)", "value": 0}

    numeric_keys = [k for k in keys if is_numeric_value(row[k])]
    text_keys = [k for k in keys if k not in numeric_keys]

    if text_keys:
        label = _label(row[text_keys[0]])
    elif len(keys) > 1:
        label = _label(row[keys[0]])
    else:
        label = keys[0]

    value = to_number(row[numeric_keys[-1]]) if numeric_keys else 0
    return {"label": label, "value": max(0, value)}


def map_scatter_row(row: dict[str, Any], index: int) -> dict[str, Any]:
    numeric_keys = [k for k in row if is_numeric_value(row[k])]
    text_keys = [k for k in row if k not in numeric_keys]
    x = to_number(row[numeric_keys[0]]) if numeric_keys else index
    y = to_number(row[numeric_keys[1]]) if len(numeric_keys) > 1 else 0
    label = _label(row[text_keys[0]]) if text_keys else f"Point {index + 1}"
    return {"label": label, "x": x, "y": y}


def map_rows(chart_type: ChartType, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if chart_type == ChartType.SCATTER:
        return [map_scatter_row(row, i) for i, row in enumerate(rows)]
    return [map_row(row) for row in rows]


def fallback_series() -> list[dict[str, Any]]:
    return [dict(point) for point in FALLBACK_SERIES]
