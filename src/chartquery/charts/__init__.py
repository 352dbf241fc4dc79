"""Chart data mapping and formatting."""

from chartquery.charts.formatter import (
    CHART_COLORS,
    build_chart_response,
    chart_component,
    format_chart_data,
)
from chartquery.charts.mapper import fallback_series, map_row, map_rows

__all__ = [
    "CHART_COLORS",
    "build_chart_response",
    "chart_component",
    "fallback_series",
    "format_chart_data",
    "map_row",
    "map_rows",
]
