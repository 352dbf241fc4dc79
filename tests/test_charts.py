"""Tests for row mapping and chart formatting."""

from datetime import date
from decimal import Decimal

import pytest

from chartquery.agents.contracts import ChartType
from chartquery.charts.formatter import (
    CHART_COLORS,
    build_chart_response,
    chart_component,
    format_chart_data,
    format_radial,
    format_time_series,
    to_number,
)
from chartquery.charts.mapper import fallback_series, map_row, map_rows


class TestMapper:
    def test_label_first_text_value_last_number(self):
        row = {"country": "Thailand", "medal": "Gold", "count": 3}
        assert map_row(row) == {"label": "Thailand", "value": 3}

    def test_all_numeric_uses_first_column_as_label(self):
        assert map_row({"year": 2024, "count": 4}) == {"label": "2024", "value": 4}

    def test_single_column_uses_key_as_label(self):
        assert map_row({"total": 12}) == {"label": "total", "value": 12}

    def test_text_only_row_has_zero_value(self):
        assert map_row({"country": "Japan"}) == {"label": "Japan", "value": 0}

    def test_negative_values_clamped(self):
        assert map_row({"k": "a", "v": -5})["value"] == 0

    def test_decimal_and_dates(self):
        row = {"day": date(2024, 8, 1), "amount": Decimal("12.50")}
        assert map_row(row) == {"label": "2024-08-01", "value": 12.5}

    def test_scatter_rows(self):
        points = map_rows(ChartType.SCATTER, [{"name": "a", "x": 1, "y": 2}, {"x": 3}])
        assert points == [{"label": "a", "x": 1, "y": 2}, {"label": "Point 2", "x": 3, "y": 0}]

    def test_fallback_series_is_a_copy(self):
        series = fallback_series()
        series[0]["value"] = 0
        assert fallback_series()[0]["value"] == 100


class TestFormatter:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, 0), (True, 1), (3, 3), (2.0, 2), (Decimal("1.5"), 1.5), ("7", 7), ("abc", 0)],
    )
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    def test_categorical(self):
        formatted = format_chart_data("bar", [{"label": "Thailand", "value": 3}, {"label": "Japan", "value": 1}])
        assert formatted["data"][0] == {"name": "Thailand", "value": 3, "fill": CHART_COLORS[0]}
        assert formatted["config"]["layout"] == "horizontal"
        assert formatted["chart_config"]["value"]["label"] == "จำนวน"

    def test_time_series_sorted_by_year(self):
        points = format_time_series(
            [{"label": "2024", "value": 5}, {"label": "n/a", "value": 1}, {"label": "2016", "value": 2}]
        )
        assert [p["name"] for p in points] == ["2016", "2024", "n/a"]

    def test_radial_percentages(self):
        points = format_radial([{"label": "Gold", "value": 3}, {"label": "Silver", "value": 1}])
        assert [p["percentage"] for p in points] == [75, 25]
        assert format_radial([{"label": "x", "value": 0}])[0]["percentage"] == 0

    def test_donut_layout(self):
        formatted = format_chart_data(ChartType.DONUT, [{"label": "Gold", "value": 3}])
        assert formatted["config"]["innerRadius"] == 60
        assert "segment1" in formatted["chart_config"]

    def test_histogram(self):
        formatted = format_chart_data("histogram", [{"label": "2020", "value": 4}])
        assert formatted["data"] == [{"range": "2020", "frequency": 4, "fill": CHART_COLORS[0]}]
        assert formatted["chart_config"]["frequency"]["label"] == "ความถี่"

    def test_unknown_chart_type(self):
        with pytest.raises(ValueError):
            format_chart_data("radar", [])
        assert chart_component("radar") == "BarChart"
        assert chart_component("line") == "LineChart"

    def test_build_chart_response(self):
        rows = [{"label": "Thailand", "value": 3}]
        payload = build_chart_response("column", rows, "Gold medals", {"sql_query": "SELECT 1"})
        assert payload["chart_type"] == "column"
        assert payload["component"] == "BarChart"
        assert payload["data"] == rows
        assert payload["chart_data"][0]["name"] == "Thailand"
        assert payload["metadata"]["sql_query"] == "SELECT 1"
        assert payload["metadata"]["total_data_points"] == 1
        assert payload["metadata"]["chart_library"] == "shadcn"
        assert payload["metadata"]["formatted_at"].endswith("Z")
