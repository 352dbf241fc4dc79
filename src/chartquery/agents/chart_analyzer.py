"""Chart type and column analysis.

Two branches, chosen once per request:

- keyword fast path: an explicit chart phrase in the question ("pie chart",
  "สัดส่วน") fixes the chart type without an LLM call
- LLM slow path: the model picks columns, chart type, axes and aggregation

LLM output is validated against the live column list; unknown column names
are dropped. Parse failures fall back to a bar chart over the first two
groupable columns.
"""

import logging
import re

from pydantic import ValidationError

from chartquery.agents.base import BaseAgent
from chartquery.agents.contracts import (
    ChartType,
    ColumnAnalysis,
    ColumnDescriptor,
    DataAggregation,
    DetectionMethod,
)
from chartquery.agents.schema_agent import describe_for_prompt
from chartquery.errors import LLMError
from chartquery.sql.guardrails import sanitize_for_prompt_injection


logger = logging.getLogger(__name__)


# Checked in declaration order; the first type with any matching phrase wins
CHART_KEYWORDS: dict[ChartType, tuple[str, ...]] = {
    ChartType.HISTOGRAM: ("histogram", "ฮิสโตแกรม", "การกระจายตัว"),
    ChartType.SCATTER: ("scatter", "กราฟกระจาย", "แผนภาพกระจาย"),
    ChartType.DONUT: ("donut", "doughnut", "โดนัท"),
    ChartType.PIE: ("pie chart", "pie", "กราฟวงกลม", "แผนภูมิวงกลม", "สัดส่วน"),
    ChartType.AREA: ("area chart", "กราฟพื้นที่"),
    ChartType.LINE: ("line chart", "line graph", "trend", "กราฟเส้น", "แนวโน้ม"),
    ChartType.COLUMN: ("column chart", "กราฟคอลัมน์", "แท่งแนวตั้ง"),
    ChartType.BAR: ("bar chart", "bar graph", "กราฟแท่ง", "แผนภูมิแท่ง"),
}

ALTERNATIVES: dict[ChartType, tuple[ChartType, ...]] = {
    ChartType.BAR: (ChartType.COLUMN, ChartType.PIE),
    ChartType.COLUMN: (ChartType.BAR, ChartType.PIE),
    ChartType.PIE: (ChartType.DONUT, ChartType.BAR),
    ChartType.DONUT: (ChartType.PIE, ChartType.BAR),
    ChartType.LINE: (ChartType.AREA, ChartType.COLUMN),
    ChartType.AREA: (ChartType.LINE, ChartType.COLUMN),
    ChartType.SCATTER: (ChartType.LINE,),
    ChartType.HISTOGRAM: (ChartType.BAR, ChartType.COLUMN),
}

FALLBACK_PAIR = ("country", "medal")
TIME_CHARTS = (ChartType.LINE, ChartType.AREA)


ANALYZER_PROMPT_TEMPLATE = """Analyze this question and choose the columns and the chart type that answer it best.

Question: "{query}"

Table: {table}
Columns (capabilities and suitable charts):
{columns}

Time columns: {time_columns}
Category columns: {category_columns}
Groupable columns: {groupable_columns}

Chart types:
1. bar - compare values across categories (medals per country)
2. column - vertical comparison across categories
3. line - change over time (gold medals per year)
4. area - cumulative change over time
5. pie - share of a whole (gold/silver/bronze split)
6. donut - share of a whole with an empty centre
7. scatter - relationship between two numeric variables
8. histogram - distribution of one numeric variable

Use only the column names listed above.

Output JSON schema:
{{
  "required_columns": ["column1", "column2"],
  "chart_type": "bar",
  "alternative_charts": ["column", "pie"],
  "analysis": "why these columns and chart type",
  "chart_reasoning": "why this chart suits the data",
  "data_aggregation": "count|sum|average|min|max|none",
  "x_axis": "what goes on the X axis",
  "y_axis": "what goes on the Y axis",
  "suggested_filters": ["country = 'Thailand'"],
  "column_reasoning": "why each column is needed"
}}"""


def _phrase_pattern(phrase: str) -> re.Pattern:
    # Thai is written without spaces, so only English phrases need word boundaries
    escaped = re.escape(phrase)
    return re.compile(rf"\b{escaped}\b" if phrase.isascii() else escaped)


_KEYWORD_PATTERNS: dict[ChartType, tuple[re.Pattern, ...]] = {
    chart_type: tuple(_phrase_pattern(p) for p in phrases) for chart_type, phrases in CHART_KEYWORDS.items()
}


def detect_chart_keyword(query: str) -> ChartType | None:
    """Return the first chart type whose trigger phrase occurs in the query.

    English phrases match whole words only, so "copies" does not trigger a pie.
    """
    lowered = query.lower()
    for chart_type, patterns in _KEYWORD_PATTERNS.items():
        if any(pattern.search(lowered) for pattern in patterns):
            return chart_type
    return None


def groupable_columns(columns: list[ColumnDescriptor]) -> list[str]:
    return [c.name for c in columns if c.can_be_grouped]


def time_columns(columns: list[ColumnDescriptor]) -> list[str]:
    return [c.name for c in columns if ChartType.LINE in c.suggested_chart_types]


def default_columns(columns: list[ColumnDescriptor], limit: int = 2) -> list[str]:
    groupable = groupable_columns(columns)
    if groupable:
        return groupable[:limit]
    names = {c.name for c in columns}
    pair = [name for name in FALLBACK_PAIR if name in names]
    return pair or [c.name for c in columns[:limit]] or list(FALLBACK_PAIR)


def pick_columns_for_chart(query: str, chart_type: ChartType, columns: list[ColumnDescriptor]) -> list[str]:
    """Choose up to two columns for a keyword-detected chart.

    Columns named in the question come first; time charts lead with a time
    column.
    """
    lowered = query.lower()
    groupable = groupable_columns(columns)
    mentioned = [name for name in groupable if name.lower() in lowered]
    ordered = mentioned + [name for name in groupable if name not in mentioned]

    if chart_type in TIME_CHARTS:
        times = time_columns(columns)
        if times:
            ordered = [times[0]] + [name for name in ordered if name != times[0]]
    elif chart_type in (ChartType.SCATTER, ChartType.HISTOGRAM):
        numeric = [c.name for c in columns if c.is_numeric]
        if numeric:
            ordered = numeric + [name for name in ordered if name not in numeric]

    return ordered[:2] or default_columns(columns)


class ChartAnalyzer(BaseAgent):
    """Decide the chart shape for one request."""

    name = "chart_analyzer"
    llm_role = "analyzer"

    def keyword_analysis(self, query: str, chart_type: ChartType, columns: list[ColumnDescriptor]) -> ColumnAnalysis:
        required = pick_columns_for_chart(query, chart_type, columns)
        return ColumnAnalysis(
            required_columns=required,
            chart_type=chart_type,
            alternative_charts=list(ALTERNATIVES.get(chart_type, ())),
            analysis=f"Chart type '{chart_type.value}' requested explicitly in the question",
            chart_reasoning="Explicit chart keyword detected",
            data_aggregation=DataAggregation.COUNT,
            x_axis=required[0] if required else "",
            y_axis="count",
            column_reasoning="Groupable columns matching the question",
            detection_method=DetectionMethod.KEYWORD,
        )

    def fallback_analysis(self, columns: list[ColumnDescriptor], reason: str = "") -> ColumnAnalysis:
        required = default_columns(columns)
        return ColumnAnalysis(
            required_columns=required,
            chart_type=ChartType.BAR,
            alternative_charts=[ChartType.COLUMN, ChartType.PIE],
            analysis=f"Analysis unavailable, using defaults{': ' + reason if reason else ''}",
            chart_reasoning="Bar chart compares counts across categories",
            data_aggregation=DataAggregation.COUNT,
            x_axis=required[0],
            y_axis="count",
            detection_method=DetectionMethod.FALLBACK,
        )

    def build_prompt(self, query: str, table: str, columns: list[ColumnDescriptor]) -> str:
        categories = [c.name for c in columns if ChartType.PIE in c.suggested_chart_types]
        return ANALYZER_PROMPT_TEMPLATE.format(
            query=sanitize_for_prompt_injection(query),
            table=table,
            columns=describe_for_prompt(columns, detailed=True),
            time_columns=", ".join(time_columns(columns)) or "none",
            category_columns=", ".join(categories) or "none",
            groupable_columns=", ".join(groupable_columns(columns)) or "none",
        )

    def validate_columns(self, analysis: ColumnAnalysis, columns: list[ColumnDescriptor]) -> ColumnAnalysis:
        """Drop column names the table does not have."""
        by_lower = {c.name.lower(): c.name for c in columns}
        known: list[str] = []
        for name in analysis.required_columns:
            actual = by_lower.get(name.strip().strip('"').lower())
            if actual and actual not in known:
                known.append(actual)

        dropped = [name for name in analysis.required_columns if name.strip().strip('"').lower() not in by_lower]
        if dropped:
            logger.warning("Analyzer named unknown columns %s", dropped)
        if not known:
            known = default_columns(columns)
        return analysis.model_copy(update={"required_columns": known})

    async def analyze(self, query: str, table: str, columns: list[ColumnDescriptor]) -> ColumnAnalysis:
        chart_type = detect_chart_keyword(query)
        if chart_type is not None:
            logger.info("Chart type %s detected by keyword", chart_type.value)
            return self.keyword_analysis(query, chart_type, columns)

        prompt = self.build_prompt(query, table, columns)
        try:
            response = await self.ask_llm(prompt)
            data = self.parse_json_response(response)
            data.pop("detection_method", None)
            analysis = ColumnAnalysis(**data, detection_method=DetectionMethod.LLM)
        except (LLMError, ValueError, ValidationError) as e:
            logger.warning("Column analysis fell back to defaults: %s", e)
            return self.fallback_analysis(columns, str(e))

        return self.validate_columns(analysis, columns)
