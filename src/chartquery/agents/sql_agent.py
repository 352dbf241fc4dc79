"""SQL synthesis from a column analysis, schema and sample data.

The synthesizer asks the LLM for one SELECT statement shaped by the chart
type, grounding WHERE clauses in the distinct values actually present in
the table. Any LLM or parsing failure yields a templated group-by-count
query over a validated column, which is always valid standalone SQL.
"""

import json
import logging

from pydantic import ValidationError

from chartquery.agents.base import BaseAgent
from chartquery.agents.contracts import (
    ChartType,
    ColumnAnalysis,
    ColumnDescriptor,
    RetryFeedback,
    SampleDataset,
    SqlSynthesisResult,
)
from chartquery.agents.schema_agent import describe_for_prompt
from chartquery.errors import LLMError
from chartquery.sql.guardrails import escape_identifier, sanitize_for_prompt_injection


logger = logging.getLogger(__name__)


FALLBACK_LIMIT = 15
MAX_SAMPLE_ROWS_IN_PROMPT = 3
MAX_DISTINCT_IN_PROMPT = 5

CATEGORICAL_TEMPLATE = """SELECT <category_column>, COUNT(*) AS count
FROM {table}
[WHERE <filters>]
GROUP BY <category_column>
ORDER BY count DESC
LIMIT 15"""

TIME_SERIES_TEMPLATE = """SELECT <time_column>, COUNT(*) AS count
FROM {table}
[WHERE <filters>]
GROUP BY <time_column>
ORDER BY <time_column> ASC"""

SCATTER_TEMPLATE = """SELECT <numeric_x>, <numeric_y>
FROM {table}
[WHERE <filters>]
LIMIT 500"""

HISTOGRAM_TEMPLATE = """SELECT <numeric_column>, COUNT(*) AS frequency
FROM {table}
[WHERE <filters>]
GROUP BY <numeric_column>
ORDER BY <numeric_column> ASC"""

QUERY_TEMPLATES = {
    ChartType.BAR: CATEGORICAL_TEMPLATE,
    ChartType.COLUMN: CATEGORICAL_TEMPLATE,
    ChartType.PIE: CATEGORICAL_TEMPLATE,
    ChartType.DONUT: CATEGORICAL_TEMPLATE,
    ChartType.LINE: TIME_SERIES_TEMPLATE,
    ChartType.AREA: TIME_SERIES_TEMPLATE,
    ChartType.SCATTER: SCATTER_TEMPLATE,
    ChartType.HISTOGRAM: HISTOGRAM_TEMPLATE,
}


SYNTHESIZER_PROMPT_TEMPLATE = """Write one DuckDB SQL query that answers the question and can be drawn as a {chart_type} chart.

Question: "{query}"
Table: {table}

Analysis:
- required columns: {required_columns}
- aggregation: {aggregation}
- x axis: {x_axis}
- y axis: {y_axis}
- suggested filters: {suggested_filters}

Columns:
{columns}

Query shape for a {chart_type} chart:
{template}

Sample rows:
{sample_rows}

Distinct values observed per categorical column:
{distinct_values}

RULES:
1. SELECT only, a single statement, no trailing semicolon
2. Build WHERE clauses from the real values listed above, matching their exact
   spelling and case (e.g. a question about Thailand becomes country = 'Thailand',
   gold medals become medal = 'Gold')
3. Put the label column first and the numeric value column last
4. Use only columns listed above; quote identifiers with double quotes if needed
{feedback}
Output JSON schema:
{{
  "sql_query": "SELECT ...",
  "explanation": "what the query returns",
  "query_reasoning": "why it is built this way",
  "columns_used": ["column1"],
  "filters_applied": ["country = 'Thailand'"],
  "chart_suitability": "why the result fits the chart",
  "sample_data_insights": "what the sample data showed"
}}"""


FEEDBACK_TEMPLATE = """
PREVIOUS ATTEMPT {attempt} WAS REJECTED:
- SQL: {previous_sql}
- error: {error}
- issues: {issues}
- suggestions: {suggestions}
- improved SQL proposed by the reviewer: {improved_sql}
Fix these problems in the new query.
"""


def format_feedback(feedback: RetryFeedback | None) -> str:
    if feedback is None:
        return ""
    return FEEDBACK_TEMPLATE.format(
        attempt=feedback.attempt,
        previous_sql=feedback.previous_sql or "none",
        error=feedback.error or "none",
        issues="; ".join(feedback.issues_found) or "none",
        suggestions="; ".join(feedback.suggestions) or "none",
        improved_sql=feedback.improved_sql or "none",
    )


def fallback_sql(table: str, column: str | None) -> str:
    """Group-by-count query over one column (or a plain count)."""
    table_sql = escape_identifier(table)
    if column is None:
        return f"SELECT COUNT(*) AS count FROM {table_sql}"
    col = escape_identifier(column)
    return (
        f"SELECT {col}, COUNT(*) AS count FROM {table_sql} "
        f"GROUP BY {col} ORDER BY count DESC LIMIT {FALLBACK_LIMIT}"
    )


class SqlSynthesizer(BaseAgent):
    """Generate the SQL for one attempt of the retry loop."""

    name = "sql_synthesizer"
    llm_role = "synthesizer"

    def build_prompt(
        self,
        query: str,
        table: str,
        analysis: ColumnAnalysis,
        columns: list[ColumnDescriptor],
        sample: SampleDataset,
        feedback: RetryFeedback | None = None,
    ) -> str:
        rows = sample.sample_records[:MAX_SAMPLE_ROWS_IN_PROMPT]
        sample_rows = json.dumps(rows, ensure_ascii=False, default=str, indent=2) if rows else "none"
        distinct_lines = [
            f"- {column}: {', '.join(repr(v) for v in values[:MAX_DISTINCT_IN_PROMPT])}"
            for column, values in sample.distinct_values.items()
            if values
        ]
        template = QUERY_TEMPLATES[analysis.chart_type].format(table=table)

        return SYNTHESIZER_PROMPT_TEMPLATE.format(
            chart_type=analysis.chart_type.value,
            query=sanitize_for_prompt_injection(query),
            table=table,
            required_columns=", ".join(analysis.required_columns) or "none",
            aggregation=analysis.data_aggregation.value,
            x_axis=analysis.x_axis or "none",
            y_axis=analysis.y_axis or "none",
            suggested_filters="; ".join(analysis.suggested_filters) or "none",
            columns=describe_for_prompt(columns, detailed=True),
            template=template,
            sample_rows=sanitize_for_prompt_injection(sample_rows, max_len=3000),
            distinct_values=sanitize_for_prompt_injection("\n".join(distinct_lines), max_len=2000) or "none",
            feedback=format_feedback(feedback),
        )

    def fallback(
        self,
        table: str,
        analysis: ColumnAnalysis,
        columns: list[ColumnDescriptor],
        attempt: int = 1,
        reason: str = "",
    ) -> SqlSynthesisResult:
        known = {c.name for c in columns}
        candidates = [name for name in analysis.required_columns if name in known]
        candidates += [c.name for c in columns if c.can_be_grouped]
        column = next(iter(candidates), None)

        return SqlSynthesisResult(
            sql_query=fallback_sql(table, column),
            explanation=f"Count of records per {column}" if column else "Total record count",
            query_reasoning=f"Template query used{': ' + reason if reason else ''}",
            columns_used=[column] if column else [],
            chart_suitability="Grouped counts suit categorical charts",
            attempt=attempt,
            is_fallback=True,
        )

    async def synthesize(
        self,
        query: str,
        table: str,
        analysis: ColumnAnalysis,
        columns: list[ColumnDescriptor],
        sample: SampleDataset,
        *,
        attempt: int = 1,
        feedback: RetryFeedback | None = None,
    ) -> SqlSynthesisResult:
        prompt = self.build_prompt(query, table, analysis, columns, sample, feedback)
        try:
            response = await self.ask_llm(prompt)
            data = self.parse_json_response(response)
            data.pop("attempt", None)
            data.pop("is_fallback", None)
            result = SqlSynthesisResult(**data, attempt=attempt)
        except (LLMError, ValueError, ValidationError) as e:
            logger.warning("SQL synthesis attempt %d fell back to template: %s", attempt, e)
            return self.fallback(table, analysis, columns, attempt, str(e))

        logger.info("Synthesized SQL attempt=%d", attempt)
        logger.debug("SQL: %s", result.sql_query)
        return result
