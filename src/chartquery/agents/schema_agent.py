"""Schema introspection: column descriptors and sample data.

The introspector turns raw store metadata into ColumnDescriptor records
with capability flags and suggested chart types, and gathers a small
sample dataset used as LLM context. Both operations degrade instead of
raising when the store is unreachable.
"""

import logging
import re

from chartquery.agents.base import BaseAgent, run_in_thread
from chartquery.agents.contracts import ChartType, ColumnDescriptor, SampleDataset
from chartquery.errors import StoreError
from chartquery.sql.guardrails import clamp_limit, sanitize_for_prompt_injection
from chartquery.sql.store import DuckDBStore


logger = logging.getLogger(__name__)


NUMERIC_TYPES = {
    "tinyint", "smallint", "integer", "int", "bigint", "hugeint",
    "utinyint", "usmallint", "uinteger", "ubigint", "uhugeint",
    "mediumint", "float", "real", "double", "decimal", "numeric",
}
DATE_TYPES = {
    "date", "datetime", "timestamp", "timestamp with time zone", "timestamptz",
    "timestamp_s", "timestamp_ms", "timestamp_ns", "time", "year",
}
TEXT_TYPES = {
    "varchar", "char", "bpchar", "text", "string", "enum",
    "tinytext", "mediumtext", "longtext", "set",
}

TIME_NAME_HINTS = ("date", "year", "time", "month")
CATEGORY_NAME_HINTS = ("country", "category", "type", "code")
ENUM_COMMENT_HINTS = ("enum", "choice", "type")

MAX_CATEGORICAL_COLUMNS = 5
MAX_DISTINCT_VALUES = 5

# Shape used when the store cannot be introspected at all
FALLBACK_COLUMNS = (
    {"name": "category", "sql_type": "VARCHAR", "comment": "category label"},
    {"name": "name", "sql_type": "VARCHAR", "comment": "item name"},
    {"name": "value", "sql_type": "INTEGER", "comment": "numeric value"},
    {"name": "created_date", "sql_type": "DATE", "comment": "record date"},
)


def normalize_type(sql_type: str) -> str:
    """Lower-case a declared type and drop its size, e.g. ``DECIMAL(10,2)``."""
    return re.sub(r"\(.*\)", "", sql_type or "").strip().lower()


def is_identifier_like(name: str) -> bool:
    lowered = name.lower()
    return lowered in ("id", "uuid") or lowered.endswith("_id")


def suggest_chart_types(name: str, comment: str, is_numeric: bool, is_date: bool, is_text: bool) -> tuple[ChartType, ...]:
    """Derive the chart types a column naturally supports."""
    lowered = name.lower()
    comment_lower = comment.lower()
    suggested: set[ChartType] = set()

    if is_date or any(hint in lowered for hint in TIME_NAME_HINTS):
        suggested.update((ChartType.LINE, ChartType.AREA))
    if any(hint in lowered for hint in CATEGORY_NAME_HINTS):
        suggested.update((ChartType.BAR, ChartType.COLUMN, ChartType.PIE, ChartType.DONUT))
    if is_numeric:
        suggested.update((ChartType.HISTOGRAM, ChartType.SCATTER))
    if is_text and any(hint in comment_lower for hint in ENUM_COMMENT_HINTS):
        suggested.update((ChartType.PIE, ChartType.DONUT, ChartType.BAR))
    if not suggested:
        suggested.update((ChartType.BAR, ChartType.COLUMN))

    # Stable order regardless of set iteration
    return tuple(chart for chart in ChartType if chart in suggested)


def build_descriptor(name: str, sql_type: str, comment: str = "", nullable: bool = True) -> ColumnDescriptor:
    base_type = normalize_type(sql_type)
    is_numeric = base_type in NUMERIC_TYPES
    is_date = base_type in DATE_TYPES
    is_text = base_type in TEXT_TYPES
    lowered = name.lower()

    return ColumnDescriptor(
        name=name,
        sql_type=sql_type,
        comment=comment or "",
        nullable=nullable,
        is_numeric=is_numeric,
        is_date=is_date,
        is_text=is_text,
        can_be_grouped=is_text or is_date or "code" in lowered or "category" in lowered,
        can_be_aggregated=is_numeric,
        suitable_for_filter=is_text or is_date,
        suggested_chart_types=suggest_chart_types(name, comment or "", is_numeric, is_date, is_text),
    )


def fallback_descriptors() -> list[ColumnDescriptor]:
    return [build_descriptor(**col) for col in FALLBACK_COLUMNS]


class SchemaIntrospector(BaseAgent):
    """Describe table columns and collect sample data for prompts.

    Usage:
        introspector = SchemaIntrospector(DuckDBStore(config))
        columns = await introspector.describe_columns("olympic_medalists")
        sample = await introspector.sample_data("olympic_medalists", columns, 10)
    """

    name = "schema_introspector"

    def __init__(self, store: DuckDBStore, *, timeout: float | None = None):
        super().__init__(llm=None)
        self.store = store
        self.timeout = timeout

    async def describe_columns(self, table: str) -> list[ColumnDescriptor]:
        """Return column descriptors in ordinal order.

        Falls back to a small generic column set when the store fails or
        the table has no visible columns.
        """
        try:
            raw = await run_in_thread(self.store.describe_columns, table, timeout=self.timeout)
        except StoreError as e:
            logger.warning("Column introspection failed for %s, using fallback columns: %s", table, e)
            return fallback_descriptors()

        if not raw:
            logger.warning("Table %s has no columns, using fallback columns", table)
            return fallback_descriptors()

        return [
            build_descriptor(c["name"], c["sql_type"], c.get("comment", ""), c.get("nullable", True))
            for c in raw
        ]

    def categorical_columns(self, columns: list[ColumnDescriptor]) -> list[str]:
        """Text, groupable, non-identifier columns worth sampling values from."""
        names = [
            c.name
            for c in columns
            if c.is_text and c.can_be_grouped and not is_identifier_like(c.name)
        ]
        return names[:MAX_CATEGORICAL_COLUMNS]

    async def sample_data(self, table: str, columns: list[ColumnDescriptor], limit: int = 10) -> SampleDataset:
        """Fetch sample rows and per-column distinct values.

        ``limit`` is clamped to 1..100 before it reaches the store.
        """
        safe_limit = clamp_limit(limit)
        try:
            records = await run_in_thread(self.store.sample_rows, table, safe_limit, timeout=self.timeout)
        except (StoreError, ValueError) as e:
            logger.warning("Sampling %s failed: %s", table, e)
            return SampleDataset()

        categorical = self.categorical_columns(columns)
        distinct: dict[str, list] = {}
        for column in categorical:
            try:
                distinct[column] = await run_in_thread(
                    self.store.distinct_values, table, column, MAX_DISTINCT_VALUES, timeout=self.timeout
                )
            except (StoreError, ValueError) as e:
                logger.warning("Distinct values for %s.%s failed: %s", table, column, e)
                distinct[column] = []

        return SampleDataset(
            sample_records=records,
            distinct_values=distinct,
            categorical_columns=categorical,
            total_sample_count=len(records),
        )


def describe_for_prompt(columns: list[ColumnDescriptor], *, detailed: bool = False) -> str:
    """Render column descriptors as a bullet list for LLM prompts."""
    lines = []
    for col in columns:
        comment = sanitize_for_prompt_injection(col.comment, max_len=200) or "no description"
        line = f"- {col.name} ({col.sql_type}): {comment}"
        if detailed:
            flags = [
                flag
                for flag, on in (
                    ("groupable", col.can_be_grouped),
                    ("aggregatable", col.can_be_aggregated),
                    ("filterable", col.suitable_for_filter),
                    ("date", col.is_date),
                    ("numeric", col.is_numeric),
                )
                if on
            ]
            charts = ", ".join(c.value for c in col.suggested_chart_types)
            line += f" [{', '.join(flags) or 'plain'}] charts: {charts}"
        lines.append(line)
    return "\n".join(lines)
