"""Table auto-detection by keyword scoring.

The selector scores every table in the store against the user's question
and returns the best match. When the store has no tables or cannot be
reached, the configured default table is returned instead.
"""

import logging

from chartquery.agents.base import BaseAgent, run_in_thread
from chartquery.agents.contracts import TableDescriptor
from chartquery.errors import StoreError
from chartquery.sql.store import DuckDBStore


logger = logging.getLogger(__name__)


# Keyword (Thai or English) -> domain category matched against table names
DOMAIN_KEYWORDS = {
    "ขาย": "sales",
    "ยอดขาย": "sales",
    "sale": "sales",
    "sales": "sales",
    "revenue": "sales",
    "รายได้": "sales",
    "สินค้า": "product",
    "product": "product",
    "order": "order",
    "คำสั่งซื้อ": "order",
    "ลูกค้า": "customer",
    "customer": "customer",
    "เหรียญ": "medal",
    "medal": "medal",
    "โอลิมปิก": "olympic",
    "olympic": "olympic",
    "ประเทศ": "country",
    "country": "country",
    "นักกีฬา": "athlete",
    "athlete": "athlete",
    "กีฬา": "sport",
    "sport": "sport",
}

KEYWORD_SCORE = 10
EXACT_NAME_SCORE = 50
NAME_FRAGMENT_SCORE = 20


def score_table(query: str, table: TableDescriptor) -> int:
    """Score how well a table matches a question.

    Args:
        query: User question
        table: Candidate table

    Returns:
        Non-negative score; higher is a better match
    """
    query_lower = query.lower()
    name = table.name.lower()
    haystack = f"{name} {table.comment.lower()}"

    score = 0
    for keyword, category in DOMAIN_KEYWORDS.items():
        if keyword in query_lower and (category in haystack or keyword in haystack):
            score += KEYWORD_SCORE

    if name in query_lower:
        score += EXACT_NAME_SCORE

    fragments = [part for part in name.split("_") if part]
    if any(part in query_lower for part in fragments):
        score += NAME_FRAGMENT_SCORE

    return score


def pick_table(query: str, tables: list[TableDescriptor]) -> tuple[TableDescriptor, int] | None:
    """Return the highest-scoring table; the earliest table wins ties."""
    best: tuple[TableDescriptor, int] | None = None
    for table in tables:
        score = score_table(query, table)
        if best is None or score > best[1]:
            best = (table, score)
    return best


class TableSelector(BaseAgent):
    """Pick the table a question is about."""

    name = "table_selector"

    def __init__(self, store: DuckDBStore, *, default_table: str | None = None, timeout: float | None = None):
        super().__init__(llm=None)
        self.store = store
        self.default_table = default_table or store.config.default_table
        self.timeout = timeout

    def default_descriptor(self) -> TableDescriptor:
        return TableDescriptor(name=self.default_table, comment="default table")

    async def list_tables(self) -> list[TableDescriptor]:
        """List store tables, or an empty list when the store is unreachable."""
        try:
            rows = await run_in_thread(self.store.list_tables, timeout=self.timeout)
        except StoreError as e:
            logger.warning("Table listing failed, using default table: %s", e)
            return []
        return [TableDescriptor(**row) for row in rows]

    async def select(self, query: str, tables: list[TableDescriptor] | None = None) -> TableDescriptor:
        if tables is None:
            tables = await self.list_tables()
        best = pick_table(query, tables)
        if best is None:
            return self.default_descriptor()
        table, score = best
        logger.info("Selected table %s (score=%d)", table.name, score)
        return table
