"""DuckDB-backed relational store for metadata, samples and distinct values.

A short-lived connection is opened for every operation and closed before
returning, so concurrent requests never share a connection.
"""

import logging
from typing import Any

import duckdb
import pandas as pd

from chartquery.config import StoreConfig
from chartquery.errors import StoreError
from chartquery.sql.guardrails import clamp_limit, escape_identifier


logger = logging.getLogger(__name__)


def _rows_as_dicts(result: duckdb.DuckDBPyConnection) -> list[dict[str, Any]]:
    columns = [desc[0] for desc in result.description] if result.description else []
    return [dict(zip(columns, row)) for row in result.fetchall()]


class DuckDBStore:
    """Read-side access to the store's catalog and table contents.

    Usage:
        store = DuckDBStore(StoreConfig(db_path=Path("data/olympics.duckdb")))
        for table in store.list_tables():
            print(table["name"], table["comment"])
    """

    def __init__(self, config: StoreConfig):
        self.config = config

    def _connect(self) -> duckdb.DuckDBPyConnection:
        if not self.config.db_path.exists():
            raise StoreError(f"Database not found: {self.config.db_path}")
        try:
            return duckdb.connect(str(self.config.db_path), read_only=self.config.read_only)
        except (duckdb.Error, OSError) as e:
            raise StoreError(f"Cannot open database {self.config.db_path}: {e}") from e

    def _query(self, sql: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        conn = self._connect()
        try:
            result = conn.execute(sql, params or [])
            return _rows_as_dicts(result)
        except duckdb.Error as e:
            raise StoreError(f"Store query failed: {e}") from e
        finally:
            conn.close()

    def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        rows = self._query("SELECT 1 AS ok")
        return bool(rows) and rows[0]["ok"] == 1

    def list_tables(self) -> list[dict[str, str]]:
        """List user tables as ``{"name", "comment"}`` in name order."""
        rows = self._query(
            """
            SELECT table_name, comment
            FROM duckdb_tables()
            WHERE NOT internal AND NOT temporary
            ORDER BY table_name
            """
        )
        return [{"name": r["table_name"], "comment": r["comment"] or ""} for r in rows]

    def describe_columns(self, table: str) -> list[dict[str, Any]]:
        """Return raw column metadata in ordinal order.

        Columns listed in ``StoreConfig.excluded_columns`` are skipped.

        Returns:
            List of ``{"name", "sql_type", "nullable", "comment"}`` dicts
        """
        rows = self._query(
            """
            SELECT column_name, data_type, is_nullable, comment
            FROM duckdb_columns()
            WHERE table_name = ? AND NOT internal
            ORDER BY column_index
            """,
            [table],
        )
        excluded = {c.lower() for c in self.config.excluded_columns}
        return [
            {
                "name": r["column_name"],
                "sql_type": r["data_type"],
                "nullable": bool(r["is_nullable"]),
                "comment": r["comment"] or "",
            }
            for r in rows
            if r["column_name"].lower() not in excluded
        ]

    def sample_rows(
        self, table: str, limit: int = 10, columns: list[str] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch up to ``limit`` rows (clamped to 1..100)."""
        select = ", ".join(escape_identifier(c) for c in columns) if columns else "*"
        sql = f"SELECT {select} FROM {escape_identifier(table)} LIMIT {clamp_limit(limit)}"
        return self._query(sql)

    def distinct_values(self, table: str, column: str, limit: int = 5) -> list[Any]:
        """Fetch up to ``limit`` distinct non-null values of one column."""
        col = escape_identifier(column)
        sql = (
            f"SELECT DISTINCT {col} AS value FROM {escape_identifier(table)} "
            f"WHERE {col} IS NOT NULL ORDER BY {col} LIMIT {clamp_limit(limit, high=5)}"
        )
        return [r["value"] for r in self._query(sql)]

    def table_exists(self, table: str) -> bool:
        return any(t["name"] == table for t in self.list_tables())

    def table_frame(self, table: str) -> pd.DataFrame:
        """Read a whole table into a DataFrame, bypassing the result cap."""
        conn = self._connect()
        try:
            return conn.execute(f"SELECT * FROM {escape_identifier(table)}").df()
        except duckdb.Error as e:
            raise StoreError(f"Cannot read table {table}: {e}") from e
        finally:
            conn.close()
