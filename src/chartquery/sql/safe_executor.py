"""Guarded SQL executor for synthesized read-only queries.

Unlike the rest of the pipeline, the executor never degrades: validation
and database errors are raised so the retry controller can react to them.
"""

import asyncio
import logging
import time
from typing import Any

import duckdb

from chartquery.config import StoreConfig
from chartquery.errors import QueryExecutionError, UnsafeQueryError
from chartquery.sql.guardrails import GuardrailConfig, ValidationResult, validate_sql


logger = logging.getLogger(__name__)


class QueryExecutor:
    """Execute SQL against the configured store with guardrails.

    Usage:
        executor = QueryExecutor(StoreConfig.from_env())
        rows = executor.execute("SELECT country, COUNT(*) AS count FROM olympic_medalists GROUP BY country")
    """

    def __init__(
        self,
        config: StoreConfig,
        guardrails: GuardrailConfig | None = None,
        timeout: float | None = None,
    ):
        self.config = config
        self.guardrails = guardrails or GuardrailConfig()
        self.timeout = timeout

    def validate(self, sql: str) -> ValidationResult:
        return validate_sql(sql, self.guardrails)

    def execute(self, sql: str, params: list[Any] | dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run one statement and return its rows as dicts.

        Raises:
            UnsafeQueryError: If the statement fails read-only validation
            QueryExecutionError: If the database rejects or fails the statement
        """
        validation = self.validate(sql)
        if not validation.is_valid:
            raise UnsafeQueryError(validation.error or "Query rejected", sql=sql)

        start = time.perf_counter()
        conn: duckdb.DuckDBPyConnection | None = None
        try:
            conn = duckdb.connect(str(self.config.db_path), read_only=self.config.read_only)
            result = conn.execute(sql, params) if params else conn.execute(sql)
            columns = [desc[0] for desc in result.description] if result.description else []
            raw_rows = result.fetchmany(self.guardrails.max_result_rows + 1)
        except duckdb.Error as e:
            raise QueryExecutionError(f"Database error: {e}", sql=sql) from e
        finally:
            if conn is not None:
                conn.close()

        if len(raw_rows) > self.guardrails.max_result_rows:
            logger.warning("Result truncated to %d rows", self.guardrails.max_result_rows)
            raw_rows = raw_rows[: self.guardrails.max_result_rows]

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("Executed query rows=%d time=%.1fms", len(raw_rows), elapsed_ms)
        return [dict(zip(columns, row)) for row in raw_rows]

    async def execute_async(
        self, sql: str, params: list[Any] | dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Run ``execute`` in a worker thread, bounded by ``timeout``."""
        call = asyncio.to_thread(self.execute, sql, params)
        if self.timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise QueryExecutionError(f"Query timed out after {self.timeout}s", sql=sql) from e
