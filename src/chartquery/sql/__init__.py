"""SQL access layer: store catalog, guardrails and the query executor."""

from chartquery.sql.guardrails import (
    GuardrailConfig,
    ValidationResult,
    clamp_limit,
    escape_identifier,
    validate_sql,
)
from chartquery.sql.safe_executor import QueryExecutor
from chartquery.sql.store import DuckDBStore

__all__ = [
    "DuckDBStore",
    "GuardrailConfig",
    "QueryExecutor",
    "ValidationResult",
    "clamp_limit",
    "escape_identifier",
    "validate_sql",
]
