"""Exception hierarchy for the chart query pipeline."""


class ChartQueryError(Exception):
    """Base class for all chartquery errors."""


class StoreError(ChartQueryError):
    """Raised when the relational store cannot be reached or introspected."""


class QueryExecutionError(ChartQueryError):
    """Raised when a synthesized SQL statement fails to execute."""

    def __init__(self, message: str, sql: str = ""):
        super().__init__(message)
        self.sql = sql


class UnsafeQueryError(QueryExecutionError):
    """Raised when SQL is rejected by the read-only guardrails."""


class LLMError(ChartQueryError):
    """Raised when an LLM provider call fails or times out."""

    def __init__(self, message: str, role: str | None = None):
        super().__init__(message)
        self.role = role
