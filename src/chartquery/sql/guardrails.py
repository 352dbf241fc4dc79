"""Read-only SQL guardrails and safe interpolation helpers.

- ``validate_sql``: one SELECT/WITH statement, no write or DDL keywords
- ``escape_identifier``: table/column names embedded in generated SQL
- ``clamp_limit``: row limits embedded as literals
- ``sanitize_for_prompt_injection``: database text placed in LLM prompts
"""

import re
from dataclasses import dataclass
from typing import NamedTuple


class ValidationResult(NamedTuple):
    """Outcome of checking one SQL statement."""

    is_valid: bool
    error: str | None = None
    warnings: list[str] | None = None


# Statements that change data, schema, extensions or files
WRITE_KEYWORDS = (
    "INSERT", "UPDATE", "DELETE", "MERGE", "TRUNCATE",
    "CREATE", "ALTER", "DROP", "GRANT", "REVOKE",
    "ATTACH", "DETACH", "COPY", "EXPORT", "IMPORT",
    "INSTALL", "LOAD", "PRAGMA", "SET", "CALL",
)


@dataclass
class GuardrailConfig:
    """Limits applied to synthesized SQL."""

    max_result_rows: int = 1000
    blocked_keywords: tuple[str, ...] = WRITE_KEYWORDS
    allowed_prefixes: tuple[str, ...] = ("SELECT", "WITH")


DEFAULT_CONFIG = GuardrailConfig()

MIN_SAMPLE_LIMIT = 1
MAX_SAMPLE_LIMIT = 100

_SINGLE_QUOTED_RE = re.compile(r"'(?:[^']|'')*'")
_DOUBLE_QUOTED_RE = re.compile(r'"(?:[^"]|"")*"')
_LINE_COMMENT_RE = re.compile(r"--[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_LIMIT_RE = re.compile(r"\bLIMIT\s+\d+", re.IGNORECASE)

# Role markers and override phrases that could steer the model
_INJECTION_RE = re.compile(
    r"(?:ignore|disregard|forget)\s+(?:previous|all|above)\s+instructions?"
    r"|new\s+instructions?:"
    r"|(?:system|assistant)\s*:"
    r"|\[/?INST\]"
    r"|<\|im_(?:start|end)\|>"
    r"|<</?SYS>>",
    re.IGNORECASE,
)


def _strip_quoted(sql: str) -> str:
    """Blank out literals, quoted identifiers and comments."""
    sql = _SINGLE_QUOTED_RE.sub("''", sql)
    sql = _DOUBLE_QUOTED_RE.sub('""', sql)
    sql = _BLOCK_COMMENT_RE.sub(" ", sql)
    return _LINE_COMMENT_RE.sub(" ", sql)


def _has_multiple_statements(sql: str) -> bool:
    return ";" in _strip_quoted(sql).strip().rstrip(";")


def detect_dangerous_keywords(sql: str, config: GuardrailConfig | None = None) -> list[str]:
    """Blocked keywords found outside literals and quoted identifiers.

    Matches whole words only, so ``updated_at`` does not match ``UPDATE``.
    """
    words = set(re.findall(r"[A-Z_][A-Z0-9_]*", _strip_quoted(sql).upper()))
    return [kw for kw in (config or DEFAULT_CONFIG).blocked_keywords if kw in words]


def validate_sql(sql: str, config: GuardrailConfig | None = None) -> ValidationResult:
    """Check that ``sql`` is a single read-only statement.

    Returns:
        ValidationResult; ``warnings`` notes a missing LIMIT clause
    """
    config = config or DEFAULT_CONFIG
    text = (sql or "").strip()
    if not text:
        return ValidationResult(False, "Empty SQL query")

    first_word = _strip_quoted(text).lstrip(" \n\t(").split(None, 1)
    if not first_word or first_word[0].upper() not in config.allowed_prefixes:
        return ValidationResult(False, f"Query must start with one of: {', '.join(config.allowed_prefixes)}")

    blocked = detect_dangerous_keywords(text, config)
    if blocked:
        return ValidationResult(False, f"Blocked keyword(s) detected: {', '.join(blocked)}")

    if _has_multiple_statements(text):
        return ValidationResult(False, "Multiple statements detected (only a single SELECT is allowed)")

    if not _LIMIT_RE.search(text):
        return ValidationResult(True, warnings=["Query has no LIMIT clause; results will be capped"])
    return ValidationResult(True)


def escape_identifier(name: str) -> str:
    """Double-quote a catalog name of any spelling (``medal-data``, Thai text).

    Embedded double quotes are doubled. Names proposed by an LLM must be
    matched against the catalog before they reach this function.

    Raises:
        ValueError: If ``name`` is empty or contains a NUL byte
    """
    if not name or "\x00" in name:
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return '"' + name.replace('"', '""') + '"'


def clamp_limit(limit: int | str | None, low: int = MIN_SAMPLE_LIMIT, high: int = MAX_SAMPLE_LIMIT) -> int:
    """Coerce a row limit to an int within [low, high].

    DuckDB's LIMIT cannot be a bound parameter, so the value is embedded
    as a literal.
    """
    try:
        value = int(limit)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return low
    return max(low, min(high, value))


def sanitize_for_prompt_injection(text: str, max_len: int = 1000) -> str:
    """Filter instruction-like phrases and truncate database text for prompts."""
    if not text:
        return ""
    cleaned = _INJECTION_RE.sub("[FILTERED]", text)
    if len(cleaned) > max_len:
        return cleaned[:max_len] + "... [truncated]"
    return cleaned
