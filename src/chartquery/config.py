"""Explicit configuration objects for the store and the pipeline.

Both objects are plain dataclasses built once at startup (usually from
environment variables) and passed to the components that need them.

Environment variables:
- CQ_DB_PATH: DuckDB database file (default: ./data/olympics.duckdb)
- CQ_DEFAULT_TABLE: Table used when auto-detection finds nothing
- CQ_MAX_RETRIES: Extra synthesis attempts after the first one
- CQ_ACCEPTANCE_THRESHOLD: Minimum verifier confidence (0-100) to accept
- CQ_SAMPLE_LIMIT: Rows sampled as LLM context
- CQ_ENABLE_REFINEMENT: "0" disables the prompt refinement stage
- CQ_LLM_PROVIDER: ollama, openai or anthropic
- CQ_LLM_TIMEOUT / CQ_STORE_TIMEOUT: Seconds before a call is abandoned
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_DB_PATH = Path("./data/olympics.duckdb")
DEFAULT_TABLE = "olympic_medalists"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class StoreConfig:
    """Connection profile for the relational store."""

    db_path: Path = DEFAULT_DB_PATH
    read_only: bool = True
    default_table: str = DEFAULT_TABLE
    # Bookkeeping columns hidden from analysis
    excluded_columns: tuple[str, ...] = ("id", "created_at")

    @classmethod
    def from_env(cls) -> "StoreConfig":
        return cls(
            db_path=Path(os.environ.get("CQ_DB_PATH", str(DEFAULT_DB_PATH))).expanduser(),
            read_only=os.environ.get("CQ_DB_READ_ONLY", "1") != "0",
            default_table=os.environ.get("CQ_DEFAULT_TABLE", DEFAULT_TABLE),
        )


@dataclass
class PipelineConfig:
    """Policy knobs for one chart pipeline."""

    # Retry policy
    max_retries: int = 2
    acceptance_threshold: int = 70

    # Context sizes
    sample_limit: int = 10
    preview_rows: int = 10

    # Stages
    enable_prompt_refinement: bool = True

    # LLM settings
    llm_provider: str | None = None
    llm_model_overrides: dict[str, str] = field(default_factory=dict)

    # Timeouts (in seconds)
    llm_timeout: float = 60.0
    store_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not 0 <= self.acceptance_threshold <= 100:
            raise ValueError("acceptance_threshold must be between 0 and 100")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            max_retries=_env_int("CQ_MAX_RETRIES", 2),
            acceptance_threshold=_env_int("CQ_ACCEPTANCE_THRESHOLD", 70),
            sample_limit=_env_int("CQ_SAMPLE_LIMIT", 10),
            enable_prompt_refinement=os.environ.get("CQ_ENABLE_REFINEMENT", "1") != "0",
            llm_provider=os.environ.get("CQ_LLM_PROVIDER") or None,
            llm_timeout=_env_float("CQ_LLM_TIMEOUT", 60.0),
            store_timeout=_env_float("CQ_STORE_TIMEOUT", 30.0),
        )
