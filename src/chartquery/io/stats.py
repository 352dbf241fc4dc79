"""Summary statistics and CSV backups of the medalists table."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from chartquery.config import StoreConfig
from chartquery.io.ingest import OLYMPIC_TABLE
from chartquery.sql.guardrails import clamp_limit
from chartquery.sql.safe_executor import QueryExecutor
from chartquery.sql.store import DuckDBStore


logger = logging.getLogger(__name__)


def database_status(config: StoreConfig) -> dict[str, Any]:
    """Total records, countries, sports and the year range."""
    rows = QueryExecutor(config).execute(
        f"""
        SELECT
            COUNT(*) AS total_records,
            COUNT(DISTINCT country) AS total_countries,
            COUNT(DISTINCT sport) AS total_sports,
            MIN(year) AS first_year,
            MAX(year) AS last_year
        FROM {OLYMPIC_TABLE}
        """
    )
    status = rows[0]
    status["year_range"] = (
        f"{status['first_year']} - {status['last_year']}" if status["first_year"] is not None else "-"
    )
    return status


def medal_counts(config: StoreConfig) -> list[dict[str, Any]]:
    return QueryExecutor(config).execute(
        f"SELECT medal, COUNT(*) AS count FROM {OLYMPIC_TABLE} GROUP BY medal ORDER BY count DESC"
    )


def top_countries(config: StoreConfig, limit: int = 10) -> list[dict[str, Any]]:
    return QueryExecutor(config).execute(
        f"""
        SELECT country, COUNT(*) AS total_medals
        FROM {OLYMPIC_TABLE}
        WHERE country != ''
        GROUP BY country
        ORDER BY total_medals DESC, country
        LIMIT {clamp_limit(limit)}
        """
    )


def default_backup_path(table: str = OLYMPIC_TABLE, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path(f"{table}_backup_{stamp}.csv")


def backup_table(config: StoreConfig, out_path: str | Path | None = None, table: str = OLYMPIC_TABLE) -> tuple[Path, int]:
    """Write every row of ``table`` to a CSV file.

    Args:
        config: Store to read from (opened read-only)
        out_path: Target CSV; defaults to ``<table>_backup_<timestamp>.csv``
        table: Table to back up

    Returns:
        (path written, number of rows)

    Raises:
        StoreError: If the database or table cannot be read
    """
    frame = DuckDBStore(config).table_frame(table)
    target = Path(out_path) if out_path else default_backup_path(table)
    target.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(target, index=False)
    logger.info("Backed up %d rows of %s to %s", len(frame), table, target)
    return target, len(frame)
