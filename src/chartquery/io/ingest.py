"""Olympic medalists dataset provisioning for DuckDB."""

import logging
from pathlib import Path

import duckdb
import pandas as pd


logger = logging.getLogger(__name__)

OLYMPIC_TABLE = "olympic_medalists"

# CSV column order; the header row is skipped and columns map by position
OLYMPIC_COLUMNS = (
    "season",
    "year",
    "medal",
    "country_code",
    "country",
    "athletes",
    "games",
    "sport",
    "event_gender",
    "event_name",
)

COLUMN_COMMENTS = {
    "season": "ฤดูกาล (Summer/Winter)",
    "year": "ปี",
    "medal": "ประเภทเหรียญ (Gold/Silver/Bronze)",
    "country_code": "รหัสประเทศ (THA, USA, etc.)",
    "country": "ชื่อประเทศ",
    "athletes": "ชื่อนักกีฬา",
    "games": "การแข่งขัน (2024 Paris, 2020 Tokyo, etc.)",
    "sport": "ประเภทกีฬา (Swimming, Athletics, etc.)",
    "event_gender": "เพศ (Men, Women, Mixed)",
    "event_name": "ชื่อรายการแข่งขัน",
}

CREATE_TABLE_SQL = f"""
CREATE TABLE {OLYMPIC_TABLE} (
    id INTEGER PRIMARY KEY DEFAULT nextval('{OLYMPIC_TABLE}_id_seq'),
    season VARCHAR NOT NULL,
    year INTEGER NOT NULL,
    medal VARCHAR NOT NULL,
    country_code VARCHAR NOT NULL,
    country VARCHAR NOT NULL,
    athletes VARCHAR NOT NULL,
    games VARCHAR NOT NULL,
    sport VARCHAR NOT NULL,
    event_gender VARCHAR NOT NULL,
    event_name VARCHAR NOT NULL,
    created_at TIMESTAMP DEFAULT current_timestamp
)
"""


def _sql_string(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def create_olympic_table(db_path: Path | str, *, force: bool = True) -> None:
    """Create the medalists table with column comments.

    Args:
        db_path: DuckDB database file (created if missing)
        force: Drop an existing table first; otherwise keep it and its rows
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = duckdb.connect(str(db_path))
    try:
        if force:
            conn.execute(f"DROP TABLE IF EXISTS {OLYMPIC_TABLE}")
            conn.execute(f"DROP SEQUENCE IF EXISTS {OLYMPIC_TABLE}_id_seq")
        conn.execute(f"CREATE SEQUENCE IF NOT EXISTS {OLYMPIC_TABLE}_id_seq START 1")
        create_sql = CREATE_TABLE_SQL if force else CREATE_TABLE_SQL.replace("CREATE TABLE", "CREATE TABLE IF NOT EXISTS", 1)
        conn.execute(create_sql)
        conn.execute(f"COMMENT ON TABLE {OLYMPIC_TABLE} IS {_sql_string('Olympic medalists 1896-2024')}")
        for column, comment in COLUMN_COMMENTS.items():
            conn.execute(f"COMMENT ON COLUMN {OLYMPIC_TABLE}.{column} IS {_sql_string(comment)}")
    finally:
        conn.close()
    logger.info("Created table %s in %s", OLYMPIC_TABLE, db_path)


def read_olympic_csv(csv_path: Path | str) -> tuple[pd.DataFrame, int]:
    """Read the medalists CSV into a frame with the table's columns.

    Returns:
        (frame, skipped) where skipped counts rows without a numeric year
    """
    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    if len(df.columns) < len(OLYMPIC_COLUMNS):
        raise ValueError(
            f"Expected at least {len(OLYMPIC_COLUMNS)} columns in {csv_path}, found {len(df.columns)}"
        )

    df = df.iloc[:, : len(OLYMPIC_COLUMNS)].copy()
    df.columns = list(OLYMPIC_COLUMNS)
    for column in OLYMPIC_COLUMNS:
        df[column] = df[column].str.strip()

    df["year"] = pd.to_numeric(df["year"], errors="coerce")
    valid = df["year"].notna()
    skipped = int((~valid).sum())
    df = df[valid].copy()
    df["year"] = df["year"].astype(int)
    return df, skipped


def load_olympic_csv(db_path: Path | str, csv_path: Path | str, *, create: bool = True) -> dict:
    """Load the medalists CSV into DuckDB.

    Args:
        db_path: DuckDB database file
        csv_path: CSV with a header row and the ten medalist columns
        create: (Re)create the table before loading

    Returns:
        Summary with record, country, sport and year counts
    """
    if create:
        create_olympic_table(db_path)

    olympic_df, skipped = read_olympic_csv(csv_path)
    columns = ", ".join(OLYMPIC_COLUMNS)

    conn = duckdb.connect(str(db_path))
    try:
        conn.register("olympic_df", olympic_df)
        conn.execute(f"INSERT INTO {OLYMPIC_TABLE} ({columns}) SELECT {columns} FROM olympic_df")
        conn.unregister("olympic_df")
        total, countries, sports, years, first_year, last_year = conn.execute(
            f"""
            SELECT
                COUNT(*),
                COUNT(DISTINCT country),
                COUNT(DISTINCT sport),
                COUNT(DISTINCT year),
                MIN(year),
                MAX(year)
            FROM {OLYMPIC_TABLE}
            """
        ).fetchone()
    finally:
        conn.close()

    logger.info("Loaded %d rows into %s (%d skipped)", len(olympic_df), OLYMPIC_TABLE, skipped)
    return {
        "status": "success",
        "db_path": str(Path(db_path).absolute()),
        "table": OLYMPIC_TABLE,
        "rows_loaded": len(olympic_df),
        "rows_skipped": skipped,
        "total_records": total,
        "total_countries": countries,
        "total_sports": sports,
        "total_years": years,
        "first_year": first_year,
        "last_year": last_year,
    }


def format_load_summary(results: dict) -> str:
    """Format load results as a human-readable summary."""
    lines = [
        "✅ Load complete\n",
        f"Database: {results['db_path']}",
        f"Table:    {results['table']}",
        f"Rows loaded: {results['rows_loaded']:,}",
    ]
    if results["rows_skipped"]:
        lines.append(f"Rows skipped (no year): {results['rows_skipped']:,}")
    lines.append(
        f"\n{results['total_countries']} countries, {results['total_sports']} sports, "
        f"{results['total_years']} years ({results['first_year']} - {results['last_year']})"
    )
    return "\n".join(lines)
