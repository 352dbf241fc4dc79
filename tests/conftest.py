"""Shared test fixtures for the chartquery test suite.

* ``olympic_db``    -- DuckDB file with a small, precisely-counted medal table
                       plus a ``sales_orders`` table for table selection
* ``store_config``  -- StoreConfig pointing at ``olympic_db``

Scripted LLM helpers live in ``tests/support/fake_llm.py``.
"""

from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from chartquery.config import StoreConfig
from chartquery.io.ingest import OLYMPIC_COLUMNS, create_olympic_table


# (season, year, medal, country_code, country, athletes, games, sport, event_gender, event_name)
MEDAL_ROWS = [
    ("Summer", 2024, "Gold", "THA", "Thailand", "Panipak Wongpattanakit", "2024 Paris", "Taekwondo", "Women", "-49kg"),
    ("Summer", 2020, "Gold", "THA", "Thailand", "Panipak Wongpattanakit", "2020 Tokyo", "Taekwondo", "Women", "-49kg"),
    ("Summer", 2024, "Gold", "THA", "Thailand", "Theeraphong Kaewpanya", "2024 Paris", "Weightlifting", "Men", "61kg"),
    ("Summer", 2024, "Silver", "THA", "Thailand", "Kunlavut Vitidsarn", "2024 Paris", "Badminton", "Men", "Singles"),
    ("Summer", 2024, "Bronze", "THA", "Thailand", "Surodchana Khambao", "2024 Paris", "Weightlifting", "Women", "49kg"),
    ("Summer", 2024, "Gold", "USA", "United States", "Katie Ledecky", "2024 Paris", "Swimming", "Women", "800m Freestyle"),
    ("Summer", 2020, "Gold", "USA", "United States", "Caeleb Dressel", "2020 Tokyo", "Swimming", "Men", "100m Freestyle"),
    ("Summer", 2016, "Gold", "USA", "United States", "Simone Biles", "2016 Rio", "Gymnastics", "Women", "All-Around"),
    ("Summer", 2016, "Silver", "USA", "United States", "Nathan Adrian", "2016 Rio", "Swimming", "Men", "50m Freestyle"),
    ("Winter", 2022, "Bronze", "USA", "United States", "Chloe Kim", "2022 Beijing", "Snowboard", "Women", "Halfpipe"),
    ("Summer", 2020, "Gold", "JPN", "Japan", "Daiki Hashimoto", "2020 Tokyo", "Gymnastics", "Men", "All-Around"),
    ("Winter", 2022, "Silver", "JPN", "Japan", "Kaori Sakamoto", "2022 Beijing", "Figure Skating", "Women", "Singles"),
]


def _seed(db_path: Path) -> None:
    create_olympic_table(db_path)
    placeholders = ", ".join("?" for _ in OLYMPIC_COLUMNS)
    conn = duckdb.connect(str(db_path))
    try:
        conn.executemany(
            f"INSERT INTO olympic_medalists ({', '.join(OLYMPIC_COLUMNS)}) VALUES ({placeholders})",
            MEDAL_ROWS,
        )
        conn.execute(
            """
            CREATE TABLE sales_orders (
                order_id VARCHAR,
                product VARCHAR,
                amount DOUBLE,
                order_date DATE
            )
            """
        )
        conn.execute("COMMENT ON TABLE sales_orders IS 'product sales'")
        conn.execute(
            """
            INSERT INTO sales_orders VALUES
                ('o1', 'Shirt', 19.5, DATE '2025-01-03'),
                ('o2', 'Shoes', 80.0, DATE '2025-01-04')
            """
        )
    finally:
        conn.close()


@pytest.fixture
def olympic_db(tmp_path: Path) -> Path:
    db_path = tmp_path / "olympics.duckdb"
    _seed(db_path)
    return db_path


@pytest.fixture
def store_config(olympic_db: Path) -> StoreConfig:
    return StoreConfig(db_path=olympic_db)


@pytest.fixture
def missing_store_config(tmp_path: Path) -> StoreConfig:
    return StoreConfig(db_path=tmp_path / "missing.duckdb")


