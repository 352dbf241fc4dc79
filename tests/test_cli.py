"""Tests for the click command line."""

import json

import pytest
from click.testing import CliRunner

import chartquery.cli as cli
from chartquery.orchestrator.runtime import ChartPipeline

from tests.support.fake_llm import FakeLLM, happy_path_responses


@pytest.fixture
def runner():
    return CliRunner()


def test_columns(runner, olympic_db):
    result = runner.invoke(cli.main, ["columns", "--db-path", str(olympic_db)])
    assert result.exit_code == 0, result.output
    assert "country (VARCHAR)" in result.output
    assert "charts=bar, column, pie, donut" in result.output


def test_stats_status(runner, olympic_db):
    result = runner.invoke(cli.main, ["stats", "status", "--db-path", str(olympic_db)])
    assert result.exit_code == 0, result.output
    assert "Total records:   12" in result.output
    assert "2016 - 2024" in result.output


def test_stats_top_countries(runner, olympic_db):
    result = runner.invoke(cli.main, ["stats", "top-countries", "--limit", "1", "--db-path", str(olympic_db)])
    assert result.exit_code == 0, result.output
    assert "Thailand" in result.output


def test_stats_missing_database(runner, tmp_path):
    result = runner.invoke(cli.main, ["stats", "medals", "--db-path", str(tmp_path / "nope.duckdb")])
    assert result.exit_code == 1


def test_init_db(runner, tmp_path):
    csv_path = tmp_path / "m.csv"
    csv_path.write_text(
        "Season,Year,Medal,Country_Code,Country,Name,Games,Sport,Event_gender,Event\n"
        "Summer,2024,Gold,THA,Thailand,A,2024 Paris,Taekwondo,W,-49kg\n",
        encoding="utf-8",
    )
    db_path = tmp_path / "new.duckdb"
    result = runner.invoke(cli.main, ["init-db", "--csv", str(csv_path), "--db-path", str(db_path)])
    assert result.exit_code == 0, result.output
    assert "Rows loaded: 1" in result.output
    assert db_path.exists()


def test_backup(runner, olympic_db, tmp_path):
    out = tmp_path / "backups" / "medals.csv"
    result = runner.invoke(cli.main, ["backup", "--out", str(out), "--db-path", str(olympic_db)])
    assert result.exit_code == 0, result.output
    assert "Backed up 12 rows" in result.output
    assert out.read_text(encoding="utf-8").count("Thailand") == 5


def test_backup_missing_table(runner, olympic_db, tmp_path):
    out = tmp_path / "x.csv"
    result = runner.invoke(cli.main, ["backup", "--table", "nope", "--out", str(out), "--db-path", str(olympic_db)])
    assert result.exit_code == 1
    assert not out.exists()


def test_ask(runner, olympic_db, monkeypatch):
    created = {}

    def pipeline_with_fake_llm(store_config, config):
        created["config"] = config
        return ChartPipeline(store_config, config, llm=FakeLLM(happy_path_responses()))

    monkeypatch.setattr(cli, "ChartPipeline", pipeline_with_fake_llm)
    result = runner.invoke(
        cli.main,
        ["ask", "แสดงจำนวนเหรียญทองของประเทศไทย", "--db-path", str(olympic_db), "--max-retries", "1", "--quiet"],
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["data"] == [{"label": "Thailand", "value": 3}]
    assert created["config"].max_retries == 1


def test_ask_rejects_negative_retries(runner):
    result = runner.invoke(cli.main, ["ask", "q", "--max-retries", "-1"])
    assert result.exit_code == 2
