"""Tests for environment-driven configuration."""

from pathlib import Path

import pytest

from chartquery.config import DEFAULT_TABLE, PipelineConfig, StoreConfig


def test_pipeline_defaults():
    config = PipelineConfig()
    assert config.max_retries == 2
    assert config.acceptance_threshold == 70
    assert config.enable_prompt_refinement is True


def test_pipeline_from_env(monkeypatch):
    monkeypatch.setenv("CQ_MAX_RETRIES", "4")
    monkeypatch.setenv("CQ_ACCEPTANCE_THRESHOLD", "80")
    monkeypatch.setenv("CQ_ENABLE_REFINEMENT", "0")
    monkeypatch.setenv("CQ_LLM_PROVIDER", "openai")
    monkeypatch.setenv("CQ_LLM_TIMEOUT", "12.5")

    config = PipelineConfig.from_env()

    assert config.max_retries == 4
    assert config.acceptance_threshold == 80
    assert config.enable_prompt_refinement is False
    assert config.llm_provider == "openai"
    assert config.llm_timeout == 12.5


def test_pipeline_rejects_bad_values(monkeypatch):
    monkeypatch.setenv("CQ_MAX_RETRIES", "two")
    with pytest.raises(ValueError, match="CQ_MAX_RETRIES"):
        PipelineConfig.from_env()

    with pytest.raises(ValueError):
        PipelineConfig(acceptance_threshold=120)
    with pytest.raises(ValueError):
        PipelineConfig(max_retries=-1)


def test_store_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("CQ_DB_PATH", str(tmp_path / "x.duckdb"))
    monkeypatch.delenv("CQ_DEFAULT_TABLE", raising=False)

    config = StoreConfig.from_env()

    assert config.db_path == Path(tmp_path / "x.duckdb")
    assert config.default_table == DEFAULT_TABLE
    assert config.read_only is True
    assert "id" in config.excluded_columns
