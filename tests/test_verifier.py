"""Tests for result verification."""

import asyncio

import pytest

from chartquery.agents.contracts import ColumnAnalysis
from chartquery.agents.verifier_agent import (
    ResultVerifier,
    check_duplicates,
    check_null_rate,
    structural_checks,
)
from chartquery.errors import LLMError

from tests.support.fake_llm import THAI_GOLD_SQL, FakeLLM, as_json


ANALYSIS = ColumnAnalysis(required_columns=["country"], chart_type="bar")
ROWS = [{"country": "Thailand", "count": 3}]


def verify(llm, rows=ROWS, verifier_kwargs=None):
    verifier = ResultVerifier(llm, **(verifier_kwargs or {}))
    return asyncio.run(verifier.verify("เหรียญทองของไทย", THAI_GOLD_SQL, rows, ANALYSIS, []))


def test_structural_checks():
    assert structural_checks([]) == ["Query returned no rows"]
    assert structural_checks(ROWS) == []
    assert check_null_rate([{"a": None}, {"a": None}, {"a": 1}]) == "High null rate in: a"
    assert check_duplicates([{"a": 1}, {"a": 1}, {"a": 2}]).startswith("Found 1 duplicate rows")
    assert check_duplicates([{"a": 1}]) is None


def test_llm_verdict():
    llm = FakeLLM({"verifier": as_json({"is_valid": True, "confidence_score": 92, "reasoning": "ok"})})
    result = verify(llm)
    assert result.is_valid
    assert result.confidence_score == 92
    assert result.is_fallback is False
    assert result.data_quality == "good"


@pytest.mark.parametrize(("raw", "expected"), [(150, 100), (-3, 0), (84.6, 85), ("77", 77)])
def test_confidence_clamped_and_rounded(raw, expected):
    llm = FakeLLM({"verifier": as_json({"is_valid": True, "confidence_score": raw})})
    assert verify(llm).confidence_score == expected


def test_improved_sql_null_string_dropped():
    llm = FakeLLM({"verifier": as_json({"is_valid": False, "confidence_score": 40, "should_retry": True, "improved_sql": "null"})})
    result = verify(llm)
    assert result.should_retry
    assert result.improved_sql is None


@pytest.mark.parametrize("response", [LLMError("down", role="verifier"), "garbage", as_json({"confidence_score": "high"})])
def test_fallback_with_rows(response):
    result = verify(FakeLLM({"verifier": response}))
    assert result.is_fallback
    assert result.is_valid
    assert result.confidence_score == 70
    assert result.should_retry is False


def test_fallback_without_rows():
    result = verify(FakeLLM({"verifier": "garbage"}), rows=[])
    assert result.is_valid is False
    assert result.confidence_score == 30
    assert result.should_retry is True
    assert result.issues_found == ["Query returned no rows"]
    assert result.data_quality == "empty"


def test_no_client_uses_fallback():
    result = verify(None)
    assert result.is_fallback
    assert result.confidence_score == 70


def test_preview_truncated():
    rows = [{"n": i} for i in range(25)]
    llm = FakeLLM({"verifier": as_json({"is_valid": True, "confidence_score": 80})})
    verify(llm, rows=rows, verifier_kwargs={"preview_rows": 5})
    prompt = llm.prompts("verifier")[0]
    assert "5 of 25 rows, 20 more not shown" in prompt
