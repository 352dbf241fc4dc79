"""Tests for extracting JSON objects from free LLM text."""

from chartquery.llm.client import extract_json_object


def test_plain_object():
    assert extract_json_object('{"chart_type": "pie"}') == {"chart_type": "pie"}


def test_object_inside_prose():
    text = 'Sure! Here is the analysis:\n{"chart_type": "bar", "x_axis": "country"}\nHope this helps.'
    assert extract_json_object(text) == {"chart_type": "bar", "x_axis": "country"}


def test_markdown_fence_is_stripped():
    text = '```json\n{"sql_query": "SELECT 1"}\n```'
    assert extract_json_object(text) == {"sql_query": "SELECT 1"}


def test_nested_braces_use_greedy_span():
    text = 'prefix {"a": {"b": 1}, "c": [1, 2]} suffix'
    assert extract_json_object(text) == {"a": {"b": 1}, "c": [1, 2]}


def test_thai_text_survives():
    assert extract_json_object('{"improved_prompt": "แสดงจำนวนเหรียญทอง"}') == {
        "improved_prompt": "แสดงจำนวนเหรียญทอง"
    }


def test_no_object_returns_none():
    assert extract_json_object("I cannot answer that.") is None
    assert extract_json_object("") is None
    assert extract_json_object(None) is None


def test_invalid_json_returns_none():
    assert extract_json_object("{ invalid json }") is None
    assert extract_json_object('{"a": 1} and then {"b": 2}') is None


def test_non_object_json_returns_none():
    assert extract_json_object("[1, 2, 3]") is None
