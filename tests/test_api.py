"""Tests for the FastAPI server."""

import json

import pytest
from fastapi.testclient import TestClient

from chartquery.api.server import create_app, format_sse
from chartquery.agents.contracts import EventType, ProgressEvent
from chartquery.config import PipelineConfig

from tests.support.fake_llm import FakeLLM, happy_path_responses


THAI_GOLD_QUESTION = "แสดงจำนวนเหรียญทองของประเทศไทย"


@pytest.fixture
def client(olympic_db):
    app = create_app(olympic_db, llm=FakeLLM(happy_path_responses()), pipeline_config=PipelineConfig())
    return TestClient(app)


@pytest.fixture
def missing_client(tmp_path):
    app = create_app(tmp_path / "missing.duckdb", llm=FakeLLM(), pipeline_config=PipelineConfig(max_retries=0))
    return TestClient(app)


def parse_sse(text: str) -> list[tuple[str, dict]]:
    frames = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        frames.append((lines["event"], json.loads(lines["data"])))
    return frames


def test_format_sse():
    frame = format_sse(ProgressEvent(type=EventType.STATUS, message="กำลังทำงาน", progress=5))
    assert frame == 'event: update\ndata: {"type": "status", "message": "กำลังทำงาน", "progress": 5}\n\n'


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["db_exists"] is True


def test_test_db(client, missing_client):
    ok = client.get("/api/test-db")
    assert ok.status_code == 200
    assert ok.json()["success"] is True
    assert ok.json()["config"]["default_table"] == "olympic_medalists"

    failed = missing_client.get("/api/test-db")
    assert failed.status_code == 500
    assert failed.json()["success"] is False


def test_tables(client):
    body = client.get("/api/tables").json()
    assert body["total"] == 2
    assert [t["name"] for t in body["tables"]] == ["olympic_medalists", "sales_orders"]


def test_columns(client):
    body = client.get("/api/columns").json()
    assert body["table"] == "olympic_medalists"
    names = [c["name"] for c in body["columns"]]
    assert "country" in names and "id" not in names
    country = next(c for c in body["columns"] if c["name"] == "country")
    assert country["can_be_grouped"] is True
    assert "bar" in country["suggested_chart_types"]

    other = client.get("/api/columns", params={"table": "sales_orders"}).json()
    assert [c["name"] for c in other["columns"]] == ["order_id", "product", "amount", "order_date"]


def test_query_validation(client):
    assert client.post("/api/query-stream", json={"query": ""}).status_code == 422
    assert client.post("/api/query-stream", json={}).status_code == 422
    assert client.post("/api/query-stream", json={"query": "   "}).status_code == 400
    assert client.post("/api/query", json={"query": "\t"}).status_code == 400


def test_query(client):
    response = client.post("/api/query", json={"query": THAI_GOLD_QUESTION})
    assert response.status_code == 200
    body = response.json()
    assert body["data"] == [{"label": "Thailand", "value": 3}]
    assert body["chart_type"] == "bar"
    assert body["metadata"]["execution"]["success"] is True


def test_query_stream(client):
    response = client.post("/api/query-stream", json={"query": THAI_GOLD_QUESTION})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    frames = parse_sse(response.text)
    names = [name for name, _ in frames]
    assert names[-2:] == ["complete", "done"]
    assert set(names[:-2]) == {"update"}

    complete = frames[-2][1]
    assert complete["progress"] == 100
    assert complete["result"]["data"] == [{"label": "Thailand", "value": 3}]
    assert complete["column_analysis"]["chart_type"] == "bar"

    progress = [data["progress"] for _, data in frames if "progress" in data]
    assert progress == sorted(progress)


def test_query_stream_without_database(missing_client):
    response = missing_client.post("/api/query-stream", json={"query": THAI_GOLD_QUESTION})
    frames = parse_sse(response.text)
    assert [name for name, _ in frames][-2:] == ["complete", "done"]
    result = frames[-2][1]["result"]
    assert result["metadata"]["is_fallback_data"] is True
    assert result["data"][0]["label"] == "Sample data 1"
