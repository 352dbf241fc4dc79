"""End-to-end tests for the chart pipeline over a seeded DuckDB file."""

import asyncio

import duckdb

from chartquery.agents.contracts import ChartType, EventType
from chartquery.config import PipelineConfig, StoreConfig
from chartquery.orchestrator.runtime import ChartPipeline, SinkClosed

from tests.support.fake_llm import THAI_GOLD_SQL, FakeLLM, as_json, happy_path_responses


THAI_GOLD_QUESTION = "แสดงจำนวนเหรียญทองของประเทศไทย"


def collect(pipeline, query=THAI_GOLD_QUESTION):
    events = []

    async def sink(event):
        events.append(event)

    response = asyncio.run(pipeline.run(query, sink))
    return response, events


def test_thai_gold_medals_end_to_end(store_config):
    llm = FakeLLM(happy_path_responses())
    response, events = collect(ChartPipeline(store_config, PipelineConfig(), llm=llm))

    assert response.chart_type in (ChartType.BAR, ChartType.COLUMN, ChartType.PIE)
    assert response.data == [{"label": "Thailand", "value": 3}]
    assert response.chart_data[0]["name"] == "Thailand"
    assert response.chart_data[0]["value"] == 3
    assert response.component == "BarChart"

    metadata = response.metadata
    assert "country = 'Thailand'" in metadata["sql_query"]
    assert metadata["table"] == "olympic_medalists"
    assert metadata["verification"]["confidence_score"] == 92
    assert metadata["execution"] == {"success": True, "attempt": 1, "max_retries": 2, "error": None}
    assert metadata["is_fallback_data"] is False
    assert metadata["detection_method"] == "llm"
    assert metadata["total_records"] == 1
    assert metadata["total_data_points"] == 1
    assert {c["name"] for c in metadata["available_columns"]} >= {"country", "medal", "year"}

    # one call per LLM stage
    assert [role for role, _ in llm.calls] == ["refiner", "analyzer", "synthesizer", "verifier"]


def test_event_stream_order(store_config):
    _, events = collect(ChartPipeline(store_config, PipelineConfig(), llm=FakeLLM(happy_path_responses())))

    types = [e.type for e in events]
    assert types[-2:] == [EventType.RESULT, EventType.DONE]
    assert set(types[:-2]) == {EventType.STATUS}

    progress = [e.progress for e in events if e.progress is not None]
    assert progress == sorted(progress)
    assert progress[0] == 5
    assert progress[-1] == 100

    result = events[-2]
    assert result.result["data"] == [{"label": "Thailand", "value": 3}]
    assert result.column_analysis["chart_type"] == "bar"

    stages = [e.stage for e in events]
    for stage in ("table_selection", "schema", "refinement", "analysis", "sampling", "synthesis", "verification", "mapping"):
        assert stage in stages


def test_refinement_disabled(store_config):
    llm = FakeLLM(happy_path_responses())
    config = PipelineConfig(enable_prompt_refinement=False)
    response, events = collect(ChartPipeline(store_config, config, llm=llm))
    assert llm.prompts("refiner") == []
    assert response.metadata["prompt_refinement"] is None
    assert "refinement" not in [e.stage for e in events]


def test_improved_prompt_drives_later_stages(store_config):
    responses = happy_path_responses()
    responses["refiner"] = as_json({"improved_prompt": "pie chart of medal types for Thailand", "was_improved": True})
    llm = FakeLLM(responses)
    response = asyncio.run(ChartPipeline(store_config, PipelineConfig(), llm=llm).run("ไทย"))

    # the refined question carries an explicit chart keyword
    assert response.chart_type == ChartType.PIE
    assert response.metadata["detection_method"] == "keyword"
    assert llm.prompts("analyzer") == []
    assert "pie chart of medal types for Thailand" in llm.prompts("synthesizer")[0]
    assert response.title == "Results for: ไทย"


def test_low_confidence_retries_with_feedback(store_config):
    responses = happy_path_responses()
    responses["verifier"] = [
        as_json({"is_valid": False, "confidence_score": 35, "should_retry": True, "issues_found": ["wrong medal"]}),
        as_json({"is_valid": True, "confidence_score": 88}),
    ]
    llm = FakeLLM(responses)
    response = asyncio.run(ChartPipeline(store_config, PipelineConfig(), llm=llm).run(THAI_GOLD_QUESTION))

    assert response.metadata["execution"]["attempt"] == 2
    assert response.metadata["verification"]["confidence_score"] == 88
    second_prompt = llm.prompts("synthesizer")[1]
    assert "wrong medal" in second_prompt


def test_closed_sink_stops_emission(store_config):
    emitted = []

    async def sink(event):
        if len(emitted) == 3:
            raise SinkClosed("gone")
        emitted.append(event)

    pipeline = ChartPipeline(store_config, PipelineConfig(), llm=FakeLLM(happy_path_responses()))
    response = asyncio.run(pipeline.run(THAI_GOLD_QUESTION, sink))

    assert len(emitted) == 3
    assert response.data == [{"label": "Thailand", "value": 3}]


def test_missing_database_returns_placeholder_chart(missing_store_config):
    pipeline = ChartPipeline(missing_store_config, PipelineConfig(max_retries=1), llm=FakeLLM())
    response, events = collect(pipeline)

    assert response.chart_type == ChartType.BAR
    assert [point["label"] for point in response.data] == ["Sample data 1", "Sample data 2", "Sample data 3"]
    assert response.metadata["is_fallback_data"] is True
    assert response.metadata["execution"]["success"] is False
    assert response.metadata["execution"]["attempt"] == 2
    assert response.metadata["execution"]["error"]
    assert response.metadata["detection_method"] == "fallback"
    assert events[-1].type == EventType.DONE


def test_unexpected_failure_emits_error_then_result(store_config):
    pipeline = ChartPipeline(store_config, PipelineConfig(), llm=FakeLLM(happy_path_responses()))

    async def broken(*args, **kwargs):
        raise RuntimeError("sampler exploded")

    pipeline.introspector.sample_data = broken
    response, events = collect(pipeline)

    types = [e.type for e in events]
    assert types[-3:] == [EventType.ERROR, EventType.RESULT, EventType.DONE]
    assert events[-3].error == "sampler exploded"
    assert events[-3].stage == "sampling"
    assert response.metadata["is_fallback_data"] is True
    assert response.metadata["execution"]["error"] == "sampler exploded"


def test_requests_do_not_share_state(store_config):
    pipeline = ChartPipeline(store_config, PipelineConfig(), llm=FakeLLM(happy_path_responses()))

    async def both():
        return await asyncio.gather(pipeline.run(THAI_GOLD_QUESTION), pipeline.run("เหรียญ"))

    first, second = asyncio.run(both())
    assert first.metadata["trace_id"] != second.metadata["trace_id"]
    assert first.title != second.title
    assert first.metadata["sql_query"] == second.metadata["sql_query"] == THAI_GOLD_SQL


def test_verifier_judges_the_original_question(store_config):
    responses = happy_path_responses()
    responses["refiner"] = as_json(
        {"improved_prompt": "Count Gold medals for country Thailand", "was_improved": True}
    )
    llm = FakeLLM(responses)
    asyncio.run(ChartPipeline(store_config, PipelineConfig(), llm=llm).run(THAI_GOLD_QUESTION))

    assert "Count Gold medals for country Thailand" in llm.prompts("synthesizer")[0]
    verifier_prompt = llm.prompts("verifier")[0]
    assert f'Question: "{THAI_GOLD_QUESTION}"' in verifier_prompt
    assert "Count Gold medals for country Thailand" not in verifier_prompt


def test_hyphenated_table_with_unparsable_llm_output(tmp_path):
    db_path = tmp_path / "odd.duckdb"
    conn = duckdb.connect(str(db_path))
    conn.execute('CREATE TABLE "medal-data" (country VARCHAR, medal VARCHAR)')
    conn.execute("INSERT INTO \"medal-data\" VALUES ('Thailand', 'Gold'), ('Thailand', 'Silver'), ('Japan', 'Gold')")
    conn.close()

    pipeline = ChartPipeline(StoreConfig(db_path=db_path), PipelineConfig(), llm=FakeLLM())
    response, _ = collect(pipeline, "medals per country")

    metadata = response.metadata
    assert metadata["table"] == "medal-data"
    assert metadata["execution"]["success"] is True
    assert metadata["execution"]["attempt"] == 1
    assert '"medal-data"' in metadata["sql_query"]
    assert metadata["is_fallback_data"] is False
    assert sum(point["value"] for point in response.data) == 3
