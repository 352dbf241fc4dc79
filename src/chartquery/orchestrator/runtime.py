"""Chart pipeline runtime.

Runs the stages of one request in order and reports progress to a sink:

table selection -> schema -> prompt refinement -> chart analysis ->
sampling -> synthesize/execute/verify loop -> mapping -> result

The pipeline always produces a chart response. Stage failures degrade to
fallbacks; an unexpected error still yields an ``error`` event followed by
a placeholder ``result`` and ``done``.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from chartquery.agents.chart_analyzer import ChartAnalyzer
from chartquery.agents.contracts import (
    ChartResponse,
    ChartType,
    ColumnAnalysis,
    ColumnDescriptor,
    EventType,
    ProgressEvent,
    PromptRefinement,
    RetryOutcome,
    SampleDataset,
    TableDescriptor,
)
from chartquery.agents.prompt_refiner import PromptRefiner
from chartquery.agents.schema_agent import SchemaIntrospector
from chartquery.agents.sql_agent import SqlSynthesizer
from chartquery.agents.table_selector import TableSelector
from chartquery.agents.verifier_agent import ResultVerifier
from chartquery.charts.formatter import build_chart_response
from chartquery.charts.mapper import fallback_series, map_rows
from chartquery.config import PipelineConfig, StoreConfig
from chartquery.llm.client import LLMClient
from chartquery.orchestrator.retry import RetryController
from chartquery.sql.safe_executor import QueryExecutor
from chartquery.sql.store import DuckDBStore


logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], Awaitable[None]]


class SinkClosed(Exception):
    """Raised by a progress sink whose consumer has gone away."""


@dataclass
class PipelineState:
    """Request-scoped state; never shared between requests."""

    query: str
    trace_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    tables: list[TableDescriptor] = field(default_factory=list)
    table: TableDescriptor | None = None
    columns: list[ColumnDescriptor] = field(default_factory=list)
    refinement: PromptRefinement | None = None
    analysis: ColumnAnalysis | None = None
    sample: SampleDataset | None = None
    outcome: RetryOutcome | None = None

    current_step: str = "init"
    sink_open: bool = True
    events_emitted: int = 0
    error: str | None = None

    @property
    def effective_query(self) -> str:
        if self.refinement is not None and self.refinement.was_improved:
            return self.refinement.improved_prompt
        return self.query


class ChartPipeline:
    """Natural-language question -> chart response.

    Usage:
        pipeline = ChartPipeline(StoreConfig.from_env(), PipelineConfig.from_env())
        response = await pipeline.run("แสดงจำนวนเหรียญทองของประเทศไทย")
    """

    def __init__(
        self,
        store_config: StoreConfig,
        config: PipelineConfig | None = None,
        *,
        llm=None,
        store: DuckDBStore | None = None,
        executor: QueryExecutor | None = None,
    ):
        self.store_config = store_config
        self.config = config or PipelineConfig()
        self.llm = llm or LLMClient(
            provider=self.config.llm_provider,
            model_overrides=self.config.llm_model_overrides,
            timeout=self.config.llm_timeout,
        )
        self.store = store or DuckDBStore(store_config)
        self.executor = executor or QueryExecutor(store_config, timeout=self.config.store_timeout)

        timeout = self.config.store_timeout
        self.table_selector = TableSelector(self.store, default_table=store_config.default_table, timeout=timeout)
        self.introspector = SchemaIntrospector(self.store, timeout=timeout)
        self.refiner = PromptRefiner(self.llm)
        self.analyzer = ChartAnalyzer(self.llm)
        self.synthesizer = SqlSynthesizer(self.llm)
        self.verifier = ResultVerifier(self.llm, preview_rows=self.config.preview_rows)
        self.retry = RetryController(
            self.synthesizer,
            self.executor,
            self.verifier,
            max_retries=self.config.max_retries,
            acceptance_threshold=self.config.acceptance_threshold,
        )

    async def _emit(self, state: PipelineState, sink: ProgressSink | None, event: ProgressEvent) -> None:
        if sink is None or not state.sink_open:
            return
        try:
            await sink(event)
            state.events_emitted += 1
        except Exception as e:
            # Consumer is gone; keep running but stop notifying
            logger.info("Progress sink closed (%s), continuing without updates", e.__class__.__name__)
            state.sink_open = False

    async def _status(
        self,
        state: PipelineState,
        sink: ProgressSink | None,
        message: str,
        progress: int,
        *,
        stage: str,
        attempt: int | None = None,
        column_analysis: dict[str, Any] | None = None,
    ) -> None:
        state.current_step = stage
        await self._emit(
            state,
            sink,
            ProgressEvent(
                type=EventType.STATUS,
                message=message,
                progress=progress,
                stage=stage,
                attempt=attempt,
                column_analysis=column_analysis,
            ),
        )

    async def run(self, query: str, sink: ProgressSink | None = None) -> ChartResponse:
        """Run the pipeline for one question.

        Never raises for pipeline failures; the returned response carries
        the execution and verification signals in its metadata.
        """
        state = PipelineState(query=query)
        logger.info("[%s] Question: %s", state.trace_id, query)

        try:
            response = await self._run_stages(state, sink)
        except Exception as e:
            state.error = str(e) or e.__class__.__name__
            logger.exception("[%s] Pipeline failed at %s", state.trace_id, state.current_step)
            await self._emit(
                state,
                sink,
                ProgressEvent(
                    type=EventType.ERROR,
                    message="Processing failed, returning placeholder data",
                    stage=state.current_step,
                    error=state.error,
                ),
            )
            response = self.build_response(state, force_fallback=True)

        await self._emit(
            state,
            sink,
            ProgressEvent(
                type=EventType.RESULT,
                message="Processing complete",
                progress=100,
                stage="result",
                result=response.model_dump(mode="json"),
                column_analysis=state.analysis.model_dump(mode="json") if state.analysis else None,
            ),
        )
        await self._emit(state, sink, ProgressEvent(type=EventType.DONE, message="Done", stage="done"))
        return response

    async def _run_stages(self, state: PipelineState, sink: ProgressSink | None) -> ChartResponse:
        await self._status(state, sink, f"Received question: {state.query}", 5, stage="received")

        await self._status(state, sink, "Selecting table", 10, stage="table_selection")
        state.tables = await self.table_selector.list_tables()
        state.table = await self.table_selector.select(state.query, state.tables)
        await self._status(state, sink, f"Using table {state.table.name}", 15, stage="table_selection")

        await self._status(state, sink, "Loading column metadata", 20, stage="schema")
        state.columns = await self.introspector.describe_columns(state.table.name)
        await self._status(state, sink, f"Found {len(state.columns)} columns", 25, stage="schema")

        if self.config.enable_prompt_refinement:
            await self._status(state, sink, "Refining the question", 30, stage="refinement")
            state.refinement = await self.refiner.refine(state.query, state.columns, state.tables, state.table.name)
            message = (
                f"Refined question: {state.refinement.improved_prompt}"
                if state.refinement.was_improved
                else "Using the original question"
            )
            await self._status(state, sink, message, 35, stage="refinement")

        await self._status(state, sink, "Analyzing chart type and columns", 40, stage="analysis")
        state.analysis = await self.analyzer.analyze(state.effective_query, state.table.name, state.columns)
        await self._status(
            state,
            sink,
            f"Chart {state.analysis.chart_type.value} with columns {', '.join(state.analysis.required_columns)}",
            50,
            stage="analysis",
            column_analysis=state.analysis.model_dump(mode="json"),
        )

        await self._status(state, sink, "Sampling data", 55, stage="sampling")
        state.sample = await self.introspector.sample_data(state.table.name, state.columns, self.config.sample_limit)

        async def notify(message: str, *, progress: int, stage: str, attempt: int | None = None) -> None:
            await self._status(state, sink, message, progress, stage=stage, attempt=attempt)

        state.outcome = await self.retry.run(
            state.effective_query,
            state.table.name,
            state.analysis,
            state.columns,
            state.sample,
            notify=notify,
            original_query=state.query,
        )

        await self._status(state, sink, "Formatting chart data", 95, stage="mapping")
        return self.build_response(state)

    def build_response(self, state: PipelineState, *, force_fallback: bool = False) -> ChartResponse:
        """Map and format the outcome, or placeholder data when there is none."""
        analysis = state.analysis
        outcome = state.outcome
        chart_type = analysis.chart_type if analysis else ChartType.BAR

        rows = outcome.query_results if outcome is not None and outcome.success and not force_fallback else []
        use_fallback = not rows
        series = fallback_series() if use_fallback else map_rows(chart_type, rows)
        if use_fallback and chart_type == ChartType.SCATTER:
            chart_type = ChartType.BAR

        payload = build_chart_response(
            chart_type,
            series,
            title=f"Results for: {state.query}",
            metadata=self.build_metadata(state, use_fallback),
        )
        return ChartResponse(**payload)

    def build_metadata(self, state: PipelineState, is_fallback_data: bool) -> dict[str, Any]:
        analysis = state.analysis
        outcome = state.outcome
        sql_data = outcome.sql_data if outcome else None
        verification = outcome.verification if outcome else None

        return {
            "columns_used": (sql_data.columns_used if sql_data else []) or (analysis.required_columns if analysis else []),
            "aggregation_method": analysis.data_aggregation.value if analysis else "count",
            "filters_applied": sql_data.filters_applied if sql_data else [],
            "total_records": len(outcome.query_results) if outcome else 0,
            "sql_query": sql_data.sql_query if sql_data else None,
            "explanation": sql_data.explanation if sql_data else "",
            "analysis": analysis.analysis if analysis else "",
            "chart_reasoning": analysis.chart_reasoning if analysis else "",
            "alternative_charts": [c.value for c in analysis.alternative_charts] if analysis else [],
            "axis_info": {
                "x_axis": analysis.x_axis if analysis else "",
                "y_axis": analysis.y_axis if analysis else "",
            },
            "table": state.table.name if state.table else None,
            "prompt_refinement": state.refinement.model_dump(mode="json") if state.refinement else None,
            "verification": {
                "confidence_score": verification.confidence_score if verification else 0,
                "issues_found": verification.issues_found if verification else [],
                "suggestions": verification.suggestions if verification else [],
                "data_quality": verification.data_quality if verification else "none",
            },
            "execution": {
                "success": outcome.success if outcome else False,
                "attempt": outcome.attempt if outcome else 0,
                "max_retries": self.config.max_retries,
                "error": (outcome.error if outcome else None) or state.error,
            },
            "available_columns": [
                {"name": c.name, "type": c.sql_type, "comment": c.comment} for c in state.columns
            ],
            "detection_method": analysis.detection_method.value if analysis else "fallback",
            "is_fallback_data": is_fallback_data,
            "trace_id": state.trace_id,
        }
