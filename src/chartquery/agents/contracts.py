"""Pydantic contracts for the chart query pipeline.

Every stage of the pipeline exchanges one of these records:

- TableDescriptor / ColumnDescriptor / SampleDataset: store context
- PromptRefinement: clarified question from the prompt refiner
- ColumnAnalysis: chart type and columns from the chart analyzer
- SqlSynthesisResult: SQL plus rationale from the synthesizer
- VerificationResult: AI judgement of executed results
- RetryOutcome: terminal artifact of the retry controller
- ProgressEvent: one notification on the progress stream

Records built from LLM output are validated here, at the parse boundary,
so later stages can trust their shape.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================

class ChartType(str, Enum):
    """Renderable chart shapes."""

    BAR = "bar"
    COLUMN = "column"
    LINE = "line"
    PIE = "pie"
    DONUT = "donut"
    AREA = "area"
    SCATTER = "scatter"
    HISTOGRAM = "histogram"


class DataAggregation(str, Enum):
    """How rows are rolled up before charting."""

    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"
    NONE = "none"


class DetectionMethod(str, Enum):
    """Which analyzer branch produced a ColumnAnalysis."""

    KEYWORD = "keyword"
    LLM = "llm"
    FALLBACK = "fallback"


class EventType(str, Enum):
    """Progress stream event kinds."""

    STATUS = "status"
    RESULT = "result"
    ERROR = "error"
    DONE = "done"


_CHART_SYNONYMS = {
    "doughnut": ChartType.DONUT,
    "bar_chart": ChartType.BAR,
    "column_chart": ChartType.COLUMN,
    "line_chart": ChartType.LINE,
    "pie_chart": ChartType.PIE,
    "area_chart": ChartType.AREA,
    "scatter_plot": ChartType.SCATTER,
    "hist": ChartType.HISTOGRAM,
}

_AGGREGATION_SYNONYMS = (
    ("count", DataAggregation.COUNT),
    ("avg", DataAggregation.AVERAGE),
    ("mean", DataAggregation.AVERAGE),
    ("average", DataAggregation.AVERAGE),
    ("sum", DataAggregation.SUM),
    ("total", DataAggregation.SUM),
    ("min", DataAggregation.MIN),
    ("max", DataAggregation.MAX),
)


def coerce_chart_type(value: Any) -> ChartType:
    """Normalize free-form chart names ("Pie Chart", "doughnut") to ChartType.

    Raises:
        ValueError: If the name matches no known chart type
    """
    if isinstance(value, ChartType):
        return value
    key = str(value or "").strip().lower().replace(" ", "_").replace("-", "_")
    if key in _CHART_SYNONYMS:
        return _CHART_SYNONYMS[key]
    key = key.removesuffix("_chart").removesuffix("_graph")
    return ChartType(key)


def coerce_aggregation(value: Any) -> DataAggregation:
    """Map LLM aggregation text ("count, group by", "AVG") to DataAggregation."""
    if isinstance(value, DataAggregation):
        return value
    text = str(value or "").strip().lower()
    for needle, aggregation in _AGGREGATION_SYNONYMS:
        if needle in text:
            return aggregation
    if text in ("none", "raw", ""):
        return DataAggregation.NONE if text else DataAggregation.COUNT
    return DataAggregation.COUNT


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    text = str(value).strip()
    return [text] if text else []


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(str(v) for v in value)
    return str(value)


# =============================================================================
# Store context
# =============================================================================

class TableDescriptor(BaseModel):
    """A candidate table."""

    name: str = Field(..., description="Table name")
    comment: str = Field("", description="Table comment from store metadata")


class ColumnDescriptor(BaseModel):
    """Derived metadata about one table column."""

    model_config = ConfigDict(frozen=True)

    name: str
    sql_type: str
    comment: str = ""
    nullable: bool = True
    is_numeric: bool = False
    is_date: bool = False
    is_text: bool = False
    can_be_grouped: bool = False
    can_be_aggregated: bool = False
    suitable_for_filter: bool = False
    suggested_chart_types: tuple[ChartType, ...] = ()


class SampleDataset(BaseModel):
    """Sample rows and distinct values used only as LLM context."""

    sample_records: list[dict[str, Any]] = Field(default_factory=list)
    distinct_values: dict[str, list[Any]] = Field(default_factory=dict)
    categorical_columns: list[str] = Field(default_factory=list)
    total_sample_count: int = 0


# =============================================================================
# Prompt refiner contract
# =============================================================================

class PromptRefinement(BaseModel):
    """Clarified version of the user's question."""

    original_prompt: str
    improved_prompt: str
    was_improved: bool = False
    improvements_made: list[str] = Field(default_factory=list)
    suggested_chart_type: ChartType | None = None
    key_insights: list[str] = Field(default_factory=list)
    data_focus: str = ""
    filter_suggestions: list[str] = Field(default_factory=list)
    reasoning: str = ""

    @field_validator("improvements_made", "key_insights", "filter_suggestions", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _as_str_list(v)

    @field_validator("data_focus", "reasoning", mode="before")
    @classmethod
    def _texts(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("suggested_chart_type", mode="before")
    @classmethod
    def _chart(cls, v: Any) -> ChartType | None:
        if v in (None, ""):
            return None
        try:
            return coerce_chart_type(v)
        except ValueError:
            return None


# =============================================================================
# Chart analyzer contract
# =============================================================================

class ColumnAnalysis(BaseModel):
    """Chart shape decision for one request."""

    required_columns: list[str] = Field(default_factory=list)
    chart_type: ChartType = ChartType.BAR
    alternative_charts: list[ChartType] = Field(default_factory=list)
    analysis: str = ""
    chart_reasoning: str = ""
    data_aggregation: DataAggregation = DataAggregation.COUNT
    x_axis: str = ""
    y_axis: str = ""
    suggested_filters: list[str] = Field(default_factory=list)
    column_reasoning: str = ""
    detection_method: DetectionMethod = DetectionMethod.LLM

    @field_validator("required_columns", "suggested_filters", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _as_str_list(v)

    @field_validator("analysis", "chart_reasoning", "x_axis", "y_axis", "column_reasoning", mode="before")
    @classmethod
    def _texts(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("chart_type", mode="before")
    @classmethod
    def _chart(cls, v: Any) -> ChartType:
        return coerce_chart_type(v)

    @field_validator("alternative_charts", mode="before")
    @classmethod
    def _alternatives(cls, v: Any) -> list[ChartType]:
        charts = []
        for item in _as_str_list(v):
            try:
                chart = coerce_chart_type(item)
            except ValueError:
                continue
            if chart not in charts:
                charts.append(chart)
        return charts

    @field_validator("data_aggregation", mode="before")
    @classmethod
    def _aggregation(cls, v: Any) -> DataAggregation:
        return coerce_aggregation(v)


# =============================================================================
# SQL synthesizer contract
# =============================================================================

class SqlSynthesisResult(BaseModel):
    """One synthesis attempt."""

    sql_query: str = Field(..., min_length=1)
    explanation: str = ""
    query_reasoning: str = ""
    columns_used: list[str] = Field(default_factory=list)
    filters_applied: list[str] = Field(default_factory=list)
    chart_suitability: str = ""
    sample_data_insights: str = ""
    attempt: int = 1
    is_fallback: bool = False

    @field_validator("sql_query", mode="before")
    @classmethod
    def _sql(cls, v: Any) -> str:
        text = _as_text(v).strip()
        if text.startswith("```"):
            lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
            text = "\n".join(lines).strip()
        return text.rstrip(";").strip()

    @field_validator("columns_used", "filters_applied", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _as_str_list(v)

    @field_validator("explanation", "query_reasoning", "chart_suitability", "sample_data_insights", mode="before")
    @classmethod
    def _texts(cls, v: Any) -> str:
        return _as_text(v)


class RetryFeedback(BaseModel):
    """Context carried from a rejected attempt into the next synthesis prompt."""

    attempt: int
    previous_sql: str = ""
    issues_found: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    improved_sql: str | None = None
    error: str | None = None


# =============================================================================
# Result verifier contract
# =============================================================================

class VerificationResult(BaseModel):
    """Judgement of whether executed results answer the question."""

    is_valid: bool = False
    confidence_score: int = Field(0, ge=0, le=100)
    issues_found: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    should_retry: bool = False
    improved_sql: str | None = None
    reasoning: str = ""
    data_quality: str = ""
    is_fallback: bool = False

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> int:
        try:
            score = float(v)
        except (TypeError, ValueError):
            raise ValueError(f"confidence_score must be numeric, got {v!r}") from None
        return int(round(min(100.0, max(0.0, score))))

    @field_validator("issues_found", "suggestions", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _as_str_list(v)

    @field_validator("reasoning", "data_quality", mode="before")
    @classmethod
    def _texts(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("improved_sql", mode="before")
    @classmethod
    def _improved(cls, v: Any) -> str | None:
        text = _as_text(v).strip()
        if not text or text.lower() in ("null", "none"):
            return None
        return text


# =============================================================================
# Retry controller contract
# =============================================================================

class RetryOutcome(BaseModel):
    """Terminal artifact of the retry controller."""

    success: bool
    query_results: list[dict[str, Any]] = Field(default_factory=list)
    sql_data: SqlSynthesisResult
    verification: VerificationResult
    attempt: int
    max_retries: int
    error: str | None = None


# =============================================================================
# Progress stream / API
# =============================================================================

class ProgressEvent(BaseModel):
    """One notification emitted to the progress sink."""

    type: EventType
    message: str
    progress: int | None = Field(None, ge=0, le=100)
    stage: str | None = None
    attempt: int | None = None
    result: dict[str, Any] | None = None
    column_analysis: dict[str, Any] | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ChartQueryRequest(BaseModel):
    """Request body for the query endpoints."""

    query: str = Field(..., min_length=1, description="Natural language question")


class ChartResponse(BaseModel):
    """Chart-ready payload returned to the caller."""

    chart_type: ChartType
    component: str
    title: str
    data: list[dict[str, Any]]
    chart_data: list[dict[str, Any]] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)
    chart_config: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
