"""Pipeline agents for chart queries.

This module provides one agent per pipeline stage:
- TableSelector: keyword scoring over the store's tables
- SchemaIntrospector: column descriptors and sample data
- PromptRefiner: clarified question (optional stage)
- ChartAnalyzer: chart type and required columns
- SqlSynthesizer: SQL for one attempt
- ResultVerifier: confidence judgement of executed rows
"""

from chartquery.agents.contracts import (
    # Enums
    ChartType,
    DataAggregation,
    DetectionMethod,
    EventType,
    # Store context
    ColumnDescriptor,
    SampleDataset,
    TableDescriptor,
    # Stage results
    ColumnAnalysis,
    PromptRefinement,
    RetryFeedback,
    RetryOutcome,
    SqlSynthesisResult,
    VerificationResult,
    # API
    ChartQueryRequest,
    ChartResponse,
    ProgressEvent,
)

__all__ = [
    # Enums
    "ChartType",
    "DataAggregation",
    "DetectionMethod",
    "EventType",
    # Store context
    "ColumnDescriptor",
    "SampleDataset",
    "TableDescriptor",
    # Stage results
    "ColumnAnalysis",
    "PromptRefinement",
    "RetryFeedback",
    "RetryOutcome",
    "SqlSynthesisResult",
    "VerificationResult",
    # API
    "ChartQueryRequest",
    "ChartResponse",
    "ProgressEvent",
]
