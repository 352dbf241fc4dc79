"""Pipeline orchestration: the retry loop and the request runtime."""

from chartquery.orchestrator.retry import RetryController
from chartquery.orchestrator.runtime import ChartPipeline, PipelineState, ProgressSink, SinkClosed

__all__ = ["ChartPipeline", "PipelineState", "ProgressSink", "RetryController", "SinkClosed"]
