"""FastAPI server for chart queries.

Endpoints:
- GET  /health           liveness and database file check
- GET  /api/test-db      store connectivity and non-secret config
- GET  /api/tables       tables available for auto-detection
- GET  /api/columns      column descriptors of the default table
- POST /api/query-stream Server-Sent Events: update* -> complete -> done
- POST /api/query        same pipeline, final chart JSON only
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from chartquery import __version__
from chartquery.agents.contracts import ChartQueryRequest, EventType, ProgressEvent
from chartquery.agents.schema_agent import SchemaIntrospector
from chartquery.config import PipelineConfig, StoreConfig
from chartquery.errors import StoreError
from chartquery.orchestrator.runtime import ChartPipeline, SinkClosed


logger = logging.getLogger(__name__)

SSE_EVENT_NAMES = {
    EventType.STATUS: "update",
    EventType.RESULT: "complete",
    EventType.ERROR: "error",
    EventType.DONE: "done",
}


def format_sse(event: ProgressEvent) -> str:
    """Serialize one progress event as an SSE frame."""
    data = json.dumps(event.to_payload(), ensure_ascii=False, default=str)
    return f"event: {SSE_EVENT_NAMES[event.type]}\ndata: {data}\n\n"


def _clean_query(body: ChartQueryRequest) -> str:
    query = body.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query cannot be empty")
    return query


def create_app(
    db_path: Path | str | None = None,
    *,
    store_config: StoreConfig | None = None,
    pipeline_config: PipelineConfig | None = None,
    llm=None,
) -> FastAPI:
    """Build the API application.

    Args:
        db_path: DuckDB file; overrides ``store_config.db_path``
        store_config: Store settings (default: from environment)
        pipeline_config: Pipeline policy (default: from environment)
        llm: Completion client override, used by tests
    """
    store_config = store_config or StoreConfig.from_env()
    if db_path is not None:
        store_config = StoreConfig(
            db_path=Path(db_path),
            read_only=store_config.read_only,
            default_table=store_config.default_table,
            excluded_columns=store_config.excluded_columns,
        )
    pipeline = ChartPipeline(store_config, pipeline_config or PipelineConfig.from_env(), llm=llm)
    introspector = SchemaIntrospector(pipeline.store, timeout=pipeline.config.store_timeout)

    app = FastAPI(title="ChartQuery API", version=__version__)
    app.state.pipeline = pipeline
    app.state.background_runs = set()

    # CORS for browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "version": __version__, "db_exists": store_config.db_path.exists()}

    @app.get("/api/test-db")
    async def test_db():
        config = {
            "db_path": str(store_config.db_path),
            "read_only": store_config.read_only,
            "default_table": store_config.default_table,
        }
        try:
            await asyncio.to_thread(pipeline.store.ping)
        except StoreError as e:
            return JSONResponse(
                status_code=500,
                content={"success": False, "message": "Database connection failed", "error": str(e)},
            )
        return {"success": True, "message": "Database connection OK", "config": config}

    @app.get("/api/tables")
    async def list_tables():
        try:
            tables = await asyncio.to_thread(pipeline.store.list_tables)
        except StoreError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return {"success": True, "tables": tables, "total": len(tables)}

    @app.get("/api/columns")
    async def list_columns(table: str | None = None):
        columns = await introspector.describe_columns(table or store_config.default_table)
        return {
            "success": True,
            "table": table or store_config.default_table,
            "columns": [
                {
                    "name": c.name,
                    "type": c.sql_type,
                    "comment": c.comment,
                    "can_be_grouped": c.can_be_grouped,
                    "can_be_aggregated": c.can_be_aggregated,
                    "suggested_chart_types": [t.value for t in c.suggested_chart_types],
                }
                for c in columns
            ],
            "total": len(columns),
        }

    @app.post("/api/query")
    async def query(body: ChartQueryRequest):
        response = await pipeline.run(_clean_query(body))
        return response.model_dump(mode="json")

    @app.post("/api/query-stream")
    async def query_stream(body: ChartQueryRequest, request: Request):
        question = _clean_query(body)
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        closed = asyncio.Event()

        async def sink(event: ProgressEvent) -> None:
            if closed.is_set():
                raise SinkClosed("client disconnected")
            await queue.put(event)

        async def run() -> None:
            try:
                await pipeline.run(question, sink)
            except Exception as e:
                logger.exception("Streaming pipeline crashed")
                await queue.put(ProgressEvent(type=EventType.ERROR, message="Processing failed", error=str(e)))
                await queue.put(ProgressEvent(type=EventType.DONE, message="Done"))

        task = asyncio.create_task(run())
        # Runs to completion even if the client leaves
        app.state.background_runs.add(task)
        task.add_done_callback(app.state.background_runs.discard)

        async def events() -> AsyncIterator[str]:
            try:
                while True:
                    event = await queue.get()
                    if await request.is_disconnected():
                        logger.info("Client disconnected, stopping event stream")
                        break
                    yield format_sse(event)
                    if event.type == EventType.DONE:
                        break
            finally:
                closed.set()

        return StreamingResponse(
            events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
