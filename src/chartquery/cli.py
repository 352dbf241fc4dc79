"""CLI entrypoint for chartquery."""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from chartquery.agents.contracts import EventType, ProgressEvent
from chartquery.agents.schema_agent import SchemaIntrospector
from chartquery.config import PipelineConfig, StoreConfig
from chartquery.errors import ChartQueryError
from chartquery.io.ingest import format_load_summary, load_olympic_csv
from chartquery.io.stats import backup_table, database_status, medal_counts, top_countries
from chartquery.orchestrator.runtime import ChartPipeline
from chartquery.sql.store import DuckDBStore


def _store_config(db_path: str | None) -> StoreConfig:
    config = StoreConfig.from_env()
    if db_path is None:
        return config
    return StoreConfig(
        db_path=Path(db_path),
        read_only=config.read_only,
        default_table=config.default_table,
        excluded_columns=config.excluded_columns,
    )


db_path_option = click.option(
    "--db-path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to DuckDB database file (default: $CQ_DB_PATH or ./data/olympics.duckdb)",
)


@click.group()
@click.version_option()
@click.option(
    "--log-level",
    default=lambda: os.environ.get("CQ_LOG_LEVEL", "WARNING"),
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (default: $CQ_LOG_LEVEL or WARNING)",
)
def main(log_level: str):
    """chartquery - ask questions about a table, get chart-ready data."""
    load_dotenv()
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@main.command()
@click.option("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
@click.option("--port", default=8000, type=int, help="Port (default: 8000)")
@db_path_option
def serve(host: str, port: int, db_path: str | None):
    """Run the HTTP API server."""
    import uvicorn

    from chartquery.api.server import create_app

    app = create_app(store_config=_store_config(db_path))
    uvicorn.run(app, host=host, port=port, log_level="info")


@main.command()
@click.argument("question")
@db_path_option
@click.option("--provider", default=None, help="LLM provider override (ollama, openai, anthropic)")
@click.option("--max-retries", default=None, type=click.IntRange(min=0), help="Extra synthesis attempts (default: 2)")
@click.option("--no-refine", is_flag=True, help="Skip the prompt refinement stage")
@click.option("--quiet", is_flag=True, help="Print only the final chart JSON")
def ask(
    question: str,
    db_path: str | None,
    provider: str | None,
    max_retries: int | None,
    no_refine: bool,
    quiet: bool,
):
    """Answer QUESTION with chart-ready data."""
    config = PipelineConfig.from_env()
    if provider:
        config.llm_provider = provider
    if max_retries is not None:
        config.max_retries = max_retries
    if no_refine:
        config.enable_prompt_refinement = False

    pipeline = ChartPipeline(_store_config(db_path), config)

    async def echo_event(event: ProgressEvent) -> None:
        if quiet or event.type == EventType.RESULT:
            return
        progress = f"[{event.progress:3d}%] " if event.progress is not None else ""
        line = f"{progress}{event.message}"
        if event.error:
            line += f" ({event.error})"
        click.echo(line, err=True)

    response = asyncio.run(pipeline.run(question, echo_event))
    click.echo(json.dumps(response.model_dump(mode="json"), indent=2, ensure_ascii=False))


@main.command("init-db")
@click.option(
    "--csv",
    "csv_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Olympic medalists CSV file",
)
@db_path_option
def init_db(csv_path: str, db_path: str | None):
    """Create the medalists table and load the CSV into it."""
    target = _store_config(db_path).db_path
    try:
        results = load_olympic_csv(target, csv_path)
    except (ValueError, OSError) as e:
        click.echo(f"❌ Load failed: {e}", err=True)
        sys.exit(1)
    click.echo(format_load_summary(results))


@main.group()
def stats():
    """Database statistics."""


@stats.command("status")
@db_path_option
def stats_status(db_path: str | None):
    """Total records, countries, sports and year range."""
    try:
        status = database_status(_store_config(db_path))
    except ChartQueryError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    click.echo(f"Total records:   {status['total_records']:,}")
    click.echo(f"Total countries: {status['total_countries']:,}")
    click.echo(f"Total sports:    {status['total_sports']:,}")
    click.echo(f"Year range:      {status['year_range']}")


@stats.command("medals")
@db_path_option
def stats_medals(db_path: str | None):
    """Medal distribution."""
    try:
        rows = medal_counts(_store_config(db_path))
    except ChartQueryError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    for row in rows:
        click.echo(f"{row['medal']:10s} {row['count']:>8,}")


@stats.command("top-countries")
@click.option("--limit", default=10, type=int, help="Number of countries (default: 10)")
@db_path_option
def stats_top_countries(limit: int, db_path: str | None):
    """Countries with the most medals."""
    try:
        rows = top_countries(_store_config(db_path), limit)
    except ChartQueryError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    for rank, row in enumerate(rows, 1):
        click.echo(f"{rank:2d}. {row['country']:30s} {row['total_medals']:>6,}")


@main.command()
@click.option(
    "--out",
    "out_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="CSV file to write (default: <table>_backup_<timestamp>.csv)",
)
@click.option("--table", default=None, help="Table to back up (default: $CQ_DEFAULT_TABLE)")
@db_path_option
def backup(out_path: str | None, table: str | None, db_path: str | None):
    """Save a table to a timestamped CSV file."""
    config = _store_config(db_path)
    try:
        target, count = backup_table(config, out_path, table or config.default_table)
    except (ChartQueryError, OSError) as e:
        click.echo(f"❌ Backup failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✅ Backed up {count:,} rows to {target}")


@main.command()
@click.option("--table", default=None, help="Table to describe (default: $CQ_DEFAULT_TABLE)")
@db_path_option
def columns(table: str | None, db_path: str | None):
    """Show column descriptors used for analysis."""
    config = _store_config(db_path)
    introspector = SchemaIntrospector(DuckDBStore(config))
    descriptors = asyncio.run(introspector.describe_columns(table or config.default_table))
    for i, col in enumerate(descriptors, 1):
        charts = ", ".join(c.value for c in col.suggested_chart_types)
        click.echo(f"{i:2d}. {col.name} ({col.sql_type}): {col.comment or 'no description'}")
        click.echo(f"    grouped={col.can_be_grouped} aggregated={col.can_be_aggregated} charts={charts}")


if __name__ == "__main__":
    main()
