"""CLI entry point for aichat-sync."""

import json
import logging
import sys

import click
import uvicorn

from .config import SyncConfig
from .export import project_to_record, session_to_record
from .pipeline import run_extraction
from .sink import HttpUpsertSink, JsonlUpsertSink, sync_report


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """Extract AI coding chat history from Claude Code and Cursor and sync it."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@main.command()
@click.option("--lookback-days", type=int, default=None, help="Only read files modified in the last N days.")
@click.option("--json", "as_json", is_flag=True, help="Dump extracted sessions as JSON.")
def extract(lookback_days: int | None, as_json: bool):
    """Run one extraction pass and report what was found."""
    report = run_extraction(SyncConfig.from_env(lookback_days=lookback_days))

    if as_json:
        click.echo(json.dumps([session_to_record(s) for s in report.sessions], indent=2, ensure_ascii=False))
        return

    click.echo(f"Sessions: {len(report.sessions)}")
    for name, stats in report.per_provider.items():
        click.echo(f"  {name}: " + ", ".join(f"{k}={v}" for k, v in stats.as_dict().items()))


@main.command()
@click.option("--lookback-days", type=int, default=None, help="Only read files modified in the last N days.")
def projects(lookback_days: int | None):
    """List projects aggregated across all sources."""
    report = run_extraction(SyncConfig.from_env(lookback_days=lookback_days))
    for project in report.projects:
        record = project_to_record(project)
        counts = ", ".join(f"{k}={v}" for k, v in sorted(project.session_counts.items()))
        click.echo(f"{record['name']}\t{record['project_path']}\t{counts}\t{record['last_activity']}")


@main.command()
@click.option("--out", type=click.Path(file_okay=False), default=None, help="Write to a local JSONL store.")
@click.option("--url", default=None, help="Remote store base URL (overrides AICHAT_SINK_URL).")
@click.option("--key", default=None, help="Remote store API key (overrides AICHAT_SINK_KEY).")
@click.option("--account", default=None, help="Account id attached to every row.")
@click.option("--lookback-days", type=int, default=None, help="Only read files modified in the last N days.")
def sync(out: str | None, url: str | None, key: str | None, account: str | None, lookback_days: int | None):
    """Extract and upsert sessions and projects."""
    config = SyncConfig.from_env(
        sink_url=url, sink_key=key, account_id=account, lookback_days=lookback_days,
    )

    if out:
        sink = JsonlUpsertSink(out)
    elif config.sink_url and config.sink_key:
        sink = HttpUpsertSink(config.sink_url, config.sink_key)
    else:
        raise click.UsageError("Pass --out DIR or --url/--key (or set AICHAT_SINK_URL/AICHAT_SINK_KEY).")

    report = run_extraction(config)
    try:
        outcomes = sync_report(report, sink, config.account_id)
    finally:
        sink.close()

    for table, outcome in outcomes.items():
        click.echo(f"{table}: {outcome.succeeded} upserted, {outcome.failed} failed")
    if any(o.failed for o in outcomes.values()):
        sys.exit(1)


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the JSON API."""
    click.echo(f"Starting aichat-sync on http://{host}:{port}")
    uvicorn.run("aichat_sync.server:app", host=host, port=port, reload=False)
