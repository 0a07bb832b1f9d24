"""Click-based CLI for edgar13f.

Thin wrapper around library modules. Every operation delegates to the
ingestion orchestrator or the store.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _run_with_store(coro):
    """Like _run_async, but a StorageError ends the command with exit code 1."""
    from edgar13f.core import StorageError

    try:
        return _run_async(coro)
    except StorageError as exc:
        console.print(f"[red]Storage error: {exc}[/red]")
        raise SystemExit(1) from exc


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call, and set up logging."""
    if "config" not in ctx.obj:
        from edgar13f.core import ConfigError, load_config

        try:
            config = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as exc:
            console.print(f"[red]Configuration error: {exc}[/red]")
            raise SystemExit(1) from exc
        _configure_logging("DEBUG" if ctx.obj.get("verbose") else config.logging.level)
        ctx.obj["config"] = config
    return ctx.obj["config"]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from edgar13f.ingestion import create_store

    return await create_store(config.storage)


def _to_date(value: datetime | None):
    return value.date() if value is not None else None


async def _run_ingestion(config, **options):
    """Build the pipeline from config, run one ingestion, close resources."""
    from edgar13f.ingestion import EdgarClient, FilingParser, IngestionOrchestrator

    store = await _create_store_async(config)
    try:
        async with EdgarClient(config.edgar) as client:
            orchestrator = IngestionOrchestrator(
                client, FilingParser(), store, config.ingestion
            )
            return await orchestrator.ingest(**options)
    finally:
        await store.close()


def _report_summary(summary, output_format: str) -> None:
    """Render a run summary and exit non-zero when it carries errors."""
    if output_format == "json":
        click.echo(json.dumps(summary.model_dump(mode="json"), indent=2))
    else:
        table = Table(title="Ingestion Run")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")
        table.add_row("Processed filings", str(summary.processed_filings))
        table.add_row("Skipped filings", str(summary.skipped_filings))
        table.add_row("New holdings", str(summary.new_holdings))
        table.add_row("New securities", str(summary.updated_securities))
        table.add_row("New fund managers", str(summary.new_fund_managers))
        table.add_row("Position changes", str(summary.position_changes))
        table.add_row("Errors", str(len(summary.errors)))
        table.add_row("Duration", f"{summary.duration_ms / 1000:.1f}s")
        console.print(table)
        for error in summary.errors:
            console.print(f"[red]  {error}[/red]")

    if summary.errors:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="EDGAR13F_CONFIG",
    default=None,
    help="Path to edgar13f.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="edgar13f")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """edgar13f: 13F institutional holdings ingestion from SEC EDGAR."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--start",
    "-s",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="First filing date of the window (YYYY-MM-DD).",
)
@click.option(
    "--end",
    "-e",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Last filing date of the window (YYYY-MM-DD). Default: today.",
)
@click.option(
    "--filer",
    "-f",
    "filers",
    type=str,
    multiple=True,
    help="Restrict to a filer CIK. Can be repeated.",
)
@click.option(
    "--skip-existing/--no-skip-existing",
    default=None,
    help="Skip a filer's filing when one with the same filing date is stored.",
)
@click.option(
    "--max-concurrent",
    type=click.IntRange(min=1),
    default=None,
    help="Filings processed concurrently per batch.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def ingest(
    ctx: click.Context,
    start: datetime | None,
    end: datetime | None,
    filers: tuple[str, ...],
    skip_existing: bool | None,
    max_concurrent: int | None,
    output_format: str,
) -> None:
    """Ingest 13F filings for a date window and/or a set of filers."""
    config = _load_config(ctx)
    summary = _run_with_store(
        _run_ingestion(
            config,
            start=_to_date(start),
            end=_to_date(end),
            filer_ids=list(filers) or None,
            skip_existing=skip_existing,
            max_concurrent=max_concurrent,
        )
    )
    _report_summary(summary, output_format)


# ---------------------------------------------------------------------------
# ingest-filers
# ---------------------------------------------------------------------------


@cli.command("ingest-filers")
@click.argument("filer_ids", nargs=-1, required=True)
@click.option(
    "--skip-existing/--no-skip-existing",
    default=None,
    help="Skip a filer's filing when one with the same filing date is stored.",
)
@click.option(
    "--max-concurrent",
    type=click.IntRange(min=1),
    default=None,
    help="Filings processed concurrently per batch.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def ingest_filers(
    ctx: click.Context,
    filer_ids: tuple[str, ...],
    skip_existing: bool | None,
    max_concurrent: int | None,
    output_format: str,
) -> None:
    """Ingest the most recent 13F filings of the given filer CIKs."""
    config = _load_config(ctx)
    summary = _run_with_store(
        _run_ingestion(
            config,
            filer_ids=list(filer_ids),
            skip_existing=skip_existing,
            max_concurrent=max_concurrent,
        )
    )
    _report_summary(summary, output_format)


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def stats(ctx: click.Context, output_format: str) -> None:
    """Show aggregate counts of the holdings dataset."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.get_stats()
        finally:
            await store.close()

    result = _run_with_store(_run())

    if output_format == "json":
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    table = Table(title="edgar13f Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Database path", config.storage.sqlite_path)
    table.add_section()
    table.add_row("Fund managers", str(result.total_fund_managers))
    table.add_row("Securities", str(result.total_securities))
    table.add_row("Filings", str(result.total_filings))
    table.add_row("Holdings", str(result.total_holdings))
    table.add_row("Position changes", str(result.total_position_changes))
    table.add_row(
        "Last run",
        result.last_run_at.isoformat(timespec="seconds") if result.last_run_at else "N/A",
    )
    console.print(table)


# ---------------------------------------------------------------------------
# schedule
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--interval-minutes",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Minutes between scheduled runs. Default: schedule.interval_minutes.",
)
@click.option(
    "--max-runs",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many scheduled runs. Default: run until interrupted.",
)
@click.pass_context
def schedule(ctx: click.Context, interval_minutes: float | None, max_runs: int | None) -> None:
    """Ingest the default lookback window on a fixed interval."""
    from edgar13f.ingestion import IngestionScheduler

    config = _load_config(ctx)
    if interval_minutes is None:
        interval_minutes = config.schedule.interval_minutes

    scheduler = IngestionScheduler(lambda: _run_ingestion(config), interval_minutes * 60)
    console.print(
        f"Scheduling ingestion every {interval_minutes:g} minutes. Press Ctrl-C to stop."
    )
    try:
        _run_async(scheduler.run_forever(max_runs=max_runs))
    except KeyboardInterrupt:
        console.print("[yellow]Scheduler stopped[/yellow]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
