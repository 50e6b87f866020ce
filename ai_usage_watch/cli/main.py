"""
CLI interface for AI Usage Watch.

Provides live monitoring and one-shot summaries of usage logs.
"""

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.table import Table

from ai_usage_watch.cli.render import (
    format_currency,
    render_daily_table,
    render_placeholder,
    render_snapshot,
)
from ai_usage_watch.config.loader import WatchConfig, resolve_watch_config
from ai_usage_watch.core.monitor import UsageMonitor

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to a YAML configuration file")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
DAYS_OPTION = typer.Option(7, "--days", "-d", min=1, help="Number of days to show")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


def _load_config(path: Optional[str]) -> WatchConfig:
    try:
        return resolve_watch_config(path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """AI Usage Watch CLI."""
    if ctx.invoked_subcommand is None:
        console.print("AI Usage Watch - Use --help to see available commands")


@app.command()
def watch(
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Live monitoring of usage logs with real-time cost tracking."""
    _configure_logging(verbose)
    watch_config = _load_config(config)

    console.print("[dim]Starting live usage monitoring...[/]")
    for path in watch_config.data_paths:
        console.print(f"[dim]  {path}[/]")

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run_watch(watch_config))
    console.print("[yellow]Monitoring stopped. Goodbye![/]")


async def _run_watch(config: WatchConfig) -> None:
    monitor = UsageMonitor(config)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGTERM, stop.set)

    tz = config.get_tz()

    with Live(render_placeholder(tz), console=console, refresh_per_second=4) as live:
        await monitor.start(lambda snapshot, recent: live.update(render_snapshot(snapshot, recent, tz=tz)))
        try:
            await stop.wait()
        finally:
            await monitor.stop()


@app.command()
def summary(
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Ingest all usage logs once and print a snapshot."""
    _configure_logging(verbose)
    watch_config = _load_config(config)

    monitor = UsageMonitor(watch_config, watch=False)
    report = asyncio.run(monitor.refresh())

    if not len(monitor.aggregator.repository):
        console.print("\n[bold yellow]No usage data found[/]")
        console.print("Searched directories:")
        for path in watch_config.data_paths:
            console.print(f"  {path}")
        sys.exit(EXIT_CODE_PASS)

    console.print(render_snapshot(
        monitor.snapshot(), monitor.builder.recent_events, live=False, tz=watch_config.get_tz()
    ))

    usage = monitor.aggregator.repository.get_usage_stats(days=watch_config.retention_days)
    console.print(
        f"Last {watch_config.retention_days} days: {usage['total_requests']} requests, "
        f"{format_currency(usage['total_cost'])} total, "
        f"{format_currency(usage['avg_cost'], 4)} per request"
    )

    stats = monitor.tailer.stats
    table = Table(title="Ingestion", show_header=False, box=None)
    table.add_row("Files scanned", str(report.files_scanned))
    table.add_row("Records admitted", str(report.records_admitted))
    table.add_row("Duplicates skipped", str(report.duplicates))
    table.add_row("Malformed lines", str(stats.malformed_lines))
    table.add_row("Invalid records", str(stats.invalid_records))
    table.add_row("Unreadable files", str(report.files_failed))
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def daily(
    days: int = DAYS_OPTION,
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Show a daily breakdown of tokens and cost by model."""
    _configure_logging(verbose)
    watch_config = _load_config(config)

    monitor = UsageMonitor(watch_config, watch=False)
    asyncio.run(monitor.refresh())
    if days > watch_config.retention_days:
        console.print(f"[dim]Only the last {watch_config.retention_days} days are retained[/]")

    usage = monitor.aggregator.repository.get_daily_usage(days, tz=watch_config.get_tz())
    if not usage:
        console.print("\n[bold yellow]No usage data found[/]")
        sys.exit(EXIT_CODE_PASS)

    console.print(render_daily_table(usage, days))
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
