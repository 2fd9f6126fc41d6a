"""
Command line interface.

Commands:
    run       Service loop until shutdown or the failure ceiling
    once      Single sync cycle with a table of applied changes
    resync    Upsert every extracted record without diffing
    rows      Rows currently held by the remote store
    validate  Configuration check
    health    Resource health checks
    sheets    Worksheet names of every workbook
"""

from __future__ import annotations

import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from vacancysync import __version__
from vacancysync.application.container import Container
from vacancysync.application.orchestrator import EXIT_CONFIG_ERROR
from vacancysync.domain.errors import ConfigurationError, RemoteStoreError, RetryExhaustedError
from vacancysync.infrastructure.config_loader import ConfigLoader
from vacancysync.infrastructure.logging_config import setup_logging
from vacancysync.interface.cli.formatters import (
    changes_table,
    health_table,
    stored_rows_table,
    worksheets_table,
)

logger = logging.getLogger(__name__)

console = Console()

app = typer.Typer(
    name="vacancysync",
    help="📅 Reservation workbook to remote store synchronization",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Path = typer.Option(
        Path("config"),
        "--config",
        "-c",
        help="Directory containing appsettings.json.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG on the console."),
):
    """
    📅 vacancysync - keeps the remote reservation table in step with facility workbooks.
    """
    ctx.obj = {"config": config, "verbose": verbose}


def _container(ctx: typer.Context, validate: bool = False) -> Container:
    """Load settings, configure logging and build the container."""
    options = ctx.obj or {}
    try:
        settings = ConfigLoader(options.get("config", Path("config"))).load(validate=validate)
    except ConfigurationError as e:
        console.print(f"[red]❌ Configuration error:[/red] {e.message}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from e

    level = "DEBUG" if options.get("verbose") else settings.logging.level
    setup_logging(level, settings.logging.log_file)
    return Container(settings)


@app.command()
def run(ctx: typer.Context):
    """Run the service loop until interrupted."""
    container = _container(ctx)
    orchestrator = container.orchestrator

    def handle_signal(signum, _frame):
        orchestrator.request_shutdown(signal.Signals(signum).name)

    signal.signal(signal.SIGINT, handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, handle_signal)

    container.start_background_tasks()
    console.print(f"[cyan]vacancysync {__version__}[/cyan] watching [bold]{container.settings.workbook.base_path}[/bold]")
    raise typer.Exit(orchestrator.run())


@app.command()
def once(ctx: typer.Context):
    """Run a single sync cycle and print the applied changes."""
    container = _container(ctx)
    orchestrator = container.orchestrator
    try:
        orchestrator.start()
    except ConfigurationError as e:
        console.print(f"[red]❌ Configuration error:[/red] {e.message}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from e

    try:
        report = orchestrator.run_once()
    finally:
        orchestrator.stop(grace_period=0)

    if report is None:
        console.print("[red]❌ Cycle failed - see log for details[/red]")
        raise typer.Exit(1)

    console.print(f"Cycle status: [bold]{report.status.value}[/bold] ({len(report.changed_files)} changed file(s))")
    if report.sync_result is None or not report.sync_result.changes:
        return

    console.print(changes_table(report.sync_result))
    if report.proof_file is not None:
        console.print(f"📄 Proof list: {report.proof_file}")


@app.command()
def resync(ctx: typer.Context):
    """Extract every workbook and upsert all records, skipping the diff."""
    container = _container(ctx, validate=True)
    try:
        extraction = container.extractor.extract()
        written = container.sync_service.push_all(extraction.records)
    except (RemoteStoreError, RetryExhaustedError) as e:
        console.print(f"[red]❌ Resync failed:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        container.store.close()

    console.print(
        f"✅ Pushed [bold]{written}[/bold] record(s) from {extraction.succeeded} workbook(s)"
        f" ({extraction.skipped} skipped, {extraction.failed} failed)"
    )


@app.command()
def rows(
    ctx: typer.Context,
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Only rows of this year."),
):
    """List the rows currently held by the remote store."""
    container = _container(ctx, validate=True)
    try:
        stored = container.store.fetch_all(year)
    except RemoteStoreError as e:
        console.print(f"[red]❌ Remote store error:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        container.store.close()

    if not stored:
        console.print("[yellow]No rows stored[/yellow]")
        return
    console.print(stored_rows_table(stored))


@app.command()
def validate(ctx: typer.Context):
    """Validate the configuration file and required settings."""
    container = _container(ctx, validate=True)
    settings = container.settings
    console.print(
        Panel.fit(
            f"Workbooks: {settings.workbook.base_path} ({settings.workbook.file_pattern})\n"
            f"Facilities: {', '.join(f'{k}={v}' for k, v in settings.workbook.facility_map.items())}\n"
            f"Remote table: {settings.remote_store.url} / {settings.remote_store.table_name}\n"
            f"Polling: every {settings.service.polling_interval_minutes} min",
            title="✅ Configuration valid",
            border_style="green",
        )
    )


@app.command()
def health(ctx: typer.Context):
    """Run the health checks once."""
    container = _container(ctx)
    result = container.health_check.run()
    console.print(health_table(result))
    if not result.healthy:
        raise typer.Exit(1)


@app.command()
def sheets(ctx: typer.Context):
    """List worksheet names of every workbook under the base path."""
    container = _container(ctx)
    listing = container.extractor.list_worksheets()
    if not listing:
        console.print("[yellow]No workbooks found[/yellow]")
        return
    console.print(worksheets_table(listing, container.extractor.facility_id_for))


def main() -> int:
    """
    Main entry point for the vacancysync CLI.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    try:
        app()
        return 0
    except SystemExit as e:
        if e.code is None:
            return 0
        return e.code if isinstance(e.code, int) else 1
