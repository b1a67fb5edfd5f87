"""Click CLI for gentrack: track remote generation jobs and process folders."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from gentrack.config.schema import Settings, load_settings
from gentrack.errors.exceptions import GenTrackError
from gentrack.pipeline.operations import FolderOperation
from gentrack.utils.formatting import format_duration

if TYPE_CHECKING:
    from gentrack.core import GenTrack
    from gentrack.types import BatchSummary, WatchEntry

T = TypeVar("T")

console = Console()
error_console = Console(stderr=True)

_OPERATIONS = [op.value for op in FolderOperation]


def _setup_logging(verbosity: int, default_level: str = "WARNING") -> None:
    """Configure logging from -v flags, falling back to the configured level."""
    level = getattr(logging, default_level, logging.WARNING)
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_time=False, show_path=False)],
    )


def _load(verbose: int, **overrides: Any) -> Settings:
    try:
        settings = load_settings(**overrides)
    except GenTrackError as e:
        error_console.print(f"[red]Error:[/red] {e.message}")
        sys.exit(1)
    _setup_logging(verbose, settings.log_level)
    return settings


def _run(settings: Settings, fn: Callable[[GenTrack], Awaitable[T]]) -> T:
    """Run ``fn`` against a GenTrack instance that is closed afterwards."""
    from gentrack.core import GenTrack

    async def runner() -> T:
        async with GenTrack(settings) as app:
            return await fn(app)

    try:
        return asyncio.run(runner())
    except GenTrackError as e:
        error_console.print(f"[red]Error:[/red] {e.message}")
        sys.exit(1)


def _parse_params(values: tuple[str, ...]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for item in values:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--param")
        params[key] = yaml.safe_load(raw) if raw else ""
    return params


@click.group()
@click.version_option(package_name="gentrack")
def cli() -> None:
    """gentrack: submit and track long-running generation jobs."""


@cli.command()
@click.option("--max-attempts", type=int, default=None, help="Poll attempts (default from config).")
@click.option("--initial-interval", type=int, default=None, help="First poll interval in ms.")
@click.option("--max-interval", type=int, default=None, help="Poll interval cap in ms.")
def estimate(max_attempts: int | None, initial_interval: int | None, max_interval: int | None) -> None:
    """Show the worst-case time spent polling one job."""
    from gentrack.remote.polling import estimate_max_poll_time

    settings = _load(
        0,
        poll_max_attempts=max_attempts,
        poll_initial_interval_ms=initial_interval,
        poll_max_interval_ms=max_interval,
    )
    total_ms = estimate_max_poll_time(
        settings.poll_max_attempts,
        settings.poll_initial_interval_ms,
        settings.poll_max_interval_ms,
    )
    console.print(
        f"Max poll time: [bold]{format_duration(total_ms)}[/bold] "
        f"({settings.poll_max_attempts} attempts, "
        f"{settings.poll_initial_interval_ms}ms -> {settings.poll_max_interval_ms}ms)"
    )


@cli.command()
@click.argument("handle")
@click.option("--max-attempts", type=int, default=None, help="Poll attempts (default from config).")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def poll(handle: str, max_attempts: int | None, verbose: int) -> None:
    """Poll a submitted job until it finishes and print its result."""
    from gentrack.progress import LoggingProgressReporter

    settings = _load(verbose, poll_max_attempts=max_attempts)

    async def run(app: GenTrack) -> Any:
        return await app.poll(handle, progress=LoggingProgressReporter())

    outcome = _run(settings, run)
    error_console.print(
        f"[green]Completed[/green] after {outcome.attempts} attempts "
        f"({format_duration(outcome.elapsed_ms)})"
    )
    console.print_json(json.dumps(outcome.payload))


@cli.command("process-folder")
@click.argument("folder", type=click.Path())
@click.option(
    "-O", "--operation", type=click.Choice(_OPERATIONS), required=True, help="Operation to run."
)
@click.option("-o", "--output-folder", type=click.Path(), default=None, help="Output folder.")
@click.option("--suffix", default="", help="Suffix appended to output file names.")
@click.option("-p", "--param", "params", multiple=True, help="Operation parameter KEY=VALUE.")
@click.option("-r", "--recursive", is_flag=True, default=False, help="Include subfolders.")
@click.option("--max-files", type=int, default=100, show_default=True, help="File limit.")
@click.option("--concurrency", type=int, default=None, help="Files processed at once.")
@click.option("--stop-on-error", is_flag=True, default=False, help="Stop at the first failure.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def process_folder(
    folder: str,
    operation: str,
    output_folder: str | None,
    suffix: str,
    params: tuple[str, ...],
    recursive: bool,
    max_files: int,
    concurrency: int | None,
    stop_on_error: bool,
    verbose: int,
) -> None:
    """Run an operation over every image in a folder."""
    settings = _load(verbose, max_concurrency=concurrency)
    parsed = _parse_params(params)

    async def run(app: GenTrack) -> BatchSummary:
        return await app.process_folder(
            folder,
            operation,
            parsed,
            output_folder=output_folder,
            output_suffix=suffix,
            recursive=recursive,
            max_files=max_files,
            stop_on_error=stop_on_error,
        )

    summary = _run(settings, run)
    _print_batch(summary, verbose)
    if summary.failed:
        sys.exit(1)


@cli.command()
@click.argument("folder", type=click.Path())
@click.option(
    "-O", "--operation", type=click.Choice(_OPERATIONS), required=True, help="Operation to run."
)
@click.option("-o", "--output-folder", type=click.Path(), default=None, help="Output folder.")
@click.option("-p", "--param", "params", multiple=True, help="Operation parameter KEY=VALUE.")
@click.option("--debounce", type=int, default=None, help="Quiet period in ms before scanning.")
@click.option(
    "--duration", type=float, default=None, help="Stop after this many seconds (default: Ctrl+C)."
)
@click.option("--stop-on-error", is_flag=True, default=False, help="End a scan at its first failure.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def watch(
    folder: str,
    operation: str,
    output_folder: str | None,
    params: tuple[str, ...],
    debounce: int | None,
    duration: float | None,
    stop_on_error: bool,
    verbose: int,
) -> None:
    """Watch a folder and process new or changed images as they appear."""
    settings = _load(verbose, watch_debounce_ms=debounce)
    parsed = _parse_params(params)
    final: list[WatchEntry] = []

    async def run(app: GenTrack) -> None:
        entry = app.start_watch(folder, operation, parsed, output_folder, stop_on_error)
        error_console.print(
            f"Watching [cyan]{entry.path}[/cyan] ({operation}). Press Ctrl+C to stop."
        )
        try:
            if duration is not None:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()
        finally:
            final.append(app.stop_watch(entry.id))
            await app.watcher.wait_idle()

    try:
        _run(settings, run)
    except KeyboardInterrupt:
        error_console.print("[yellow]Stopped.[/yellow]")
    if final:
        _print_watches(final)


@cli.command("config")
def show_config() -> None:
    """Show the resolved configuration."""
    settings = _load(0)

    table = Table(title="Configuration", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    for key, value in settings.model_dump().items():
        if key == "api_key" and value:
            value = f"{value[:4]}...{value[-4:]}"
        table.add_row(key, "-" if value is None else str(value))

    console.print(table)


def _print_batch(summary: BatchSummary, verbose: int) -> None:
    color = "green" if not summary.failed else "yellow"
    console.print(f"[{color}]{summary.message}[/{color}]")

    if not summary.results or (verbose < 1 and not summary.failed):
        return

    table = Table(title="Batch Results", show_header=True)
    table.add_column("File", style="cyan")
    table.add_column("Status")
    table.add_column("Output / Error")

    for result in summary.results:
        if verbose < 1 and result.status != "failed":
            continue
        detail = result.output_path if result.status == "success" else result.error
        table.add_row(result.input_path, result.status.value, detail or "-")

    error_console.print(table)


def _print_watches(entries: list[WatchEntry]) -> None:
    table = Table(title="Watches", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Path")
    table.add_column("Operation")
    table.add_column("Active")
    table.add_column("Scans")
    table.add_column("Processed")
    table.add_column("Failed")
    table.add_column("Last scan")

    for entry in entries:
        table.add_row(
            entry.id[:8],
            entry.path,
            entry.operation,
            "yes" if entry.active else "no",
            str(entry.scan_count),
            str(entry.processed_count),
            str(entry.failed_count),
            entry.last_scan_time.isoformat(timespec="seconds") if entry.last_scan_time else "-",
        )

    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    cli()
