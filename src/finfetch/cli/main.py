"""
CLI for the finance fetcher.

Commands:
    finfetch fetch - Fetch every configured value and print the results
    finfetch config - Show current configuration
    finfetch version - Print version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from finfetch import __version__
from finfetch.config import Settings, load_settings
from finfetch.coordinator.orchestrator import Orchestrator, RunStats
from finfetch.data.rate_limit import RateLimiterRegistry
from finfetch.data.registry import build_fetch_units, build_rate_limiter
from finfetch.exceptions import ConfigurationError
from finfetch.logging import setup_logging
from finfetch.types import Outcome

app = typer.Typer(
    name="finfetch",
    help="Finance Fetcher - concurrent wallet, stock and property valuations",
    no_args_is_help=True,
)

console = Console(highlight=False)
error_console = Console(stderr=True)

# Exit codes
EXIT_CONFIG_ERROR = 1
EXIT_UNIT_FAILED = 2


def _describe_config_error(error: Exception) -> list[str]:
    if isinstance(error, ValidationError):
        lines = []
        for item in error.errors():
            location = ".".join(str(part) for part in item["loc"])
            message = item["msg"].removeprefix("Value error, ")
            lines.append(f"{location}: {message}" if location else message)
        return lines
    return [str(error)]


def _load_settings(config_path: Path | None = None) -> Settings:
    """Load settings or exit with a readable message."""
    if config_path is not None and not config_path.is_file():
        error_console.print(
            f"Error: Config file not found: {config_path}", style="red", markup=False
        )
        raise typer.Exit(EXIT_CONFIG_ERROR)

    try:
        return load_settings(config_path)
    except (ValidationError, ConfigurationError) as e:
        error_console.print("[red]Error:[/red] Configuration is invalid.")
        for line in _describe_config_error(e):
            error_console.print(f"  - {line}", markup=False)
        error_console.print("Run 'finfetch config' to see the current settings.")
        raise typer.Exit(EXIT_CONFIG_ERROR)


def format_outcome(outcome: Outcome) -> str:
    """Render one outcome as ``key: $value`` or ``key: ERROR - message``."""
    if outcome.error is not None:
        return f"{outcome.key}: ERROR - {outcome.error}"
    return f"{outcome.key}: ${outcome.value:.2f}"


async def _run_fetch(orchestrator: Orchestrator, timeout: float) -> RunStats:
    async for outcome in orchestrator.stream(timeout=timeout):
        console.print(
            format_outcome(outcome),
            style=None if outcome.ok else "red",
            markup=False,
            soft_wrap=True,
        )
    assert orchestrator.last_run is not None
    return orchestrator.last_run


@app.command()
def fetch(
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", "-t", min=0.001, help="Deadline for the run in seconds"),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="YAML config file"),
    ] = None,
    no_rate_limit: Annotated[
        bool,
        typer.Option("--no-rate-limit", help="Disable per-source rate limiting"),
    ] = False,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Exit with status 2 if any value failed"),
    ] = False,
) -> None:
    """Fetch all configured values concurrently.

    Prints each result as it arrives, then a summary line. Failed values are
    reported individually and do not stop the others.
    """
    settings = _load_settings(config_path)
    setup_logging(log_level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)

    effective_timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
    limiter = (
        RateLimiterRegistry.unlimited() if no_rate_limit else build_rate_limiter(settings)
    )

    try:
        orchestrator = Orchestrator(build_fetch_units(settings, limiter=limiter))
    except ConfigurationError as e:
        error_console.print(f"Error: {e.message}", style="red", markup=False)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    try:
        stats = asyncio.run(_run_fetch(orchestrator, effective_timeout))
    except KeyboardInterrupt:
        error_console.print("\n[yellow]Interrupted, shutting down.[/yellow]")
        raise typer.Exit(130)

    # stdout carries one line per value; the summary is for the operator
    error_console.print()
    summary = (
        f"Fetched {stats.total} values in {stats.elapsed_seconds:.2f}s: "
        f"{stats.succeeded} succeeded, {stats.failed} failed"
    )
    error_console.print(summary, style="bold green" if not stats.failed else "bold yellow")

    if strict and stats.failed:
        raise typer.Exit(EXIT_UNIT_FAILED)


@app.command()
def config(
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="YAML config file"),
    ] = None,
) -> None:
    """Show current configuration.

    Displays all configuration values with API keys redacted.
    """
    console.print()
    console.print("[bold]Finance Fetcher Configuration[/bold]")
    console.print()

    settings = _load_settings(config_path)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)

    console.print()
    console.print(
        f"[bold]Sources:[/bold] {', '.join(settings.configured_sources)} "
        f"({settings.item_count} values)"
    )
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"finfetch version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
