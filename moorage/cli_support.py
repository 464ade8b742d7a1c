"""Shared utilities for Moorage CLI modules."""
from __future__ import annotations

from typing import Callable, Optional

import typer
from rich.console import Console
from rich.table import Table

from moorage.core.config import MoorageConfig, load_config
from moorage.core.context import build_context
from moorage.core.errors import MoorageError
from moorage.core.logger import setup_file_logging
from moorage.core.orchestrator import Orchestrator, OperationReport

# Exit status for a run that finished with per-item failures
EXIT_PARTIAL = 3
EXIT_INTERRUPTED = 130

CONFIG_OPTION = typer.Option(
    None, "--config", "-c", help="Config file (default: $MOORAGE_CONFIG, ./moorage.yml, ...)"
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Debug logging")


def load_settings(config_path: Optional[str], console: Console) -> MoorageConfig:
    """Load configuration, exiting with the config error code on failure."""
    try:
        return load_config(config_path)
    except MoorageError as e:
        handle_cli_error(e, console, exit_code=e.exit_code)


def create_orchestrator(config_path: Optional[str], verbose: bool, console: Console) -> Orchestrator:
    """Load config, start file logging and wire up the orchestrator."""
    config = load_settings(config_path, console)
    setup_file_logging(str(config.log_file), verbose=verbose)
    return Orchestrator(build_context(config))


def run_operation(console: Console, operation: Callable[[], OperationReport]) -> OperationReport:
    """Run an orchestrator operation and map its outcome to an exit status.

    Full success returns normally, per-item failures exit 3, aborted
    operations exit with their error category's code.
    """
    try:
        report = operation()
    except MoorageError as e:
        handle_cli_error(e, console, exit_code=e.exit_code)
    except KeyboardInterrupt:
        print_warning(console, "Interrupted, exiting")
        raise typer.Exit(EXIT_INTERRUPTED)

    print_report(console, report)
    if not report.ok:
        raise typer.Exit(EXIT_PARTIAL)
    return report


def print_report(console: Console, report: OperationReport) -> None:
    """Print an operation summary plus any per-item failures."""
    if report.ok:
        print_success(console, report.summary())
    else:
        print_warning(console, report.summary())

    if report.failures:
        table = Table(show_header=True, header_style="bold red")
        table.add_column("Item")
        table.add_column("Error", overflow="fold")
        for item, error in report.failures.items():
            table.add_row(item, error)
        console.print(table)

    for path in report.evicted:
        console.print(f"[dim]  removed {path.name}[/dim]")


def confirm_action(message: str, yes_flag: bool = False) -> bool:
    """Prompt user for confirmation unless --yes.

    Args:
        message: Confirmation message to display
        yes_flag: Skip prompt if True (from --yes flag)

    Returns:
        True if confirmed, False otherwise
    """
    if yes_flag:
        return True
    return typer.confirm(message)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {e}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    """Print success message with consistent formatting."""
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    """Print error message with consistent formatting."""
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    """Print warning message with consistent formatting."""
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    """Print info message with consistent formatting."""
    console.print(f"[blue]{prefix}[/blue] {message}")
