"""Container state CLI commands - save, restore, autostart, autostop, status."""
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from moorage import cli_support
from moorage.cli_support import CONFIG_OPTION, VERBOSE_OPTION
from moorage.core.lock import check_lock_status

# Module-level console instance (will be set by register function)
console: Console = Console()


def save(
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Record which containers are running."""
    orchestrator = cli_support.create_orchestrator(config, verbose, console)
    cli_support.run_operation(console, orchestrator.save_state)


def restore(
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Start the containers recorded by the last save."""
    orchestrator = cli_support.create_orchestrator(config, verbose, console)
    cli_support.run_operation(console, orchestrator.restore_state)


def autostart(
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Start containers labelled autostart=true."""
    orchestrator = cli_support.create_orchestrator(config, verbose, console)
    cli_support.run_operation(console, orchestrator.autostart)


def autostop(
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Stop running containers labelled autostop=true."""
    orchestrator = cli_support.create_orchestrator(config, verbose, console)
    cli_support.run_operation(console, orchestrator.autostop)


def status(
    config: Optional[str] = CONFIG_OPTION,
):
    """Show configuration paths and whether operations are running."""
    settings = cli_support.load_settings(config, console)

    table = Table(title="Moorage Status", show_header=True, header_style="bold")
    table.add_column("Resource")
    table.add_column("Path", style="cyan", overflow="fold")
    table.add_column("Lock")

    for label, resource in (("Backups", settings.backup_dir), ("State", settings.state_file)):
        lock = check_lock_status(resource)
        if lock:
            lock_text = f"[yellow]held by PID {lock['pid']} since {lock['time']}[/yellow]"
        else:
            lock_text = "[green]free[/green]"
        table.add_row(label, str(resource), lock_text)

    console.print(table)
    console.print(f"Access mode: {settings.access_mode}  "
                  f"Rotation: keep {settings.backup_rotation_count} "
                  f"(manual {settings.manual_rotation_count})")
    if not settings.state_file.exists():
        cli_support.print_info(console, "No state snapshot saved yet. Run 'moorage save'.")


def register_state_commands(app: typer.Typer, shared_console: Console):
    """Register container state commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(save)
    app.command()(restore)
    app.command()(autostart)
    app.command()(autostop)
    app.command()(status)
