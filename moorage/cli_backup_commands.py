"""Volume backup CLI commands - backup, manual-backup, restore, listing."""
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from moorage import cli_support
from moorage.cli_support import CONFIG_OPTION, VERBOSE_OPTION
from moorage.models.archive import ArchiveArtifact

# Module-level console instance (will be set by register function)
console: Console = Console()


def select_archive(archives: List[ArchiveArtifact], selection: str) -> Optional[Path]:
    """Resolve a listing index (1-based), filename or path to an archive path."""
    selection = selection.strip()
    if selection.isdigit():
        index = int(selection)
        if 1 <= index <= len(archives):
            return archives[index - 1].path
        return None

    for artifact in archives:
        if artifact.filename == selection:
            return artifact.path

    candidate = Path(selection).expanduser()
    if candidate.is_file():
        return candidate
    return None


def _render_archives(archives: List[ArchiveArtifact], title: str) -> None:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Volume", style="cyan")
    table.add_column("Created", style="yellow")
    table.add_column("File", style="green")
    table.add_column("Size", justify="right", style="magenta")

    for index, artifact in enumerate(archives, start=1):
        try:
            size = f"{artifact.path.stat().st_size / (1024 * 1024):.1f}M"
        except OSError:
            size = "?"
        table.add_row(
            str(index),
            artifact.volume_name,
            artifact.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            artifact.filename,
            size,
        )

    console.print(table)


def backup(
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Archive every volume and rotate old archives."""
    orchestrator = cli_support.create_orchestrator(config, verbose, console)
    cli_support.run_operation(console, orchestrator.backup)


def manual_backup(
    volumes: Optional[List[str]] = typer.Argument(None, help="Volumes to archive (default: all)"),
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Create a user-initiated backup in the manual backup directory."""
    orchestrator = cli_support.create_orchestrator(config, verbose, console)
    cli_support.run_operation(console, lambda: orchestrator.manual_backup(volumes or None))


def list_backups(
    manual: bool = typer.Option(False, "--manual", "-m", help="List manual backups"),
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """List archives, newest first."""
    orchestrator = cli_support.create_orchestrator(config, verbose, console)
    archives = orchestrator.list_archives(manual=manual)
    if not archives:
        cli_support.print_warning(console, "No backups found")
        return
    _render_archives(archives, "Manual Backups" if manual else "Backups")


def manual_restore(
    selection: Optional[str] = typer.Argument(None, help="Backup number, filename or path"),
    volume: Optional[str] = typer.Option(None, "--volume", help="Volume to restore into"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Restore a volume from a manual backup."""
    orchestrator = cli_support.create_orchestrator(config, verbose, console)
    archives = orchestrator.list_archives(manual=True)

    if selection is None:
        if not archives:
            cli_support.print_error(console, "No manual backups found")
            raise typer.Exit(1)
        _render_archives(archives, "Manual Backups")
        selection = str(typer.prompt("Enter backup number to restore", type=int))

    archive = select_archive(archives, selection)
    if archive is None:
        cli_support.print_error(console, f"Invalid selection: {selection}")
        raise typer.Exit(2)

    _restore(orchestrator, archive, volume, yes)


def restore_volume(
    archive: Path = typer.Argument(..., help="Archive file to restore"),
    volume: Optional[str] = typer.Option(None, "--volume", help="Volume to restore into"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    config: Optional[str] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Restore one volume from any archive file."""
    orchestrator = cli_support.create_orchestrator(config, verbose, console)
    _restore(orchestrator, archive, volume, yes)


def _restore(orchestrator, archive: Path, volume: Optional[str], yes: bool) -> None:
    target = volume or getattr(ArchiveArtifact.parse(archive), "volume_name", None) or "?"
    if not cli_support.confirm_action(
        f"Restore volume '{target}' from {archive.name}? Existing files will be overwritten.",
        yes_flag=yes,
    ):
        cli_support.print_warning(console, "Cancelled")
        raise typer.Exit(0)

    cli_support.run_operation(console, lambda: orchestrator.restore_volume(archive, volume))


def register_backup_commands(app: typer.Typer, shared_console: Console):
    """Register volume backup commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(backup)
    app.command("manual-backup")(manual_backup)
    app.command("list-backups")(list_backups)
    app.command("manual-restore")(manual_restore)
    app.command("restore-volume")(restore_volume)
