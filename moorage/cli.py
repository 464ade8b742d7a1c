#!/usr/bin/env python3
"""Moorage CLI - container state snapshots and volume backups."""
import signal

import typer
from rich.console import Console

from moorage.cli_backup_commands import register_backup_commands
from moorage.cli_state_commands import register_state_commands

app = typer.Typer(
    name="moorage",
    help="""Moorage - keep Docker hosts recoverable

Snapshot running containers, back up volumes, restore both.

Quick start:
  moorage save            # Remember what is running
  moorage restore         # Start it again after a reboot
  moorage backup          # Archive every volume (with rotation)
  moorage list-backups    # See what you can restore

More commands: moorage --help
""",
    add_completion=False,
)

console = Console()

# Attach modular subcommands
register_state_commands(app, console)
register_backup_commands(app, console)


def _interrupt(signum, frame):
    raise KeyboardInterrupt()


def main():
    """Console entry point.

    SIGTERM is turned into KeyboardInterrupt so locks and helper containers
    are released by the normal cleanup path.
    """
    signal.signal(signal.SIGTERM, _interrupt)
    app()


if __name__ == "__main__":
    main()
