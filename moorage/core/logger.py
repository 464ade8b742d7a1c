"""Unified logging for Moorage with console and file output."""
import logging
import tempfile
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)

# Track if file logging has been set up
_file_handler: Optional[logging.FileHandler] = None


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> Path:
    """Set up the append-only file log for Moorage operations.

    Args:
        log_file: Path to log file (defaults to moorage.log in the temp dir)
        verbose: Enable debug-level logging

    Returns:
        Path of the log file actually in use

    Note:
        Creates the log directory if it doesn't exist.
        Falls back to the temp dir if the target is not writable.
    """
    global _file_handler

    root_logger = logging.getLogger("moorage")
    level = logging.DEBUG if verbose else logging.INFO

    if _file_handler is not None:
        root_logger.setLevel(level)
        return Path(_file_handler.baseFilename)

    target_log_file = Path(log_file) if log_file else Path(tempfile.gettempdir()) / "moorage.log"

    try:
        target_log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(target_log_file, mode="a")
    except OSError:
        target_log_file = Path(tempfile.gettempdir()) / "moorage.log"
        handler = logging.FileHandler(target_log_file, mode="a")

    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    _file_handler = handler

    root_logger.debug(f"Moorage logging initialized: {target_log_file}")
    return target_log_file


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance with console output.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger with Rich console handler

    Note:
        File logging must be enabled separately via setup_file_logging()
    """
    logger = logging.getLogger(name)

    # Levels are controlled on the package root so --verbose reaches every module
    package_logger = logging.getLogger("moorage")
    if package_logger.level == logging.NOTSET:
        package_logger.setLevel(logging.INFO)

    # Only add console handler if not already present
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler.setLevel(logging.INFO)
        logger.addHandler(handler)

    return logger
