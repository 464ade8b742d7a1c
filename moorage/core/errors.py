"""Error taxonomy for Moorage operations.

Operation-level errors carry an exit code so the CLI can pick a distinct
termination status per category. Item-level errors (ArchiveError) are
caught by the orchestrator and turned into failure counts.
"""


class MoorageError(Exception):
    """Base class for all Moorage errors."""

    exit_code = 1


class LockError(MoorageError):
    """Raised when an operation is already running against a resource."""

    exit_code = 75


class EnumerationError(MoorageError):
    """Raised when the target set cannot be listed or located."""

    exit_code = 1


class SnapshotError(MoorageError):
    """Raised when a container snapshot cannot be read or written."""

    exit_code = 2


class ConfigError(MoorageError):
    """Raised for invalid configuration files or values."""

    exit_code = 78


class ArchiveError(MoorageError):
    """Raised when a single volume cannot be archived or restored."""

    def __init__(self, volume_name: str, message: str):
        super().__init__(f"{volume_name}: {message}")
        self.volume_name = volume_name
