"""Advisory locking for Moorage operations.

Prevents two backup (or two state) operations from running against the
same resource at once. Locks are non-blocking: contention is reported
immediately instead of waiting.
"""
import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Optional, Union

from moorage.core.errors import LockError
from moorage.core.logger import get_logger

logger = get_logger(__name__)


def lock_path_for(resource: Union[str, Path]) -> Path:
    """Return the lock file guarding a resource path (``<resource>.lock``)."""
    resource = Path(resource)
    return resource.with_name(resource.name + ".lock")


class ResourceLock:
    """File-based advisory lock bound to ``<resource>.lock``."""

    def __init__(self, resource: Union[str, Path]):
        """Initialize lock.

        Args:
            resource: Path of the resource being protected (state file, backup dir)
        """
        self.lock_file = lock_path_for(resource)
        self.lock_fd: Optional[IO[str]] = None

    @property
    def held(self) -> bool:
        return self.lock_fd is not None

    def try_acquire(self) -> bool:
        """Try to acquire the lock without waiting.

        Returns:
            True if the lock was acquired, False if someone else holds it
            (or this instance already does; the lock is not reentrant)
        """
        if self.lock_fd is not None:
            return False

        self.lock_file.parent.mkdir(parents=True, exist_ok=True)

        # Append mode so a failed attempt never clobbers the holder's info
        fd = open(self.lock_file, "a+")
        try:
            fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            fd.close()
            logger.debug(f"Lock busy: {self.lock_file}")
            return False

        fd.seek(0)
        fd.truncate()
        fd.write(f"{os.getpid()}\n")
        fd.write(f"{time.strftime('%Y-%m-%d %H:%M:%S')}\n")
        fd.flush()

        self.lock_fd = fd
        logger.debug(f"Acquired lock: {self.lock_file}")
        return True

    def release(self) -> None:
        """Release the lock. Safe to call when the lock was never acquired."""
        if self.lock_fd is None:
            return

        try:
            fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_UN)
            logger.debug(f"Released lock: {self.lock_file}")
        except OSError as e:
            logger.warning(f"Error releasing lock {self.lock_file}: {e}")
        finally:
            self.lock_fd.close()
            self.lock_fd = None

    def read_holder(self) -> dict:
        """Read info from lock file about who holds it."""
        try:
            with open(self.lock_file) as f:
                lines = f.readlines()
        except OSError:
            lines = []

        if len(lines) >= 2:
            return {'pid': lines[0].strip(), 'time': lines[1].strip()}
        return {'pid': 'unknown', 'time': 'unknown'}

    def __enter__(self):
        """Context manager entry."""
        if not self.try_acquire():
            holder = self.read_holder()
            raise LockError(
                f"Another operation is already running (lock {self.lock_file} "
                f"held by PID {holder['pid']} since {holder['time']})"
            )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.release()
        return False


@contextmanager
def operation_lock(resource: Union[str, Path]) -> Iterator[ResourceLock]:
    """Hold the lock for ``resource`` for the duration of the block.

    Usage:
        with operation_lock(config.backup_dir):
            ...

    Raises:
        LockError: If another process holds the lock
    """
    with ResourceLock(resource) as lock:
        yield lock


def check_lock_status(resource: Union[str, Path]) -> Optional[dict]:
    """Check if the lock for a resource is currently held.

    Returns:
        Dict with lock info if held, None if free or never created
    """
    lock_path = lock_path_for(resource)
    if not lock_path.exists():
        return None

    try:
        with open(lock_path) as f:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError:
                f.seek(0)
                lines = f.readlines()
                if len(lines) >= 2:
                    return {
                        'pid': lines[0].strip(),
                        'time': lines[1].strip(),
                        'lock_file': str(lock_path)
                    }
                return {'pid': 'unknown', 'time': 'unknown', 'lock_file': str(lock_path)}
            # Lock is free (marker left by a previous run)
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            return None
    except OSError as e:
        logger.warning(f"Error checking lock status: {e}")
        return None
