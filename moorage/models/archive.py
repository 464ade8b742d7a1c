"""Archive artifact naming and parsing.

Archives are named ``<volume>_<YYYYMMDDTHHMMSS>.tar.gz``. The timestamp in
the name is what rotation sorts by; files that don't follow the convention
fall back to their modification time.
"""
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

ARCHIVE_SUFFIX = ".tar.gz"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S"

_ARCHIVE_RE = re.compile(r"^(?P<volume>.+)_(?P<stamp>\d{8}T\d{6})\.tar\.gz$")


@dataclass(frozen=True)
class ArchiveArtifact:
    """A compressed archive of one volume taken at a point in time."""
    volume_name: str
    created_at: datetime
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name

    @classmethod
    def build(cls, backup_dir: Path, volume_name: str,
              created_at: Optional[datetime] = None) -> "ArchiveArtifact":
        """Create the artifact for a new archive of ``volume_name``."""
        created_at = (created_at or datetime.now()).replace(microsecond=0)
        filename = f"{volume_name}_{created_at.strftime(TIMESTAMP_FORMAT)}{ARCHIVE_SUFFIX}"
        return cls(volume_name=volume_name, created_at=created_at, path=Path(backup_dir) / filename)

    @classmethod
    def parse(cls, path: Path) -> Optional["ArchiveArtifact"]:
        """Parse an archive path, returning None if the name doesn't conform."""
        path = Path(path)
        match = _ARCHIVE_RE.match(path.name)
        if not match:
            return None
        try:
            created_at = datetime.strptime(match.group("stamp"), TIMESTAMP_FORMAT)
        except ValueError:
            # e.g. month 13 - digits match but the date is impossible
            return None
        return cls(volume_name=match.group("volume"), created_at=created_at, path=path)


def sort_key(path: Path) -> datetime:
    """Ordering key for an archive file: parsed timestamp, else mtime.

    Never raises; a file that vanished or can't be stat'ed sorts first.
    """
    artifact = ArchiveArtifact.parse(path)
    if artifact is not None:
        return artifact.created_at
    try:
        return datetime.fromtimestamp(Path(path).stat().st_mtime)
    except OSError:
        return datetime.min
