"""Archive retention: keep the newest N archives of each volume."""
from pathlib import Path
from typing import List, Tuple, Union

from moorage.core.logger import get_logger
from moorage.models.archive import ARCHIVE_SUFFIX, ArchiveArtifact, sort_key

logger = get_logger(__name__)


class RotationPolicy:
    """Evict old archives from a backup directory."""

    def __init__(self, backup_dir: Union[str, Path]):
        self.backup_dir = Path(backup_dir)

    def candidates(self, volume_name: str) -> List[Path]:
        """List archive files belonging to ``volume_name``.

        Conforming names must parse to exactly this volume, so ``app`` never
        claims ``app_data_<ts>.tar.gz``. Non-conforming ``<volume>_*.tar.gz``
        files are included and later ordered by modification time.

        Raises:
            OSError: If the backup directory can't be listed
        """
        prefix = f"{volume_name}_"
        matches = []
        for path in self.backup_dir.iterdir():
            name = path.name
            if not (name.startswith(prefix) and name.endswith(ARCHIVE_SUFFIX)):
                continue
            artifact = ArchiveArtifact.parse(path)
            if artifact is not None and artifact.volume_name != volume_name:
                continue
            if path.is_file():
                matches.append(path)
        return matches

    def partition(self, volume_name: str, retention: int) -> Tuple[List[Path], List[Path]]:
        """Split a volume's archives into (retain, evict), oldest first in each."""
        archives = sorted(self.candidates(volume_name), key=sort_key)
        if retention <= 0 or len(archives) <= retention:
            return archives, []
        cut = len(archives) - retention
        return archives[cut:], archives[:cut]

    def apply(self, volume_name: str, retention: int) -> List[Path]:
        """Delete archives beyond the newest ``retention`` for a volume.

        Args:
            volume_name: Volume whose archives are rotated
            retention: Archives to keep; <= 0 disables rotation

        Returns:
            Paths actually deleted

        Raises:
            OSError: If the backup directory can't be listed
        """
        if retention <= 0:
            logger.debug(f"Rotation disabled for {volume_name}")
            return []

        _, evict = self.partition(volume_name, retention)

        evicted = []
        for path in evict:
            try:
                path.unlink()
            except OSError as e:
                logger.error(f"Failed to remove old backup {path}: {e}")
                continue
            logger.info(f"Removed old backup: {path}")
            evicted.append(path)

        return evicted
