"""Archive and restore individual volumes."""
import os
import tarfile
import zlib
from pathlib import Path
from typing import Union

from moorage.core.errors import ArchiveError
from moorage.core.logger import get_logger
from moorage.core.volume_access import VolumeAccessor
from moorage.services.runtime.base import RuntimeClientError

logger = get_logger(__name__)

# Everything an accessor can raise for a single bad volume
_ITEM_ERRORS = (RuntimeClientError, OSError, tarfile.TarError, EOFError, zlib.error)


def partial_path_for(destination: Path) -> Path:
    """Hidden in-progress name for an archive; never matches the archive naming."""
    return destination.with_name(f".{destination.name}.{os.getpid()}.partial")


class VolumeArchiver:
    """Produce and consume ``.tar.gz`` archives of one volume at a time.

    All failures surface as ArchiveError so a bulk caller can count them
    and move on to the next volume.
    """

    def __init__(self, accessor: VolumeAccessor):
        self.accessor = accessor

    def archive(self, volume_name: str, destination: Union[str, Path]) -> Path:
        """Archive ``volume_name`` to ``destination``.

        The archive is written to a hidden sibling and renamed into place
        once complete, so an existing file at ``destination`` is only ever
        replaced by a finished archive. Nothing is left behind on failure
        or interrupt.

        Returns:
            The destination path

        Raises:
            ArchiveError: If the volume couldn't be archived
        """
        destination = Path(destination)
        partial = partial_path_for(destination)
        logger.debug(f"Archiving {volume_name} ({self.accessor.name}) -> {destination}")

        try:
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                self.accessor.archive(volume_name, partial)
                os.replace(partial, destination)
            except BaseException:
                self._discard(partial)
                raise
        except _ITEM_ERRORS as e:
            raise ArchiveError(volume_name, f"archive failed: {e}") from e

        logger.info(f"Backed up volume {volume_name} to {destination}")
        return destination

    def restore(self, volume_name: str, source: Union[str, Path]) -> None:
        """Restore ``volume_name`` from the archive at ``source``.

        Raises:
            ArchiveError: If the archive is missing or couldn't be applied
        """
        source = Path(source)
        if not source.is_file():
            raise ArchiveError(volume_name, f"archive not found: {source}")

        logger.debug(f"Restoring {volume_name} ({self.accessor.name}) <- {source}")
        try:
            self.accessor.restore(volume_name, source)
        except ArchiveError:
            raise
        except _ITEM_ERRORS as e:
            raise ArchiveError(volume_name, f"restore failed: {e}") from e

        logger.info(f"Restored volume {volume_name} from {source}")

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial archive {path}: {e}")
