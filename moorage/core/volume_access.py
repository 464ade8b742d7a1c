"""Ways of reading and writing a volume's directory tree.

Two accessors share one archive format (a gzip'd tar whose member names are
relative to the volume root):

- DirectVolumeAccessor walks the runtime's storage area on this host.
- HelperVolumeAccessor mounts the volume into a short-lived helper
  container and streams the tree out of/into it with the runtime's bulk
  copy. Works against remote daemons and desktop VMs.

The accessor is picked once at startup by select_accessor().
"""
import gzip
import os
import sys
import tarfile
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional, Sequence

from moorage.core.errors import ArchiveError
from moorage.core.logger import get_logger
from moorage.services.runtime.base import ContainerRuntime, RuntimeClientError

logger = get_logger(__name__)

DEFAULT_HELPER_COMMAND = ("sleep", "3600")


class VolumeAccessor(ABC):
    """Produces and consumes ``.tar.gz`` archives of a single volume."""

    name = "abstract"

    @abstractmethod
    def archive(self, volume_name: str, destination: Path) -> None:
        """Write the volume's tree to ``destination`` as a gzip'd tar."""

    @abstractmethod
    def restore(self, volume_name: str, source: Path) -> None:
        """Unpack the gzip'd tar at ``source`` into the volume."""


class DirectVolumeAccessor(VolumeAccessor):
    """Reads volumes straight from ``<volumes_root>/<name>/_data``."""

    name = "direct"

    def __init__(self, volumes_root: Path):
        self.volumes_root = Path(volumes_root)

    def volume_path(self, volume_name: str) -> Path:
        return self.volumes_root / volume_name / "_data"

    def archive(self, volume_name: str, destination: Path) -> None:
        root = self.volume_path(volume_name)
        if not root.is_dir():
            raise ArchiveError(volume_name, f"volume data not found at {root}")

        with tarfile.open(destination, "w:gz") as tar:
            for path in walk_tree(root):
                tar.add(str(path), arcname=path.relative_to(root).as_posix(), recursive=False)

        logger.debug(f"Archived {root} to {destination}")

    def restore(self, volume_name: str, source: Path) -> None:
        root = self.volume_path(volume_name)
        if not root.is_dir():
            raise ArchiveError(volume_name, f"volume data not found at {root}; create the volume first")

        with tarfile.open(source, "r:gz") as tar:
            tar.extractall(root, filter=restore_filter)

        logger.debug(f"Restored {source} into {root}")


class HelperVolumeAccessor(VolumeAccessor):
    """Copies volume contents through a throwaway container."""

    name = "helper"

    def __init__(self, runtime: ContainerRuntime, image: str = "alpine",
                 mount_point: str = "/data", command: Optional[Sequence[str]] = None):
        self.runtime = runtime
        self.image = image
        self.mount_point = mount_point
        self.command = list(command or DEFAULT_HELPER_COMMAND)

    @property
    def _root_name(self) -> str:
        return PurePosixPath(self.mount_point).name

    def archive(self, volume_name: str, destination: Path) -> None:
        with helper_workload(self.runtime, volume_name, self.image, self.mount_point,
                             self.command, purpose="backup") as container_id:
            with self.runtime.copy_from(container_id, self.mount_point) as stream:
                with tarfile.open(fileobj=stream, mode="r|") as source, \
                        tarfile.open(destination, "w:gz") as target:
                    for member in source:
                        name = strip_root(member.name, self._root_name)
                        if name is None:
                            continue
                        fileobj = source.extractfile(member) if member.isreg() else None
                        member.name = name
                        if member.islnk():
                            member.linkname = strip_root(member.linkname, self._root_name) or ""
                        target.addfile(member, fileobj)

        logger.debug(f"Archived {volume_name} via helper to {destination}")

    def restore(self, volume_name: str, source: Path) -> None:
        with helper_workload(self.runtime, volume_name, self.image, self.mount_point,
                             self.command, purpose="restore") as container_id:
            with gzip.open(source, "rb") as stream:
                self.runtime.copy_to(container_id, self.mount_point, stream)

        logger.debug(f"Restored {volume_name} via helper from {source}")


@contextmanager
def helper_workload(runtime: ContainerRuntime, volume_name: str, image: str,
                    mount_point: str, command: Sequence[str],
                    purpose: str = "backup") -> Iterator[str]:
    """Create and start a helper container, removing it on every exit path.

    Yields:
        The helper container ID

    Raises:
        ArchiveError: If the helper can't be created or started
    """
    name = f"moorage-{purpose}-{volume_name}-{time.time_ns()}"
    try:
        container_id = runtime.create_helper(name, image, volume_name, mount_point, command)
    except RuntimeClientError as e:
        raise ArchiveError(volume_name, f"failed to create helper container: {e}") from e

    logger.debug(f"Created helper {name} ({container_id[:12]}) for {volume_name}")
    try:
        try:
            runtime.start_container(container_id)
        except RuntimeClientError as e:
            raise ArchiveError(volume_name, f"failed to start helper container: {e}") from e
        yield container_id
    finally:
        try:
            runtime.remove_container(container_id, force=True)
            logger.debug(f"Removed helper {name}")
        except RuntimeClientError as e:
            logger.warning(f"Failed to remove helper container {name}: {e}")


def walk_tree(root: Path) -> Iterator[Path]:
    """Yield every entry under ``root`` depth-first in sorted order.

    Symlinks to directories are yielded but not followed.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        base = Path(dirpath)
        for name in sorted(dirnames + filenames):
            yield base / name


def restore_filter(member: tarfile.TarInfo, dest_path: str) -> tarfile.TarInfo:
    """Extraction filter for volume archives.

    Member paths must stay inside the volume. Symlink targets are stored
    as-is: an absolute target refers to a path inside the container that
    mounts the volume, not to this host.
    """
    if member.issym():
        return tarfile.tar_filter(member, dest_path)
    return tarfile.data_filter(member, dest_path)


def strip_root(name: str, root_name: str) -> Optional[str]:
    """Make a member name from ``docker cp`` relative to the copied directory.

    ``data/sub/file`` -> ``sub/file``; the root entry itself -> None.
    """
    parts = [part for part in PurePosixPath(name).parts if part not in (".", "/")]
    if parts and parts[0] == root_name:
        parts = parts[1:]
    if not parts:
        return None
    return "/".join(parts)


def is_local_daemon(docker_host: Optional[str]) -> bool:
    """True when the runtime daemon runs on this host."""
    host = docker_host or os.environ.get("DOCKER_HOST", "")
    return not host or host.startswith("unix://")


def select_accessor(config, runtime: ContainerRuntime) -> VolumeAccessor:
    """Choose how volumes are read for the lifetime of this process."""
    helper = HelperVolumeAccessor(runtime, config.helper_image, config.helper_mount_point)
    direct = DirectVolumeAccessor(config.volumes_root)

    if config.access_mode == "direct":
        return direct
    if config.access_mode == "helper":
        return helper

    root = Path(config.volumes_root)
    if (sys.platform.startswith("linux")
            and not config.docker_context
            and is_local_daemon(config.docker_host)
            and root.is_dir()
            and os.access(root, os.R_OK | os.X_OK)):
        logger.debug(f"Using direct volume access under {root}")
        return direct

    logger.debug("Using helper-container volume access")
    return helper
