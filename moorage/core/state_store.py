"""Persistence of running-container snapshots."""
import os
from pathlib import Path
from typing import Tuple, Union

from pydantic import ValidationError

from moorage.core.errors import SnapshotError
from moorage.core.logger import get_logger
from moorage.models.snapshot import ContainerRecord, ContainerSnapshot
from moorage.services.runtime.base import ContainerRuntime, RuntimeClientError

logger = get_logger(__name__)


class StateStore:
    """Save and replay which containers were running.

    The snapshot is a JSON document::

        {"version": 1, "saved_at": "...", "containers": [{"id": ..., "name": ..., ...}]}

    Restoring does not consume the snapshot; it can be replayed any number
    of times.
    """

    def capture(self, runtime: ContainerRuntime) -> ContainerSnapshot:
        """Build a snapshot of the containers currently running.

        Raises:
            RuntimeClientError: If the runtime can't list containers
        """
        records = [
            ContainerRecord(id=c.id, name=c.name, image=c.image or None, labels=c.labels)
            for c in runtime.list_containers(all=False)
        ]
        return ContainerSnapshot(containers=records)

    def save(self, snapshot: ContainerSnapshot, destination: Union[str, Path]) -> Path:
        """Write a snapshot atomically.

        The JSON is written to a temp file next to the destination and
        renamed into place, so readers never see a half-written snapshot.

        Raises:
            SnapshotError: If the file can't be written
        """
        destination = Path(destination)
        temp_file = destination.with_name(f".{destination.name}.{os.getpid()}.tmp")

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w') as f:
                f.write(snapshot.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_file, destination)
        except OSError as e:
            try:
                temp_file.unlink()
            except OSError:
                pass
            raise SnapshotError(f"Failed to save state to {destination}: {e}") from e

        logger.info(f"Saved {len(snapshot.containers)} containers to {destination}")
        return destination

    def load(self, source: Union[str, Path]) -> ContainerSnapshot:
        """Read a snapshot.

        Raises:
            SnapshotError: If the file is missing, unreadable or not a valid snapshot
        """
        source = Path(source)
        try:
            payload = source.read_text()
        except OSError as e:
            raise SnapshotError(f"Failed to read state file {source}: {e}") from e

        try:
            snapshot = ContainerSnapshot.model_validate_json(payload)
        except ValidationError as e:
            raise SnapshotError(f"State file {source} is corrupt: {e.error_count()} error(s): {e}") from e

        logger.debug(f"Loaded {len(snapshot.containers)} containers from {source}")
        return snapshot

    def restore(self, source: Union[str, Path], runtime: ContainerRuntime) -> Tuple[int, int]:
        """Start every container recorded in a snapshot.

        A container that fails to start is logged and counted; the rest are
        still attempted.

        Returns:
            Tuple of (started, failed)

        Raises:
            SnapshotError: If the snapshot can't be loaded
        """
        snapshot = self.load(source)

        started = failed = 0
        for record in snapshot.containers:
            try:
                runtime.start_container(record.id)
            except RuntimeClientError as e:
                logger.error(f"Failed to start container {record.display_name}: {e}")
                failed += 1
                continue
            logger.info(f"Started container {record.display_name}")
            started += 1

        return started, failed
