"""Operation sequencing: lock, enumerate, work per item, rotate, release.

Every operation runs the same shape::

    acquire lock --(busy)--> LockError
        |
    enumerate targets --(fails)--> EnumerationError (lock released)
        |
    for each item: work, then rotate   (item failures are counted)
        |
    release lock, report

Only lock contention, enumeration failure and snapshot I/O failure abort an
operation. Everything else ends up in the OperationReport.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from moorage.core.archiver import VolumeArchiver
from moorage.core.context import ServiceContext
from moorage.core.errors import ArchiveError, EnumerationError, LockError, MoorageError
from moorage.core.lock import ResourceLock
from moorage.core.logger import get_logger
from moorage.core.rotation import RotationPolicy
from moorage.models.archive import ArchiveArtifact
from moorage.services.runtime.base import RuntimeClientError

logger = get_logger(__name__)


@dataclass
class OperationReport:
    """Outcome of one operation."""
    operation: str
    succeeded: int = 0
    failed: int = 0
    items: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    evicted: List[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def record_success(self, item: str) -> None:
        self.succeeded += 1
        self.items.append(item)

    def record_failure(self, item: str, error: Union[str, Exception]) -> None:
        self.failed += 1
        self.failures[item] = str(error)

    def summary(self) -> str:
        text = f"{self.operation}: {self.succeeded} succeeded, {self.failed} failed"
        if self.evicted:
            text += f", {len(self.evicted)} old archive(s) removed"
        return text


class Orchestrator:
    """Runs backup, restore and state operations against a ServiceContext."""

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.config = ctx.config
        self.archiver = VolumeArchiver(ctx.accessor)

    # Plumbing

    def _notify(self, event: str, detail: str = "") -> None:
        """Send a notification; delivery problems never affect the operation."""
        try:
            self.ctx.notifier.notify(event, detail)
        except Exception as e:
            logger.warning(f"Notification {event} could not be dispatched: {e}")

    @contextmanager
    def _operation(self, operation: str, resource: Path) -> Iterator[None]:
        """Hold the lock for ``resource`` across the whole operation."""
        lock = ResourceLock(resource)
        if not lock.try_acquire():
            holder = lock.read_holder()
            message = (f"Another {operation} is in progress "
                       f"(PID {holder['pid']} since {holder['time']})")
            logger.warning(message)
            self._notify(f"{operation}_skipped", message)
            raise LockError(message)

        logger.info(f"Starting {operation}")
        try:
            yield
        except MoorageError as e:
            logger.error(f"{operation} aborted: {e}")
            self._notify(f"{operation}_failed", str(e))
            raise
        finally:
            lock.release()

    def _finish(self, report: OperationReport) -> OperationReport:
        if report.ok:
            logger.info(f"{report.summary()}")
            self._notify(f"post_{report.operation}", report.summary())
        else:
            logger.warning(f"{report.summary()}")
            self._notify(f"{report.operation}_failed", report.summary())
        return report

    def _enumerate_volumes(self, requested: Optional[Iterable[str]] = None) -> List[str]:
        try:
            available = self.ctx.runtime.list_volumes()
        except RuntimeClientError as e:
            raise EnumerationError(f"Failed to list volumes: {e}") from e

        if requested is None:
            return available

        requested = list(requested)
        missing = [name for name in requested if name not in available]
        if missing:
            raise EnumerationError(f"Unknown volume(s): {', '.join(missing)}")
        return requested

    # Volume backups

    def backup(self) -> OperationReport:
        """Archive every volume and rotate each volume's archives."""
        with self._operation("backup", self.config.backup_dir):
            return self._archive_volumes(
                "backup", self.config.backup_dir, self.config.backup_rotation_count
            )

    def manual_backup(self, volumes: Optional[Iterable[str]] = None) -> OperationReport:
        """Archive all (or the named) volumes into the manual backup directory."""
        with self._operation("manual_backup", self.config.backup_dir):
            return self._archive_volumes(
                "manual_backup",
                self.config.manual_backup_dir,
                self.config.manual_rotation_count,
                volumes,
            )

    def _archive_volumes(self, operation: str, target_dir: Path, retention: int,
                         volumes: Optional[Iterable[str]] = None) -> OperationReport:
        names = self._enumerate_volumes(volumes)
        logger.info(f"{operation}: {len(names)} volume(s) to archive into {target_dir}")
        self._notify(f"pre_{operation}", f"Archiving {len(names)} volume(s) to {target_dir}")

        report = OperationReport(operation)
        rotation = RotationPolicy(target_dir)

        for volume in names:
            artifact = ArchiveArtifact.build(target_dir, volume)
            try:
                self.archiver.archive(volume, artifact.path)
            except ArchiveError as e:
                logger.error(f"Failed to backup volume {volume}: {e}")
                report.record_failure(volume, e)
                continue

            report.record_success(volume)

            try:
                report.evicted.extend(rotation.apply(volume, retention))
            except OSError as e:
                logger.warning(f"Rotation skipped for {volume}: {e}")

        return self._finish(report)

    def restore_volume(self, archive: Union[str, Path],
                       volume_name: Optional[str] = None) -> OperationReport:
        """Restore one archive file into its volume.

        The volume name comes from the archive filename unless given.
        """
        archive = Path(archive)
        with self._operation("restore_volume", self.config.backup_dir):
            if not archive.is_file():
                raise EnumerationError(f"Archive not found: {archive}")

            if volume_name is None:
                artifact = ArchiveArtifact.parse(archive)
                if artifact is None:
                    raise EnumerationError(
                        f"Cannot tell which volume {archive.name} belongs to; pass the volume name"
                    )
                volume_name = artifact.volume_name

            self._notify("pre_restore_volume", f"Restoring {volume_name} from {archive}")
            report = OperationReport("restore_volume")
            try:
                self.archiver.restore(volume_name, archive)
            except ArchiveError as e:
                logger.error(f"Failed to restore volume {volume_name}: {e}")
                report.record_failure(volume_name, e)
            else:
                report.record_success(volume_name)

            return self._finish(report)

    def list_archives(self, manual: bool = False) -> List[ArchiveArtifact]:
        """List conforming archives, newest first. Other files are ignored."""
        directory = self.config.manual_backup_dir if manual else self.config.backup_dir
        if not directory.is_dir():
            return []

        archives = []
        for path in directory.iterdir():
            if not path.is_file():
                continue
            artifact = ArchiveArtifact.parse(path)
            if artifact is None:
                logger.debug(f"Ignoring non-archive file {path.name}")
                continue
            archives.append(artifact)

        archives.sort(key=lambda a: (a.created_at, a.volume_name), reverse=True)
        return archives

    # Container state

    def save_state(self) -> OperationReport:
        """Record which containers are running."""
        state_file = self.config.state_file
        with self._operation("save", state_file):
            self._notify("pre_save", f"Saving running containers to {state_file}")
            try:
                snapshot = self.ctx.state_store.capture(self.ctx.runtime)
            except RuntimeClientError as e:
                raise EnumerationError(f"Failed to list running containers: {e}") from e

            self.ctx.state_store.save(snapshot, state_file)

            report = OperationReport("save")
            for record in snapshot.containers:
                report.record_success(record.display_name)
            return self._finish(report)

    def restore_state(self) -> OperationReport:
        """Start every container recorded by the last save."""
        state_file = self.config.state_file
        with self._operation("restore", state_file):
            self._notify("pre_restore", f"Restoring containers from {state_file}")
            started, failed = self.ctx.state_store.restore(state_file, self.ctx.runtime)
            report = OperationReport("restore", succeeded=started, failed=failed)
            return self._finish(report)

    # Label-driven start/stop

    def autostart(self) -> OperationReport:
        """Start stopped containers labelled ``autostart=true``."""
        return self._apply_label("autostart", start=True)

    def autostop(self) -> OperationReport:
        """Stop running containers labelled ``autostop=true``."""
        return self._apply_label("autostop", start=False)

    def _apply_label(self, label: str, start: bool) -> OperationReport:
        try:
            containers = self.ctx.runtime.list_containers(all=True)
        except RuntimeClientError as e:
            raise EnumerationError(f"Failed to list containers: {e}") from e

        report = OperationReport(label)
        for container in containers:
            if container.labels.get(label, "").lower() != "true":
                continue
            if container.running == start:
                continue
            try:
                if start:
                    self.ctx.runtime.start_container(container.id)
                else:
                    self.ctx.runtime.stop_container(container.id)
            except RuntimeClientError as e:
                logger.error(f"{label}: failed on {container.name}: {e}")
                report.record_failure(container.name, e)
                continue
            logger.info(f"{label}: {'started' if start else 'stopped'} {container.name}")
            report.record_success(container.name)

        return self._finish(report)
