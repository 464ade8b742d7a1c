"""Shared test fixtures for Moorage tests."""
import io
import tarfile
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Dict, List

import pytest

from moorage.core.config import MoorageConfig
from moorage.core.context import build_context
from moorage.core.volume_access import restore_filter
from moorage.services.notify import Notifier
from moorage.services.runtime.base import ContainerInfo, ContainerRuntime, RuntimeClientError


class FakeRuntime(ContainerRuntime):
    """In-process runtime: volumes live under ``<root>/<name>/_data``.

    Helper containers and ``docker cp`` are emulated on those directories,
    so the direct and helper accessors see the same data.
    """

    def __init__(self, volumes_root: Path):
        self.volumes_root = Path(volumes_root)
        self.containers: Dict[str, ContainerInfo] = {}
        self.helpers: Dict[str, dict] = {}
        self.removed: List[str] = []
        self.started: List[str] = []
        self.stopped: List[str] = []
        self.list_error = False
        self.fail_create = set()
        self.fail_helper_start = set()
        self.fail_copy = set()
        self.break_copy: Dict[str, BaseException] = {}
        self.fail_remove = False
        self.fail_start_ids = set()

    # Test helpers

    def add_volume(self, name: str) -> Path:
        path = self.volumes_root / name / "_data"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def add_container(self, container_id, name, state="running", labels=None, image="nginx"):
        self.containers[container_id] = ContainerInfo(
            id=container_id, name=name, image=image, state=state, labels=labels or {}
        )

    @property
    def live_helpers(self):
        return [cid for cid in self.helpers if cid not in self.removed]

    # ContainerRuntime

    def list_volumes(self):
        if self.list_error:
            raise RuntimeClientError("daemon unreachable")
        if not self.volumes_root.exists():
            return []
        return sorted(p.name for p in self.volumes_root.iterdir() if p.is_dir())

    def list_containers(self, all=False):
        if self.list_error:
            raise RuntimeClientError("daemon unreachable")
        return [c for c in self.containers.values() if all or c.running]

    def create_helper(self, name, image, volume, mount_point, command=None):
        if volume in self.fail_create:
            raise RuntimeClientError(f"cannot create {name}")
        container_id = f"helper{len(self.helpers) + 1:04d}"
        self.helpers[container_id] = {
            "name": name, "volume": volume, "mount_point": mount_point, "running": False,
        }
        self.add_volume(volume)
        return container_id

    def start_container(self, container_id):
        if container_id in self.helpers:
            if self.helpers[container_id]["volume"] in self.fail_helper_start:
                raise RuntimeClientError("helper refused to start")
            self.helpers[container_id]["running"] = True
            return
        if container_id in self.fail_start_ids:
            raise RuntimeClientError(f"no such container: {container_id}")
        self.started.append(container_id)
        if container_id in self.containers:
            self.containers[container_id].state = "running"

    def stop_container(self, container_id, timeout=10):
        if container_id in self.fail_start_ids:
            raise RuntimeClientError(f"cannot stop {container_id}")
        self.stopped.append(container_id)
        self.containers[container_id].state = "exited"

    def remove_container(self, container_id, force=True):
        if self.fail_remove:
            raise RuntimeClientError("remove failed")
        self.removed.append(container_id)

    def _helper_volume_dir(self, container_id, path):
        helper = self.helpers[container_id]
        assert helper["running"], "copy from a helper that was never started"
        assert path == helper["mount_point"]
        if helper["volume"] in self.fail_copy:
            raise RuntimeClientError("copy failed")
        return self.volumes_root / helper["volume"] / "_data", PurePosixPath(path).name

    @contextmanager
    def copy_from(self, container_id, path):
        source, root_name = self._helper_volume_dir(container_id, path)
        buffer = io.BytesIO()
        # docker cp names members after the copied directory: data/, data/file, ...
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            tar.add(str(source), arcname=root_name)
        buffer.seek(0)
        volume = self.helpers[container_id]["volume"]
        if volume in self.break_copy:
            yield BrokenStream(buffer, self.break_copy[volume])
        else:
            yield buffer

    def copy_to(self, container_id, path, stream):
        target, _ = self._helper_volume_dir(container_id, path)
        with tarfile.open(fileobj=stream, mode="r|") as tar:
            tar.extractall(target, filter=restore_filter)


class BrokenStream:
    """Hands out a few small chunks of a tar stream, then raises ``error``."""

    def __init__(self, payload, error, good_reads=4):
        self.payload = payload
        self.error = error
        self.good_reads = good_reads

    def read(self, size=-1):
        if self.good_reads <= 0:
            raise self.error
        self.good_reads -= 1
        return self.payload.read(512)


class RecordingNotifier(Notifier):
    """Collects events synchronously instead of spawning threads."""

    def __init__(self):
        self.events = []

    def notify(self, event, detail=""):
        self.events.append((event, detail))

    def deliver(self, event, detail):
        self.events.append((event, detail))

    @property
    def names(self):
        return [event for event, _ in self.events]


def make_tree(root: Path) -> None:
    """Populate a directory with nesting, an empty dir and a zero-byte file."""
    (root / "config").mkdir(parents=True, exist_ok=True)
    (root / "config" / "app.ini").write_text("[main]\nport = 8080\n")
    (root / "deep" / "er" / "est").mkdir(parents=True, exist_ok=True)
    (root / "deep" / "er" / "est" / "blob.bin").write_bytes(bytes(range(256)) * 40)
    (root / "empty-dir").mkdir(exist_ok=True)
    (root / "zero.txt").write_bytes(b"")
    (root / "top.txt").write_text("hello\n")


def tree_contents(root: Path) -> dict:
    """Map relative path -> bytes (files) or None (directories)."""
    contents = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        contents[rel] = None if path.is_dir() else path.read_bytes()
    return contents


@pytest.fixture
def fake_runtime(tmp_path):
    """Fake runtime with its volumes under tmp_path/volumes."""
    return FakeRuntime(tmp_path / "volumes")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config(tmp_path):
    """Config pointing every path into tmp_path, helper access by default."""
    return MoorageConfig(
        state_file=tmp_path / "state" / "containers.json",
        backup_dir=tmp_path / "backups",
        log_file=tmp_path / "moorage.log",
        volumes_root=tmp_path / "volumes",
        access_mode="helper",
        backup_rotation_count=3,
        manual_rotation_count=2,
    )


@pytest.fixture
def context(config, fake_runtime, notifier):
    """ServiceContext wired to the fake runtime and recording notifier."""
    return build_context(config, runtime=fake_runtime, notifier=notifier)
