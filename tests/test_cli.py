"""CLI tests: commands map operation outcomes to exit codes."""
import pytest
import typer
import yaml
from rich.console import Console
from typer.testing import CliRunner

from conftest import FakeRuntime, RecordingNotifier, make_tree
from moorage import cli_support
from moorage.cli import app
from moorage.cli_backup_commands import select_archive
from moorage.core.context import build_context
from moorage.core.errors import SnapshotError
from moorage.core.lock import ResourceLock
from moorage.core.orchestrator import OperationReport
from moorage.models.archive import ArchiveArtifact

runner = CliRunner()


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Config file in tmp_path and a fake runtime behind every command."""
    monkeypatch.delenv("MOORAGE_CONFIG", raising=False)
    config_file = tmp_path / "moorage.yml"
    config_file.write_text(yaml.safe_dump({
        "state_file": str(tmp_path / "state" / "containers.json"),
        "backup_dir": str(tmp_path / "backups"),
        "log_file": str(tmp_path / "moorage.log"),
        "volumes_root": str(tmp_path / "volumes"),
        "access_mode": "helper",
    }))

    fake = FakeRuntime(tmp_path / "volumes")
    notifier = RecordingNotifier()
    monkeypatch.setattr(
        cli_support, "build_context",
        lambda config: build_context(config, runtime=fake, notifier=notifier),
    )
    return {"config": str(config_file), "runtime": fake, "notifier": notifier, "root": tmp_path}


def invoke(env, *args, **kwargs):
    return runner.invoke(app, [*args, "--config", env["config"]], **kwargs)


class TestHelp:
    def test_lists_commands(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("save", "restore", "backup", "manual-backup", "list-backups",
                        "manual-restore", "restore-volume", "autostart", "autostop", "status"):
            assert command in result.stdout


class TestBackupCommands:
    def test_backup_success(self, env):
        make_tree(env["runtime"].add_volume("app"))

        result = invoke(env, "backup")

        assert result.exit_code == 0, result.stdout
        assert "1 succeeded" in result.stdout
        assert len(list((env["root"] / "backups").glob("app_*.tar.gz"))) == 1

    def test_backup_partial_failure(self, env):
        env["runtime"].add_volume("app")
        env["runtime"].add_volume("db")
        env["runtime"].fail_copy.add("db")

        result = invoke(env, "backup")

        assert result.exit_code == cli_support.EXIT_PARTIAL
        assert "1 failed" in result.stdout

    def test_backup_lock_held(self, env):
        holder = ResourceLock(env["root"] / "backups")
        holder.try_acquire()
        try:
            result = invoke(env, "backup")
        finally:
            holder.release()

        assert result.exit_code == 75
        assert "in progress" in result.stdout

    def test_backup_enumeration_failure(self, env):
        env["runtime"].list_error = True

        result = invoke(env, "backup")

        assert result.exit_code == 1
        assert "Failed to list volumes" in result.stdout

    def test_invalid_config(self, env, tmp_path):
        bad = tmp_path / "bad.yml"
        bad.write_text("access_mode: sideways\n")

        result = runner.invoke(app, ["backup", "--config", str(bad)])

        assert result.exit_code == 78

    def test_manual_backup_selected_volume(self, env):
        env["runtime"].add_volume("app")
        env["runtime"].add_volume("db")

        result = runner.invoke(app, ["manual-backup", "db", "--config", env["config"]])

        assert result.exit_code == 0, result.stdout
        manual = list((env["root"] / "backups" / "manual").glob("*.tar.gz"))
        assert [ArchiveArtifact.parse(p).volume_name for p in manual] == ["db"]

    def test_list_backups_empty(self, env):
        result = invoke(env, "list-backups")

        assert result.exit_code == 0
        assert "No backups found" in result.stdout

    def test_list_backups(self, env):
        backups = env["root"] / "backups"
        backups.mkdir()
        (backups / "pgdata_20240101T000000.tar.gz").write_bytes(b"x")

        result = invoke(env, "list-backups")

        assert result.exit_code == 0
        assert "pgdata" in result.stdout


class TestRestoreCommands:
    def _manual_backup(self, env):
        data = env["runtime"].add_volume("app")
        (data / "keep.txt").write_text("precious")
        assert invoke(env, "manual-backup").exit_code == 0
        (data / "keep.txt").unlink()
        return data

    def test_manual_restore_by_number(self, env):
        data = self._manual_backup(env)

        result = runner.invoke(app, ["manual-restore", "1", "--yes", "--config", env["config"]])

        assert result.exit_code == 0, result.stdout
        assert (data / "keep.txt").read_text() == "precious"

    def test_manual_restore_prompts(self, env):
        data = self._manual_backup(env)

        result = invoke(env, "manual-restore", input="1\ny\n")

        assert result.exit_code == 0, result.stdout
        assert (data / "keep.txt").read_text() == "precious"

    def test_manual_restore_invalid_selection(self, env):
        self._manual_backup(env)

        result = runner.invoke(app, ["manual-restore", "9", "--yes", "--config", env["config"]])

        assert result.exit_code == 2
        assert "Invalid selection" in result.stdout

    def test_manual_restore_nothing_to_restore(self, env):
        result = invoke(env, "manual-restore")

        assert result.exit_code == 1
        assert "No manual backups found" in result.stdout

    def test_restore_volume_cancelled(self, env):
        data = self._manual_backup(env)
        (archive,) = (env["root"] / "backups" / "manual").glob("app_*.tar.gz")

        result = runner.invoke(app, ["restore-volume", str(archive), "--config", env["config"]],
                               input="n\n")

        assert result.exit_code == 0
        assert "Cancelled" in result.stdout
        assert not (data / "keep.txt").exists()

    def test_restore_volume_into_other_volume(self, env):
        self._manual_backup(env)
        clone = env["runtime"].add_volume("clone")
        (archive,) = (env["root"] / "backups" / "manual").glob("app_*.tar.gz")

        result = runner.invoke(app, ["restore-volume", str(archive), "--volume", "clone", "--yes",
                                     "--config", env["config"]])

        assert result.exit_code == 0, result.stdout
        assert (clone / "keep.txt").read_text() == "precious"


class TestStateCommands:
    def test_save_and_restore(self, env):
        env["runtime"].add_container("aaa", "web")

        assert invoke(env, "save").exit_code == 0
        env["runtime"].containers["aaa"].state = "exited"
        result = invoke(env, "restore")

        assert result.exit_code == 0, result.stdout
        assert env["runtime"].started == ["aaa"]

    def test_restore_without_snapshot(self, env):
        result = invoke(env, "restore")
        assert result.exit_code == SnapshotError.exit_code

    def test_restore_partial(self, env):
        env["runtime"].add_container("a", "web")
        env["runtime"].add_container("b", "db")
        invoke(env, "save")
        env["runtime"].fail_start_ids.add("b")

        result = invoke(env, "restore")

        assert result.exit_code == cli_support.EXIT_PARTIAL

    def test_autostart(self, env):
        env["runtime"].add_container("a", "web", state="exited", labels={"autostart": "true"})

        result = invoke(env, "autostart")

        assert result.exit_code == 0
        assert env["runtime"].started == ["a"]

    def test_autostop(self, env):
        env["runtime"].add_container("a", "web", labels={"autostop": "true"})

        result = invoke(env, "autostop")

        assert result.exit_code == 0
        assert env["runtime"].stopped == ["a"]

    def test_status(self, env):
        result = invoke(env, "status")

        assert result.exit_code == 0
        assert "free" in result.stdout
        assert "No state snapshot" in result.stdout


class TestSupport:
    """Helpers shared by the command modules."""

    def test_select_archive(self, tmp_path):
        archives = [
            ArchiveArtifact.parse(tmp_path / "db_20240201T000000.tar.gz"),
            ArchiveArtifact.parse(tmp_path / "db_20240101T000000.tar.gz"),
        ]
        outside = tmp_path / "elsewhere.tar.gz"
        outside.write_bytes(b"")

        assert select_archive(archives, "2") == archives[1].path
        assert select_archive(archives, "db_20240201T000000.tar.gz") == archives[0].path
        assert select_archive(archives, str(outside)) == outside
        assert select_archive(archives, "0") is None
        assert select_archive(archives, "missing.tar.gz") is None

    def test_interrupt_exit_code(self):
        def interrupted():
            raise KeyboardInterrupt()

        with pytest.raises(typer.Exit) as exc_info:
            cli_support.run_operation(Console(), interrupted)

        assert exc_info.value.exit_code == cli_support.EXIT_INTERRUPTED

    def test_run_operation_returns_report(self):
        report = OperationReport("backup", succeeded=1)
        assert cli_support.run_operation(Console(), lambda: report) is report

    def test_confirm_yes_flag(self):
        assert cli_support.confirm_action("Continue?", yes_flag=True) is True
