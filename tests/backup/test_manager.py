"""Tests for the backup manager facade."""

import logging
import os
import subprocess
import tempfile
import threading
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from pgvault.backup.config_manager import DatabaseConfig, VaultConfig
from pgvault.backup.creator import DumpOptions
from pgvault.backup.exceptions import (
    BackupNotFoundError,
    MissingEnvVariableError,
    SafetyCheckError,
)
from pgvault.backup.manager import BackupManager
from pgvault.backup.naming import ArtifactFormat, ArtifactType
from pgvault.backup.process_runner import ProcessRunner
from pgvault.backup.restore_engine import RestoreOptions

DATABASE = DatabaseConfig(
    host="localhost",
    port=5432,
    user="postgres",
    password="secret",
    name="shop",
)


def _fake_client(command: list[str], **_kwargs) -> subprocess.CompletedProcess:
    """Stand in for pg_dump, psql and pg_restore."""
    tool = Path(command[0]).name
    if tool == "pg_dump":
        output = Path(command[command.index("-f") + 1])
        output.write_text("-- shop\nCREATE TABLE public.items (id integer);\n")
    return subprocess.CompletedProcess(command, 0, "", "")


class TestBackupManager:
    """Test cases for BackupManager functionality."""

    @pytest.fixture
    def root(self):
        """Provide a temporary root directory."""
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir)

    @pytest.fixture
    def config(self, root) -> VaultConfig:
        """Create a configuration inside the temporary directory."""
        return VaultConfig(
            backup_dir=root / "backups",
            upload_dir=root / "uploads",
            lock_dir=root / "locks",
            scheduled_keep_count=2,
        )

    @pytest.fixture
    def runner(self) -> Mock:
        """Create a runner faking the PostgreSQL clients."""
        runner = Mock(spec=ProcessRunner)
        runner.run.side_effect = _fake_client
        return runner

    @pytest.fixture
    def manager(self, root, config, runner):
        """Create a manager wired to the fake runner."""
        (root / "locks").mkdir()
        manager = BackupManager(
            config,
            database=DATABASE,
            logger=Mock(spec=logging.Logger),
            runner=runner,
        )
        yield manager
        manager.stop_schedule()

    def test_init_creates_directories(self, manager, config) -> None:
        """Test that the backup and upload directories are created."""
        assert config.backup_dir.is_dir()
        assert config.upload_dir.is_dir()
        assert manager.lock_manager.lock_file.name == "pgvault_shop.lock"

    def test_init_requires_database_environment(self, config) -> None:
        """Test that missing PG* variables fail at startup."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(MissingEnvVariableError):
                BackupManager(config, logger=Mock(spec=logging.Logger))

    def test_create_then_list(self, manager) -> None:
        """Test that a created backup is listed first."""
        name = manager.create_backup(manual=True)

        backups = manager.list_backups()

        assert backups[0].name == name
        assert backups[0].type is ArtifactType.MANUAL
        assert backups[0].format is ArtifactFormat.PLAIN

    def test_create_holds_lock(self, manager, runner) -> None:
        """Test that pg_dump runs while the lock is held."""
        locked_during_dump = []

        def dump(command: list[str], **kwargs) -> subprocess.CompletedProcess:
            locked_during_dump.append(manager.lock_manager.is_locked)
            return _fake_client(command, **kwargs)

        runner.run.side_effect = dump

        manager.create_backup(options=DumpOptions(format=ArtifactFormat.CUSTOM))

        assert locked_during_dump == [True]
        assert manager.lock_manager.is_locked is False

    def test_restore_with_backup_first(self, manager, runner) -> None:
        """Test a restore with a safety backup under one lock."""
        name = manager.create_backup(manual=True)
        runner.run.reset_mock()

        assert manager.restore_backup(name, RestoreOptions(create_backup_first=True))

        tools = [Path(c.args[0][0]).name for c in runner.run.call_args_list]
        assert tools == ["pg_dump", "psql", "psql"]
        types = {b.type for b in manager.list_backups()}
        assert ArtifactType.PRE_RESTORE in types

    def test_delete(self, manager) -> None:
        """Test deleting a backup."""
        name = manager.create_backup()

        assert manager.delete_backup(name) is True
        assert manager.list_backups() == []

        with pytest.raises(BackupNotFoundError):
            manager.delete_backup(name)

    def test_clean_old_backups(self, manager, config) -> None:
        """Test retention through the facade."""
        for index in range(4):
            path = config.backup_dir / f"auto-backup-{index}.sql"
            path.write_text("--\n")
            os.utime(path, (1_700_000_000 + index, 1_700_000_000 + index))

        deleted = manager.clean_old_backups(1)

        assert deleted == ["auto-backup-2.sql", "auto-backup-1.sql", "auto-backup-0.sql"]

    def test_import_and_metadata(self, manager, config) -> None:
        """Test importing an upload and reading its metadata."""
        upload = config.upload_dir / "upload.sql"
        upload.write_text("-- Imported from staging\nCREATE SCHEMA staging;\n")

        name = manager.import_backup(upload)
        metadata = manager.get_metadata(name)

        assert metadata.type is ArtifactType.IMPORTED
        assert metadata.schemas == ["staging"]
        assert metadata.comment == "Imported from staging"
        assert manager.download_path(name) == config.backup_dir / name

    def test_import_rejects_non_sql(self, manager, config) -> None:
        """Test that a fake SQL upload is not registered."""
        upload = config.upload_dir / "upload.sql"
        upload.write_text("plain text")

        with pytest.raises(SafetyCheckError):
            manager.import_backup(upload)

        assert manager.list_backups() == []

    def test_schedule_lifecycle(self, manager) -> None:
        """Test starting and stopping the schedule with the configured interval."""
        manager.start_schedule()

        status = manager.schedule_status()
        assert status.running is True
        assert status.interval_hours == 24

        manager.stop_schedule()
        assert manager.schedule_status().running is False

    def test_scheduled_run_uses_facade(self, manager) -> None:
        """Test that a scheduled run creates a backup and applies the configured retention."""
        manager.scheduler.run_once()
        manager.scheduler.run_once()
        manager.scheduler.run_once()

        backups = manager.list_backups()
        assert len(backups) == 2
        assert all(b.type is ArtifactType.AUTO for b in backups)

    def test_lock_serializes_threads(self, manager, runner) -> None:
        """Test that concurrent operations do not overlap."""
        active = []
        overlaps = []

        def slow_dump(command: list[str], **kwargs) -> subprocess.CompletedProcess:
            active.append(command)
            if len(active) > 1:
                overlaps.append(command)
            threading.Event().wait(0.05)
            result = _fake_client(command, **kwargs)
            active.remove(command)
            return result

        runner.run.side_effect = slow_dump
        threads = [threading.Thread(target=manager.create_backup) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert overlaps == []
        assert len(manager.list_backups()) == 3
