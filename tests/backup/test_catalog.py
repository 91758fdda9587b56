"""Tests for the backup catalog."""

import logging
import os
import tempfile
from datetime import UTC, date, datetime
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from pgvault.backup.catalog import ArtifactFilter, BackupCatalog
from pgvault.backup.exceptions import (
    BackupNotFoundError,
    CatalogError,
    ValidationError,
)
from pgvault.backup.naming import ArtifactFormat, ArtifactType


def _make_backup(directory: Path, name: str, mtime: float, content: str = "--\n") -> Path:
    path = directory / name
    path.write_text(content)
    os.utime(path, (mtime, mtime))
    return path


class TestBackupCatalog:
    """Test cases for BackupCatalog functionality."""

    @pytest.fixture
    def logger(self) -> Mock:
        """Create a mock logger for testing."""
        return Mock(spec=logging.Logger)

    @pytest.fixture
    def backup_dir(self):
        """Provide a temporary backup directory."""
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir)

    @pytest.fixture
    def catalog(self, backup_dir, logger) -> BackupCatalog:
        """Create a catalog over the temporary directory."""
        return BackupCatalog(backup_dir, logger=logger)

    def test_list_backups_newest_first(self, catalog, backup_dir) -> None:
        """Test ordering by modification time, newest first."""
        _make_backup(backup_dir, "auto-backup-a.sql", 1_000)
        _make_backup(backup_dir, "manual-backup-b.dump", 3_000)
        _make_backup(backup_dir, "imported-backup-c.tar", 2_000)

        names = [a.name for a in catalog.list_backups()]

        assert names == [
            "manual-backup-b.dump",
            "imported-backup-c.tar",
            "auto-backup-a.sql",
        ]

    def test_list_backups_ignores_unsupported_files(self, catalog, backup_dir) -> None:
        """Test that only supported extensions are listed."""
        _make_backup(backup_dir, "notes.txt", 1_000)
        _make_backup(backup_dir, "manual-backup-a.sql.gz", 1_000)
        (backup_dir / "subdir.sql").mkdir()
        _make_backup(backup_dir, "manual-backup-a.sql", 1_000)

        assert [a.name for a in catalog.list_backups()] == ["manual-backup-a.sql"]

    def test_list_backups_empty(self, catalog) -> None:
        """Test an empty directory lists nothing."""
        assert catalog.list_backups() == []

    def test_list_backups_classifies(self, catalog, backup_dir) -> None:
        """Test that listed artifacts carry type, format and size."""
        _make_backup(backup_dir, "pre-restore-backup-x.dir.zip", 1_000, "abcd")

        (artifact,) = catalog.list_backups()

        assert artifact.type is ArtifactType.PRE_RESTORE
        assert artifact.format is ArtifactFormat.DIRECTORY
        assert artifact.size == 4
        assert artifact.modified_at == datetime.fromtimestamp(1_000, tz=UTC)

    def test_list_backups_filters(self, catalog, backup_dir) -> None:
        """Test filtering by type and format."""
        _make_backup(backup_dir, "auto-backup-a.sql", 1_000)
        _make_backup(backup_dir, "manual-backup-b.sql", 2_000)
        _make_backup(backup_dir, "manual-backup-c.dump", 3_000)

        manual = catalog.list_backups(ArtifactFilter(type=ArtifactType.MANUAL))
        plain_manual = catalog.list_backups(
            ArtifactFilter(type=ArtifactType.MANUAL, format=ArtifactFormat.PLAIN),
        )

        assert [a.name for a in manual] == ["manual-backup-c.dump", "manual-backup-b.sql"]
        assert [a.name for a in plain_manual] == ["manual-backup-b.sql"]

    def test_list_backups_date_bounds_are_inclusive(self, catalog, backup_dir) -> None:
        """Test that a plain date bound covers the whole day."""
        day = datetime(2026, 3, 14, 23, 59, tzinfo=UTC).timestamp()
        previous_day = datetime(2026, 3, 13, 12, 0, tzinfo=UTC).timestamp()
        _make_backup(backup_dir, "auto-backup-late.sql", day)
        _make_backup(backup_dir, "auto-backup-early.sql", previous_day)

        same_day = catalog.list_backups(
            ArtifactFilter(from_date=date(2026, 3, 14), to_date=date(2026, 3, 14)),
        )
        until_13th = catalog.list_backups(ArtifactFilter(to_date=date(2026, 3, 13)))

        assert [a.name for a in same_day] == ["auto-backup-late.sql"]
        assert [a.name for a in until_13th] == ["auto-backup-early.sql"]

    def test_list_backups_unreadable_directory(self, logger) -> None:
        """Test that a missing directory raises CatalogError."""
        catalog = BackupCatalog(Path("/nonexistent/pgvault"), logger=logger)

        with pytest.raises(CatalogError, match="Failed to list backups"):
            catalog.list_backups()

    def test_get_path(self, catalog, backup_dir) -> None:
        """Test resolving an existing artifact."""
        path = _make_backup(backup_dir, "manual-backup-a.sql", 1_000)

        assert catalog.get_path("manual-backup-a.sql") == path

    def test_get_path_missing(self, catalog) -> None:
        """Test that a missing artifact raises BackupNotFoundError."""
        with pytest.raises(BackupNotFoundError, match="Backup file not found: x.sql"):
            catalog.get_path("x.sql")

    def test_get_path_rejects_traversal(self, catalog) -> None:
        """Test that names escaping the directory are rejected."""
        with pytest.raises(ValidationError):
            catalog.get_path("../secret.sql")

    def test_delete(self, catalog, backup_dir, logger) -> None:
        """Test deleting an artifact removes it from the listing."""
        _make_backup(backup_dir, "manual-backup-a.sql", 1_000)

        catalog.delete("manual-backup-a.sql")

        assert catalog.list_backups() == []
        logger.info.assert_called_with("Backup deleted: manual-backup-a.sql")

    def test_delete_missing(self, catalog) -> None:
        """Test deleting a missing artifact."""
        with pytest.raises(BackupNotFoundError):
            catalog.delete("manual-backup-a.sql")

    def test_delete_failure(self, catalog, backup_dir) -> None:
        """Test that a filesystem error on delete raises CatalogError."""
        _make_backup(backup_dir, "manual-backup-a.sql", 1_000)

        with patch("pathlib.Path.unlink", side_effect=PermissionError("denied")):
            with pytest.raises(CatalogError, match="Failed to delete backup"):
                catalog.delete("manual-backup-a.sql")

    def test_ensure_backup_dir_creates_directory(self, backup_dir, logger) -> None:
        """Test that a missing backup directory is created."""
        catalog = BackupCatalog(backup_dir / "nested" / "backups", logger=logger)

        catalog.ensure_backup_dir()

        assert catalog.backup_dir.is_dir()
        logger.warning.assert_called_once()

    def test_ensure_backup_dir_rejects_file(self, backup_dir, logger) -> None:
        """Test that a file in place of the directory is rejected."""
        file_path = backup_dir / "file"
        file_path.touch()
        catalog = BackupCatalog(file_path, logger=logger)

        with pytest.raises(CatalogError, match="not a directory"):
            catalog.ensure_backup_dir()
