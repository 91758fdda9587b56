"""Catalog of the backup artifacts stored in the backup directory."""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from pathlib import Path

from pgvault.backup.exceptions import BackupNotFoundError, CatalogError
from pgvault.backup.naming import (
    ArtifactFormat,
    ArtifactType,
    classify,
    is_supported,
    validate_artifact_name,
)
from pgvault.logging import get_logger


@dataclass(frozen=True)
class BackupArtifact:
    """A single backup file in the catalog."""

    name: str
    path: Path
    size: int
    created_at: datetime
    modified_at: datetime
    type: ArtifactType
    format: ArtifactFormat


@dataclass(frozen=True)
class ArtifactFilter:
    """Optional narrowing of a catalog listing.

    Date bounds are inclusive and compared with ``created_at``; a plain
    ``date`` covers the whole day.
    """

    type: ArtifactType | None = None
    format: ArtifactFormat | None = None
    from_date: datetime | date | None = None
    to_date: datetime | date | None = None

    def matches(self, artifact: BackupArtifact) -> bool:
        """Whether the artifact passes every bound that is set."""
        if self.type is not None and artifact.type is not self.type:
            return False
        if self.format is not None and artifact.format is not self.format:
            return False
        if self.from_date is not None and artifact.created_at < _as_bound(
            self.from_date,
            time.min,
        ):
            return False
        return not (
            self.to_date is not None
            and artifact.created_at > _as_bound(self.to_date, time.max)
        )


def _as_bound(value: datetime | date, day_time: time) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return datetime.combine(value, day_time, tzinfo=UTC)


def stat_artifact(path: Path) -> BackupArtifact:
    """Build a BackupArtifact from the file at ``path``.

    ``st_birthtime`` is used for the creation time where the platform tracks
    it; elsewhere (Linux) it equals the modification time.
    """
    stats = path.stat()
    classification = classify(path.name)
    created = getattr(stats, "st_birthtime", stats.st_mtime)
    return BackupArtifact(
        name=path.name,
        path=path,
        size=stats.st_size,
        created_at=datetime.fromtimestamp(created, tz=UTC),
        modified_at=datetime.fromtimestamp(stats.st_mtime, tz=UTC),
        type=classification.type,
        format=classification.format,
    )


class BackupCatalog:
    """Read view and delete path over the backup directory."""

    def __init__(self, backup_dir: Path, logger: logging.Logger | None = None) -> None:
        """Initialize the catalog.

        Args:
            backup_dir: Directory where backups are stored
            logger: Logger instance for logging operations

        """
        self.backup_dir = backup_dir
        self.logger = logger or get_logger(__name__)

    def ensure_backup_dir(self) -> None:
        """Create the backup directory if it doesn't exist.

        Raises:
            CatalogError: If the directory cannot be created or is not a directory

        """
        try:
            if not self.backup_dir.exists():
                self.backup_dir.mkdir(parents=True, exist_ok=True)
                self.logger.warning(
                    f"Backup directory did not exist and was created: {self.backup_dir}",
                )
        except OSError as e:
            error_msg = f"Failed to create backup directory {self.backup_dir}: {e}"
            self.logger.exception(error_msg)
            raise CatalogError(error_msg, e) from e
        if not self.backup_dir.is_dir():
            error_msg = f"Backup path exists but is not a directory: {self.backup_dir}"
            raise CatalogError(error_msg)

    def list_backups(
        self,
        artifact_filter: ArtifactFilter | None = None,
    ) -> list[BackupArtifact]:
        """List backups newest first by modification time.

        Raises:
            CatalogError: If the backup directory cannot be read

        """
        try:
            artifacts = [
                stat_artifact(path)
                for path in self.backup_dir.iterdir()
                if is_supported(path.name) and path.is_file()
            ]
        except OSError as e:
            error_msg = f"Failed to list backups: {e}"
            self.logger.exception(error_msg)
            raise CatalogError(error_msg, e) from e

        if artifact_filter is not None:
            artifacts = [a for a in artifacts if artifact_filter.matches(a)]

        return sorted(artifacts, key=lambda a: a.modified_at, reverse=True)

    def get_path(self, name: str) -> Path:
        """Resolve an existing artifact to its path.

        Raises:
            ValidationError: If the name is not a plain file name
            BackupNotFoundError: If no such artifact exists

        """
        validate_artifact_name(name)
        path = self.backup_dir / name
        if not path.is_file():
            error_msg = f"Backup file not found: {name}"
            raise BackupNotFoundError(error_msg)
        return path

    def get_artifact(self, name: str) -> BackupArtifact:
        """Return the catalog entry of a single artifact."""
        return stat_artifact(self.get_path(name))

    def delete(self, name: str) -> None:
        """Delete an artifact.

        Raises:
            BackupNotFoundError: If no such artifact exists
            CatalogError: If the file cannot be removed

        """
        path = self.get_path(name)
        try:
            path.unlink()
        except OSError as e:
            error_msg = f"Failed to delete backup {name}: {e}"
            self.logger.exception(error_msg)
            raise CatalogError(error_msg, e) from e
        self.logger.info(f"Backup deleted: {name}")
