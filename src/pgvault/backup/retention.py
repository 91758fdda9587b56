"""Count-based retention of backup artifacts."""

import logging

from pgvault.backup.catalog import ArtifactFilter, BackupCatalog
from pgvault.backup.exceptions import BackupError, RetentionError, ValidationError
from pgvault.backup.naming import ArtifactType
from pgvault.logging import get_logger


class RetentionPolicy:
    """Keeps the N most recent artifacts and deletes the rest.

    Deletion stops at the first failure and raises ``RetentionError``; the
    names removed before that point are available on ``error.deleted``.
    """

    def __init__(self, catalog: BackupCatalog, logger: logging.Logger | None = None) -> None:
        self.catalog = catalog
        self.logger = logger or get_logger(__name__)

    def select_expired(
        self,
        keep_count: int,
        artifact_type: ArtifactType | None = None,
    ) -> list[str]:
        """Names that ``clean`` would delete, oldest last."""
        if keep_count < 0:
            error_msg = f"keep_count cannot be negative, got {keep_count}"
            raise ValidationError(error_msg)
        artifact_filter = ArtifactFilter(type=artifact_type) if artifact_type else None
        backups = self.catalog.list_backups(artifact_filter)
        return [artifact.name for artifact in backups[keep_count:]]

    def clean(
        self,
        keep_count: int,
        artifact_type: ArtifactType | None = None,
    ) -> list[str]:
        """Delete all but the ``keep_count`` newest artifacts.

        Args:
            keep_count: Number of artifacts to keep
            artifact_type: Only prune artifacts of this type

        Returns:
            Names of the deleted artifacts

        Raises:
            ValidationError: If keep_count is negative
            RetentionError: If listing or a deletion fails

        """
        try:
            expired = self.select_expired(keep_count, artifact_type)
        except ValidationError:
            raise
        except BackupError as e:
            error_msg = f"Failed to clean old backups: {e}"
            raise RetentionError(error_msg, original_error=e) from e

        deleted: list[str] = []
        for name in expired:
            try:
                self.catalog.delete(name)
            except BackupError as e:
                error_msg = (
                    f"Failed to clean old backups: could not delete {name} "
                    f"after deleting {len(deleted)} file(s): {e}"
                )
                self.logger.exception(error_msg)
                raise RetentionError(error_msg, deleted=deleted, original_error=e) from e
            deleted.append(name)

        self.logger.info(f"Cleaned up old backups, deleted: {len(deleted)} files")
        return deleted
