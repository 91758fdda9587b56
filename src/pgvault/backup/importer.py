"""Import of externally supplied backup files into the catalog."""

import logging
import shutil
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from pgvault.backup.exceptions import (
    BackupImportError,
    BackupNotFoundError,
    SafetyCheckError,
    ValidationError,
)
from pgvault.backup.naming import (
    SUPPORTED_EXTENSIONS,
    ArtifactType,
    artifact_extension,
    generate_backup_name,
    validate_artifact_name,
)
from pgvault.logging import get_logger

SANITY_CHECK_BYTES = 1000
SQL_SANITY_MARKERS = ("CREATE TABLE", "INSERT INTO", "BEGIN;", "COPY")


def looks_like_sql_dump(path: Path, read_bytes: int = SANITY_CHECK_BYTES) -> bool:
    """Shallow check that the file starts like an SQL dump."""
    with path.open("rb") as f:
        head = f.read(read_bytes).decode("utf-8", errors="replace")
    return any(marker in head for marker in SQL_SANITY_MARKERS)


class BackupImporter:
    """Copies uploaded backup files into the backup directory."""

    def __init__(
        self,
        backup_dir: Path,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.backup_dir = backup_dir
        self.logger = logger or get_logger(__name__)
        self.clock = clock or (lambda: datetime.now(UTC))

    def import_backup(
        self,
        source_path: Path,
        suggested_name: str | None = None,
        prefix: str = ArtifactType.IMPORTED.value,
    ) -> str:
        """Import a backup file and return its artifact name.

        Args:
            source_path: Uploaded file, left in place
            suggested_name: Name to store the file under instead of a generated one
            prefix: Type prefix of the generated name

        Raises:
            ValidationError: If the extension, name or prefix is not allowed
            BackupNotFoundError: If the source file does not exist
            SafetyCheckError: If a .sql file does not look like an SQL dump
            BackupImportError: If copying fails

        """
        extension = artifact_extension(suggested_name or source_path.name)
        if extension is None:
            error_msg = (
                f"Unsupported backup file extension: {suggested_name or source_path.name} "
                f"(allowed: {', '.join(SUPPORTED_EXTENSIONS)})"
            )
            raise ValidationError(error_msg)
        if prefix not in {t.value for t in ArtifactType if t is not ArtifactType.UNKNOWN}:
            error_msg = f"Unknown backup type prefix: {prefix}"
            raise ValidationError(error_msg)
        if not source_path.is_file():
            error_msg = f"Import source file not found: {source_path}"
            raise BackupNotFoundError(error_msg)

        self.backup_dir.mkdir(parents=True, exist_ok=True)
        if suggested_name:
            name = validate_artifact_name(suggested_name)
            if (self.backup_dir / name).exists():
                error_msg = f"A backup named {name} already exists"
                raise ValidationError(error_msg)
        else:
            name = generate_backup_name(prefix, extension, self.backup_dir, self.clock)

        target = self.backup_dir / name
        try:
            shutil.copy2(source_path, target)
        except OSError as e:
            target.unlink(missing_ok=True)
            error_msg = f"Failed to import backup {source_path.name}: {e}"
            self.logger.exception(error_msg)
            raise BackupImportError(error_msg, e) from e

        if extension == ".sql" and not looks_like_sql_dump(target):
            target.unlink(missing_ok=True)
            error_msg = (
                f"Imported file {source_path.name} does not look like an SQL dump "
                f"(none of {', '.join(SQL_SANITY_MARKERS)} found)"
            )
            self.logger.error(error_msg)
            raise SafetyCheckError(error_msg)

        self.logger.info(f"Backup imported: {source_path.name} -> {name}")
        return name
