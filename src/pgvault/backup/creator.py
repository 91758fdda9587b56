"""Creation of new backups with pg_dump."""

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from pgvault.backup.config_manager import DatabaseConfig
from pgvault.backup.exceptions import (
    BackupCreationError,
    ProcessFailedError,
    ValidationError,
)
from pgvault.backup.naming import (
    DUMP_FORMAT_FLAGS,
    ArtifactFormat,
    ArtifactType,
    generate_backup_name,
    validate_name_prefix,
)
from pgvault.backup.process_runner import ProcessRunner
from pgvault.backup.sql_filter import validate_object_names
from pgvault.logging import get_logger
from pgvault.utils import format_bytes, format_duration


@dataclass
class DumpOptions:
    """Scope and format of a dump."""

    only_schema: bool = False
    only_data: bool = False
    schemas: list[str] = field(default_factory=list)
    tables: list[str] = field(default_factory=list)
    format: ArtifactFormat = ArtifactFormat.PLAIN

    def __post_init__(self) -> None:
        """Validate the option combination."""
        if self.only_schema and self.only_data:
            error_msg = "Options 'only_schema' and 'only_data' cannot be combined"
            raise ValidationError(error_msg)
        if self.format not in DUMP_FORMAT_FLAGS:
            error_msg = f"Format '{self.format.value}' cannot be produced by pg_dump"
            raise ValidationError(error_msg)
        self.schemas = validate_object_names(self.schemas, "schema")
        self.tables = validate_object_names(self.tables, "table")


class BackupCreator:
    """Builds and runs pg_dump commands and registers the resulting artifact."""

    def __init__(
        self,
        backup_dir: Path,
        database: DatabaseConfig,
        runner: ProcessRunner,
        pg_dump_path: str = "pg_dump",
        default_format: ArtifactFormat = ArtifactFormat.PLAIN,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the creator.

        Args:
            backup_dir: Directory where backups are stored
            database: Connection parameters of the database to dump
            runner: Process runner used to execute pg_dump
            pg_dump_path: pg_dump executable
            default_format: Format used when no options are given
            logger: Logger instance for logging operations
            clock: Time source for generated names

        """
        self.backup_dir = backup_dir
        self.database = database
        self.runner = runner
        self.pg_dump_path = pg_dump_path
        self.default_format = default_format
        self.logger = logger or get_logger(__name__)
        self.clock = clock or (lambda: datetime.now(UTC))

    def build_dump_command(self, options: DumpOptions, output_path: Path) -> list[str]:
        """Build the pg_dump command line.

        Returns:
            List of command arguments for pg_dump

        """
        format_flag, _ = DUMP_FORMAT_FLAGS[options.format]
        cmd = [self.pg_dump_path, *self.database.connection_args(), "-F", format_flag]

        if options.only_schema:
            cmd.append("--schema-only")
        if options.only_data:
            cmd.append("--data-only")
        cmd.extend(f"--schema={schema}" for schema in options.schemas)
        cmd.extend(f"--table={table}" for table in options.tables)

        cmd.extend(["-f", str(output_path)])
        return cmd

    def create(
        self,
        manual: bool = False,
        custom_prefix: str | None = None,
        options: DumpOptions | None = None,
    ) -> str:
        """Create a backup and return its artifact name.

        Args:
            manual: Mark the backup as manual rather than automatic
            custom_prefix: Name prefix overriding ``manual``/``auto``
            options: Dump scope and format

        Raises:
            ValidationError: If the custom prefix is not a plain name component
            BackupCreationError: If pg_dump fails or the output cannot be stored

        """
        options = options or DumpOptions(format=self.default_format)
        if custom_prefix is None:
            prefix = ArtifactType.MANUAL.value if manual else ArtifactType.AUTO.value
        else:
            prefix = validate_name_prefix(custom_prefix)
        _, extension = DUMP_FORMAT_FLAGS[options.format]

        self.backup_dir.mkdir(parents=True, exist_ok=True)
        name = generate_backup_name(prefix, extension, self.backup_dir, self.clock)
        output_path = self.backup_dir / name

        self.logger.info(f"Creating database backup: {name}")
        started = datetime.now(UTC)
        try:
            self.runner.run(self.build_dump_command(options, output_path))
            if options.format is ArtifactFormat.DIRECTORY:
                name = self._archive_directory(output_path)
            size = (self.backup_dir / name).stat().st_size
        except (ProcessFailedError, OSError) as e:
            self._remove_partial_output(output_path)
            error_msg = f"Failed to create backup {name}: {e}"
            self.logger.exception(error_msg)
            raise BackupCreationError(error_msg, e) from e

        duration = (datetime.now(UTC) - started).total_seconds()
        self.logger.info(
            f"Backup created successfully: {name} "
            f"({format_bytes(size)} in {format_duration(duration)})",
        )
        return name

    def _archive_directory(self, directory: Path) -> str:
        """Zip a directory-format dump and remove the directory."""
        archive = shutil.make_archive(str(directory), "zip", root_dir=directory)
        shutil.rmtree(directory)
        return Path(archive).name

    def _remove_partial_output(self, output_path: Path) -> None:
        try:
            if output_path.is_dir():
                shutil.rmtree(output_path)
            elif output_path.exists():
                output_path.unlink()
            archive = output_path.with_name(f"{output_path.name}.zip")
            if archive.exists():
                archive.unlink()
        except OSError:
            self.logger.warning(f"Could not remove partial backup output {output_path}")
