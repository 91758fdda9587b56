"""Restoring the database from backup artifacts.

WARNING: a restore first terminates every other session connected to the
target database (see ``ConnectionDrainer``). This cannot be undone, and a
failed restore does not roll back the terminated sessions or the pre-restore
backup. Plain dumps run in a single transaction; pg_restore keeps whatever it
applied before the failure.
"""

import logging
import tempfile
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pgvault.backup.catalog import BackupCatalog
from pgvault.backup.config_manager import DatabaseConfig
from pgvault.backup.creator import BackupCreator
from pgvault.backup.exceptions import (
    BackupCreationError,
    ProcessFailedError,
    RestoreError,
    ValidationError,
)
from pgvault.backup.naming import ArtifactFormat, ArtifactType, classify_format
from pgvault.backup.process_runner import ProcessRunner
from pgvault.backup.sql_filter import (
    DATA_STATEMENT_PATTERN,
    SCHEMA_STATEMENT_PATTERN,
    build_object_filter,
    filter_dump,
    validate_object_names,
)
from pgvault.logging import get_logger

TERMINATE_CONNECTIONS_SQL = (
    "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
    "WHERE datname = :'dbname' AND pid <> pg_backend_pid();\n"
)

DIRECTORY_DUMP_MARKER = "toc.dat"


class RestoreStrategy(Enum):
    """How the artifact is fed to the restore client."""

    FULL = "full"
    SCHEMA_ONLY = "schema_only"
    DATA_ONLY = "data_only"
    FILTERED = "filtered"


@dataclass
class RestoreOptions:
    """One restore request. Never persisted."""

    create_backup_first: bool = False
    only_schema: bool = False
    only_data: bool = False
    schemas: list[str] = field(default_factory=list)
    tables: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate schema and table names."""
        self.schemas = validate_object_names(self.schemas, "schema")
        self.tables = validate_object_names(self.tables, "table")


def select_strategy(options: RestoreOptions) -> RestoreStrategy:
    """Pick exactly one strategy; schema-only wins over data-only."""
    if options.only_schema:
        return RestoreStrategy.SCHEMA_ONLY
    if options.only_data:
        return RestoreStrategy.DATA_ONLY
    if options.schemas or options.tables:
        return RestoreStrategy.FILTERED
    return RestoreStrategy.FULL


def pg_restore_scope(options: RestoreOptions) -> tuple[list[str], list[str]]:
    """Translate schema and table names into pg_restore ``--schema``/``--table`` values.

    pg_restore matches ``--table`` against bare table names and, when both
    flags are given, restores only tables that match a ``--table`` name inside
    one of the ``--schema`` schemas. A qualified table therefore becomes its
    bare name plus its schema, and only combinations that this intersection
    can express exactly are accepted.

    Raises:
        ValidationError: If qualified tables span several schemas, are mixed
            with unqualified tables, or conflict with the requested schemas

    """
    qualifiers = {table.partition(".")[0] for table in options.tables if "." in table}
    bare_tables = [table.rpartition(".")[2] for table in options.tables]
    if not qualifiers:
        return options.schemas, bare_tables

    if len(qualifiers) > 1:
        error_msg = (
            f"Tables from different schemas ({', '.join(sorted(qualifiers))}) cannot "
            f"be restored together from an archive; restore them one schema at a time"
        )
        raise ValidationError(error_msg)
    (schema,) = qualifiers
    if len(bare_tables) != sum(1 for table in options.tables if "." in table):
        error_msg = (
            "Qualified and unqualified table names cannot be combined "
            "for an archive restore"
        )
        raise ValidationError(error_msg)
    if options.schemas and set(options.schemas) != {schema}:
        error_msg = (
            f"Table schema '{schema}' conflicts with the requested schemas "
            f"({', '.join(options.schemas)})"
        )
        raise ValidationError(error_msg)
    return [schema], bare_tables


class ConnectionDrainer:
    """Terminates all other sessions on the target database."""

    def __init__(
        self,
        database: DatabaseConfig,
        runner: ProcessRunner,
        psql_path: str = "psql",
        logger: logging.Logger | None = None,
    ) -> None:
        self.database = database
        self.runner = runner
        self.psql_path = psql_path
        self.logger = logger or get_logger(__name__)

    def drain(self) -> int:
        """Terminate the sessions and return how many were terminated."""
        # Variables are only interpolated for SQL read from stdin, not with -c
        cmd = [
            self.psql_path,
            *self.database.connection_args(),
            "-X",
            "-q",
            "-t",
            "-A",
            "-v",
            f"dbname={self.database.name}",
        ]
        self.logger.warning(
            f"Terminating all other connections to database '{self.database.name}'",
        )
        result = self.runner.run(cmd, input_text=TERMINATE_CONNECTIONS_SQL)
        terminated = sum(1 for line in result.stdout.splitlines() if line.strip() == "t")
        self.logger.info(f"Terminated {terminated} connection(s)")
        return terminated


class RestoreEngine:
    """Restores artifacts with psql (plain dumps) or pg_restore (archives)."""

    def __init__(  # noqa: PLR0913
        self,
        catalog: BackupCatalog,
        creator: BackupCreator,
        drainer: ConnectionDrainer,
        runner: ProcessRunner,
        database: DatabaseConfig,
        psql_path: str = "psql",
        pg_restore_path: str = "pg_restore",
        drain_connections: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the restore engine.

        Args:
            catalog: Catalog used to resolve artifact names
            creator: Creator used for the optional pre-restore backup
            drainer: Terminates other sessions before restoring
            runner: Process runner used to execute psql and pg_restore
            database: Connection parameters of the target database
            psql_path: psql executable
            pg_restore_path: pg_restore executable
            drain_connections: Terminate other sessions before each restore
            logger: Logger instance for logging operations

        """
        self.catalog = catalog
        self.creator = creator
        self.drainer = drainer
        self.runner = runner
        self.database = database
        self.psql_path = psql_path
        self.pg_restore_path = pg_restore_path
        self.drain_connections = drain_connections
        self.logger = logger or get_logger(__name__)

    def restore(self, name: str, options: RestoreOptions | None = None) -> bool:
        """Restore the database from the named artifact.

        Returns:
            True on success

        Raises:
            BackupNotFoundError: If the artifact does not exist
            ValidationError: If the artifact format cannot be restored
            RestoreError: If the pre-restore backup or the restore fails

        """
        options = options or RestoreOptions()
        path = self.catalog.get_path(name)
        artifact_format = classify_format(name)
        if artifact_format is ArtifactFormat.UNKNOWN:
            error_msg = f"Cannot restore backup with unknown format: {name}"
            raise ValidationError(error_msg)

        if options.only_schema and options.only_data:
            self.logger.warning(
                "Both only_schema and only_data requested; restoring schema only",
            )
        strategy = select_strategy(options)
        if strategy is RestoreStrategy.FILTERED and artifact_format in (
            ArtifactFormat.CUSTOM,
            ArtifactFormat.TAR,
            ArtifactFormat.DIRECTORY,
        ):
            # Reject scopes pg_restore cannot express before any side effect
            pg_restore_scope(options)

        if options.create_backup_first:
            try:
                pre_restore_name = self.creator.create(
                    manual=False,
                    custom_prefix=ArtifactType.PRE_RESTORE.value,
                )
            except BackupCreationError as e:
                error_msg = f"Failed to restore from backup {name}: pre-restore backup failed"
                self.logger.exception(error_msg)
                raise RestoreError(error_msg, e) from e
            self.logger.info(f"Pre-restore backup created: {pre_restore_name}")

        self.logger.info(
            f"Restoring database from backup: {name} (strategy: {strategy.value})",
        )
        try:
            with tempfile.TemporaryDirectory(prefix="pgvault-restore-") as work_dir:
                self._restore_path(
                    path,
                    artifact_format,
                    options,
                    strategy,
                    Path(work_dir),
                )
        except (ProcessFailedError, OSError, zipfile.BadZipFile) as e:
            error_msg = f"Failed to restore from backup {name}: {e}"
            self.logger.exception(error_msg)
            raise RestoreError(error_msg, e) from e

        self.logger.info(f"Database restored successfully from: {name}")
        return True

    def _restore_path(
        self,
        path: Path,
        artifact_format: ArtifactFormat,
        options: RestoreOptions,
        strategy: RestoreStrategy,
        work_dir: Path,
    ) -> None:
        if artifact_format is ArtifactFormat.PLAIN:
            input_path = self._prepare_plain_input(path, options, strategy, work_dir)
            self._run_restore(self.build_psql_command(input_path))
        elif artifact_format in (ArtifactFormat.CUSTOM, ArtifactFormat.TAR):
            self._run_restore(self.build_pg_restore_command(path, options, strategy))
        elif artifact_format is ArtifactFormat.DIRECTORY:
            dump_dir = self._extract(path, work_dir / "directory")
            self._run_restore(
                self.build_pg_restore_command(
                    self._find_directory_dump(dump_dir) or dump_dir,
                    options,
                    strategy,
                    directory=True,
                ),
            )
        elif artifact_format is ArtifactFormat.COMPRESSED:
            self._restore_compressed(path, options, strategy, work_dir)
        else:
            error_msg = f"Unsupported backup format: {artifact_format.value}"
            raise RestoreError(error_msg)

    def _run_restore(self, cmd: list[str]) -> None:
        # Drain as late as possible, after any filtering and extraction
        if self.drain_connections:
            self.drainer.drain()
        self.runner.run(cmd)

    def _prepare_plain_input(
        self,
        path: Path,
        options: RestoreOptions,
        strategy: RestoreStrategy,
        work_dir: Path,
    ) -> Path:
        """Return the file to feed to psql, filtering into ``work_dir`` if needed."""
        if strategy is RestoreStrategy.SCHEMA_ONLY:
            pattern = SCHEMA_STATEMENT_PATTERN
        elif strategy is RestoreStrategy.DATA_ONLY:
            pattern = DATA_STATEMENT_PATTERN
        elif strategy is RestoreStrategy.FILTERED:
            object_filter = build_object_filter(options.schemas, options.tables)
            if object_filter is None:
                self.logger.warning("No filter could be built; restoring the whole file")
                return path
            pattern = object_filter
        else:
            return path

        filtered = work_dir / f"filtered-{path.name}"
        kept = filter_dump(path, filtered, pattern)
        self.logger.info(
            f"Filtered {path.name} for {strategy.value} restore: {kept} statement(s) kept",
        )
        return filtered

    def _restore_compressed(
        self,
        path: Path,
        options: RestoreOptions,
        strategy: RestoreStrategy,
        work_dir: Path,
    ) -> None:
        """Restore a zip archive holding a directory dump or a single dump file."""
        extracted = self._extract(path, work_dir / "archive")
        dump_dir = self._find_directory_dump(extracted)
        if dump_dir is not None:
            self._run_restore(
                self.build_pg_restore_command(dump_dir, options, strategy, directory=True),
            )
            return

        members = [
            member
            for member in extracted.rglob("*")
            if member.is_file()
            and classify_format(member.name)
            in (ArtifactFormat.PLAIN, ArtifactFormat.CUSTOM, ArtifactFormat.TAR)
        ]
        if len(members) != 1:
            error_msg = (
                f"Archive {path.name} must contain a directory dump or exactly one "
                f"dump file, found {len(members)}"
            )
            raise RestoreError(error_msg)

        member = members[0]
        self.logger.info(f"Restoring {member.name} from archive {path.name}")
        self._restore_path(member, classify_format(member.name), options, strategy, work_dir)

    @staticmethod
    def _extract(archive: Path, destination: Path) -> Path:
        destination.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(destination)
        return destination

    @staticmethod
    def _find_directory_dump(root: Path) -> Path | None:
        """Locate the directory holding ``toc.dat`` at the root or one level down."""
        if (root / DIRECTORY_DUMP_MARKER).is_file():
            return root
        for child in root.iterdir():
            if child.is_dir() and (child / DIRECTORY_DUMP_MARKER).is_file():
                return child
        return None

    def build_psql_command(self, input_path: Path) -> list[str]:
        """psql command feeding a plain SQL file to the target database.

        The file runs as one transaction that stops at the first error, so a
        failing statement makes psql exit non-zero and nothing is applied.
        """
        return [
            self.psql_path,
            *self.database.connection_args(),
            "-X",
            "-v",
            "ON_ERROR_STOP=1",
            "--single-transaction",
            "-f",
            str(input_path),
        ]

    def build_pg_restore_command(
        self,
        source: Path,
        options: RestoreOptions,
        strategy: RestoreStrategy,
        directory: bool = False,
    ) -> list[str]:
        """pg_restore command using the native scope flags."""
        cmd = [self.pg_restore_path, *self.database.connection_args()]
        if directory:
            cmd.extend(["-F", "d"])

        if strategy is RestoreStrategy.SCHEMA_ONLY:
            cmd.append("--schema-only")
        elif strategy is RestoreStrategy.DATA_ONLY:
            cmd.append("--data-only")
        elif strategy is RestoreStrategy.FILTERED:
            schemas, tables = pg_restore_scope(options)
            cmd.extend(f"--schema={schema}" for schema in schemas)
            cmd.extend(f"--table={table}" for table in tables)

        cmd.append(str(source))
        return cmd
