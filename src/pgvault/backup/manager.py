"""Facade over the backup components, used by the CLI and by web handlers.

Operations that write to the backup directory or touch the live database
(create, restore, delete, clean, import) run under one ``LockManager`` keyed
by database name, so a restore cannot terminate the connection of a backup
that is still dumping.
"""

import logging
from pathlib import Path

from pgvault.backup.catalog import ArtifactFilter, BackupArtifact, BackupCatalog
from pgvault.backup.config_manager import DatabaseConfig, VaultConfig
from pgvault.backup.creator import BackupCreator, DumpOptions
from pgvault.backup.importer import BackupImporter
from pgvault.backup.metadata import ArtifactMetadata, MetadataExtractor
from pgvault.backup.naming import ArtifactType
from pgvault.backup.process_runner import ProcessRunner
from pgvault.backup.restore_engine import ConnectionDrainer, RestoreEngine, RestoreOptions
from pgvault.backup.retention import RetentionPolicy
from pgvault.backup.scheduler import BackupScheduler, SchedulerStatus
from pgvault.locking import LockManager
from pgvault.logging import get_logger


class BackupManager:
    """Creates, lists, restores, imports and prunes backups of one database."""

    def __init__(
        self,
        config: VaultConfig,
        database: DatabaseConfig | None = None,
        logger: logging.Logger | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        """Initialize the manager and all components.

        Args:
            config: Validated pgvault configuration
            database: Connection parameters; read from the environment
                (and ``config.env_file``) when omitted
            logger: Logger instance for logging operations
            runner: Process runner, built from the configuration when omitted

        Raises:
            MissingEnvVariableError: If database parameters are missing
            CatalogError: If the backup directory cannot be created

        """
        self.config = config
        self.logger = logger or get_logger(__name__)
        self.database = database or DatabaseConfig.from_environment(config.env_file)

        self.runner = runner or ProcessRunner(
            logger=self.logger,
            env=self.database.process_env(),
            timeout=config.command_timeout,
        )
        self.catalog = BackupCatalog(config.backup_dir, self.logger)
        self.catalog.ensure_backup_dir()
        if config.upload_dir is not None:
            config.upload_dir.mkdir(parents=True, exist_ok=True)

        self.metadata = MetadataExtractor(
            self.catalog,
            max_file_size=config.metadata_max_file_size,
            read_limit=config.metadata_read_limit,
            logger=self.logger,
        )
        self.creator = BackupCreator(
            backup_dir=config.backup_dir,
            database=self.database,
            runner=self.runner,
            pg_dump_path=config.pg_dump_path,
            default_format=config.default_format,
            logger=self.logger,
        )
        self.restore_engine = RestoreEngine(
            catalog=self.catalog,
            creator=self.creator,
            drainer=ConnectionDrainer(
                self.database,
                self.runner,
                psql_path=config.psql_path,
                logger=self.logger,
            ),
            runner=self.runner,
            database=self.database,
            psql_path=config.psql_path,
            pg_restore_path=config.pg_restore_path,
            drain_connections=config.drain_connections,
            logger=self.logger,
        )
        self.retention = RetentionPolicy(self.catalog, self.logger)
        self.importer = BackupImporter(config.backup_dir, self.logger)

        lock_dir = config.lock_dir or config.backup_dir
        self.lock_manager = LockManager(
            lock_file=lock_dir / f"pgvault_{self.database.name}.lock",
            logger=self.logger,
            timeout=config.lock_timeout,
        )
        self.scheduler = BackupScheduler(
            create_backup=self.create_backup,
            clean_backups=self.clean_old_backups,
            logger=self.logger,
            keep_count=config.scheduled_keep_count,
        )

        self.logger.info(
            f"Backup manager configured for database '{self.database.name}' "
            f"on {self.database.host}:{self.database.port}, storing in {config.backup_dir}",
        )

    def list_backups(self, artifact_filter: ArtifactFilter | None = None) -> list[BackupArtifact]:
        """List backups newest first."""
        return self.catalog.list_backups(artifact_filter)

    def create_backup(
        self,
        manual: bool = False,
        custom_prefix: str | None = None,
        options: DumpOptions | None = None,
    ) -> str:
        """Create a backup and return its name."""
        with self.lock_manager:
            return self.creator.create(manual, custom_prefix, options)

    def restore_backup(self, name: str, options: RestoreOptions | None = None) -> bool:
        """Restore the database from a backup. Terminates other connections."""
        with self.lock_manager:
            return self.restore_engine.restore(name, options)

    def delete_backup(self, name: str) -> bool:
        """Delete a backup."""
        with self.lock_manager:
            self.catalog.delete(name)
        return True

    def clean_old_backups(
        self,
        keep_count: int,
        artifact_type: ArtifactType | None = None,
    ) -> list[str]:
        """Delete all but the ``keep_count`` newest backups."""
        with self.lock_manager:
            return self.retention.clean(keep_count, artifact_type)

    def import_backup(
        self,
        source_path: Path,
        suggested_name: str | None = None,
        prefix: str = ArtifactType.IMPORTED.value,
    ) -> str:
        """Copy an uploaded file into the catalog."""
        with self.lock_manager:
            return self.importer.import_backup(source_path, suggested_name, prefix)

    def get_metadata(self, name: str) -> ArtifactMetadata:
        """Return metadata of one backup."""
        return self.metadata.get_metadata(name)

    def download_path(self, name: str) -> Path:
        """Path of an existing backup, for streaming it to a client."""
        return self.catalog.get_path(name)

    def start_schedule(self, interval_hours: float | None = None) -> None:
        """Start automatic backups (configured interval by default)."""
        self.scheduler.start(interval_hours or self.config.schedule_interval_hours)

    def stop_schedule(self) -> None:
        """Stop automatic backups."""
        self.scheduler.stop()

    def schedule_status(self) -> SchedulerStatus:
        """Return the scheduler status."""
        return self.scheduler.status()
