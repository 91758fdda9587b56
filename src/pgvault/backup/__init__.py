"""PostgreSQL backup management: catalog, creation, restore, import and retention."""

from .catalog import ArtifactFilter, BackupArtifact, BackupCatalog
from .config_manager import ConfigManager, DatabaseConfig, VaultConfig
from .creator import BackupCreator, DumpOptions
from .exceptions import (
    BackupCreationError,
    BackupError,
    BackupImportError,
    BackupNotFoundError,
    CatalogError,
    ConfigurationError,
    MissingEnvVariableError,
    ProcessFailedError,
    RestoreError,
    RetentionError,
    SafetyCheckError,
    ValidationError,
)
from .importer import BackupImporter
from .manager import BackupManager
from .metadata import ArtifactMetadata, MetadataExtractor
from .naming import ArtifactFormat, ArtifactType, Classification, classify
from .process_runner import ProcessRunner
from .restore_engine import (
    ConnectionDrainer,
    RestoreEngine,
    RestoreOptions,
    RestoreStrategy,
)
from .retention import RetentionPolicy
from .scheduler import BackupScheduler, SchedulerStatus

__all__ = [
    "ArtifactFilter",
    "ArtifactFormat",
    "ArtifactMetadata",
    "ArtifactType",
    "BackupArtifact",
    "BackupCatalog",
    "BackupCreationError",
    "BackupCreator",
    "BackupError",
    "BackupImportError",
    "BackupImporter",
    "BackupManager",
    "BackupNotFoundError",
    "BackupScheduler",
    "CatalogError",
    "Classification",
    "ConfigManager",
    "ConfigurationError",
    "ConnectionDrainer",
    "DatabaseConfig",
    "DumpOptions",
    "MetadataExtractor",
    "MissingEnvVariableError",
    "ProcessFailedError",
    "ProcessRunner",
    "RestoreEngine",
    "RestoreError",
    "RestoreOptions",
    "RestoreStrategy",
    "RetentionError",
    "RetentionPolicy",
    "SafetyCheckError",
    "SchedulerStatus",
    "ValidationError",
    "VaultConfig",
    "classify",
]
