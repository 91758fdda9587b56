"""Configuration management for backup operations."""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from pgvault.backup.exceptions import ConfigurationError, MissingEnvVariableError
from pgvault.backup.naming import ArtifactFormat

REQUIRED_ENV_VARIABLES = ("PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE")

DUMPABLE_FORMATS = (
    ArtifactFormat.PLAIN,
    ArtifactFormat.CUSTOM,
    ArtifactFormat.DIRECTORY,
    ArtifactFormat.TAR,
)


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection parameters of the database being backed up."""

    host: str
    port: int
    user: str
    password: str
    name: str

    @classmethod
    def from_environment(
        cls,
        env_file: Path | None = None,
        environ: dict[str, str] | None = None,
    ) -> "DatabaseConfig":
        """Build the connection parameters from the environment.

        Values from ``env_file`` (parsed with python-dotenv) override the
        process environment.

        Args:
            env_file: Optional .env file with PG* variables
            environ: Environment mapping, defaults to ``os.environ``

        Returns:
            DatabaseConfig instance

        Raises:
            ConfigurationError: If env_file is given but does not exist
            MissingEnvVariableError: If any required variable is missing or empty

        """
        values: dict[str, str | None] = dict(os.environ if environ is None else environ)
        if env_file is not None:
            if not env_file.exists():
                error_msg = f"Environment file not found: {env_file}"
                raise ConfigurationError(error_msg)
            values.update(dotenv_values(env_file))

        missing = [key for key in REQUIRED_ENV_VARIABLES if not values.get(key)]
        if missing:
            error_msg = (
                f"Missing PostgreSQL environment variables required for backup: "
                f"{', '.join(missing)}"
            )
            raise MissingEnvVariableError(error_msg)

        try:
            port = int(str(values["PGPORT"]))
        except ValueError as e:
            error_msg = f"PGPORT must be an integer, got {values['PGPORT']!r}"
            raise ConfigurationError(error_msg) from e

        return cls(
            host=str(values["PGHOST"]),
            port=port,
            user=str(values["PGUSER"]),
            password=str(values["PGPASSWORD"]),
            name=str(values["PGDATABASE"]),
        )

    def connection_args(self) -> list[str]:
        """Connection flags shared by pg_dump, pg_restore and psql."""
        return ["-h", self.host, "-p", str(self.port), "-U", self.user, "-d", self.name]

    def process_env(self) -> dict[str, str]:
        """Child process environment carrying the password."""
        env = dict(os.environ)
        env["PGPASSWORD"] = self.password
        return env


@dataclass
class VaultConfig:
    """Configuration for backup operations."""

    # Required fields
    backup_dir: Path

    # Optional fields with defaults
    upload_dir: Path | None = None
    env_file: Path | None = None
    lock_dir: Path | None = None
    pg_dump_path: str = "pg_dump"
    pg_restore_path: str = "pg_restore"
    psql_path: str = "psql"
    command_timeout: float | None = None
    lock_timeout: float | None = None
    drain_connections: bool = True
    default_format: ArtifactFormat = ArtifactFormat.PLAIN
    schedule_interval_hours: float = 24
    scheduled_keep_count: int = 7
    metadata_max_file_size: int = 10 * 1024 * 1024
    metadata_read_limit: int = 50 * 1024
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.upload_dir is None:
            self.upload_dir = Path(tempfile.gettempdir()) / "pgvault-uploads"
        if self.lock_dir is None:
            self.lock_dir = Path(tempfile.gettempdir())
        self._validate_required_fields()
        self._validate_numbers()
        self._validate_format()

    def _validate_required_fields(self) -> None:
        """Validate that all required fields are present and non-empty."""
        for field_name in ("backup_dir", "pg_dump_path", "pg_restore_path", "psql_path"):
            value = getattr(self, field_name)
            if not value or not str(value).strip():
                error_msg = f"Required field '{field_name}' cannot be empty"
                raise ConfigurationError(error_msg)
        if self.backup_dir.exists() and not self.backup_dir.is_dir():
            error_msg = f"Backup path exists but is not a directory: {self.backup_dir}"
            raise ConfigurationError(error_msg)

    def _validate_numbers(self) -> None:
        """Validate timeouts, intervals and limits."""
        for field_name in ("command_timeout", "lock_timeout"):
            value = getattr(self, field_name)
            if value is not None and value <= 0:
                error_msg = f"'{field_name}' must be positive when set, got {value}"
                raise ConfigurationError(error_msg)
        if self.schedule_interval_hours <= 0:
            error_msg = (
                f"'schedule_interval_hours' must be positive, "
                f"got {self.schedule_interval_hours}"
            )
            raise ConfigurationError(error_msg)
        if self.scheduled_keep_count < 0:
            error_msg = (
                f"'scheduled_keep_count' cannot be negative, got {self.scheduled_keep_count}"
            )
            raise ConfigurationError(error_msg)
        if self.metadata_max_file_size <= 0 or self.metadata_read_limit <= 0:
            error_msg = "Metadata size limits must be positive"
            raise ConfigurationError(error_msg)

    def _validate_format(self) -> None:
        if self.default_format not in DUMPABLE_FORMATS:
            error_msg = f"Unsupported default format: {self.default_format.value}"
            raise ConfigurationError(error_msg)


def _optional_path(value: Any) -> Path | None:
    return Path(value) if value else None


def _optional_float(value: Any) -> float | None:
    return float(value) if value is not None else None


class ConfigManager:
    """Manages configuration loading and validation."""

    @staticmethod
    def load_config(config_path: Path) -> VaultConfig:
        """Load and validate configuration from a YAML file.

        Args:
            config_path: Path to the configuration YAML file

        Returns:
            Validated VaultConfig instance

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid

        """
        try:
            with config_path.open(encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except FileNotFoundError as e:
            error_msg = f"Configuration file not found: {config_path}"
            raise ConfigurationError(error_msg) from e
        except yaml.YAMLError as e:
            error_msg = f"Invalid configuration file format: {e}"
            raise ConfigurationError(error_msg) from e
        except OSError as e:
            error_msg = f"Error loading configuration: {e}"
            raise ConfigurationError(error_msg) from e

        if not isinstance(config_data, dict):
            error_msg = f"Configuration file must contain a mapping: {config_path}"
            raise ConfigurationError(error_msg)

        try:
            return VaultConfig(
                backup_dir=Path(config_data["backup_dir"]),
                upload_dir=_optional_path(config_data.get("upload_dir")),
                env_file=_optional_path(config_data.get("env_file")),
                lock_dir=_optional_path(config_data.get("lock_dir")),
                pg_dump_path=config_data.get("pg_dump_path", "pg_dump"),
                pg_restore_path=config_data.get("pg_restore_path", "pg_restore"),
                psql_path=config_data.get("psql_path", "psql"),
                command_timeout=_optional_float(config_data.get("command_timeout")),
                lock_timeout=_optional_float(config_data.get("lock_timeout")),
                drain_connections=bool(config_data.get("drain_connections", True)),
                default_format=ArtifactFormat(config_data.get("default_format", "plain")),
                schedule_interval_hours=float(
                    config_data.get("schedule_interval_hours", 24),
                ),
                scheduled_keep_count=int(config_data.get("scheduled_keep_count", 7)),
                metadata_max_file_size=int(
                    config_data.get("metadata_max_file_size", 10 * 1024 * 1024),
                ),
                metadata_read_limit=int(config_data.get("metadata_read_limit", 50 * 1024)),
                log_level=config_data.get("log_level", "INFO"),
            )
        except ConfigurationError:
            raise
        except KeyError as e:
            error_msg = f"Missing required configuration field: {e}"
            raise ConfigurationError(error_msg) from e
        except (TypeError, ValueError) as e:
            error_msg = f"Configuration validation failed: {e}"
            raise ConfigurationError(error_msg) from e

    @staticmethod
    def get_default_config() -> dict[str, Any]:
        """Get a template configuration dictionary."""
        return {
            "backup_dir": "/var/backups/pgvault",
            "upload_dir": "/tmp/pgvault-uploads",
            "env_file": "/etc/pgvault/.env",
            "lock_dir": None,
            "pg_dump_path": "pg_dump",
            "pg_restore_path": "pg_restore",
            "psql_path": "psql",
            "command_timeout": None,
            "lock_timeout": None,
            "drain_connections": True,
            "default_format": "plain",
            "schedule_interval_hours": 24,
            "scheduled_keep_count": 7,
            "metadata_max_file_size": 10 * 1024 * 1024,
            "metadata_read_limit": 50 * 1024,
            "log_level": "INFO",
        }
