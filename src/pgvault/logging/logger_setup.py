"""Logging configuration and setup utilities for pgvault.

Backups and restores are long-running and partly happen on a scheduler
thread, so log records carry the thread name and are written both to a
rotating file and to the console.
"""

import logging
import logging.config
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"
DETAILED_LOG_FORMAT = (
    "%(asctime)s %(levelname)s [%(threadName)s] %(name)s:%(lineno)d: %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LoggerConfigError(Exception):
    """Custom exception for logger configuration errors."""


@dataclass
class LoggingConfig:
    """Configuration for logging setup."""

    log_name: str
    log_filename: str | None = None
    log_level: str = "INFO"
    log_dir: Path | None = None
    max_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = True


def validate_log_level(log_level: str) -> int:
    """Validate and return the numeric log level."""
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        error_msg = f"Invalid log level: {log_level}"
        raise LoggerConfigError(error_msg)
    return numeric_level


def get_default_log_dir() -> Path:
    """Get the default log directory based on environment."""
    # Services running as root or in a container log to /var/log
    var_log_path = Path("/var/log")
    if var_log_path.exists() and os.access("/var/log", os.W_OK):
        return Path("/var/log/pgvault")
    return Path.home() / ".local" / "log" / "pgvault"


def create_logging_config(config: LoggingConfig) -> dict[str, Any]:
    """Create the ``dictConfig`` dictionary for the given settings."""
    numeric_level = validate_log_level(config.log_level)

    handlers: dict[str, dict[str, Any]] = {}

    if config.enable_file:
        log_dir = get_default_log_dir() if config.log_dir is None else config.log_dir
        log_filename = config.log_filename or f"{config.log_name}.log"
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            error_msg = f"Failed to create log directory {log_dir}: {e}"
            raise LoggerConfigError(error_msg) from e

        handlers["file_handler"] = {
            "level": numeric_level,
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(log_dir / log_filename),
            "maxBytes": config.max_bytes,
            "backupCount": config.backup_count,
            "formatter": "detailed",
            "encoding": "utf8",
        }

    if config.enable_console:
        handlers["console_handler"] = {
            "level": numeric_level,
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }

    handler_names = list(handlers.keys())

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT},
            "detailed": {"format": DETAILED_LOG_FORMAT, "datefmt": DATE_FORMAT},
        },
        "handlers": handlers,
        "loggers": {
            config.log_name: {
                "handlers": handler_names,
                "level": numeric_level,
                "propagate": False,
            },
            # Component loggers live under the package namespace
            "pgvault": {
                "handlers": handler_names,
                "level": numeric_level,
                "propagate": False,
            },
        },
    }


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """Configure logging for the application.

    Args:
        config: Logging configuration object

    Returns:
        Configured logger instance

    """
    try:
        logging.config.dictConfig(create_logging_config(config))
        logger = logging.getLogger(config.log_name)
        logger.info(
            f"Logging configured for '{config.log_name}' at level {config.log_level}",
        )
    except (LoggerConfigError, ValueError, KeyError):
        # Fall back to console logging when the file handler cannot be set up
        logging.basicConfig(
            level=logging.INFO,
            format=LOG_FORMAT,
            datefmt=DATE_FORMAT,
        )
        logger = logging.getLogger(config.log_name)
        logger.exception("Failed to configure logging. Using fallback configuration.")

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance. If not configured, uses basic configuration.

    Args:
        name: Name of the logger

    Returns:
        Logger instance

    """
    logger = logging.getLogger(name)

    parent_logger = logger.parent
    if not logger.handlers and (parent_logger is None or not parent_logger.handlers):
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=DATE_FORMAT)

    return logger
