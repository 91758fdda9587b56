"""Tests for the logging module."""

import logging
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from pgvault.logging.logger_setup import (
    LoggerConfigError,
    LoggingConfig,
    configure_logging,
    create_logging_config,
    get_default_log_dir,
    get_logger,
    validate_log_level,
)


class TestLoggerSetup:
    """Test cases for logger setup functionality."""

    def test_validate_log_level_valid(self) -> None:
        """Test that valid log levels are accepted, case-insensitively."""
        assert validate_log_level("DEBUG") == logging.DEBUG
        assert validate_log_level("info") == logging.INFO
        assert validate_log_level("Warning") == logging.WARNING

    def test_validate_log_level_invalid(self) -> None:
        """Test that invalid log levels raise an exception."""
        with pytest.raises(LoggerConfigError, match="Invalid log level"):
            validate_log_level("LOUD")

    def test_get_default_log_dir_writable_var_log(self) -> None:
        """Test that /var/log/pgvault is used when /var/log is writable."""
        with (
            patch("pathlib.Path.exists", return_value=True),
            patch("os.access", return_value=True),
        ):
            assert get_default_log_dir() == Path("/var/log/pgvault")

    def test_get_default_log_dir_local(self) -> None:
        """Test the home directory fallback."""
        with patch("pathlib.Path.exists", return_value=False):
            assert get_default_log_dir() == Path.home() / ".local" / "log" / "pgvault"

    def test_logging_config_defaults(self) -> None:
        """Test LoggingConfig dataclass defaults."""
        config = LoggingConfig(log_name="test_logger")

        assert config.log_filename is None
        assert config.log_level == "INFO"
        assert config.log_dir is None
        assert config.max_bytes == 10 * 1024 * 1024
        assert config.backup_count == 5
        assert config.enable_console is True
        assert config.enable_file is True

    def test_create_logging_config_registers_package_logger(self) -> None:
        """Test that component loggers under 'pgvault' share the handlers."""
        config = LoggingConfig(log_name="cli", enable_file=False)
        logging_config = create_logging_config(config)

        assert logging_config["version"] == 1
        assert logging_config["disable_existing_loggers"] is False
        assert set(logging_config["loggers"]) == {"cli", "pgvault"}
        assert logging_config["loggers"]["pgvault"]["handlers"] == ["console_handler"]

    def test_create_logging_config_file_only(self) -> None:
        """Test logging configuration with file handler only."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config = LoggingConfig(
                log_name="file_logger",
                log_dir=Path(temp_dir),
                enable_console=False,
            )
            handlers = create_logging_config(config)["handlers"]

            assert "console_handler" not in handlers
            assert handlers["file_handler"]["class"] == (
                "logging.handlers.RotatingFileHandler"
            )
            assert handlers["file_handler"]["filename"] == str(
                Path(temp_dir) / "file_logger.log",
            )

    def test_create_logging_config_console_only_skips_log_dir(self) -> None:
        """Test that no log directory is created without a file handler."""
        config = LoggingConfig(
            log_name="console_logger",
            log_dir=Path("/nonexistent/never/created"),
            enable_file=False,
        )
        with patch("pathlib.Path.mkdir") as mock_mkdir:
            handlers = create_logging_config(config)["handlers"]

        mock_mkdir.assert_not_called()
        assert list(handlers) == ["console_handler"]

    def test_create_logging_config_mkdir_failure(self) -> None:
        """Test that an unwritable log directory raises LoggerConfigError."""
        config = LoggingConfig(log_name="broken", log_dir=Path("/invalid/path"))
        with (
            patch("pathlib.Path.mkdir", side_effect=PermissionError("denied")),
            pytest.raises(LoggerConfigError, match="Failed to create log directory"),
        ):
            create_logging_config(config)

    def test_formatters_include_thread_name(self) -> None:
        """Test that scheduler thread names show up in log lines."""
        config = LoggingConfig(log_name="formatter_test", enable_file=False)
        formatters = create_logging_config(config)["formatters"]

        assert "%(threadName)s" in formatters["standard"]["format"]
        assert "%(lineno)d" in formatters["detailed"]["format"]

    def test_configure_logging_with_file(self) -> None:
        """Test logging configuration with file output."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config = LoggingConfig(
                log_name="test_file_logger",
                log_dir=Path(temp_dir),
                enable_console=False,
            )
            logger = configure_logging(config)

            assert logger.name == "test_file_logger"
            log_files = list(Path(temp_dir).glob("*.log"))
            assert [f.name for f in log_files] == ["test_file_logger.log"]

    def test_configure_logging_level(self) -> None:
        """Test that the configured level is applied."""
        config = LoggingConfig(
            log_name="debug_logger",
            log_level="DEBUG",
            enable_file=False,
        )
        logger = configure_logging(config)

        assert logger.level == logging.DEBUG
        assert logging.getLogger("pgvault").level == logging.DEBUG

    def test_configure_logging_falls_back_on_error(self) -> None:
        """Test fallback to basic configuration when the file handler fails."""
        config = LoggingConfig(log_name="error_test", log_dir=Path("/invalid/path"))

        with patch("pathlib.Path.mkdir", side_effect=PermissionError("denied")):
            logger = configure_logging(config)

        assert logger.name == "error_test"

    def test_get_logger(self) -> None:
        """Test get_logger returns the named logger."""
        logger = get_logger("pgvault.tests")
        assert logger.name == "pgvault.tests"
