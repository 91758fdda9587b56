"""Custom exceptions for the backup module."""


class BackupError(Exception):
    """Base exception for all backup-related errors."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """Initialize the exception with message and optional original error."""
        super().__init__(message)
        self.original_error = original_error
        self.message = message


class ConfigurationError(BackupError):
    """Raised when there are configuration-related issues."""


class MissingEnvVariableError(ConfigurationError):
    """Raised when a required database environment variable is missing."""


class ValidationError(BackupError):
    """Raised when a caller supplies an invalid name, extension or option."""


class BackupNotFoundError(BackupError):
    """Raised when a referenced backup artifact does not exist."""


class CatalogError(BackupError):
    """Raised when the backup directory cannot be read or modified."""


class ProcessFailedError(BackupError):
    """Raised when an external dump/restore command fails."""

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        returncode: int | None = None,
        stderr: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize with the failed command, its exit code and stderr."""
        super().__init__(message, original_error)
        self.command = command or []
        self.returncode = returncode
        self.stderr = stderr


class BackupCreationError(BackupError):
    """Raised when a backup could not be created."""


class RestoreError(BackupError):
    """Raised when a restore operation fails."""


class RetentionError(BackupError):
    """Raised when the retention cleanup aborts on a failed deletion."""

    def __init__(
        self,
        message: str,
        deleted: list[str] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize with the names deleted before the failure."""
        super().__init__(message, original_error)
        self.deleted = deleted or []


class BackupImportError(BackupError):
    """Raised when an external backup file cannot be imported."""


class SafetyCheckError(BackupImportError):
    """Raised when an imported file fails the content sanity check."""
