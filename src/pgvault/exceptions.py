"""Common exceptions used across the pgvault library."""


class LockAlreadyTakenError(Exception):
    """Exception raised when a lock is already taken by another process."""
