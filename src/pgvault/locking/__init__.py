"""Lock management functionality for concurrent operations."""

from .lock_manager import LockAlreadyTakenError, LockManager

__all__ = ["LockAlreadyTakenError", "LockManager"]
