"""Lock management for operations that touch the live database or the catalog."""

import fcntl
import logging
import os
import threading
import types
from pathlib import Path
from typing import IO

from pgvault.exceptions import LockAlreadyTakenError


class LockManager:
    """Serializes backup operations within a process and across processes.

    Threads of the same process queue on a re-entrant lock, so a restore may
    take its own pre-restore backup while holding the lock. Other processes
    are kept out with an exclusive ``flock`` on ``lock_file`` and fail
    immediately with ``LockAlreadyTakenError``.
    """

    def __init__(
        self,
        lock_file: Path,
        logger: logging.Logger,
        timeout: float | None = None,
    ) -> None:
        """Initialize the LockManager.

        Args:
            lock_file: Path to the lock file
            logger: Logger instance for logging operations
            timeout: Seconds a thread waits for the in-process lock,
                ``None`` waits forever

        """
        self.lock_file = lock_file
        self.logger = logger
        self.timeout = timeout
        self._thread_lock = threading.RLock()
        self._depth = 0
        self._handle: IO[str] | None = None

    def __enter__(self) -> "LockManager":
        """Context manager entry point."""
        self.create_lock()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Context manager exit point."""
        self.release_lock()

    @property
    def is_locked(self) -> bool:
        """Whether this manager currently holds the lock."""
        return self._depth > 0

    def create_lock(self) -> None:
        """Acquire the lock.

        Raises:
            LockAlreadyTakenError: If the in-process lock could not be acquired
                within the timeout, or another process holds the lock file

        """
        acquired = self._thread_lock.acquire(
            timeout=-1 if self.timeout is None else self.timeout,
        )
        if not acquired:
            error_message = (
                f"Timed out after {self.timeout} seconds waiting for lock {self.lock_file}."
            )
            self.logger.error(error_message)
            raise LockAlreadyTakenError(error_message)

        if self._depth == 0:
            try:
                self._acquire_file_lock()
            except BaseException:
                self._thread_lock.release()
                raise
        self._depth += 1

    def _acquire_file_lock(self) -> None:
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        handle = self.lock_file.open("a+")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            handle.close()
            self.logger.error("Lock file is held. Another instance may be running.")
            error_message = f"Lock file {self.lock_file} is held by another process."
            raise LockAlreadyTakenError(error_message) from e

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle
        self.logger.debug(f"Lock acquired: {self.lock_file}")

    def release_lock(self) -> None:
        """Release the lock."""
        if self._depth == 0:
            self.logger.warning("Lock is not held when attempting to release.")
            return

        self._depth -= 1
        if self._depth == 0 and self._handle is not None:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
            self._handle.close()
            self._handle = None
            self.logger.debug(f"Lock released: {self.lock_file}")
        self._thread_lock.release()
