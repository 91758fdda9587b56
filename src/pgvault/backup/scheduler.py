"""Interval scheduler for automatic backups."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pgvault.backup.exceptions import ValidationError
from pgvault.logging import get_logger
from pgvault.utils import format_duration

SECONDS_PER_HOUR = 3600


@dataclass(frozen=True)
class SchedulerStatus:
    """Snapshot of the scheduler state."""

    running: bool
    interval_hours: float | None
    next_run_at: datetime | None
    next_check_description: str


class BackupScheduler:
    """Runs an automatic backup and a retention cleanup on a fixed period.

    The backup and cleanup callables are injected so the scheduler can be
    driven with fakes in tests. Failures of a run are logged and never stop
    later runs.
    """

    def __init__(
        self,
        create_backup: Callable[..., str],
        clean_backups: Callable[[int], list[str]],
        logger: logging.Logger | None = None,
        keep_count: int = 7,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            create_backup: Called as ``create_backup(manual=False)`` each run
            clean_backups: Called with ``keep_count`` after each backup
            logger: Logger instance for logging operations
            keep_count: Number of backups kept by the cleanup
            clock: Time source for status reporting

        """
        self.create_backup = create_backup
        self.clean_backups = clean_backups
        self.logger = logger or get_logger(__name__)
        self.keep_count = keep_count
        self.clock = clock or (lambda: datetime.now(UTC))
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._interval_hours: float | None = None
        self._next_run_at: datetime | None = None

    @property
    def running(self) -> bool:
        """Whether the scheduler thread is active."""
        return self._thread is not None

    def start(self, interval_hours: float = 24) -> None:
        """Start running backups every ``interval_hours``.

        Starting an already running scheduler is a no-op.

        Raises:
            ValidationError: If interval_hours is not positive

        """
        if interval_hours <= 0:
            error_msg = f"interval_hours must be positive, got {interval_hours}"
            raise ValidationError(error_msg)

        with self._state_lock:
            if self._thread is not None:
                self.logger.info(
                    f"Scheduled backup already running every {self._interval_hours} hours; "
                    f"ignoring start request",
                )
                return

            self._stop_event = threading.Event()
            self._interval_hours = interval_hours
            self._next_run_at = self.clock() + timedelta(hours=interval_hours)
            self._thread = threading.Thread(
                target=self._loop,
                args=(self._stop_event, interval_hours * SECONDS_PER_HOUR),
                name="pgvault-scheduler",
                daemon=True,
            )
            self._thread.start()
        self.logger.info(f"Scheduled automatic backup every {interval_hours} hours")

    def stop(self, timeout: float | None = None) -> None:
        """Cancel the schedule. A run in progress is allowed to finish."""
        with self._state_lock:
            thread = self._thread
            if thread is None:
                self.logger.info("Scheduled backup is not running")
                return
            self._stop_event.set()
            self._thread = None
            self._interval_hours = None
            self._next_run_at = None

        if thread is not threading.current_thread():
            thread.join(timeout)
        self.logger.info("Scheduled backup stopped")

    def status(self) -> SchedulerStatus:
        """Return whether the scheduler runs and when the next backup is due."""
        with self._state_lock:
            if self._thread is None or self._next_run_at is None:
                return SchedulerStatus(
                    running=False,
                    interval_hours=None,
                    next_run_at=None,
                    next_check_description="Scheduled backup is not running",
                )
            remaining = max((self._next_run_at - self.clock()).total_seconds(), 0.0)
            return SchedulerStatus(
                running=True,
                interval_hours=self._interval_hours,
                next_run_at=self._next_run_at,
                next_check_description=(
                    f"Next backup in {format_duration(remaining)} "
                    f"(every {self._interval_hours} hours)"
                ),
            )

    def run_once(self) -> None:
        """Create an automatic backup and apply the retention cleanup."""
        self.logger.info("Scheduled backup run started")
        try:
            name = self.create_backup(manual=False)
            deleted = self.clean_backups(self.keep_count)
        except Exception:
            self.logger.exception("Scheduled backup failed")
            return
        self.logger.info(
            f"Scheduled backup run finished: created {name}, removed {len(deleted)} old backup(s)",
        )

    def _loop(self, stop_event: threading.Event, interval_seconds: float) -> None:
        while not stop_event.wait(interval_seconds):
            self.run_once()
            with self._state_lock:
                if not stop_event.is_set():
                    self._next_run_at = self.clock() + timedelta(seconds=interval_seconds)
