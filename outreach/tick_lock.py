# outreach/tick_lock.py
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from outreach.logging_config import get_logger

logger = get_logger(__name__)


class TickLockManager:
    """
    Keeps queue ticks in one process from overlapping.

    A tick started while another is still running is refused rather than
    queued; the next scheduled tick picks up whatever is left.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._is_running = False
        self._current_operation = None
        self._holder_thread_id = None
        self._acquired_at: Optional[datetime] = None

    def is_locked(self) -> bool:
        with self._lock:
            return self._is_running

    def get_current_operation(self) -> Optional[str]:
        with self._lock:
            return self._current_operation if self._is_running else None

    @contextmanager
    def acquire(self, operation_name: str):
        """
        Context manager to hold the tick lock.

        Args:
            operation_name: Name of the operation acquiring the lock

        Raises:
            RuntimeError: Another tick holds the lock
        """
        with self._lock:
            if self._is_running:
                logger.warning(
                    "Tick lock busy",
                    held_by=self._current_operation,
                    requested_by=operation_name,
                )
                raise RuntimeError(f"Tick already in progress: {self._current_operation}")
            self._is_running = True
            self._current_operation = operation_name
            self._holder_thread_id = threading.get_ident()
            self._acquired_at = datetime.now()
        logger.debug("Tick lock acquired", operation=operation_name)

        try:
            yield
        finally:
            with self._lock:
                self._is_running = False
                self._current_operation = None
                self._holder_thread_id = None
                self._acquired_at = None
            logger.debug("Tick lock released", operation=operation_name)

    def get_status(self) -> dict:
        with self._lock:
            acquired_at = self._acquired_at
            return {
                "is_locked": self._is_running,
                "current_operation": self._current_operation if self._is_running else None,
                "timestamp": datetime.now().isoformat(),
                "held_by_thread": self._holder_thread_id,
                "held_for_seconds": (datetime.now() - acquired_at).total_seconds() if acquired_at else 0,
            }
