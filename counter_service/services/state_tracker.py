import logging
import threading

from ..core.types import ServerStatus

logger = logging.getLogger(__name__)


class SystemStateTracker:
    """
    A lightweight, non-blocking tracker for in-flight counter requests.

    In CPython, simple integer increments/decrements on the event loop thread
    are atomic with respect to other coroutines, so no explicit locking is
    required for this specific use case.
    """
    def __init__(self):
        self._active_requests = 0

    def increment(self):
        """Increments the active request counter."""
        self._active_requests += 1

    def decrement(self):
        """
        Decrements the active request counter.

        Ensures the counter does not go below zero.
        """
        self._active_requests = max(0, self._active_requests - 1)

    @property
    def active_requests_count(self) -> int:
        """Returns the current number of active requests."""
        return self._active_requests


class StatusTracker:
    """
    Process-wide holder for the primary listener's ServerStatus.

    Single writer (the lifecycle coordinator), many readers (health checks,
    request handlers). Access is guarded by a lock so readers never observe a
    torn update, and transitions may only move forward:
    starting -> running -> shutting down.
    """
    def __init__(self, initial: ServerStatus = ServerStatus.STARTING):
        self._lock = threading.Lock()
        self._status = initial

    @property
    def status(self) -> ServerStatus:
        with self._lock:
            return self._status

    def advance(self, to: ServerStatus) -> ServerStatus:
        """
        Moves to a later status and returns the previous one.

        Advancing to the current status is a no-op.

        Raises:
            ValueError: if `to` precedes the current status.
        """
        with self._lock:
            previous = self._status
            if to.order < previous.order:
                raise ValueError(f"cannot move server status from '{previous}' back to '{to}'")
            self._status = to
        if previous != to:
            logger.info(f"Server status: {previous} -> {to}")
        return previous

    def is_running(self) -> bool:
        return self.status is ServerStatus.RUNNING
