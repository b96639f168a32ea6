"""Observable sync status for host UI subscribers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    """Coarse state of the sync orchestrator."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    UNAUTHENTICATED = "unauthenticated"


StatusListener = Callable[[SyncStatus], None]


class StatusMonitor:
    """Holds the current SyncStatus and notifies subscribers on change.

    Usage:
        monitor = StatusMonitor()
        unsubscribe = monitor.subscribe(lambda status: print(status.value))
        monitor.set(SyncStatus.SYNCING)
        unsubscribe()
    """

    def __init__(self, initial: SyncStatus = SyncStatus.IDLE) -> None:
        self._value = initial
        self._listeners: list[StatusListener] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> SyncStatus:
        return self._value

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register ``listener`` and return a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def set(self, status: SyncStatus) -> None:
        """Update the status; listeners run only when the value changes."""
        with self._lock:
            if status is self._value:
                return
            previous, self._value = self._value, status
            listeners = list(self._listeners)
        logger.info("[set] status changed; from:%s;to:%s", previous.value, status.value)
        for listener in listeners:
            try:
                listener(status)
            except Exception:
                logger.error("[set] status listener failed", exc_info=True)
