"""
In-memory alert history.

Reads (API polling) far outnumber writes (one per scan), so the buffer is
guarded by a reader/writer lock rather than a plain mutex.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, List, Protocol, runtime_checkable

from fleetdock.alerts.models import Alert

DEFAULT_HISTORY_SIZE = 100


class ReadWriteLock:
    """
    Many concurrent readers or one writer.

    Waiting writers block new readers so a steady read load cannot starve
    the monitor.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@runtime_checkable
class AlertStore(Protocol):
    """Storage for raised alerts."""

    def add(self, alert: Alert) -> None: ...
    def get_all(self) -> List[Alert]: ...
    def get_recent(self, limit: int) -> List[Alert]: ...
    def acknowledge(self, alert_id: str) -> bool: ...
    def acknowledge_all(self) -> int: ...
    def unacknowledged_count(self) -> int: ...
    def clear(self) -> None: ...


class AlertHistory:
    """
    Fixed-capacity, newest-first alert buffer.

    Inserting past capacity silently drops the oldest alerts. Every read
    returns copies, so callers never observe later mutations.
    """

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._alerts: List[Alert] = []
        self._lock = ReadWriteLock()

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._alerts)

    def add(self, alert: Alert) -> None:
        with self._lock.write_locked():
            self._alerts.insert(0, alert.model_copy())
            del self._alerts[self.max_size:]

    def get_all(self) -> List[Alert]:
        with self._lock.read_locked():
            return [alert.model_copy() for alert in self._alerts]

    def get_recent(self, limit: int) -> List[Alert]:
        """Return up to ``limit`` newest alerts; ``limit <= 0`` means all."""
        with self._lock.read_locked():
            if limit <= 0 or limit > len(self._alerts):
                limit = len(self._alerts)
            return [alert.model_copy() for alert in self._alerts[:limit]]

    def acknowledge(self, alert_id: str) -> bool:
        """
        Mark one alert as acknowledged.

        Returns:
            False if no alert with that ID is in the history
        """
        with self._lock.write_locked():
            for alert in self._alerts:
                if alert.id == alert_id:
                    alert.acknowledged = True
                    return True
        return False

    def acknowledge_all(self) -> int:
        """Acknowledge every pending alert and return how many changed."""
        count = 0
        with self._lock.write_locked():
            for alert in self._alerts:
                if not alert.acknowledged:
                    alert.acknowledged = True
                    count += 1
        return count

    def unacknowledged_count(self) -> int:
        with self._lock.read_locked():
            return sum(1 for alert in self._alerts if not alert.acknowledged)

    def clear(self) -> None:
        with self._lock.write_locked():
            self._alerts = []
