"""Injectable clocks so SLA and sweep logic stay deterministic under test."""

from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Optional, Protocol


class Clock(Protocol):
    """Anything that can tell the current UTC time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Reads the wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Clock pinned to a fixed instant; tests advance it explicitly."""

    def __init__(self, start: Optional[datetime] = None):
        start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("FrozenClock requires a timezone-aware datetime")
        self._now = start
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("FrozenClock requires a timezone-aware datetime")
        with self._lock:
            self._now = instant

    def advance(self, **delta) -> datetime:
        """Move forward by a timedelta expressed as keyword args (hours=1, ...)."""
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now
