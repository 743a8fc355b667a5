"""Injectable time sources.

Every component reads "now" through a :class:`Clock` so tests can drive
schedules, backoff and retention with a :class:`ManualClock` instead of
sleeping.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current UTC time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class ManualClock:
    """Virtual clock that only moves when told to.

    Example:
        >>> clock = ManualClock(datetime(2026, 1, 5, 9, 0, tzinfo=UTC))
        >>> clock.advance(minutes=5)
        >>> clock.now().minute
        5
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 1, 1, tzinfo=UTC)
        if self._now.tzinfo is None:
            self._now = self._now.replace(tzinfo=UTC)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move the clock forward by *delta* (or ``timedelta(**kwargs)``)."""
        step = delta if delta is not None else timedelta(**kwargs)
        if step < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now = self._now + step
            return self._now

    def set(self, when: datetime) -> None:
        if when.tzinfo is None:
            when = when.replace(tzinfo=UTC)
        with self._lock:
            self._now = when


def utcnow() -> datetime:
    """Current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)
