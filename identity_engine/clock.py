"""
Timestamp sources for the profile store.

The store stamps ``created_at_utc`` / ``updated_at_utc`` through an injected
Clock and never reads wall-clock time itself. Timestamps are persisted with
whole-second precision, so every clock here returns whole seconds in UTC.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC already.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


class Clock(Protocol):
    """Anything with a ``now()`` returning an aware UTC datetime."""

    def now(self) -> datetime:
        ...


@dataclass(frozen=True, slots=True)
class SystemClock:
    """Wall-clock time, truncated to the second."""

    def now(self) -> datetime:
        return _as_utc(datetime.now(timezone.utc))


@dataclass(frozen=True, slots=True)
class FixedClock:
    """
    Returns ``fixed_time`` on every call.

    Attributes
    ----------
    fixed_time:
        Instant to report. Naive values are taken as UTC.
    """

    fixed_time: datetime

    def now(self) -> datetime:
        return _as_utc(self.fixed_time)


class SteppingClock:
    """
    Returns ``start``, then ``start + step``, ``start + 2*step`` and so on.

    Thread-safe: concurrent callers each get a distinct instant.
    """

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)) -> None:
        self._next = _as_utc(start)
        self._step = step
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._next
            self._next = current + self._step
        return current
