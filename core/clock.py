"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Single source of "now" for the tracker.

- Window filtering compares record timestamps with now_ms()
- Token freshness, job / digest TTLs and the request limiter
  compare stored datetimes with now()
- Digest records and history rows are keyed by today()

============================================================
DESIGN PRINCIPLES
============================================================
- Aware UTC datetimes everywhere
- Passed in through constructors; SystemClock is only the
  fallback when none is given
- Tests drive MockClock forward instead of sleeping

============================================================
"""

import threading
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Time source. Subclasses only provide now()."""

    @abstractmethod
    def now(self) -> datetime:
        """Current aware UTC datetime."""

    def timestamp(self) -> float:
        return self.now().timestamp()

    def now_ms(self) -> int:
        """Unix time in milliseconds (window filter unit)."""
        return int(self.timestamp() * 1000)

    def today(self) -> date:
        """UTC calendar date used as the digest date."""
        return self.now().date()


class SystemClock(ClockProtocol):
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MockClock(ClockProtocol):
    """
    Manually driven clock for tests.

    Usage:
        clock = MockClock(datetime(2026, 3, 15, 12, tzinfo=timezone.utc))
        clock.advance(hours=25)   # token now stale
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = ensure_utc(initial_time or datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """Move forward; kwargs go to timedelta (minutes, hours, days)."""
        with self._lock:
            self._time += timedelta(seconds=seconds, **kwargs)

    def set_time(self, new_time: datetime) -> None:
        with self._lock:
            self._time = ensure_utc(new_time)


# ============================================================
# CONVERSIONS
# ============================================================

def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_iso8601(dt: datetime) -> str:
    return ensure_utc(dt).isoformat()


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ensure_utc",
    "to_iso8601",
]
