"""
Clock -- Injectable source of "now" for approval timing.

Responsibility:
    Supplies the instant stamped on requests, history entries, decisions
    and expiry deadlines.  Services never call ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain.  SystemClock is the only place wall-clock time enters.

Invariants enforced:
    - ``now()`` is always timezone-aware UTC.
    - DeterministicClock only moves when a test moves it.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Noon, so a few hours either side stays on the same calendar day.
DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of the current instant."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock that stands still until moved.

    Expiry windows are expressed in hours, so ``advance`` takes either
    seconds or hours (or both) and adds exactly what it is given.
    """

    def __init__(self, start: datetime | None = None):
        self._current = _as_utc(start or DEFAULT_TEST_EPOCH)

    def now(self) -> datetime:
        return self._current

    def set_time(self, instant: datetime) -> None:
        """Jump to ``instant`` (may move backwards)."""
        self._current = _as_utc(instant)

    def advance(self, seconds: float = 0, *, hours: float = 0) -> datetime:
        """Move forward and return the new instant."""
        step = timedelta(seconds=seconds, hours=hours)
        if step < timedelta(0):
            raise ValueError("DeterministicClock.advance cannot move backwards")
        self._current += step
        return self._current


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
