"""Time sources.

Everything time-dependent takes a clock so tests can pin or advance time.
"""

from datetime import datetime, timedelta, UTC
from typing import Optional, Protocol


class Clock(Protocol):
    """Supplies the current UTC time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class ManualClock:
    """
    Clock that only moves when told to.

    Example:
        clock = ManualClock()
        clock.advance(hours=24)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 1, tzinfo=UTC)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta built from kwargs (hours=, days=, ...)."""
        self._now = self._now + timedelta(**kwargs)
        return self._now
