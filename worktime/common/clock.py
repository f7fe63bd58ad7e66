"""Injectable clock.

Workflows never call ``datetime.now()`` themselves; they receive a ``Clock``
so that approval timestamps, default balance years, and current-schedule
resolution are reproducible in tests.
"""

from __future__ import annotations

from datetime import date, datetime, timezone


class Clock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    """Clock frozen at a given instant."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant


_system_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency: the clock used by workflow operations."""
    return _system_clock
