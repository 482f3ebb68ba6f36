"""Clock abstraction.

Everything in the core asks a ``Clock`` for the current instant instead of
calling ``datetime.now()`` directly, so tests can drive time by hand.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Supplies the current instant as an aware datetime."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """A clock that only moves when told to.

    Example:
        clock = ManualClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))
        clock.advance(400)
    """

    def __init__(self, start: datetime | None = None) -> None:
        start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        """Move the clock forward and return the new instant."""
        self._now = self._now + timedelta(seconds=seconds)
        return self._now

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._now = instant
