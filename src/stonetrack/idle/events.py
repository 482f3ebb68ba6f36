"""Events emitted by the idle detector."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class WillSleep:
    """The system is about to sleep.

    ``at`` is set when the sleep is only noticed afterwards and names the
    last instant the machine was known to be awake.
    """

    at: datetime | None = None


@dataclass(frozen=True)
class DidWake:
    """The system woke up after ``idle_seconds`` asleep."""

    idle_seconds: float


@dataclass(frozen=True)
class IdleThreshold:
    """No user input for ``idle_seconds``, at or above the idle threshold."""

    idle_seconds: float


IdleEvent = WillSleep | DidWake | IdleThreshold
