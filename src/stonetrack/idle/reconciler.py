"""Idle reconciliation.

Once idle time is detected the user chooses: keep it (the idle window
counts as tracked) or discard it (the entry is cut short and tracking
continues from now).
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from stonetrack.tracking.engine import TimerEngine
from stonetrack.tracking.types import TimeEntry

logger = logging.getLogger(__name__)


class IdleReason(str, Enum):
    """What caused an idle prompt."""

    SLEEP = "sleep"
    INPUT = "input"


@dataclass
class IdlePrompt:
    """A pending keep/discard decision.

    Attributes:
        idle_seconds: Length of the idle window.
        reason: Sleep or missing input.
        detected_at: When the idle window was noticed.
        entry_id: Entry that was active at detection time.
        project_id: Project of that entry; discard resumes it.
    """

    idle_seconds: float
    reason: IdleReason
    detected_at: datetime
    entry_id: str
    project_id: str | None


class IdleReconciler:
    """Holds the pending idle decision and applies the user's answer.

    Discard resumes tracking whenever the prompt captured a project and the
    engine still holds the prompted entry, whether it is open or was
    suspended for sleep. That is decided from the state captured when the
    idle window was detected.
    """

    def __init__(self, engine: TimerEngine) -> None:
        self._engine = engine
        self._pending: IdlePrompt | None = None

    @property
    def pending(self) -> IdlePrompt | None:
        return self._pending

    def prompt(self, idle_seconds: float, reason: IdleReason) -> IdlePrompt | None:
        """Record idle time for the active entry.

        A repeated prompt for the same entry keeps the longer idle window.

        Returns:
            The pending prompt, or None when nothing is being tracked.
        """
        entry = self._engine.active_entry
        if entry is None:
            return None

        pending = self._pending
        if pending is not None and pending.entry_id == entry.id:
            pending.idle_seconds = max(pending.idle_seconds, idle_seconds)
            return pending

        self._pending = IdlePrompt(
            idle_seconds=idle_seconds,
            reason=reason,
            detected_at=self._engine.clock.now(),
            entry_id=entry.id,
            project_id=entry.project_id,
        )
        logger.info(f"Idle for {idle_seconds:.0f}s ({reason.value}) on entry {entry.id}")
        return self._pending

    def keep(self) -> TimeEntry | None:
        """Count the idle window as tracked.

        An open entry is left alone. An entry closed for sleep is reopened.

        Returns:
            The reopened entry, or None when nothing had to change.
        """
        pending, self._pending = self._pending, None
        active = self._engine.active_entry
        if active is None or not self._engine.is_suspended:
            return None
        if pending is not None and pending.entry_id != active.id:
            return None
        return self._engine.resume()

    def discard(self, idle_seconds: float | None = None) -> TimeEntry | None:
        """Remove the idle window from the prompted entry.

        Args:
            idle_seconds: Override the recorded idle window.

        Returns:
            The continuation entry started for the same project, or None.
            Also None (and nothing changes) when the prompted entry is no
            longer active.
        """
        pending, self._pending = self._pending, None

        if pending is None:
            active = self._engine.active_entry
            if active is None or idle_seconds is None:
                return None
            entry_id, project_id = active.id, active.project_id
        else:
            entry_id, project_id = pending.entry_id, pending.project_id
            if idle_seconds is None:
                idle_seconds = pending.idle_seconds

        return self._engine.truncate_idle(
            entry_id,
            idle_seconds,
            resume=project_id is not None,
        )
