"""Timer engine.

Owns the single running time entry. Every operation runs inside one
re-entrant lock per engine, so a ``start`` racing a ``stop`` can never leave
two entries open.
"""

import logging
import threading
from datetime import datetime, timedelta

from stonetrack.clock import Clock, SystemClock
from stonetrack.errors import NoActiveTimerError, NotConfiguredError
from stonetrack.tracking.storage import EntryStore
from stonetrack.tracking.types import EntrySource, Project, TimeEntry

logger = logging.getLogger(__name__)


class TimerEngine:
    """Start, stop and switch the running timer.

    The engine keeps a reference to the active entry and its project. After
    a system sleep the entry is closed but stays referenced ("suspended")
    until the idle reconciler decides whether the sleep counts.

    Example:
        engine = TimerEngine(clock=SystemClock())
        engine.configure(store)
        engine.start(project)
        engine.switch_to(other_project)
        engine.stop()
    """

    def __init__(self, store: EntryStore | None = None, clock: Clock | None = None) -> None:
        """Initialize the engine.

        Args:
            store: Entry store. May be attached later with ``configure``.
            clock: Source of the current instant.
        """
        self._store = store
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()

        self._active_entry: TimeEntry | None = None
        self._active_project: Project | None = None
        self._suspended = False

    def configure(self, store: EntryStore) -> TimeEntry | None:
        """Attach a store and reinstate any entry left running.

        Returns:
            The restored active entry, if any.
        """
        with self._lock:
            self._store = store
            return self.restore_active()

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def active_entry(self) -> TimeEntry | None:
        return self._active_entry

    @property
    def active_project(self) -> Project | None:
        return self._active_project

    @property
    def is_tracking(self) -> bool:
        """True while an entry is referenced, including a suspended one."""
        return self._active_entry is not None

    @property
    def is_suspended(self) -> bool:
        return self._suspended

    def current_duration(self) -> float:
        """Seconds tracked on the active entry so far."""
        entry = self._active_entry
        if entry is None:
            return 0.0
        return entry.duration(self._clock.now())

    def _require_store(self) -> EntryStore:
        if self._store is None:
            raise NotConfiguredError()
        return self._store

    def _clear_active(self) -> None:
        self._active_entry = None
        self._active_project = None
        self._suspended = False

    def _open_entry(self, store: EntryStore, project: Project, started_at: datetime) -> TimeEntry:
        """Insert and commit a new running entry, rolling back on failure."""
        entry = TimeEntry(
            started_at=started_at,
            source=EntrySource.AUTOMATIC,
            project_id=project.id,
        )
        store.insert(entry)
        try:
            store.save()
        except Exception:
            store.delete(entry)
            raise

        self._active_entry = entry
        self._active_project = project
        self._suspended = False
        return entry

    def start(self, project: Project) -> TimeEntry:
        """Start tracking a project, stopping any running entry first.

        Args:
            project: The project to track.

        Returns:
            The new running entry.

        Raises:
            NotConfiguredError: If no store is attached.
            StoreError: If the store fails to commit.
        """
        with self._lock:
            store = self._require_store()
            if self._active_entry is not None:
                self.stop()

            entry = self._open_entry(store, project, self._clock.now())
            logger.info(f"Started timer for '{project.name}' ({entry.id})")
            return entry

    def stop(self, require_active: bool = False) -> TimeEntry | None:
        """Stop the running entry.

        Stopping twice is harmless: the second call finds nothing active and
        the entry's end instant is left untouched.

        Args:
            require_active: Raise instead of returning None when nothing runs.

        Returns:
            The stopped entry, or None if nothing was running.

        Raises:
            NoActiveTimerError: If ``require_active`` and no timer is running.
            NotConfiguredError: If no store is attached.
            StoreError: If the store fails to commit.
        """
        with self._lock:
            store = self._require_store()
            entry = self._active_entry
            if entry is None:
                if require_active:
                    raise NoActiveTimerError()
                return None

            previous_end = entry.ended_at
            entry.stop(self._clock.now())
            try:
                store.save()
            except Exception:
                entry.ended_at = previous_end
                raise

            self._clear_active()
            logger.info(f"Stopped timer {entry.id} after {entry.duration(self._clock.now()):.0f}s")
            return entry

    def switch_to(self, project: Project) -> TimeEntry:
        """Stop the running entry and start a new one.

        Switching to the project already being tracked still closes the
        current entry and opens a fresh one.
        """
        with self._lock:
            self.stop()
            return self.start(project)

    def restore_active(self) -> TimeEntry | None:
        """Reinstate the entry left running by a previous process.

        If the store holds more than one running entry, all but the newest
        are closed at the start of the next newer one.

        Returns:
            The restored entry, or None.
        """
        with self._lock:
            store = self._require_store()
            running = store.fetch(
                TimeEntry,
                predicate=lambda e: e.is_running,
                sort_key=lambda e: e.started_at,
                reverse=True,
            )

            if len(running) > 1:
                logger.warning(f"Found {len(running)} running entries, closing all but the newest")
                for newer, older in zip(running, running[1:]):
                    older.ended_at = newer.started_at
                store.save()

            self._clear_active()
            if not running:
                return None

            entry = running[0]
            self._active_entry = entry
            self._active_project = store.get(Project, entry.project_id)
            logger.info(f"Restored running entry {entry.id}")
            return entry

    def suspend(self, at: datetime | None = None) -> TimeEntry | None:
        """Close the running entry because the system is going to sleep.

        The entry stays referenced so it can be reopened on wake.

        Args:
            at: When the sleep began, if it was noticed only after waking.
                Defaults to now; never earlier than the entry's start.

        Returns:
            The suspended entry, or None if nothing was running.
        """
        with self._lock:
            store = self._require_store()
            entry = self._active_entry
            if entry is None or self._suspended:
                return None

            ended_at = self._clock.now() if at is None else max(at, entry.started_at)
            entry.stop(ended_at)
            try:
                store.save()
            except Exception:
                entry.ended_at = None
                raise

            self._suspended = True
            logger.info(f"Suspended timer {entry.id} for system sleep")
            return entry

    def resume(self) -> TimeEntry | None:
        """Reopen the suspended entry so the sleep counts as tracked.

        This is the only path that clears an end instant once it is set.

        Returns:
            The reopened entry, or None if nothing was suspended.
        """
        with self._lock:
            store = self._require_store()
            entry = self._active_entry
            if entry is None or not self._suspended:
                return None

            others_running = store.fetch(
                TimeEntry, predicate=lambda e: e.is_running and e.id != entry.id
            )
            if others_running:
                logger.warning(f"Not reopening {entry.id}: another entry is running")
                self._clear_active()
                return None

            previous_end = entry.ended_at
            entry.ended_at = None
            try:
                store.save()
            except Exception:
                entry.ended_at = previous_end
                raise

            self._suspended = False
            logger.info(f"Resumed timer {entry.id} after sleep")
            return entry

    def truncate_idle(
        self,
        entry_id: str,
        idle_seconds: float,
        resume: bool = True,
    ) -> TimeEntry | None:
        """Cut an idle window off the end of the active entry.

        The entry ends at ``now - idle_seconds``, but never later than an end
        it already has and never before its own start. When ``resume`` is set
        and the entry has a project, a new entry for that project starts now.

        Args:
            entry_id: The entry the idle window was detected on.
            idle_seconds: Length of the idle window.
            resume: Continue tracking the same project afterwards.

        Returns:
            The continuation entry if one was started, otherwise None. Also
            None when ``entry_id`` is no longer the active entry.
        """
        with self._lock:
            store = self._require_store()
            entry = self._active_entry
            if entry is None or entry.id != entry_id:
                logger.debug(f"Idle discard for {entry_id} ignored: entry is no longer active")
                return None

            now = self._clock.now()
            new_end = now - timedelta(seconds=max(0.0, idle_seconds))
            if entry.ended_at is not None:
                new_end = min(new_end, entry.ended_at)
            new_end = max(new_end, entry.started_at)

            previous_end = entry.ended_at
            entry.ended_at = new_end
            try:
                store.save()
            except Exception:
                entry.ended_at = previous_end
                raise

            project = self._active_project
            self._clear_active()
            logger.info(f"Discarded {idle_seconds:.0f}s of idle time from {entry.id}")

            if resume and project is not None:
                return self._open_entry(store, project, now)
            return None

    def forget(self, entry_id: str) -> None:
        """Drop the active reference if it points at ``entry_id``.

        Used after a manual edit stopped or deleted the running entry.
        """
        with self._lock:
            if self._active_entry is not None and self._active_entry.id == entry_id:
                self._clear_active()
