"""Idle detection.

Watches for system sleep/wake and for long stretches without user input,
and turns them into events on an ``asyncio.Queue``. The detector never
touches entries; the tracker service consumes its events.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from stonetrack.clock import Clock, SystemClock
from stonetrack.idle.events import DidWake, IdleEvent, IdleThreshold, WillSleep
from stonetrack.idle.source import IdleSource

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_IDLE_THRESHOLD = 300.0
DEFAULT_SLEEP_GAP_GRACE = 30.0


class DetectorState(str, Enum):
    """Lifecycle state of an idle detector."""

    STOPPED = "stopped"
    OBSERVING = "observing"


class IdleDetector:
    """Emits sleep, wake and idle-threshold events while a timer runs.

    Two independent triggers feed the event queue:

    - Sleep/wake notifications, delivered by a platform adapter through
      ``notify_will_sleep`` and ``notify_did_wake`` (safe to call from any
      thread).
    - A polling check every ``poll_interval`` seconds that reads the OS idle
      counter and emits ``IdleThreshold`` once it reaches
      ``idle_threshold``. The same check notices when two ticks are much
      further apart than the interval, which means the machine slept
      without a notification, and emits ``WillSleep`` dated at the earlier
      tick followed by ``DidWake`` for the gap. On platforms without a
      notification adapter this is how ``stone watch`` sees sleep.

    Every trigger is suppressed while ``is_tracking()`` is false.

    Example:
        detector = IdleDetector(SystemIdleSource(), is_tracking=lambda: engine.is_tracking)
        await detector.start_observing()
        event = await detector.events.get()
        await detector.stop_observing()
    """

    def __init__(
        self,
        idle_source: IdleSource,
        is_tracking: Callable[[], bool],
        clock: Clock | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        idle_threshold: float = DEFAULT_IDLE_THRESHOLD,
        sleep_gap_grace: float = DEFAULT_SLEEP_GAP_GRACE,
    ) -> None:
        """Initialize the detector.

        Args:
            idle_source: OS idle counter.
            is_tracking: Returns True while a timer is running.
            clock: Source of the current instant.
            poll_interval: Seconds between idle checks.
            idle_threshold: Idle seconds that trigger ``IdleThreshold``.
            sleep_gap_grace: Extra delay between checks tolerated before a
                gap is treated as sleep.
        """
        self._idle_source = idle_source
        self._is_tracking = is_tracking
        self._clock = clock or SystemClock()
        self._poll_interval = poll_interval
        self._idle_threshold = idle_threshold
        self._sleep_gap_grace = sleep_gap_grace

        self._events: asyncio.Queue[IdleEvent] = asyncio.Queue()
        self._state = DetectorState.STOPPED
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

        self._sleep_started_at: datetime | None = None
        self._last_tick: datetime | None = None

    @property
    def events(self) -> asyncio.Queue[IdleEvent]:
        """Queue the detector publishes events to."""
        return self._events

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def is_observing(self) -> bool:
        return self._state == DetectorState.OBSERVING

    @property
    def idle_threshold(self) -> float:
        return self._idle_threshold

    def _emit(self, event: IdleEvent) -> None:
        """Put an event on the queue from whatever thread we are on."""
        logger.debug(f"Idle event: {event}")
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._events.put_nowait, event)
        else:
            self._events.put_nowait(event)

    async def start_observing(self) -> None:
        """Start the polling loop and accept sleep/wake notifications."""
        if self.is_observing:
            logger.warning("Idle detector is already observing")
            return

        self._loop = asyncio.get_running_loop()
        self._state = DetectorState.OBSERVING
        self._last_tick = self._clock.now()
        self._task = asyncio.create_task(
            self._poll_loop(),
            name="idle_detector_loop",
        )
        logger.info(
            f"Idle detector started (poll every {self._poll_interval:.0f}s, "
            f"threshold {self._idle_threshold:.0f}s)"
        )

    async def stop_observing(self) -> None:
        """Stop polling and release the loop handle.

        Safe to call more than once.
        """
        if not self.is_observing:
            return

        self._state = DetectorState.STOPPED

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._loop = None
        self._sleep_started_at = None
        self._last_tick = None
        logger.info("Idle detector stopped")

    def notify_will_sleep(self) -> None:
        """Record the sleep instant and emit ``WillSleep``."""
        if not self.is_observing or not self._is_tracking():
            return
        self._sleep_started_at = self._clock.now()
        self._emit(WillSleep())

    def notify_did_wake(self) -> None:
        """Emit ``DidWake`` with the time spent asleep.

        A wake without a recorded sleep is ignored.
        """
        if not self.is_observing:
            return

        started = self._sleep_started_at
        self._sleep_started_at = None
        if started is None:
            return

        now = self._clock.now()
        self._last_tick = now
        if not self._is_tracking():
            return
        self._emit(DidWake(idle_seconds=max(0.0, (now - started).total_seconds())))

    def check_idle(self, idle_seconds: float | None = None) -> IdleEvent | None:
        """Run one idle check.

        Args:
            idle_seconds: Seconds since last input; read from the idle
                source when omitted.

        Returns:
            The emitted event, or None.
        """
        now = self._clock.now()
        last_tick, self._last_tick = self._last_tick, now

        if not self._is_tracking():
            return None

        event: IdleEvent | None = None
        if last_tick is not None and self._sleep_started_at is None:
            gap = (now - last_tick).total_seconds()
            if gap > self._poll_interval + self._sleep_gap_grace:
                logger.warning(f"Idle check ran {gap:.0f}s after the previous one, likely sleep/wake")
                # Sleep started no earlier than the last tick
                self._emit(WillSleep(at=last_tick))
                event = DidWake(idle_seconds=gap)

        if event is None:
            if idle_seconds is None:
                idle_seconds = self._idle_source.seconds_since_last_input()
            if idle_seconds >= self._idle_threshold:
                event = IdleThreshold(idle_seconds=idle_seconds)

        if event is not None:
            self._emit(event)
        return event

    async def _poll_loop(self) -> None:
        """Periodic idle check."""
        while self.is_observing:
            await asyncio.sleep(self._poll_interval)
            try:
                idle_seconds = await asyncio.to_thread(self._idle_source.seconds_since_last_input)
                self.check_idle(idle_seconds)
            except Exception as e:
                logger.exception(f"Error in idle check: {e}")
