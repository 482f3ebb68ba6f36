"""Tracker service.

Single owner of the event loop side of tracking: consumes detector events,
drives the timer engine and the idle reconciler, and publishes prompts for
the user interface.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from stonetrack.clock import Clock
from stonetrack.idle.detector import (
    DEFAULT_IDLE_THRESHOLD,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SLEEP_GAP_GRACE,
    IdleDetector,
)
from stonetrack.idle.events import DidWake, IdleEvent, IdleThreshold, WillSleep
from stonetrack.idle.reconciler import IdlePrompt, IdleReason, IdleReconciler
from stonetrack.idle.source import IdleSource
from stonetrack.tracking.engine import TimerEngine

logger = logging.getLogger(__name__)

DEFAULT_WAKE_ALERT_THRESHOLD = 60.0


class TrackerService:
    """Routes idle events to the engine and the reconciler.

    - ``WillSleep`` suspends the running entry.
    - ``DidWake`` asks the user when the sleep lasted longer than
      ``wake_alert_threshold``; shorter sleeps are kept silently and
      leave any pending prompt untouched.
    - ``IdleThreshold`` asks the user.

    New prompts are put on ``prompts`` for the UI to answer through
    ``reconciler.keep()`` or ``reconciler.discard()``. A platform adapter
    may forward sleep/wake notifications to ``service.detector``; without
    one, sleep is picked up from the gap between idle checks.

    Example:
        service = TrackerService(engine, IdleReconciler(engine), SystemIdleSource())
        await service.start()
        prompt = await service.prompts.get()
        service.reconciler.discard()
        await service.stop()
    """

    def __init__(
        self,
        engine: TimerEngine,
        reconciler: IdleReconciler,
        idle_source: IdleSource,
        clock: Clock | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        idle_threshold: float = DEFAULT_IDLE_THRESHOLD,
        sleep_gap_grace: float = DEFAULT_SLEEP_GAP_GRACE,
        wake_alert_threshold: float = DEFAULT_WAKE_ALERT_THRESHOLD,
        sync: Callable[[], Any] | None = None,
    ) -> None:
        """Initialize the service and its idle detector.

        Args:
            engine: Timer engine to drive.
            reconciler: Holder of pending idle decisions.
            idle_source: OS idle counter for the detector.
            clock: Source of the current instant (defaults to the engine's).
            poll_interval: Seconds between idle checks.
            idle_threshold: Idle seconds that trigger a prompt.
            sleep_gap_grace: Extra delay between checks tolerated before a
                gap is treated as sleep.
            wake_alert_threshold: Sleeps up to this many seconds are kept
                without asking.
            sync: Called before each idle check while no decision is
                pending, to pick up changes made by other processes.
        """
        self.engine = engine
        self.reconciler = reconciler
        self._wake_alert_threshold = wake_alert_threshold
        self._sync = sync

        self.detector = IdleDetector(
            idle_source,
            is_tracking=self.is_tracking,
            clock=clock or engine.clock,
            poll_interval=poll_interval,
            idle_threshold=idle_threshold,
            sleep_gap_grace=sleep_gap_grace,
        )

        self.prompts: asyncio.Queue[IdlePrompt] = asyncio.Queue()
        self.last_error: Exception | None = None

        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def is_tracking(self) -> bool:
        """Tracking check handed to the detector.

        Refreshes engine state from the store first, unless a sleep or an
        unanswered prompt is in flight.
        """
        if self._sync is not None and not self.engine.is_suspended and self.reconciler.pending is None:
            try:
                self._sync()
            except Exception as e:
                logger.error(f"Failed to refresh tracking state: {e}")
                self.last_error = e
        return self.engine.is_tracking

    def _publish(self, before: IdlePrompt | None, prompt: IdlePrompt | None) -> IdlePrompt | None:
        if prompt is not None and prompt is not before:
            self.prompts.put_nowait(prompt)
        return prompt

    def handle_event(self, event: IdleEvent) -> IdlePrompt | None:
        """Apply one detector event.

        Returns:
            The pending prompt the event produced or refreshed, if any.
        """
        before = self.reconciler.pending

        if isinstance(event, WillSleep):
            self.engine.suspend(at=event.at)
            return None

        if isinstance(event, DidWake):
            if event.idle_seconds > self._wake_alert_threshold:
                prompt = self.reconciler.prompt(event.idle_seconds, IdleReason.SLEEP)
                return self._publish(before, prompt)
            # Short sleeps count as tracked; an unanswered prompt stays pending
            self.engine.resume()
            return None

        if isinstance(event, IdleThreshold):
            prompt = self.reconciler.prompt(event.idle_seconds, IdleReason.INPUT)
            return self._publish(before, prompt)

        logger.warning(f"Ignoring unknown idle event: {event!r}")
        return None

    async def _run_loop(self) -> None:
        """Main service loop that consumes detector events."""
        logger.info("Tracker service started")

        while self._running:
            event = await self.detector.events.get()
            try:
                self.handle_event(event)
            except Exception as e:
                logger.exception(f"Error handling {event!r}: {e}")
                self.last_error = e

        logger.info("Tracker service stopped")

    async def start(self) -> None:
        """Start observing and consuming idle events."""
        if self._running:
            logger.warning("Tracker service is already running")
            return

        self._running = True
        await self.detector.start_observing()
        self._task = asyncio.create_task(
            self._run_loop(),
            name="tracker_service_loop",
        )

    async def stop(self) -> None:
        """Stop the service and release the detector.

        The detector is always stopped, even if the loop task fails.
        """
        self._running = False
        try:
            if self._task:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
                self._task = None
        finally:
            await self.detector.stop_observing()
