"""Idle detection and reconciliation.

This package provides:
- Idle events (sleep, wake, idle threshold)
- OS idle time sources
- The idle detector that polls and publishes events
- The reconciler that applies keep/discard decisions
- The tracker service that wires them to the timer engine

Example:
    from stonetrack.idle import IdleReconciler, SystemIdleSource, TrackerService

    service = TrackerService(engine, IdleReconciler(engine), SystemIdleSource())
    await service.start()
"""

from stonetrack.idle.detector import DetectorState, IdleDetector
from stonetrack.idle.events import DidWake, IdleEvent, IdleThreshold, WillSleep
from stonetrack.idle.reconciler import IdlePrompt, IdleReason, IdleReconciler
from stonetrack.idle.service import TrackerService
from stonetrack.idle.source import IdleSource, StaticIdleSource, SystemIdleSource

__all__ = [
    # Events
    "IdleEvent",
    "WillSleep",
    "DidWake",
    "IdleThreshold",
    # Sources
    "IdleSource",
    "StaticIdleSource",
    "SystemIdleSource",
    # Detector
    "DetectorState",
    "IdleDetector",
    # Reconciler
    "IdlePrompt",
    "IdleReason",
    "IdleReconciler",
    # Service
    "TrackerService",
]
