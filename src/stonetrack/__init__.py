"""Stone - personal time tracking with idle detection and reports."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("stonetrack")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from stonetrack.clock import Clock, ManualClock, SystemClock
from stonetrack.errors import NoActiveTimerError, NotConfiguredError, StoneError, StoreError

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "StoneError",
    "NotConfiguredError",
    "StoreError",
    "NoActiveTimerError",
]
