"""Operating-system idle time.

Reads how long it has been since the last keyboard or mouse input. Any
failure reads as zero idle time; callers never see an exception.
"""

import logging
import platform
import re
import subprocess
from typing import Protocol

logger = logging.getLogger(__name__)

_HID_IDLE_RE = re.compile(r'"HIDIdleTime"\s*=\s*(\d+)')


class IdleSource(Protocol):
    """Anything that can report seconds since the last user input."""

    def seconds_since_last_input(self) -> float: ...


class StaticIdleSource:
    """Reports a fixed, settable idle time."""

    def __init__(self, seconds: float = 0.0) -> None:
        self.seconds = seconds

    def seconds_since_last_input(self) -> float:
        return self.seconds


class SystemIdleSource:
    """Idle time from the HID system (macOS) or ``xprintidle`` (Linux/X11)."""

    def __init__(self, timeout: float = 2.0) -> None:
        """Initialize the source.

        Args:
            timeout: Maximum seconds to wait for the helper command.
        """
        self._timeout = timeout
        self._system = platform.system()

    def _run(self, cmd: list[str]) -> str:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=self._timeout,
            check=True,
        )
        return result.stdout

    def _macos_idle(self) -> float:
        output = self._run(["ioreg", "-c", "IOHIDSystem", "-d", "4"])
        match = _HID_IDLE_RE.search(output)
        if match is None:
            return 0.0
        # HIDIdleTime is in nanoseconds
        return int(match.group(1)) / 1_000_000_000

    def _x11_idle(self) -> float:
        # xprintidle reports milliseconds
        return int(self._run(["xprintidle"]).strip()) / 1000

    def seconds_since_last_input(self) -> float:
        try:
            if self._system == "Darwin":
                return self._macos_idle()
            if self._system == "Linux":
                return self._x11_idle()
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            logger.debug(f"Idle time query failed: {e}")
        return 0.0
