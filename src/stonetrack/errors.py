"""Exception types raised by the tracking core."""


class StoneError(Exception):
    """Base class for all stonetrack errors."""


class NotConfiguredError(StoneError):
    """An engine was used before a store was attached."""

    def __init__(self, component: str = "TimerEngine") -> None:
        super().__init__(f"{component} is not configured with an entry store")
        self.component = component


class StoreError(StoneError):
    """The underlying entry store failed to read or commit."""


class NoActiveTimerError(StoneError):
    """Raised only where "nothing to stop" must be told apart from success."""

    def __init__(self) -> None:
        super().__init__("No active timer to stop")
