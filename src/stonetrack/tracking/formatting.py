"""Duration formatting helpers.

All formatters clamp negative input to zero so a skewed clock or a
hand-edited entry never renders as a negative duration.
"""


def _split(seconds: float) -> tuple[int, int, int]:
    total = max(0, int(seconds))
    return total // 3600, (total % 3600) // 60, total % 60


def format_duration(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS``."""
    hours, minutes, secs = _split(seconds)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_short_duration(seconds: float) -> str:
    """Format seconds as ``HH:MM``."""
    hours, minutes, _ = _split(seconds)
    return f"{hours:02d}:{minutes:02d}"


def format_compact_duration(seconds: float) -> str:
    """Format seconds as ``1h 30m`` or ``30m``."""
    hours, minutes, _ = _split(seconds)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_hours(seconds: float) -> str:
    """Format seconds as decimal hours with two places."""
    return f"{max(0.0, seconds) / 3600:.2f}"
