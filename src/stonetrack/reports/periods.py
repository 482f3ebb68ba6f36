"""Named report periods and calendar arithmetic.

All ranges are half-open ``[start, end)`` and built from local calendar
dates, so day boundaries sit on local midnight even across DST changes.
"""

from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum


class ReportPeriod(str, Enum):
    """Period presets offered by reports."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this-week"
    LAST_WEEK = "last-week"
    THIS_MONTH = "this-month"
    LAST_MONTH = "last-month"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return self.value.replace("-", " ").title()

    def date_range(self, now: datetime, tz: tzinfo, week_start: int = 0) -> tuple[datetime, datetime]:
        """Shorthand for ``period_range(self, now, tz, week_start)``."""
        return period_range(self, now, tz, week_start)


def local_midnight(day: date, tz: tzinfo) -> datetime:
    """Start of ``day`` in ``tz``."""
    return datetime.combine(day, time.min, tzinfo=tz)


def local_date(instant: datetime, tz: tzinfo) -> date:
    """Calendar date of ``instant`` in ``tz``."""
    return instant.astimezone(tz).date()


def start_of_week(day: date, week_start: int = 0) -> date:
    """First day of the week containing ``day``.

    Args:
        day: Any date.
        week_start: 0 for Monday through 6 for Sunday.
    """
    return day - timedelta(days=(day.weekday() - week_start) % 7)


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def add_months(day: date, months: int) -> date:
    """Shift a first-of-month date by whole months."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def period_range(
    period: ReportPeriod,
    now: datetime,
    tz: tzinfo,
    week_start: int = 0,
) -> tuple[datetime, datetime]:
    """Compute ``[start, end)`` for a preset relative to ``now``.

    ``CUSTOM`` has no bounds of its own and resolves to this week.

    Args:
        period: The preset.
        now: Current instant.
        tz: Timezone defining calendar days.
        week_start: First weekday of a week (0 = Monday).

    Returns:
        Tuple of aware datetimes in ``tz``.
    """
    today = local_date(now, tz)

    if period == ReportPeriod.TODAY:
        start, end = today, today + timedelta(days=1)
    elif period == ReportPeriod.YESTERDAY:
        start, end = today - timedelta(days=1), today
    elif period in (ReportPeriod.THIS_WEEK, ReportPeriod.CUSTOM):
        start = start_of_week(today, week_start)
        end = start + timedelta(days=7)
    elif period == ReportPeriod.LAST_WEEK:
        end = start_of_week(today, week_start)
        start = end - timedelta(days=7)
    elif period == ReportPeriod.THIS_MONTH:
        start = start_of_month(today)
        end = add_months(start, 1)
    elif period == ReportPeriod.LAST_MONTH:
        end = start_of_month(today)
        start = add_months(end, -1)
    else:
        raise ValueError(f"Unknown report period: {period}")

    return local_midnight(start, tz), local_midnight(end, tz)
