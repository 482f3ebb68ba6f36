"""Report aggregation.

Turns the entries of a date range into per-project and per-day totals.
Aggregation is a pure read: entries are never modified.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo

from stonetrack.clock import Clock, SystemClock
from stonetrack.reports.periods import ReportPeriod, local_date, period_range
from stonetrack.tracking.storage import EntryStore
from stonetrack.tracking.types import Project, TimeEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectSummary:
    """Time spent on one project within a report or a day."""

    project_id: str
    name: str
    color: str
    duration: float
    percentage: float


@dataclass(frozen=True)
class DaySummary:
    """Time spent on one local calendar day."""

    date: date
    total_duration: float
    project_breakdown: list[ProjectSummary]


@dataclass(frozen=True)
class Report:
    """Result of one aggregation.

    Attributes:
        start: Inclusive range start.
        end: Exclusive range end.
        search: Text filter that was applied.
        generated_at: Instant used for running entries.
        entries: Matching entries, newest first.
        projects: Every known project by ID, for rendering.
        total_duration: Seconds across all matching entries.
        project_summaries: Per-project totals, largest first.
        daily_summaries: Per-day totals, most recent first.
    """

    start: datetime
    end: datetime
    search: str
    generated_at: datetime
    entries: list[TimeEntry] = field(default_factory=list)
    projects: dict[str, Project] = field(default_factory=dict)
    total_duration: float = 0.0
    project_summaries: list[ProjectSummary] = field(default_factory=list)
    daily_summaries: list[DaySummary] = field(default_factory=list)


def matches_search(entry: TimeEntry, project: Project | None, search: str) -> bool:
    """Case-insensitive substring match on project name or note."""
    needle = search.strip().lower()
    if not needle:
        return True
    name = project.name.lower() if project is not None else ""
    note = (entry.note or "").lower()
    return needle in name or needle in note


def summarize_projects(
    entries: Iterable[TimeEntry],
    projects: Mapping[str, Project],
    total: float,
    now: datetime,
) -> list[ProjectSummary]:
    """Group entries by project and compute shares of ``total``.

    Entries without a (known) project are left out of the grouping; they
    still count towards ``total``.
    """
    by_project: dict[str, float] = defaultdict(float)
    for entry in entries:
        if entry.project_id is None or entry.project_id not in projects:
            continue
        by_project[entry.project_id] += entry.duration(now)

    summaries = []
    for project_id, duration in by_project.items():
        project = projects[project_id]
        percentage = (duration / total) * 100 if total > 0 else 0.0
        summaries.append(
            ProjectSummary(
                project_id=project_id,
                name=project.name,
                color=project.color,
                duration=duration,
                percentage=percentage,
            )
        )
    return sorted(summaries, key=lambda s: (-s.duration, s.name.lower()))


class ReportAggregator:
    """Builds reports from the entry store.

    Example:
        aggregator = ReportAggregator(store, clock=SystemClock(), tz=ZoneInfo("Europe/Berlin"))
        report = aggregator.report_for(start, end, search="client")
    """

    def __init__(
        self,
        store: EntryStore,
        clock: Clock | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            store: Entry store to read from.
            clock: Supplies "now" for running entries.
            tz: Timezone defining calendar days (defaults to system local).
        """
        self._store = store
        self._clock = clock or SystemClock()
        self._tz = tz or datetime.now().astimezone().tzinfo

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def report_for(self, start: datetime, end: datetime, search: str = "") -> Report:
        """Aggregate entries that started in ``[start, end)``.

        Args:
            start: Inclusive range start.
            end: Exclusive range end.
            search: Optional case-insensitive filter on project name or note.

        Returns:
            A fresh report.
        """
        # Naive bounds are local times
        if start.tzinfo is None:
            start = start.replace(tzinfo=self._tz)
        if end.tzinfo is None:
            end = end.replace(tzinfo=self._tz)

        now = self._clock.now()
        projects = {p.id: p for p in self._store.fetch(Project)}

        entries = self._store.fetch(
            TimeEntry,
            predicate=lambda e: start <= e.started_at < end,
            sort_key=lambda e: e.started_at,
            reverse=True,
        )
        if search.strip():
            entries = [
                e for e in entries if matches_search(e, projects.get(e.project_id or ""), search)
            ]

        total = sum(e.duration(now) for e in entries)

        by_day: dict[date, list[TimeEntry]] = defaultdict(list)
        for entry in entries:
            by_day[local_date(entry.started_at, self._tz)].append(entry)

        daily = []
        for day, day_entries in by_day.items():
            day_total = sum(e.duration(now) for e in day_entries)
            daily.append(
                DaySummary(
                    date=day,
                    total_duration=day_total,
                    project_breakdown=summarize_projects(day_entries, projects, day_total, now),
                )
            )
        daily.sort(key=lambda d: d.date, reverse=True)

        logger.debug(f"Report {start.isoformat()}..{end.isoformat()}: {len(entries)} entries")
        return Report(
            start=start,
            end=end,
            search=search,
            generated_at=now,
            entries=entries,
            projects=projects,
            total_duration=total,
            project_summaries=summarize_projects(entries, projects, total, now),
            daily_summaries=daily,
        )


class ReportSession:
    """Report state with explicit recomputation.

    Changing the period, the custom bounds (while in custom mode) or the
    search text returns a freshly computed report.

    Example:
        session = ReportSession(aggregator, clock)
        report = session.select_period(ReportPeriod.LAST_WEEK)
        report = session.set_search("review")
    """

    def __init__(
        self,
        aggregator: ReportAggregator,
        clock: Clock | None = None,
        week_start: int = 0,
        period: ReportPeriod = ReportPeriod.THIS_WEEK,
    ) -> None:
        self._aggregator = aggregator
        self._clock = clock or SystemClock()
        self._week_start = week_start
        self._period = period
        self.search = ""

        now = self._clock.now()
        self.custom_start: datetime = now - timedelta(days=7)
        self.custom_end: datetime = now
        self.report: Report | None = None

    @property
    def period(self) -> ReportPeriod:
        return self._period

    def bounds(self) -> tuple[datetime, datetime]:
        """Current ``[start, end)``."""
        if self._period == ReportPeriod.CUSTOM:
            return self.custom_start, self.custom_end
        return period_range(self._period, self._clock.now(), self._aggregator.tz, self._week_start)

    def refresh(self) -> Report:
        """Recompute the report for the current state."""
        start, end = self.bounds()
        self.report = self._aggregator.report_for(start, end, self.search)
        return self.report

    def select_period(self, period: ReportPeriod) -> Report:
        """Switch preset. Named presets also become the custom bounds."""
        self._period = period
        if period != ReportPeriod.CUSTOM:
            self.custom_start, self.custom_end = self.bounds()
        return self.refresh()

    def set_custom_range(self, start: datetime, end: datetime) -> Report:
        """Store custom bounds.

        Returns:
            A fresh report when in custom mode, otherwise the current
            preset's report.

        Raises:
            ValueError: If ``end`` is before ``start``.
        """
        if end < start:
            raise ValueError("Custom range ends before it starts")
        self.custom_start, self.custom_end = start, end
        if self._period == ReportPeriod.CUSTOM or self.report is None:
            return self.refresh()
        return self.report

    def set_search(self, search: str) -> Report:
        self.search = search
        return self.refresh()
