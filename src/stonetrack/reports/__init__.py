"""Reports over tracked time.

This package provides:
- Period presets and calendar arithmetic
- The aggregator producing per-project and per-day summaries
- A report session that recomputes on demand
- CSV export

Example:
    from stonetrack.reports import ReportAggregator, ReportPeriod, ReportSession

    session = ReportSession(ReportAggregator(store, clock, tz), clock)
    report = session.select_period(ReportPeriod.THIS_MONTH)
"""

from stonetrack.reports.aggregator import (
    DaySummary,
    ProjectSummary,
    Report,
    ReportAggregator,
    ReportSession,
    matches_search,
    summarize_projects,
)
from stonetrack.reports.export import (
    CSV_HEADER,
    export_csv,
    export_filename,
    export_report,
    write_export,
)
from stonetrack.reports.periods import ReportPeriod, period_range

__all__ = [
    # Periods
    "ReportPeriod",
    "period_range",
    # Aggregation
    "ProjectSummary",
    "DaySummary",
    "Report",
    "ReportAggregator",
    "ReportSession",
    "matches_search",
    "summarize_projects",
    # Export
    "CSV_HEADER",
    "export_csv",
    "export_filename",
    "export_report",
    "write_export",
]
