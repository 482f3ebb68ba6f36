"""CSV export of time entries.

The exporter only produces text and a suggested filename; where the file
ends up is the caller's business.
"""

import csv
import io
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, tzinfo
from pathlib import Path

from stonetrack.reports.aggregator import Report
from stonetrack.tracking.formatting import format_hours
from stonetrack.tracking.types import Project, TimeEntry

logger = logging.getLogger(__name__)

CSV_HEADER = ["Date", "Start Time", "End Time", "Duration (hours)", "Project", "Note"]
RUNNING_LABEL = "Running"
NO_PROJECT_LABEL = "No Project"
DEFAULT_PREFIX = "Stone_Report"


def export_csv(
    entries: Iterable[TimeEntry],
    projects: Mapping[str, Project],
    now: datetime,
    tz: tzinfo,
) -> str:
    """Render entries as CSV, oldest first.

    Args:
        entries: Entries to export.
        projects: Projects by ID, for the project column.
        now: Instant used for the duration of running entries.
        tz: Timezone for the date and time columns.

    Returns:
        CSV text with a header row.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    for entry in sorted(entries, key=lambda e: e.started_at):
        started = entry.started_at.astimezone(tz)
        ended = entry.ended_at.astimezone(tz).strftime("%H:%M") if entry.ended_at else RUNNING_LABEL
        project = projects.get(entry.project_id) if entry.project_id else None

        writer.writerow([
            started.strftime("%Y-%m-%d"),
            started.strftime("%H:%M"),
            ended,
            format_hours(entry.duration(now)),
            project.name if project is not None else NO_PROJECT_LABEL,
            entry.note or "",
        ])

    return buffer.getvalue()


def export_filename(
    start: datetime,
    end: datetime,
    prefix: str = DEFAULT_PREFIX,
    tz: tzinfo | None = None,
) -> str:
    """Suggested filename: ``<prefix>_<start>_to_<end>.csv``."""
    if tz is not None:
        start, end = start.astimezone(tz), end.astimezone(tz)
    return f"{prefix}_{start:%Y-%m-%d}_to_{end:%Y-%m-%d}.csv"


def export_report(report: Report, tz: tzinfo) -> str:
    """CSV for the entries of a report."""
    return export_csv(report.entries, report.projects, report.generated_at, tz)


def write_export(
    report: Report,
    directory: str | Path,
    tz: tzinfo,
    prefix: str = DEFAULT_PREFIX,
) -> Path:
    """Write a report's CSV into ``directory``.

    Returns:
        Path of the written file.
    """
    directory = Path(directory).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(report.start, report.end, prefix, tz)
    path.write_text(export_report(report, tz), encoding="utf-8")
    logger.info(f"Exported {len(report.entries)} entries to {path}")
    return path
