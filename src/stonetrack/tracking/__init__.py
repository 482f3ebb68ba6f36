"""Time tracking core.

This package provides:
- Project, folder, tag and time entry models
- The entry store (in-memory and JSON file backed)
- The timer engine that owns the single running entry
- Project organisation and manual entry management

Example:
    from stonetrack.tracking import JsonEntryStore, ProjectCatalog, TimerEngine

    store = JsonEntryStore("~/.stone/entries.json")
    engine = TimerEngine()
    engine.configure(store)

    project = ProjectCatalog(store, engine).create_project("Writing")
    engine.start(project)
"""

from stonetrack.tracking.catalog import EntryLog, ProjectCatalog
from stonetrack.tracking.engine import TimerEngine
from stonetrack.tracking.formatting import (
    format_compact_duration,
    format_duration,
    format_hours,
    format_short_duration,
)
from stonetrack.tracking.storage import EntryStore, JsonEntryStore
from stonetrack.tracking.types import EntrySource, Folder, Project, Tag, TimeEntry

__all__ = [
    # Models
    "EntrySource",
    "Folder",
    "Project",
    "Tag",
    "TimeEntry",
    # Storage
    "EntryStore",
    "JsonEntryStore",
    # Engine
    "TimerEngine",
    # Management
    "ProjectCatalog",
    "EntryLog",
    # Formatting
    "format_duration",
    "format_short_duration",
    "format_compact_duration",
    "format_hours",
]
