"""Type definitions for projects, folders, tags and time entries.

This module defines the Pydantic models stored by the entry store and
manipulated by the timer engine.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _aware(value: datetime | None) -> datetime | None:
    """Interpret naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EntrySource(str, Enum):
    """Provenance of a time entry.

    Attributes:
        MANUAL: Entered by hand with explicit start and end.
        AUTOMATIC: Created by the running timer.
    """

    MANUAL = "manual"
    AUTOMATIC = "automatic"


class Folder(BaseModel):
    """A named group of projects.

    Attributes:
        id: Stable folder identifier.
        name: Display name.
        sort_order: Position among folders.
        expanded: Whether listings show the folder's projects.
    """

    id: str = Field(default_factory=lambda: _new_id("fld"), description="Unique folder identifier")
    name: str = Field(..., description="Display name")
    sort_order: int = Field(default=0, description="Position among folders")
    expanded: bool = Field(default=True, description="Whether the folder is expanded in listings")


class Tag(BaseModel):
    """A label that can be attached to any number of projects."""

    id: str = Field(default_factory=lambda: _new_id("tag"), description="Unique tag identifier")
    name: str = Field(..., description="Display name")
    color: str = Field(default="#8E8E93", description="Colour tag")


class Project(BaseModel):
    """A project that time is tracked against.

    Attributes:
        id: Stable project identifier.
        name: Display name.
        color: Opaque colour tag, never interpreted by the core.
        archived: Hidden from pickers but kept for reports.
        created_at: Creation timestamp.
        sort_order: Position in project lists, within its folder.
        folder_id: Containing folder, if any.
        tag_ids: Attached tags.
    """

    id: str = Field(default_factory=lambda: _new_id("prj"), description="Unique project identifier")
    name: str = Field(..., description="Display name")
    color: str = Field(default="#007AFF", description="Colour tag")
    archived: bool = Field(default=False, description="Whether the project is archived")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp",
    )
    sort_order: int = Field(default=0, description="Position in project lists")
    folder_id: str | None = Field(default=None, description="Containing folder id")
    tag_ids: list[str] = Field(default_factory=list, description="Attached tag ids")

    @field_validator("created_at")
    @classmethod
    def normalize_created(cls, value: datetime) -> datetime:
        return _aware(value)


class TimeEntry(BaseModel):
    """A span of time, optionally assigned to a project.

    An entry without ``ended_at`` is running. At most one entry in a store
    may be running at any time.

    Attributes:
        id: Unique entry identifier.
        started_at: Start instant.
        ended_at: End instant, or None while running.
        note: Free-text note.
        source: Whether the timer or the user created the entry.
        project_id: Owning project, if any.
    """

    id: str = Field(default_factory=lambda: _new_id("ent"), description="Unique entry identifier")
    started_at: datetime = Field(..., description="Start instant")
    ended_at: datetime | None = Field(default=None, description="End instant (None while running)")
    note: str | None = Field(default=None, description="Free-text note")
    source: EntrySource = Field(default=EntrySource.AUTOMATIC, description="Entry provenance")
    project_id: str | None = Field(default=None, description="Owning project id")

    @field_validator("started_at", "ended_at")
    @classmethod
    def normalize_instants(cls, value: datetime | None) -> datetime | None:
        return _aware(value)

    @property
    def is_running(self) -> bool:
        return self.ended_at is None

    def raw_duration(self, now: datetime) -> float:
        """Seconds between start and end (or ``now``), possibly negative."""
        end = self.ended_at or now
        return (end - self.started_at).total_seconds()

    def duration(self, now: datetime) -> float:
        """Seconds between start and end (or ``now``), clamped at zero.

        Manual edits and clock skew can put the end before the start; such
        entries count as zero.
        """
        return max(0.0, self.raw_duration(now))

    def stop(self, now: datetime) -> bool:
        """Set the end instant if it is still unset.

        Returns:
            True if the entry was running and is now stopped.
        """
        if self.ended_at is not None:
            return False
        self.ended_at = now
        return True
