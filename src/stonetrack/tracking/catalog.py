"""Project and manual entry management.

Thin services over the entry store for the parts of the app that are not
driven by the running timer: organising projects into folders and tags,
archiving them, and adding or correcting entries by hand.

Every mutation is undone in memory when the store fails to commit, so a
failed save never leaves half-applied edits behind.
"""

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, tzinfo
from pathlib import Path
from typing import Any

import yaml

from stonetrack.clock import Clock, SystemClock
from stonetrack.tracking.engine import TimerEngine
from stonetrack.tracking.storage import Entity, EntryStore
from stonetrack.tracking.types import EntrySource, Folder, Project, Tag, TimeEntry

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#007AFF"
DEFAULT_TAG_COLOR = "#8E8E93"


@contextmanager
def _undo_on_failure(
    store: EntryStore,
    changed: Iterable[Entity] = (),
    added: Iterable[Entity] = (),
    removed: Iterable[Entity] = (),
) -> Iterator[None]:
    """Roll back in-memory changes if the block raises.

    Args:
        store: Store the changes were staged on.
        changed: Entities edited in place; their fields are restored.
        added: Entities inserted; they are deleted again.
        removed: Entities deleted; they are inserted again.
    """
    snapshots = [(entity, entity.model_copy(deep=True)) for entity in changed]
    added = list(added)
    removed = list(removed)
    try:
        yield
    except Exception:
        for entity in added:
            store.delete(entity)
        for entity in removed:
            store.insert(entity)
        for entity, snapshot in snapshots:
            for name in type(entity).model_fields:
                setattr(entity, name, getattr(snapshot, name))
        raise


def _clean_name(name: str, what: str) -> str:
    name = name.strip()
    if not name:
        raise ValueError(f"{what} name must not be empty")
    return name


class ProjectCatalog:
    """Create, organise, archive and delete projects, folders and tags.

    Projects are ordered within their folder (projects without a folder
    form their own group). Folders are ordered among themselves; tags are
    listed by name.
    """

    def __init__(self, store: EntryStore, engine: TimerEngine | None = None) -> None:
        """Initialize the catalog.

        Args:
            store: Entry store holding the projects.
            engine: Timer engine to notify when a tracked project is deleted.
        """
        self._store = store
        self._engine = engine

    # Projects

    def list_projects(
        self,
        include_archived: bool = False,
        tag_id: str | None = None,
        folder_id: str | None = None,
    ) -> list[Project]:
        """List projects in display order.

        Projects without a folder come first, then each folder's projects
        in folder order.

        Args:
            include_archived: Include archived projects.
            tag_id: Only projects carrying this tag.
            folder_id: Only projects in this folder.
        """
        rank = {folder.id: index for index, folder in enumerate(self.list_folders(), start=1)}

        def keep(project: Project) -> bool:
            if project.archived and not include_archived:
                return False
            if tag_id is not None and tag_id not in project.tag_ids:
                return False
            return folder_id is None or project.folder_id == folder_id

        return self._store.fetch(
            Project,
            predicate=keep,
            sort_key=lambda p: (rank.get(p.folder_id, 0), p.sort_order, p.name.lower()),
        )

    def projects_in_folder(self, folder_id: str | None) -> list[Project]:
        """Active projects of one folder, or those without a folder, in order."""
        known = {folder.id for folder in self._store.fetch(Folder)}

        def in_group(project: Project) -> bool:
            current = project.folder_id if project.folder_id in known else None
            return not project.archived and current == folder_id

        return self._store.fetch(
            Project,
            predicate=in_group,
            sort_key=lambda p: (p.sort_order, p.name.lower()),
        )

    def get_project(self, project_id: str) -> Project | None:
        return self._store.get(Project, project_id)

    def find_project(self, name_or_id: str) -> Project | None:
        """Find a project by ID, or by case-insensitive name.

        Active projects win over archived ones with the same name.
        """
        project = self._store.get(Project, name_or_id)
        if project is not None:
            return project

        wanted = name_or_id.strip().lower()
        matches = self._store.fetch(
            Project,
            predicate=lambda p: p.name.lower() == wanted,
            sort_key=lambda p: (p.archived, p.sort_order),
        )
        return matches[0] if matches else None

    def _require_folder(self, folder_id: str | None) -> None:
        if folder_id is not None and self._store.get(Folder, folder_id) is None:
            raise ValueError(f"Unknown folder: {folder_id}")

    def create_project(
        self,
        name: str,
        color: str = DEFAULT_COLOR,
        folder_id: str | None = None,
    ) -> Project:
        """Create a project at the end of its folder.

        Raises:
            ValueError: If the name is blank or the folder does not exist.
            StoreError: If the store fails to commit.
        """
        name = _clean_name(name, "Project")
        self._require_folder(folder_id)

        project = Project(
            name=name,
            color=color,
            folder_id=folder_id,
            sort_order=len(self.projects_in_folder(folder_id)),
        )
        with _undo_on_failure(self._store, added=[project]):
            self._store.insert(project)
            self._store.save()
        logger.info(f"Created project: {project.name} ({project.id})")
        return project

    def update_project(
        self,
        project_id: str,
        name: str | None = None,
        color: str | None = None,
    ) -> Project | None:
        """Rename or recolour a project.

        Returns:
            The updated project, or None if not found.
        """
        project = self._store.get(Project, project_id)
        if project is None:
            return None

        if name is not None:
            name = _clean_name(name, "Project")

        with _undo_on_failure(self._store, changed=[project]):
            if name is not None:
                project.name = name
            if color is not None:
                project.color = color
            self._store.save()

        logger.info(f"Updated project: {project.name} ({project.id})")
        return project

    def archive_project(self, project_id: str, archived: bool = True) -> Project | None:
        """Archive or unarchive a project. Its entries are kept."""
        project = self._store.get(Project, project_id)
        if project is None:
            return None

        with _undo_on_failure(self._store, changed=[project]):
            project.archived = archived
            self._store.save()
        logger.info(f"{'Archived' if archived else 'Unarchived'} project: {project.name}")
        return project

    def delete_project(self, project_id: str) -> bool:
        """Delete a project and all of its entries.

        Returns:
            True if the project was found and deleted.
        """
        project = self._store.get(Project, project_id)
        if project is None:
            return False

        entries = self._store.fetch(TimeEntry, predicate=lambda e: e.project_id == project.id)
        with _undo_on_failure(self._store, removed=[project, *entries]):
            self._store.delete(project)
            self._store.save()

        if self._engine is not None:
            active = self._engine.active_entry
            if active is not None and active.project_id == project.id:
                self._engine.forget(active.id)

        logger.info(f"Deleted project: {project.name} ({project.id})")
        return True

    def reorder_project(self, project_id: str, new_index: int) -> bool:
        """Move a project to a new position within its folder.

        Returns:
            True if the project was found among the active projects.
        """
        project = self._store.get(Project, project_id)
        if project is None or project.archived:
            return False

        ordered = self.projects_in_folder(
            project.folder_id if self._store.get(Folder, project.folder_id) else None
        )
        ordered.remove(project)
        ordered.insert(max(0, min(new_index, len(ordered))), project)

        with _undo_on_failure(self._store, changed=ordered):
            for index, item in enumerate(ordered):
                item.sort_order = index
            self._store.save()
        return True

    def move_project(self, project_id: str, folder_id: str | None) -> Project | None:
        """Put a project at the end of another folder, or of the unfiled group.

        Returns:
            The moved project, or None if not found.

        Raises:
            ValueError: If the folder does not exist.
        """
        project = self._store.get(Project, project_id)
        if project is None:
            return None
        self._require_folder(folder_id)
        if project.folder_id == folder_id:
            return project

        position = len(self.projects_in_folder(folder_id))
        with _undo_on_failure(self._store, changed=[project]):
            project.folder_id = folder_id
            project.sort_order = position
            self._store.save()
        logger.info(f"Moved project {project.name} to folder {folder_id}")
        return project

    def tag_project(self, project_id: str, tag_id: str) -> Project | None:
        """Attach a tag to a project. Attaching it twice changes nothing.

        Raises:
            ValueError: If the tag does not exist.
        """
        project = self._store.get(Project, project_id)
        if project is None:
            return None
        if self._store.get(Tag, tag_id) is None:
            raise ValueError(f"Unknown tag: {tag_id}")
        if tag_id in project.tag_ids:
            return project

        with _undo_on_failure(self._store, changed=[project]):
            project.tag_ids = [*project.tag_ids, tag_id]
            self._store.save()
        return project

    def untag_project(self, project_id: str, tag_id: str) -> Project | None:
        """Detach a tag from a project."""
        project = self._store.get(Project, project_id)
        if project is None:
            return None
        if tag_id not in project.tag_ids:
            return project

        with _undo_on_failure(self._store, changed=[project]):
            project.tag_ids = [t for t in project.tag_ids if t != tag_id]
            self._store.save()
        return project

    # Folders

    def list_folders(self) -> list[Folder]:
        return self._store.fetch(Folder, sort_key=lambda f: (f.sort_order, f.name.lower()))

    def find_folder(self, name_or_id: str) -> Folder | None:
        """Find a folder by ID, or by case-insensitive name."""
        folder = self._store.get(Folder, name_or_id)
        if folder is not None:
            return folder
        wanted = name_or_id.strip().lower()
        return next((f for f in self.list_folders() if f.name.lower() == wanted), None)

    def create_folder(self, name: str) -> Folder:
        """Create a folder after the existing ones.

        Raises:
            ValueError: If the name is blank.
        """
        folder = Folder(name=_clean_name(name, "Folder"), sort_order=len(self.list_folders()))
        with _undo_on_failure(self._store, added=[folder]):
            self._store.insert(folder)
            self._store.save()
        logger.info(f"Created folder: {folder.name} ({folder.id})")
        return folder

    def rename_folder(self, folder_id: str, name: str) -> Folder | None:
        folder = self._store.get(Folder, folder_id)
        if folder is None:
            return None

        name = _clean_name(name, "Folder")
        with _undo_on_failure(self._store, changed=[folder]):
            folder.name = name
            self._store.save()
        return folder

    def set_folder_expanded(self, folder_id: str, expanded: bool) -> Folder | None:
        """Expand or collapse a folder in project listings."""
        folder = self._store.get(Folder, folder_id)
        if folder is None:
            return None

        with _undo_on_failure(self._store, changed=[folder]):
            folder.expanded = expanded
            self._store.save()
        return folder

    def delete_folder(self, folder_id: str) -> bool:
        """Delete a folder. Its projects are kept and lose their folder.

        Returns:
            True if the folder was found and deleted.
        """
        folder = self._store.get(Folder, folder_id)
        if folder is None:
            return False

        members = self._store.fetch(Project, predicate=lambda p: p.folder_id == folder.id)
        with _undo_on_failure(self._store, changed=members, removed=[folder]):
            self._store.delete(folder)
            self._store.save()
        logger.info(f"Deleted folder: {folder.name} ({len(members)} projects unfiled)")
        return True

    # Tags

    def list_tags(self) -> list[Tag]:
        return self._store.fetch(Tag, sort_key=lambda t: t.name.lower())

    def find_tag(self, name_or_id: str) -> Tag | None:
        """Find a tag by ID, or by case-insensitive name."""
        tag = self._store.get(Tag, name_or_id)
        if tag is not None:
            return tag
        wanted = name_or_id.strip().lower()
        return next((t for t in self.list_tags() if t.name.lower() == wanted), None)

    def create_tag(self, name: str, color: str = DEFAULT_TAG_COLOR) -> Tag:
        tag = Tag(name=_clean_name(name, "Tag"), color=color)
        with _undo_on_failure(self._store, added=[tag]):
            self._store.insert(tag)
            self._store.save()
        logger.info(f"Created tag: {tag.name} ({tag.id})")
        return tag

    def update_tag(self, tag_id: str, name: str | None = None, color: str | None = None) -> Tag | None:
        """Rename or recolour a tag.

        Returns:
            The updated tag, or None if not found.
        """
        tag = self._store.get(Tag, tag_id)
        if tag is None:
            return None

        if name is not None:
            name = _clean_name(name, "Tag")

        with _undo_on_failure(self._store, changed=[tag]):
            if name is not None:
                tag.name = name
            if color is not None:
                tag.color = color
            self._store.save()
        return tag

    def delete_tag(self, tag_id: str) -> bool:
        """Delete a tag and detach it from every project."""
        tag = self._store.get(Tag, tag_id)
        if tag is None:
            return False

        tagged = self._store.fetch(Project, predicate=lambda p: tag.id in p.tag_ids)
        with _undo_on_failure(self._store, changed=tagged, removed=[tag]):
            self._store.delete(tag)
            self._store.save()
        logger.info(f"Deleted tag: {tag.name}")
        return True

    def import_projects(self, path: str | Path) -> list[Project]:
        """Create projects listed in a YAML file.

        The file looks like::

            projects:
              - name: Client work
                color: "#FF9500"
              - name: Old stuff
                archived: true

        Projects whose name already exists are skipped.

        Returns:
            The projects that were created.

        Raises:
            ValueError: If the file is not valid YAML or has no project list.
        """
        try:
            with open(path, encoding="utf-8") as f:
                config: Any = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML: {e}") from e

        if not isinstance(config, dict) or not isinstance(config.get("projects"), list):
            raise ValueError("Expected a top-level 'projects' list")

        existing = {p.name.lower() for p in self.list_projects(include_archived=True)}
        created: list[Project] = []
        for item in config["projects"]:
            if isinstance(item, str):
                item = {"name": item}
            name = str(item.get("name") or "").strip()
            if not name or name.lower() in existing:
                continue

            project = Project(
                name=name,
                color=str(item.get("color") or DEFAULT_COLOR),
                archived=bool(item.get("archived", False)),
                sort_order=len(existing),
            )
            self._store.insert(project)
            existing.add(name.lower())
            created.append(project)

        if created:
            with _undo_on_failure(self._store, added=created):
                self._store.save()
            logger.info(f"Imported {len(created)} projects from {path}")
        return created


class EntryLog:
    """Add, edit and delete time entries by hand."""

    def __init__(
        self,
        store: EntryStore,
        engine: TimerEngine | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._clock = clock or (engine.clock if engine is not None else SystemClock())

    def get_entry(self, entry_id: str) -> TimeEntry | None:
        return self._store.get(TimeEntry, entry_id)

    def add_entry(
        self,
        start: datetime,
        end: datetime,
        project: Project | None = None,
        note: str | None = None,
    ) -> TimeEntry:
        """Record a finished span of time.

        An end before the start is accepted; the entry then counts as zero.
        """
        entry = TimeEntry(
            started_at=start,
            ended_at=end,
            note=note or None,
            source=EntrySource.MANUAL,
            project_id=project.id if project is not None else None,
        )
        if entry.ended_at < entry.started_at:
            logger.warning(f"Manual entry {entry.id} ends before it starts")

        with _undo_on_failure(self._store, added=[entry]):
            self._store.insert(entry)
            self._store.save()
        logger.info(f"Added manual entry {entry.id}")
        return entry

    def edit_entry(
        self,
        entry_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        note: str | None = None,
        project_id: str | None = None,
    ) -> TimeEntry | None:
        """Change an entry's boundaries, note or project.

        Omitted arguments are left alone; an empty ``note`` clears the note.
        Giving the running entry an end stops it.

        Returns:
            The edited entry, or None if not found.

        Raises:
            ValueError: If ``project_id`` does not name a project.
        """
        entry = self._store.get(TimeEntry, entry_id)
        if entry is None:
            return None

        if project_id is not None and self._store.get(Project, project_id) is None:
            raise ValueError(f"Unknown project: {project_id}")

        was_running = entry.is_running
        with _undo_on_failure(self._store, changed=[entry]):
            if start is not None:
                entry.started_at = start
            if end is not None:
                entry.ended_at = end
            if note is not None:
                entry.note = note or None
            if project_id is not None:
                entry.project_id = project_id
            self._store.save()

        if was_running and not entry.is_running and self._engine is not None:
            self._engine.forget(entry.id)
        logger.info(f"Edited entry {entry.id}")
        return entry

    def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry.

        Returns:
            True if the entry was found and deleted.
        """
        entry = self._store.get(TimeEntry, entry_id)
        if entry is None:
            return False

        with _undo_on_failure(self._store, removed=[entry]):
            self._store.delete(entry)
            self._store.save()

        if self._engine is not None:
            self._engine.forget(entry.id)
        logger.info(f"Deleted entry {entry_id}")
        return True

    def entries_for_day(self, day: date | None = None, tz: tzinfo | None = None) -> list[TimeEntry]:
        """Entries started on a local calendar day, newest first."""
        tz = tz or self._clock.now().astimezone().tzinfo
        day = day or self._clock.now().astimezone(tz).date()
        start = datetime.combine(day, time.min, tzinfo=tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
        return self._store.fetch(
            TimeEntry,
            predicate=lambda e: start <= e.started_at < end,
            sort_key=lambda e: e.started_at,
            reverse=True,
        )
