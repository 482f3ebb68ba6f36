"""Entry store for projects and time entries.

The core talks to storage through a small unit-of-work contract:
``insert``/``delete`` stage changes on live objects, ``save`` commits them,
and ``fetch``/``get`` query the current state. ``EntryStore`` keeps
everything in memory; ``JsonEntryStore`` persists to a JSON file with file
locking for concurrent access safety.
"""

import json
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from filelock import FileLock, Timeout
from pydantic import BaseModel, Field, ValidationError

from stonetrack.errors import StoreError
from stonetrack.tracking.types import Folder, Project, Tag, TimeEntry

logger = logging.getLogger(__name__)

# Storage format version for future migrations
STORAGE_VERSION = 1

Entity = Folder | Tag | Project | TimeEntry
M = TypeVar("M", Folder, Tag, Project, TimeEntry)

# Model -> StoreData field
_FIELDS: dict[type[BaseModel], str] = {
    Folder: "folders",
    Tag: "tags",
    Project: "projects",
    TimeEntry: "entries",
}


class StoreData(BaseModel):
    """Root structure of the storage file.

    Attributes:
        version: Storage format version.
        folders: Stored folders.
        tags: Stored tags.
        projects: Stored projects.
        entries: Stored time entries.
    """

    version: int = Field(default=STORAGE_VERSION, description="Storage format version")
    folders: list[Folder] = Field(default_factory=list, description="Stored folders")
    tags: list[Tag] = Field(default_factory=list, description="Stored tags")
    projects: list[Project] = Field(default_factory=list, description="Stored projects")
    entries: list[TimeEntry] = Field(default_factory=list, description="Stored time entries")


class EntryStore:
    """In-memory store for projects, folders, tags and time entries.

    Objects handed out by ``fetch`` and ``get`` are the stored instances, so
    callers mutate them in place and then call ``save``.

    Example:
        store = EntryStore()
        project = Project(name="Client work")
        store.insert(project)
        store.save()
        running = store.fetch(TimeEntry, lambda e: e.is_running)
    """

    def __init__(self) -> None:
        self._tables: dict[type[BaseModel], dict[str, Any]] = {model: {} for model in _FIELDS}

    def _table(self, model: type[M]) -> dict[str, M]:
        try:
            return self._tables[model]
        except KeyError:
            raise TypeError(f"Unsupported model: {model!r}") from None

    def insert(self, entity: Entity) -> None:
        """Stage a new (or replacement) entity."""
        self._table(type(entity))[entity.id] = entity

    def delete(self, entity: Entity) -> None:
        """Stage removal of an entity.

        Deleting a project also deletes every entry assigned to it. Deleting
        a folder or a tag detaches it from its projects.
        """
        self._table(type(entity)).pop(entity.id, None)

        if isinstance(entity, Project):
            entries = self._tables[TimeEntry]
            orphaned = [e.id for e in entries.values() if e.project_id == entity.id]
            for entry_id in orphaned:
                del entries[entry_id]
            if orphaned:
                logger.info(f"Cascade-deleted {len(orphaned)} entries of project {entity.name}")

        elif isinstance(entity, Folder):
            for project in self._tables[Project].values():
                if project.folder_id == entity.id:
                    project.folder_id = None

        elif isinstance(entity, Tag):
            for project in self._tables[Project].values():
                if entity.id in project.tag_ids:
                    project.tag_ids = [t for t in project.tag_ids if t != entity.id]

    def get(self, model: type[M], entity_id: str | None) -> M | None:
        """Look up an entity by ID."""
        if entity_id is None:
            return None
        return self._table(model).get(entity_id)

    def fetch(
        self,
        model: type[M],
        predicate: Callable[[M], bool] | None = None,
        sort_key: Callable[[M], Any] | None = None,
        reverse: bool = False,
    ) -> list[M]:
        """Query entities of one model.

        Args:
            model: ``Folder``, ``Tag``, ``Project`` or ``TimeEntry``.
            predicate: Keep only entities for which this returns True.
            sort_key: Sort the result by this key.
            reverse: Sort descending.

        Returns:
            Matching entities.
        """
        items = list(self._table(model).values())
        if predicate is not None:
            items = [item for item in items if predicate(item)]
        if sort_key is not None:
            items.sort(key=sort_key, reverse=reverse)
        return items

    def save(self) -> None:
        """Commit staged changes.

        Raises:
            StoreError: If the changes could not be committed.
        """
        self._commit()

    def _commit(self) -> None:
        """Nothing to do for the in-memory store."""


def _refresh(entity: BaseModel, source: BaseModel) -> None:
    """Copy every field of ``source`` onto the live ``entity``."""
    for name in type(entity).model_fields:
        setattr(entity, name, getattr(source, name))


class JsonEntryStore(EntryStore):
    """JSON file-backed entry store.

    The whole document is read on construction (and on ``reload``). ``save``
    re-reads the file under the lock and merges: entities changed, added or
    deleted here since the last load or save win, everything else is taken
    from disk. Writes made by other processes in the meantime therefore
    survive, and this store picks them up. Live objects keep their identity.

    Example:
        store = JsonEntryStore("~/.stone/entries.json")
        store.insert(Project(name="Reading"))
        store.save()
    """

    def __init__(
        self,
        path: str | Path,
        lock_timeout: float = 5.0,
        create_if_missing: bool = True,
    ) -> None:
        """Initialize the store and load the file.

        Args:
            path: Path to the JSON storage file.
            lock_timeout: Seconds to wait for the file lock.
            create_if_missing: Create file if it doesn't exist.

        Raises:
            StoreError: If the file cannot be read or parsed.
        """
        super().__init__()
        self._path = Path(path).expanduser()
        self._lock_path = self._path.with_suffix(".lock")
        self._lock = FileLock(str(self._lock_path), timeout=lock_timeout)
        self._create_if_missing = create_if_missing
        self._baseline: dict[type[BaseModel], dict[str, dict[str, Any]]] = {model: {} for model in _FIELDS}
        if create_if_missing:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self.reload()

    @property
    def path(self) -> Path:
        """Get the storage file path."""
        return self._path

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold the file lock, converting a lock timeout into StoreError."""
        try:
            self._lock.acquire()
        except Timeout as e:
            raise StoreError(f"Timed out waiting for store lock: {self._lock_path}") from e
        try:
            yield
        finally:
            self._lock.release()

    def _read_data(self) -> StoreData:
        """Read and parse the storage file.

        Returns:
            Parsed storage data.
        """
        if not self._path.exists():
            if not self._create_if_missing:
                raise StoreError(f"Store file not found: {self._path}")
            self._write_data(StoreData())
            logger.info(f"Created store file: {self._path}")

        content = self._path.read_text(encoding="utf-8")
        if not content.strip():
            return StoreData()

        data = json.loads(content)

        version = data.get("version", 1)
        if version != STORAGE_VERSION:
            data = self._migrate_data(data, version)

        return StoreData.model_validate(data)

    def _write_data(self, data: StoreData) -> None:
        """Write storage data via a temporary file and an atomic rename.

        Args:
            data: Data to write.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data.model_dump(mode="json"), indent=2)

        tmp_path = self._path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self._path)

    def _migrate_data(self, data: dict[str, Any], from_version: int) -> dict[str, Any]:
        """Migrate data from an older version.

        Args:
            data: Raw data from file.
            from_version: Version of the stored data.

        Returns:
            Migrated data at current version.
        """
        # Currently no migrations needed
        logger.info(f"Migrating store from version {from_version} to {STORAGE_VERSION}")
        data["version"] = STORAGE_VERSION
        return data

    def _load_checked(self) -> StoreData:
        try:
            return self._read_data()
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StoreError(f"Failed to load store {self._path}: {e}") from e

    def _remember(self) -> None:
        """Record the committed state that local changes are measured against."""
        self._baseline = {
            model: {entity_id: entity.model_dump(mode="json") for entity_id, entity in table.items()}
            for model, table in self._tables.items()
        }

    def reload(self) -> None:
        """Discard in-memory state and re-read the file.

        Raises:
            StoreError: If the file cannot be read or parsed.
        """
        with self._locked():
            data = self._load_checked()

        self._tables = {
            model: {entity.id: entity for entity in getattr(data, field)}
            for model, field in _FIELDS.items()
        }
        self._remember()
        logger.debug(
            f"Loaded {len(data.projects)} projects and {len(data.entries)} entries from {self._path}"
        )

    def _merge_table(self, model: type[BaseModel], disk: dict[str, Any]) -> None:
        """Apply local changes to ``disk`` and bring the live table up to date."""
        live = self._tables[model]
        baseline = self._baseline[model]
        deleted_here = baseline.keys() - live.keys()

        for entity_id, entity in list(live.items()):
            if baseline.get(entity_id) != entity.model_dump(mode="json"):
                disk[entity_id] = entity
            elif entity_id in disk:
                _refresh(entity, disk[entity_id])
                disk[entity_id] = entity
            else:
                # Deleted by another process
                del live[entity_id]

        for entity_id in deleted_here:
            disk.pop(entity_id, None)

        for entity_id, entity in disk.items():
            live.setdefault(entity_id, entity)

    def _merge(self, data: StoreData) -> StoreData:
        """Merge local changes into freshly read ``data``."""
        disk = {
            model: {entity.id: entity for entity in getattr(data, field)}
            for model, field in _FIELDS.items()
        }
        deleted_projects = self._baseline[Project].keys() - self._tables[Project].keys()

        for model in _FIELDS:
            self._merge_table(model, disk[model])

        # Entries another process added to a project deleted here
        entries = disk[TimeEntry]
        for entry_id in [e.id for e in entries.values() if e.project_id in deleted_projects]:
            del entries[entry_id]
            self._tables[TimeEntry].pop(entry_id, None)

        return StoreData(**{field: list(disk[model].values()) for model, field in _FIELDS.items()})

    def _commit(self) -> None:
        with self._locked():
            data = self._merge(self._load_checked())
            try:
                self._write_data(data)
            except OSError as e:
                raise StoreError(f"Failed to save store {self._path}: {e}") from e

        self._remember()
        logger.debug(f"Saved {len(data.projects)} projects and {len(data.entries)} entries to {self._path}")
