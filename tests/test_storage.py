"""Tests for the entry stores."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from filelock import FileLock

from stonetrack.errors import StoreError
from stonetrack.clock import ManualClock
from stonetrack.idle import IdleReconciler, IdleThreshold, StaticIdleSource, TrackerService
from stonetrack.tracking import EntrySource, EntryStore, Folder, JsonEntryStore, Project, Tag, TimeEntry, TimerEngine
from stonetrack.tracking.storage import STORAGE_VERSION

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class TestEntryStore:
    """In-memory store contract."""

    def test_fetch_filters_and_sorts(self) -> None:
        store = EntryStore()
        late = TimeEntry(started_at=T0 + timedelta(hours=2))
        early = TimeEntry(started_at=T0, ended_at=T0 + timedelta(hours=1))
        store.insert(late)
        store.insert(early)

        assert store.fetch(TimeEntry, sort_key=lambda e: e.started_at) == [early, late]
        assert store.fetch(TimeEntry, lambda e: e.is_running) == [late]

    def test_get_returns_live_instance(self) -> None:
        store = EntryStore()
        project = Project(name="Client work")
        store.insert(project)

        assert store.get(Project, project.id) is project
        assert store.get(Project, None) is None
        assert store.get(TimeEntry, project.id) is None

    def test_delete_project_cascades_to_entries(self) -> None:
        store = EntryStore()
        project = Project(name="Client work")
        other = Project(name="Reading")
        store.insert(project)
        store.insert(other)
        owned = TimeEntry(started_at=T0, project_id=project.id)
        kept = TimeEntry(started_at=T0, project_id=other.id)
        loose = TimeEntry(started_at=T0)
        for entry in (owned, kept, loose):
            store.insert(entry)

        store.delete(project)

        assert store.get(Project, project.id) is None
        assert store.get(TimeEntry, owned.id) is None
        assert {e.id for e in store.fetch(TimeEntry)} == {kept.id, loose.id}

    def test_delete_folder_unfiles_its_projects(self) -> None:
        store = EntryStore()
        folder = Folder(name="Clients")
        filed = Project(name="Acme", folder_id=folder.id)
        store.insert(folder)
        store.insert(filed)

        store.delete(folder)

        assert store.get(Folder, folder.id) is None
        assert store.get(Project, filed.id) is filed
        assert filed.folder_id is None

    def test_delete_tag_detaches_it(self) -> None:
        store = EntryStore()
        billable = Tag(name="Billable")
        urgent = Tag(name="Urgent")
        project = Project(name="Acme", tag_ids=[billable.id, urgent.id])
        for entity in (billable, urgent, project):
            store.insert(entity)

        store.delete(billable)

        assert project.tag_ids == [urgent.id]

    def test_unsupported_model(self) -> None:
        with pytest.raises(TypeError):
            EntryStore().fetch(dict)  # type: ignore[type-var]


class TestJsonEntryStore:
    """File-backed store."""

    def test_creates_file_when_missing(self, tmp_path) -> None:
        path = tmp_path / "nested" / "entries.json"
        JsonEntryStore(path)

        data = json.loads(path.read_text())
        assert data == {"version": STORAGE_VERSION, "folders": [], "tags": [], "projects": [], "entries": []}

    def test_missing_file_without_create(self, tmp_path) -> None:
        with pytest.raises(StoreError):
            JsonEntryStore(tmp_path / "entries.json", create_if_missing=False)

    def test_save_and_reload(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        store = JsonEntryStore(path)
        project = Project(name="Client work")
        entry = TimeEntry(started_at=T0, ended_at=T0 + timedelta(minutes=30), note="review", project_id=project.id)
        store.insert(project)
        store.insert(entry)
        store.save()

        reopened = JsonEntryStore(path)
        loaded = reopened.get(TimeEntry, entry.id)

        assert reopened.get(Project, project.id).name == "Client work"
        assert loaded.started_at == T0
        assert loaded.ended_at == T0 + timedelta(minutes=30)
        assert loaded.note == "review"

    def test_reload_picks_up_other_writer(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        reader = JsonEntryStore(path)
        writer = JsonEntryStore(path)
        writer.insert(Project(name="Reading"))
        writer.save()

        assert reader.fetch(Project) == []
        reader.reload()
        assert [p.name for p in reader.fetch(Project)] == ["Reading"]

    def test_empty_file_loads_as_empty(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        path.write_text("")

        store = JsonEntryStore(path)
        assert store.fetch(Project) == []

    def test_invalid_json_raises_store_error(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        path.write_text("{not json")

        with pytest.raises(StoreError):
            JsonEntryStore(path)

    def test_invalid_document_raises_store_error(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        path.write_text(json.dumps({"version": 1, "entries": [{"id": "ent_x"}]}))

        with pytest.raises(StoreError):
            JsonEntryStore(path)

    def test_old_version_is_migrated(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        path.write_text(json.dumps({"version": 0, "projects": [{"name": "Legacy"}]}))

        store = JsonEntryStore(path)
        assert [p.name for p in store.fetch(Project)] == ["Legacy"]

    def test_lock_timeout_raises_store_error(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        store = JsonEntryStore(path, lock_timeout=0.1)

        with FileLock(str(path.with_suffix(".lock"))):
            with pytest.raises(StoreError, match="Timed out"):
                store.save()

    def test_naive_datetimes_are_read_as_utc(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        path.write_text(json.dumps({
            "version": 1,
            "entries": [{"id": "ent_a", "started_at": "2024-03-04T09:00:00"}],
        }))

        store = JsonEntryStore(path)
        assert store.get(TimeEntry, "ent_a").started_at == T0


class TestConcurrentWriters:
    """Two stores on one file, as with ``stone watch`` plus other commands."""

    def test_save_keeps_other_writers_entries(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        first = JsonEntryStore(path)
        second = JsonEntryStore(path)

        project = Project(name="Client work")
        first.insert(project)
        first.save()

        entry = TimeEntry(started_at=T0, ended_at=T0 + timedelta(hours=1), source=EntrySource.MANUAL)
        second.insert(entry)
        second.save()

        reopened = JsonEntryStore(path)
        assert reopened.get(Project, project.id) is not None
        assert reopened.get(TimeEntry, entry.id) is not None
        assert second.get(Project, project.id) is not None

    def test_idle_discard_keeps_manual_entry_added_meanwhile(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        clock = ManualClock(T0)
        watch_store = JsonEntryStore(path)
        engine = TimerEngine(clock=clock)
        engine.configure(watch_store)
        project = Project(name="Client work")
        watch_store.insert(project)
        watch_store.save()

        running = engine.start(project)
        service = TrackerService(
            engine,
            IdleReconciler(engine),
            StaticIdleSource(0),
            sync=lambda: (watch_store.reload(), engine.restore_active()),
        )
        clock.advance(600)
        assert service.handle_event(IdleThreshold(idle_seconds=400)) is not None

        other = JsonEntryStore(path)
        manual = TimeEntry(
            started_at=T0 - timedelta(hours=2),
            ended_at=T0 - timedelta(hours=1),
            source=EntrySource.MANUAL,
            project_id=project.id,
        )
        other.insert(manual)
        other.save()

        continuation = service.reconciler.discard()

        reopened = JsonEntryStore(path)
        assert reopened.get(TimeEntry, manual.id) is not None
        assert reopened.get(TimeEntry, running.id).ended_at == T0 + timedelta(seconds=200)
        assert reopened.get(TimeEntry, continuation.id).is_running

    def test_other_writers_edit_refreshes_live_object(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        first = JsonEntryStore(path)
        project = Project(name="Client work")
        first.insert(project)
        first.save()

        second = JsonEntryStore(path)
        second.get(Project, project.id).name = "Consulting"
        second.save()

        first.insert(TimeEntry(started_at=T0, project_id=project.id))
        first.save()

        assert first.get(Project, project.id) is project
        assert project.name == "Consulting"
        assert JsonEntryStore(path).get(Project, project.id).name == "Consulting"

    def test_local_edit_wins_for_the_edited_entity(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        first = JsonEntryStore(path)
        entry = TimeEntry(started_at=T0)
        first.insert(entry)
        first.save()

        second = JsonEntryStore(path)
        second.insert(Project(name="Reading"))
        second.save()

        entry.note = "standup"
        first.save()

        reopened = JsonEntryStore(path)
        assert reopened.get(TimeEntry, entry.id).note == "standup"
        assert [p.name for p in reopened.fetch(Project)] == ["Reading"]

    def test_deletes_elsewhere_are_not_resurrected(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        first = JsonEntryStore(path)
        project = Project(name="Client work")
        first.insert(project)
        first.save()

        second = JsonEntryStore(path)
        second.delete(second.get(Project, project.id))
        second.save()

        first.insert(Project(name="Reading"))
        first.save()

        assert first.get(Project, project.id) is None
        assert [p.name for p in JsonEntryStore(path).fetch(Project)] == ["Reading"]

    def test_local_delete_drops_entries_added_elsewhere(self, tmp_path) -> None:
        path = tmp_path / "entries.json"
        first = JsonEntryStore(path)
        project = Project(name="Client work")
        first.insert(project)
        first.save()

        second = JsonEntryStore(path)
        late = TimeEntry(started_at=T0, project_id=project.id)
        second.insert(late)
        second.save()

        first.delete(project)
        first.save()

        reopened = JsonEntryStore(path)
        assert reopened.fetch(Project) == []
        assert reopened.get(TimeEntry, late.id) is None
