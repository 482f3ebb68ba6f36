"""Tests for project and manual entry management."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from stonetrack.errors import StoreError
from stonetrack.tracking import EntryLog, EntrySource, Folder, Project, ProjectCatalog, Tag, TimeEntry

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class TestProjectCatalog:
    """Project lifecycle."""

    def test_create_and_list_in_order(self, store) -> None:
        catalog = ProjectCatalog(store)
        first = catalog.create_project("Writing")
        second = catalog.create_project("  Admin  ", color="#FF3B30")

        assert second.name == "Admin"
        assert second.color == "#FF3B30"
        assert [p.id for p in catalog.list_projects()] == [first.id, second.id]

    def test_create_rejects_blank_name(self, store) -> None:
        with pytest.raises(ValueError):
            ProjectCatalog(store).create_project("   ")

    def test_archived_hidden_unless_requested(self, store) -> None:
        catalog = ProjectCatalog(store)
        project = catalog.create_project("Old")
        catalog.archive_project(project.id)

        assert catalog.list_projects() == []
        assert catalog.list_projects(include_archived=True) == [project]

        catalog.archive_project(project.id, archived=False)
        assert catalog.list_projects() == [project]

    def test_find_by_id_or_name(self, store) -> None:
        catalog = ProjectCatalog(store)
        project = catalog.create_project("Client Work")

        assert catalog.find_project(project.id) is project
        assert catalog.find_project("client work") is project
        assert catalog.find_project("missing") is None

    def test_find_prefers_active_project(self, store) -> None:
        catalog = ProjectCatalog(store)
        old = catalog.create_project("Writing")
        catalog.archive_project(old.id)
        new = catalog.create_project("Writing")

        assert catalog.find_project("writing") is new

    def test_update_project(self, store) -> None:
        catalog = ProjectCatalog(store)
        project = catalog.create_project("Writing")

        catalog.update_project(project.id, name="Editing", color="#34C759")

        assert project.name == "Editing"
        assert project.color == "#34C759"
        assert catalog.update_project("prj_missing", name="x") is None

    def test_delete_cascades_and_forgets_timer(self, store, engine) -> None:
        catalog = ProjectCatalog(store, engine)
        project = catalog.create_project("Writing")
        engine.start(project)

        assert catalog.delete_project(project.id) is True

        assert store.fetch(TimeEntry) == []
        assert engine.active_entry is None
        assert catalog.delete_project(project.id) is False

    def test_reorder(self, store) -> None:
        catalog = ProjectCatalog(store)
        a = catalog.create_project("A")
        b = catalog.create_project("B")
        c = catalog.create_project("C")

        assert catalog.reorder_project(c.id, 0)
        assert [p.name for p in catalog.list_projects()] == ["C", "A", "B"]
        assert not catalog.reorder_project("prj_missing", 0)
        assert (a.sort_order, b.sort_order, c.sort_order) == (1, 2, 0)

    def test_import_projects(self, store, tmp_path) -> None:
        catalog = ProjectCatalog(store)
        catalog.create_project("Writing")
        path = tmp_path / "projects.yaml"
        path.write_text(
            "projects:\n"
            "  - Reading\n"
            "  - name: writing\n"
            "  - name: Archive me\n"
            "    color: '#8E8E93'\n"
            "    archived: true\n"
        )

        created = catalog.import_projects(path)

        assert [p.name for p in created] == ["Reading", "Archive me"]
        assert created[1].archived
        assert created[1].color == "#8E8E93"

    def test_import_rejects_bad_yaml(self, store, tmp_path) -> None:
        path = tmp_path / "projects.yaml"
        path.write_text("projects: [unclosed")

        with pytest.raises(ValueError, match="Invalid YAML"):
            ProjectCatalog(store).import_projects(path)

    def test_import_requires_project_list(self, store, tmp_path) -> None:
        path = tmp_path / "projects.yaml"
        path.write_text("name: Writing\n")

        with pytest.raises(ValueError):
            ProjectCatalog(store).import_projects(path)


class TestEntryLog:
    """Manual entries."""

    def test_add_manual_entry(self, store, engine, project) -> None:
        log = EntryLog(store, engine)
        entry = log.add_entry(T0, T0 + timedelta(hours=1), project=project, note="notes")

        assert entry.source == EntrySource.MANUAL
        assert entry.project_id == project.id
        assert store.get(TimeEntry, entry.id) is entry
        assert not engine.is_tracking

    def test_add_reversed_entry_counts_as_zero(self, store, engine) -> None:
        entry = EntryLog(store, engine).add_entry(T0, T0 - timedelta(minutes=5))
        assert entry.duration(T0) == 0.0
        assert entry.raw_duration(T0) == -300

    def test_edit_entry(self, store, engine, project, other_project) -> None:
        log = EntryLog(store, engine)
        entry = log.add_entry(T0, T0 + timedelta(hours=1), project=project, note="draft")

        log.edit_entry(entry.id, end=T0 + timedelta(hours=2), note="", project_id=other_project.id)

        assert entry.ended_at == T0 + timedelta(hours=2)
        assert entry.note is None
        assert entry.project_id == other_project.id

    def test_edit_entry_unknown_project(self, store, engine) -> None:
        log = EntryLog(store, engine)
        entry = log.add_entry(T0, T0 + timedelta(hours=1))

        with pytest.raises(ValueError):
            log.edit_entry(entry.id, project_id="prj_missing")

    def test_ending_running_entry_stops_timer(self, store, engine, clock, project) -> None:
        entry = engine.start(project)
        clock.advance(600)

        EntryLog(store, engine).edit_entry(entry.id, end=clock.now())

        assert engine.active_entry is None

    def test_delete_running_entry_stops_timer(self, store, engine, project) -> None:
        entry = engine.start(project)
        log = EntryLog(store, engine)

        assert log.delete_entry(entry.id) is True
        assert engine.active_entry is None
        assert log.delete_entry(entry.id) is False

    def test_entries_for_day(self, store, engine, project) -> None:
        log = EntryLog(store, engine)
        morning = log.add_entry(T0, T0 + timedelta(hours=1), project=project)
        afternoon = log.add_entry(T0 + timedelta(hours=5), T0 + timedelta(hours=6), project=project)
        log.add_entry(T0 + timedelta(days=1), T0 + timedelta(days=1, hours=1), project=project)

        entries = log.entries_for_day(date(2024, 3, 4), timezone.utc)

        assert entries == [afternoon, morning]


class TestFolders:
    """Grouping projects into folders."""

    def test_create_and_list_folders(self, store) -> None:
        catalog = ProjectCatalog(store)
        clients = catalog.create_folder("Clients")
        personal = catalog.create_folder("Personal")

        assert [f.id for f in catalog.list_folders()] == [clients.id, personal.id]
        assert (clients.sort_order, personal.sort_order) == (0, 1)
        assert catalog.find_folder("clients") is clients

    def test_create_project_in_folder(self, store) -> None:
        catalog = ProjectCatalog(store)
        folder = catalog.create_folder("Clients")
        loose = catalog.create_project("Admin")
        acme = catalog.create_project("Acme", folder_id=folder.id)
        globex = catalog.create_project("Globex", folder_id=folder.id)

        assert (loose.sort_order, acme.sort_order, globex.sort_order) == (0, 0, 1)
        assert catalog.projects_in_folder(folder.id) == [acme, globex]
        assert catalog.projects_in_folder(None) == [loose]
        assert catalog.list_projects() == [loose, acme, globex]

    def test_create_project_in_unknown_folder(self, store) -> None:
        with pytest.raises(ValueError, match="Unknown folder"):
            ProjectCatalog(store).create_project("Acme", folder_id="fld_missing")

    def test_reorder_stays_within_folder(self, store) -> None:
        catalog = ProjectCatalog(store)
        folder = catalog.create_folder("Clients")
        loose = catalog.create_project("Admin")
        acme = catalog.create_project("Acme", folder_id=folder.id)
        globex = catalog.create_project("Globex", folder_id=folder.id)

        assert catalog.reorder_project(globex.id, 0)

        assert catalog.projects_in_folder(folder.id) == [globex, acme]
        assert loose.sort_order == 0

    def test_move_project_appends_to_folder(self, store) -> None:
        catalog = ProjectCatalog(store)
        folder = catalog.create_folder("Clients")
        acme = catalog.create_project("Acme", folder_id=folder.id)
        admin = catalog.create_project("Admin")

        catalog.move_project(admin.id, folder.id)

        assert admin.folder_id == folder.id
        assert catalog.projects_in_folder(folder.id) == [acme, admin]

        catalog.move_project(admin.id, None)
        assert admin.folder_id is None
        assert catalog.move_project("prj_missing", None) is None

    def test_rename_and_collapse(self, store) -> None:
        catalog = ProjectCatalog(store)
        folder = catalog.create_folder("Clients")

        catalog.rename_folder(folder.id, "Customers")
        catalog.set_folder_expanded(folder.id, False)

        assert folder.name == "Customers"
        assert folder.expanded is False
        with pytest.raises(ValueError):
            catalog.rename_folder(folder.id, " ")

    def test_delete_folder_keeps_projects(self, store) -> None:
        catalog = ProjectCatalog(store)
        folder = catalog.create_folder("Clients")
        acme = catalog.create_project("Acme", folder_id=folder.id)

        assert catalog.delete_folder(folder.id) is True

        assert store.get(Folder, folder.id) is None
        assert store.get(Project, acme.id) is acme
        assert acme.folder_id is None
        assert catalog.delete_folder(folder.id) is False


class TestTags:
    """Labelling and filtering projects by tag."""

    def test_tags_listed_by_name(self, store) -> None:
        catalog = ProjectCatalog(store)
        urgent = catalog.create_tag("urgent")
        billable = catalog.create_tag("Billable", color="#34C759")

        assert catalog.list_tags() == [billable, urgent]
        assert catalog.find_tag("BILLABLE") is billable

    def test_filter_projects_by_tag(self, store) -> None:
        catalog = ProjectCatalog(store)
        billable = catalog.create_tag("Billable")
        acme = catalog.create_project("Acme")
        catalog.create_project("Admin")

        catalog.tag_project(acme.id, billable.id)
        catalog.tag_project(acme.id, billable.id)

        assert acme.tag_ids == [billable.id]
        assert catalog.list_projects(tag_id=billable.id) == [acme]

    def test_untag_project(self, store) -> None:
        catalog = ProjectCatalog(store)
        billable = catalog.create_tag("Billable")
        acme = catalog.create_project("Acme")
        catalog.tag_project(acme.id, billable.id)

        catalog.untag_project(acme.id, billable.id)

        assert acme.tag_ids == []
        assert catalog.list_projects(tag_id=billable.id) == []

    def test_tag_unknown_tag(self, store) -> None:
        catalog = ProjectCatalog(store)
        acme = catalog.create_project("Acme")

        with pytest.raises(ValueError, match="Unknown tag"):
            catalog.tag_project(acme.id, "tag_missing")

    def test_update_tag(self, store) -> None:
        catalog = ProjectCatalog(store)
        tag = catalog.create_tag("Billable")

        catalog.update_tag(tag.id, name="Invoiced", color="#FF9500")

        assert (tag.name, tag.color) == ("Invoiced", "#FF9500")
        assert catalog.update_tag("tag_missing", name="x") is None

    def test_delete_tag_detaches_from_projects(self, store) -> None:
        catalog = ProjectCatalog(store)
        tag = catalog.create_tag("Billable")
        acme = catalog.create_project("Acme")
        catalog.tag_project(acme.id, tag.id)

        assert catalog.delete_tag(tag.id) is True

        assert store.get(Tag, tag.id) is None
        assert acme.tag_ids == []


def failing_save(store):
    return patch.object(store, "save", side_effect=StoreError("disk full"))


class TestFailedSaves:
    """A failed commit leaves the in-memory state as it was."""

    def test_update_project_is_rolled_back(self, store) -> None:
        catalog = ProjectCatalog(store)
        project = catalog.create_project("Writing")

        with failing_save(store), pytest.raises(StoreError):
            catalog.update_project(project.id, name="Editing", color="#34C759")

        assert (project.name, project.color) == ("Writing", "#007AFF")

    def test_archive_is_rolled_back(self, store) -> None:
        catalog = ProjectCatalog(store)
        project = catalog.create_project("Writing")

        with failing_save(store), pytest.raises(StoreError):
            catalog.archive_project(project.id)

        assert project.archived is False
        assert catalog.list_projects() == [project]

    def test_reorder_is_rolled_back(self, store) -> None:
        catalog = ProjectCatalog(store)
        a = catalog.create_project("A")
        b = catalog.create_project("B")

        with failing_save(store), pytest.raises(StoreError):
            catalog.reorder_project(b.id, 0)

        assert (a.sort_order, b.sort_order) == (0, 1)

    def test_create_project_is_rolled_back(self, store) -> None:
        catalog = ProjectCatalog(store)

        with failing_save(store), pytest.raises(StoreError):
            catalog.create_project("Writing")

        assert store.fetch(Project) == []

    def test_delete_project_is_rolled_back(self, store, engine) -> None:
        catalog = ProjectCatalog(store, engine)
        project = catalog.create_project("Writing")
        entry = engine.start(project)

        with failing_save(store), pytest.raises(StoreError):
            catalog.delete_project(project.id)

        assert store.get(Project, project.id) is project
        assert store.get(TimeEntry, entry.id) is entry
        assert engine.active_entry is entry

    def test_delete_folder_is_rolled_back(self, store) -> None:
        catalog = ProjectCatalog(store)
        folder = catalog.create_folder("Clients")
        acme = catalog.create_project("Acme", folder_id=folder.id)

        with failing_save(store), pytest.raises(StoreError):
            catalog.delete_folder(folder.id)

        assert store.get(Folder, folder.id) is folder
        assert acme.folder_id == folder.id

    def test_delete_tag_is_rolled_back(self, store) -> None:
        catalog = ProjectCatalog(store)
        tag = catalog.create_tag("Billable")
        acme = catalog.create_project("Acme")
        catalog.tag_project(acme.id, tag.id)

        with failing_save(store), pytest.raises(StoreError):
            catalog.delete_tag(tag.id)

        assert store.get(Tag, tag.id) is tag
        assert acme.tag_ids == [tag.id]

    def test_edit_entry_is_rolled_back(self, store, engine, clock, project) -> None:
        entry = engine.start(project)
        clock.advance(600)

        with failing_save(store), pytest.raises(StoreError):
            EntryLog(store, engine).edit_entry(entry.id, end=clock.now(), note="late")

        assert entry.ended_at is None
        assert entry.note is None
        assert engine.active_entry is entry

    def test_delete_entry_keeps_timer_on_failure(self, store, engine, project) -> None:
        entry = engine.start(project)

        with failing_save(store), pytest.raises(StoreError):
            EntryLog(store, engine).delete_entry(entry.id)

        assert store.get(TimeEntry, entry.id) is entry
        assert engine.active_entry is entry

    def test_add_entry_is_rolled_back(self, store, engine, project) -> None:
        with failing_save(store), pytest.raises(StoreError):
            EntryLog(store, engine).add_entry(T0, T0 + timedelta(hours=1), project=project)

        assert store.fetch(TimeEntry) == []
