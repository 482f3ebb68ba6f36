"""Shared fixtures."""

from datetime import datetime, timezone

import pytest

from stonetrack.clock import ManualClock
from stonetrack.tracking import EntryStore, Project, TimerEngine

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def store() -> EntryStore:
    return EntryStore()


@pytest.fixture
def engine(store: EntryStore, clock: ManualClock) -> TimerEngine:
    engine = TimerEngine(clock=clock)
    engine.configure(store)
    return engine


@pytest.fixture
def project(store: EntryStore) -> Project:
    project = Project(name="Client work")
    store.insert(project)
    store.save()
    return project


@pytest.fixture
def other_project(store: EntryStore) -> Project:
    project = Project(name="Reading", color="#FF9500")
    store.insert(project)
    store.save()
    return project
