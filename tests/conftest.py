"""Shared fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from syncwire.events import EventBus
from syncwire.storage import Database, ExternalLinkStore, ProjectRepository, SyncStateStore

MASTER_KEY = "test-master-key-0123456789"


class FakeClock:
    """Controllable time source."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class MemoryCredentialStore:
    """Plain dict credential store for tests."""

    def __init__(self, values: dict | None = None):
        self.values = dict(values or {})

    def get(self, namespace, key):
        return self.values.get((namespace, key))

    def set(self, namespace, key, value):
        value = (value or "").strip()
        if not value:
            return False
        self.values[(namespace, key)] = value
        return True

    def has(self, namespace, key):
        return (namespace, key) in self.values

    def delete(self, namespace, key):
        return self.values.pop((namespace, key), None) is not None


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "syncwire.db")
    yield database
    database.close()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def projects(db, bus):
    return ProjectRepository(db, bus)


@pytest.fixture
def links(db):
    return ExternalLinkStore(db)


@pytest.fixture
def state(db):
    return SyncStateStore(db)


@pytest.fixture
def credentials():
    return MemoryCredentialStore()


@pytest.fixture
def clock():
    return FakeClock()
