from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from notekeeper.main import create_app
from notekeeper.services import build_services
from notekeeper.storage.kv_store import MemoryKeyValueStore, StorageError
from notekeeper.storage.notes_store import NotesStore
from notekeeper.utils.auth_hash import PasswordHasher


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def hasher():
    # minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def services(kv, hasher):
    return build_services(kv=kv, hasher=hasher)


class TickingClock:
    """Each call returns one second later than the previous one."""

    def __init__(self, start=datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def notes(kv, services, clock):
    # same substrate/session as `services`, deterministic timestamps
    return NotesStore(kv, services.session, clock=clock)


class FailingKeyValueStore(MemoryKeyValueStore):
    """Reads work, writes and removals raise StorageError."""

    async def set(self, key, value):
        raise StorageError(f"disk full writing {key}")

    async def remove(self, key):
        raise StorageError(f"disk full removing {key}")


@pytest.fixture
def failing_kv():
    return FailingKeyValueStore()


@pytest.fixture()
def client(tmp_path, monkeypatch):
    # isolate data dir per test
    monkeypatch.setenv("APP_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")

    with TestClient(create_app()) as c:
        yield c
