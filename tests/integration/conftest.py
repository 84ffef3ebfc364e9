"""
Integration test fixtures for sheetledger.

Stores run against both backends: the in-memory grid and a SQLite file
in a temporary directory. Time comes from a controllable clock.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from sheetledger.engine.comments import CommentEngine
from sheetledger.engine.store import TableStore
from sheetledger.identity import Actor
from sheetledger.schema.collections import default_collections
from sheetledger.schema.registry import CollectionRegistry
from sheetledger.service import InventoryService
from sheetledger.storage.memory import InMemoryTableBackend
from sheetledger.storage.sqlite import SqliteTableBackend

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, data_dir):
    """Each backend implementation."""
    if request.param == "memory":
        return InMemoryTableBackend()
    return SqliteTableBackend(str(Path(data_dir) / "store.db"), wal_mode=False)


@pytest.fixture
def registry():
    """Frozen registry with the default collections."""
    reg = CollectionRegistry(default_collections())
    reg.freeze()
    return reg


@pytest.fixture
async def store(backend, registry, clock):
    """Store over a backend holding every default table."""
    await registry.ensure_tables(backend)
    yield TableStore(backend, registry, clock=clock)
    await backend.close()


@pytest.fixture
def comments(store):
    return CommentEngine(store)


@pytest.fixture
def service(store, comments):
    return InventoryService(store, comments)


@pytest.fixture
def alice():
    return Actor(actor_id="alice@example.com", label="Alice")


@pytest.fixture
def staff():
    return Actor(actor_id="staff@example.com", label="Warehouse Staff")
