"""
Unit tests for the MarkerStore implementations.

The same contract is checked against the in-memory, file and SQLite
stores; implementation specific behaviour is tested per class.
"""

from pathlib import Path

import pytest
import pytest_asyncio

from pgmigrate.exceptions import PersistenceError
from pgmigrate.markers import (
    FileMarkerStore,
    InMemoryMarkerStore,
    MarkerStore,
    SQLiteMarkerStore,
    marker_key,
)
from pgmigrate.models import Stage
from pgmigrate.observability import MockTracer


@pytest_asyncio.fixture(params=["memory", "file", "sqlite"])
async def store(request: pytest.FixtureRequest, tmp_path: Path) -> MarkerStore:
    if request.param == "memory":
        return InMemoryMarkerStore()
    if request.param == "file":
        return FileMarkerStore(tmp_path / "state", tmp_path / "verify")
    sqlite_store = SQLiteMarkerStore(str(tmp_path / "state.db"), enable_tracing=False)
    await sqlite_store.initialize()
    return sqlite_store


class TestMarkerStoreContract:
    """Behaviour shared by every MarkerStore."""

    @pytest.mark.asyncio
    async def test_unmarked_does_not_exist(self, store: MarkerStore) -> None:
        assert not await store.exists("orders", Stage.DUMP)

    @pytest.mark.asyncio
    async def test_mark_then_exists(self, store: MarkerStore) -> None:
        await store.mark("orders", Stage.DUMP)

        assert await store.exists("orders", Stage.DUMP)

    @pytest.mark.asyncio
    async def test_keys_are_partitioned(self, store: MarkerStore) -> None:
        """A marker covers exactly one (unit, stage) pair."""
        await store.mark("orders", Stage.DUMP)

        assert not await store.exists("orders", Stage.RESTORE)
        assert not await store.exists("users", Stage.DUMP)

    @pytest.mark.asyncio
    async def test_mark_is_idempotent(self, store: MarkerStore) -> None:
        await store.mark("orders", Stage.VERIFY)
        await store.mark("orders", Stage.VERIFY)

        assert await store.exists("orders", Stage.VERIFY)

    def test_marker_key(self) -> None:
        assert marker_key("orders", Stage.RESTORE) == "orders/restore"


class TestInMemoryMarkerStore:
    """Tests specific to InMemoryMarkerStore."""

    @pytest.mark.asyncio
    async def test_markers_and_clear(self) -> None:
        store = InMemoryMarkerStore()
        await store.mark("orders", Stage.DUMP)

        assert store.markers == frozenset({("orders", Stage.DUMP)})

        await store.clear()
        assert not await store.exists("orders", Stage.DUMP)


class TestFileMarkerStore:
    """Tests for the on-disk marker layout."""

    def test_paths(self, tmp_path: Path) -> None:
        """Dump, restore and globals markers live in the state dir; verify in the verify dir."""
        store = FileMarkerStore(tmp_path / "state", tmp_path / "verify")

        assert store.path_for("orders", Stage.DUMP) == tmp_path / "state" / "orders.dumped"
        assert store.path_for("orders", Stage.RESTORE) == tmp_path / "state" / "orders.done"
        assert store.path_for("cluster", Stage.GLOBALS) == tmp_path / "state" / "cluster.globals"
        assert store.path_for("orders", Stage.VERIFY) == tmp_path / "verify" / "orders.verify"

    def test_unit_names_cannot_escape(self, tmp_path: Path) -> None:
        store = FileMarkerStore(tmp_path / "state", tmp_path / "verify")

        path = store.path_for("../etc/passwd", Stage.DUMP)

        assert path.parent == tmp_path / "state"

    @pytest.mark.asyncio
    async def test_mark_creates_directories(self, tmp_path: Path) -> None:
        store = FileMarkerStore(tmp_path / "a" / "state", tmp_path / "b" / "verify")

        await store.mark("orders", Stage.VERIFY)

        assert (tmp_path / "b" / "verify" / "orders.verify").is_file()
        assert not any(p.name.startswith(".") for p in (tmp_path / "b" / "verify").iterdir())

    @pytest.mark.asyncio
    async def test_markers_survive_new_instance(self, tmp_path: Path) -> None:
        """Markers written by one run are seen by the next."""
        await FileMarkerStore(tmp_path / "s", tmp_path / "v").mark("orders", Stage.RESTORE)

        reopened = FileMarkerStore(tmp_path / "s", tmp_path / "v")

        assert await reopened.exists("orders", Stage.RESTORE)

    @pytest.mark.asyncio
    async def test_unwritable_directory(self, tmp_path: Path) -> None:
        """A state dir that is really a file cannot hold markers."""
        blocker = tmp_path / "state"
        blocker.write_text("not a directory")
        store = FileMarkerStore(blocker, tmp_path / "verify")

        with pytest.raises(PersistenceError) as exc_info:
            await store.mark("orders", Stage.DUMP)

        assert exc_info.value.key == "orders/dump"
        assert exc_info.value.unit == "orders"


class TestSQLiteMarkerStore:
    """Tests specific to SQLiteMarkerStore."""

    @pytest.mark.asyncio
    async def test_uninitialized_database(self, tmp_path: Path) -> None:
        """Using the store before initialize() is a persistence error."""
        store = SQLiteMarkerStore(str(tmp_path / "state.db"), enable_tracing=False)

        with pytest.raises(PersistenceError):
            await store.exists("orders", Stage.DUMP)

    @pytest.mark.asyncio
    async def test_spans(self, tmp_path: Path) -> None:
        tracer = MockTracer()
        store = SQLiteMarkerStore(str(tmp_path / "state.db"), tracer=tracer)
        await store.initialize()

        await store.mark("orders", Stage.DUMP)
        await store.exists("orders", Stage.DUMP)

        assert tracer.span_names == ["pgmigrate.markers.mark", "pgmigrate.markers.exists"]
        assert tracer.spans[0][1] == {"pgmigrate.unit.name": "orders", "pgmigrate.stage": "dump"}
