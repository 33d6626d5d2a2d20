"""
SQLite snapshot store implementation.

Stores count snapshots as JSON text in a single SQLite table using the
async aiosqlite driver. Shares its database file with SQLiteMarkerStore
when both are pointed at the same path.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import aiosqlite
from pydantic import ValidationError

from pgmigrate.exceptions import PersistenceError
from pgmigrate.models import Side
from pgmigrate.observability import (
    ATTR_SIDE,
    ATTR_TABLE_COUNT,
    ATTR_UNIT_NAME,
    Tracer,
    create_tracer,
)
from pgmigrate.snapshots.interface import COUNTS_ADAPTER, Snapshot, SnapshotStore, snapshot_key

logger = logging.getLogger(__name__)

SNAPSHOTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS count_snapshots (
    unit TEXT NOT NULL,
    side TEXT NOT NULL,
    counts TEXT NOT NULL,
    captured_at TEXT NOT NULL,
    PRIMARY KEY (unit, side)
)
"""


class SQLiteSnapshotStore(SnapshotStore):
    """
    SQLite implementation of SnapshotStore.

    Example:
        >>> store = SQLiteSnapshotStore("migration-state.db")
        >>> await store.initialize()
        >>> await store.save(snapshot)

    Note:
        Call initialize() once before use to create the snapshots table.
    """

    def __init__(
        self,
        database_path: str,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._database_path = database_path

    @property
    def database_path(self) -> str:
        return self._database_path

    async def initialize(self) -> None:
        """Create the snapshots table if it does not exist."""
        try:
            async with aiosqlite.connect(self._database_path) as conn:
                await conn.execute(SNAPSHOTS_SCHEMA)
                await conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(
                f"Cannot initialize snapshot database: {e}",
                path=self._database_path,
            ) from e

    async def load(self, unit: str, side: Side) -> Snapshot | None:
        key = snapshot_key(unit, side)
        with self._tracer.span(
            "pgmigrate.snapshots.load",
            {ATTR_UNIT_NAME: unit, ATTR_SIDE: side.value},
        ):
            try:
                async with aiosqlite.connect(self._database_path) as conn:
                    cursor = await conn.execute(
                        "SELECT counts FROM count_snapshots WHERE unit = ? AND side = ?",
                        (unit, side.value),
                    )
                    row = await cursor.fetchone()
            except aiosqlite.Error as e:
                raise PersistenceError(
                    f"Cannot read snapshot {key}: {e}",
                    key=key,
                    path=self._database_path,
                    unit=unit,
                ) from e

            if row is None:
                return None

            try:
                counts = COUNTS_ADAPTER.validate_json(row[0])
            except ValidationError as e:
                raise PersistenceError(
                    f"Snapshot {key} is corrupt: {e.error_count()} validation error(s)",
                    key=key,
                    path=self._database_path,
                    unit=unit,
                ) from e
            return Snapshot(unit=unit, side=side, counts=counts)

    async def save(self, snapshot: Snapshot) -> None:
        key = snapshot_key(snapshot.unit, snapshot.side)
        with self._tracer.span(
            "pgmigrate.snapshots.save",
            {
                ATTR_UNIT_NAME: snapshot.unit,
                ATTR_SIDE: snapshot.side.value,
                ATTR_TABLE_COUNT: len(snapshot),
            },
        ):
            try:
                async with aiosqlite.connect(self._database_path) as conn:
                    await conn.execute(
                        """
                        INSERT INTO count_snapshots (unit, side, counts, captured_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (
                            snapshot.unit,
                            snapshot.side.value,
                            snapshot.to_json().decode("utf-8"),
                            datetime.now(UTC).isoformat(),
                        ),
                    )
                    await conn.commit()
            except aiosqlite.IntegrityError as e:
                raise PersistenceError(
                    f"Snapshot {key} already exists",
                    key=key,
                    path=self._database_path,
                    unit=snapshot.unit,
                ) from e
            except aiosqlite.Error as e:
                raise PersistenceError(
                    f"Cannot write snapshot {key}: {e}",
                    key=key,
                    path=self._database_path,
                    unit=snapshot.unit,
                ) from e
            logger.debug("Saved snapshot %s", key)


__all__ = ["SQLiteSnapshotStore", "SNAPSHOTS_SCHEMA"]
