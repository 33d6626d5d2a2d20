"""
SQLite marker store implementation.

Keeps markers in a single SQLite file instead of one file per marker,
which is convenient when the state must be copied between hosts. Uses the
async aiosqlite driver.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import aiosqlite

from pgmigrate.exceptions import PersistenceError
from pgmigrate.markers.interface import MarkerStore, marker_key
from pgmigrate.models import Stage
from pgmigrate.observability import ATTR_STAGE, ATTR_UNIT_NAME, Tracer, create_tracer

logger = logging.getLogger(__name__)

MARKERS_SCHEMA = """
CREATE TABLE IF NOT EXISTS stage_markers (
    unit TEXT NOT NULL,
    stage TEXT NOT NULL,
    marked_at TEXT NOT NULL,
    PRIMARY KEY (unit, stage)
)
"""


class SQLiteMarkerStore(MarkerStore):
    """
    SQLite implementation of MarkerStore.

    Features:
    - File-based persistence with SQLite's atomic commits
    - INSERT OR IGNORE keeps the first marked_at of a marker
    - Optional OpenTelemetry tracing

    Example:
        >>> store = SQLiteMarkerStore("migration-state.db")
        >>> await store.initialize()
        >>> await store.mark("orders", Stage.DUMP)

    Note:
        Call initialize() once before use to create the markers table.
    """

    def __init__(
        self,
        database_path: str,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite marker store.

        Args:
            database_path: Path to the SQLite database file.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing (default True).
                          Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._database_path = database_path
        logger.debug("SQLiteMarkerStore initialized with %s", database_path)

    @property
    def database_path(self) -> str:
        return self._database_path

    async def initialize(self) -> None:
        """Create the markers table if it does not exist."""
        try:
            async with aiosqlite.connect(self._database_path) as conn:
                await conn.execute(MARKERS_SCHEMA)
                await conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(
                f"Cannot initialize marker database: {e}",
                path=self._database_path,
            ) from e

    async def exists(self, unit: str, stage: Stage) -> bool:
        with self._tracer.span(
            "pgmigrate.markers.exists",
            {ATTR_UNIT_NAME: unit, ATTR_STAGE: stage.value},
        ):
            try:
                async with aiosqlite.connect(self._database_path) as conn:
                    cursor = await conn.execute(
                        "SELECT 1 FROM stage_markers WHERE unit = ? AND stage = ?",
                        (unit, stage.value),
                    )
                    row = await cursor.fetchone()
            except aiosqlite.Error as e:
                raise PersistenceError(
                    f"Cannot read marker {marker_key(unit, stage)}: {e}",
                    key=marker_key(unit, stage),
                    path=self._database_path,
                    unit=unit,
                ) from e
            return row is not None

    async def mark(self, unit: str, stage: Stage) -> None:
        with self._tracer.span(
            "pgmigrate.markers.mark",
            {ATTR_UNIT_NAME: unit, ATTR_STAGE: stage.value},
        ):
            try:
                async with aiosqlite.connect(self._database_path) as conn:
                    await conn.execute(
                        """
                        INSERT OR IGNORE INTO stage_markers (unit, stage, marked_at)
                        VALUES (?, ?, ?)
                        """,
                        (unit, stage.value, datetime.now(UTC).isoformat()),
                    )
                    await conn.commit()
            except aiosqlite.Error as e:
                raise PersistenceError(
                    f"Cannot write marker {marker_key(unit, stage)}: {e}",
                    key=marker_key(unit, stage),
                    path=self._database_path,
                    unit=unit,
                ) from e
            logger.debug("Marked %s", marker_key(unit, stage))


__all__ = ["SQLiteMarkerStore", "MARKERS_SCHEMA"]
