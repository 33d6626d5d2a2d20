"""
In-memory snapshot store implementation.

Useful for tests and dry runs. Snapshots are lost when the process exits.
"""

from __future__ import annotations

import asyncio

from pgmigrate.exceptions import PersistenceError
from pgmigrate.models import Side
from pgmigrate.snapshots.interface import Snapshot, SnapshotStore, snapshot_key


class InMemorySnapshotStore(SnapshotStore):
    """
    In-memory implementation of SnapshotStore.

    Thread-safe for concurrent async access via asyncio.Lock.

    Example:
        >>> store = InMemorySnapshotStore()
        >>> await store.save(Snapshot("orders", Side.SOURCE, {"public.orders": "5"}))
        >>> (await store.load("orders", Side.SOURCE))["public.orders"]
        '5'
    """

    def __init__(self) -> None:
        self._snapshots: dict[tuple[str, Side], Snapshot] = {}
        self._lock = asyncio.Lock()

    async def load(self, unit: str, side: Side) -> Snapshot | None:
        async with self._lock:
            return self._snapshots.get((unit, side))

    async def save(self, snapshot: Snapshot) -> None:
        key = (snapshot.unit, snapshot.side)
        async with self._lock:
            if key in self._snapshots:
                raise PersistenceError(
                    f"Snapshot {snapshot_key(*key)} already exists",
                    key=snapshot_key(*key),
                    unit=snapshot.unit,
                )
            self._snapshots[key] = snapshot

    async def clear(self) -> None:
        """Drop all snapshots. Useful for test isolation."""
        async with self._lock:
            self._snapshots.clear()

    @property
    def snapshot_count(self) -> int:
        return len(self._snapshots)


__all__ = ["InMemorySnapshotStore"]
