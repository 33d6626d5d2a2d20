"""
In-memory marker store implementation.

All data is lost when the process ends; intended for tests and dry runs.
"""

from __future__ import annotations

import asyncio
import logging

from pgmigrate.markers.interface import MarkerStore, marker_key
from pgmigrate.models import Stage

logger = logging.getLogger(__name__)


class InMemoryMarkerStore(MarkerStore):
    """
    In-memory implementation of MarkerStore for testing.

    Stores markers in a set keyed by (unit, stage) and guards writes with
    an asyncio.Lock.

    Example:
        >>> store = InMemoryMarkerStore()
        >>> await store.mark("orders", Stage.DUMP)
        >>> await store.exists("orders", Stage.DUMP)
        True
    """

    def __init__(self) -> None:
        self._markers: set[tuple[str, Stage]] = set()
        self._lock = asyncio.Lock()

    async def exists(self, unit: str, stage: Stage) -> bool:
        return (unit, stage) in self._markers

    async def mark(self, unit: str, stage: Stage) -> None:
        async with self._lock:
            self._markers.add((unit, stage))
        logger.debug("Marked %s", marker_key(unit, stage))

    @property
    def markers(self) -> frozenset[tuple[str, Stage]]:
        """All recorded (unit, stage) markers."""
        return frozenset(self._markers)

    async def clear(self) -> None:
        """Remove all markers. Useful for test cleanup."""
        async with self._lock:
            self._markers.clear()


__all__ = ["InMemoryMarkerStore"]
