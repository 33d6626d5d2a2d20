"""
Snapshot store interface and core data structures.

A snapshot is the row count of every user table of one unit, captured once
on one side (source or destination). The source side is captured right
after the dump phase and the destination side right before verification;
both are persisted so that a resumed run compares exactly the same numbers
instead of re-querying a source that may have changed in the meantime.

This module provides:
- Snapshot: Immutable table -> row count mapping for a (unit, side)
- SnapshotStore: Abstract base class for snapshot storage implementations
- load_or_capture: The read-if-present, else capture-and-save access pattern
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Annotated

from pydantic import StringConstraints, TypeAdapter

from pgmigrate.models import Side

logger = logging.getLogger(__name__)

# Counts are compared as strings, so they must be canonical decimals
ROW_COUNT_PATTERN = re.compile(r"^(0|[1-9][0-9]*)$")

RowCount = Annotated[str, StringConstraints(pattern=ROW_COUNT_PATTERN.pattern)]

COUNTS_ADAPTER: TypeAdapter[dict[str, RowCount]] = TypeAdapter(dict[str, RowCount])
"""Validates (and serializes) a table -> canonical row count mapping."""


@dataclass(frozen=True)
class Snapshot(Mapping[str, str]):
    """
    Point-in-time row counts of one unit on one side.

    Behaves as a read-only mapping from qualified table name
    ("schema.table") to the row count as a canonical decimal string.

    Attributes:
        unit: Unit (database) the counts belong to
        side: Server the counts were captured from
        counts: Table name -> row count

    Example:
        >>> snapshot = Snapshot("orders", Side.SOURCE, {"public.orders": "5"})
        >>> snapshot["public.orders"]
        '5'

    Raises:
        pydantic.ValidationError: If a count is not a canonical decimal
            (ValidationError is a ValueError).
    """

    unit: str
    side: Side
    counts: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        validated = COUNTS_ADAPTER.validate_python(dict(self.counts))
        object.__setattr__(self, "counts", MappingProxyType(validated))

    def __getitem__(self, table: str) -> str:
        return self.counts[table]

    def __iter__(self) -> Iterator[str]:
        return iter(self.counts)

    def __len__(self) -> int:
        return len(self.counts)

    def __str__(self) -> str:
        return f"Snapshot({self.unit}/{self.side.value}, {len(self.counts)} tables)"

    def to_json(self) -> bytes:
        """Serialize the counts as a JSON object with sorted keys."""
        return COUNTS_ADAPTER.dump_json(dict(sorted(self.counts.items())), indent=2)


class SnapshotStore(ABC):
    """
    Abstract base class for snapshot storage.

    Implementations must provide:
    - load: Retrieve the snapshot for a (unit, side), or None
    - save: Persist a snapshot; a (unit, side) is written at most once

    Design principles:
    - A stored snapshot is ground truth, even across process restarts
    - Saving over an existing snapshot raises PersistenceError
    - Keys are partitioned per (unit, side)

    See Also:
        - InMemorySnapshotStore: Testing implementation
        - FileSnapshotStore: JSON files under the verify directory
        - SQLiteSnapshotStore: Snapshots in a SQLite database
    """

    @abstractmethod
    async def load(self, unit: str, side: Side) -> Snapshot | None:
        """
        Load the snapshot for a unit and side.

        Args:
            unit: Unit (database) name
            side: Source or destination

        Returns:
            The snapshot if one was saved, None otherwise

        Raises:
            PersistenceError: If the stored snapshot cannot be read or is corrupt
        """
        pass  # pragma: no cover

    @abstractmethod
    async def save(self, snapshot: Snapshot) -> None:
        """
        Persist a snapshot under its (unit, side) key.

        Args:
            snapshot: The snapshot to save

        Raises:
            PersistenceError: If the snapshot cannot be written or one
                already exists for the key
        """
        pass  # pragma: no cover


def snapshot_key(unit: str, side: Side) -> str:
    """Human-readable key used in logs and errors."""
    return f"{unit}/{side.value}"


async def load_or_capture(
    store: SnapshotStore,
    unit: str,
    side: Side,
    capture: Callable[[], Awaitable[Mapping[str, str]]],
) -> Snapshot:
    """
    Return the stored snapshot, capturing and saving it first if absent.

    Args:
        store: Snapshot store
        unit: Unit (database) name
        side: Source or destination
        capture: Coroutine function producing the counts when needed

    Returns:
        The snapshot for (unit, side)
    """
    existing = await store.load(unit, side)
    if existing is not None:
        logger.info("Using saved %s counts for %s", side.value, unit)
        return existing

    counts = await capture()
    snapshot = Snapshot(unit=unit, side=side, counts=counts)
    await store.save(snapshot)
    logger.info("Captured %s counts for %s (%d tables)", side.value, unit, len(snapshot))
    return snapshot


__all__ = [
    "ROW_COUNT_PATTERN",
    "RowCount",
    "COUNTS_ADAPTER",
    "Snapshot",
    "SnapshotStore",
    "snapshot_key",
    "load_or_capture",
]
