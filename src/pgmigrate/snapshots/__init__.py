"""
Row count snapshots.

Implementations:
    - InMemorySnapshotStore: Testing and dry runs
    - FileSnapshotStore: JSON files under the verify directory
    - SQLiteSnapshotStore: Snapshots in a SQLite database
"""

from pgmigrate.snapshots.file import FileSnapshotStore
from pgmigrate.snapshots.in_memory import InMemorySnapshotStore
from pgmigrate.snapshots.interface import (
    COUNTS_ADAPTER,
    Snapshot,
    SnapshotStore,
    load_or_capture,
    snapshot_key,
)
from pgmigrate.snapshots.sqlite import SQLiteSnapshotStore

__all__ = [
    "Snapshot",
    "SnapshotStore",
    "COUNTS_ADAPTER",
    "load_or_capture",
    "snapshot_key",
    "InMemorySnapshotStore",
    "FileSnapshotStore",
    "SQLiteSnapshotStore",
]
