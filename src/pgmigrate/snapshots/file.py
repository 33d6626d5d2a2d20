"""
File-backed snapshot store.

Persisted layout (JSON object of "schema.table" -> row count string):

    <verify_dir>/<unit>.src_counts.json
    <verify_dir>/<unit>.dst_counts.json

Files are written atomically and validated with pydantic on load, so a
hand-edited or truncated file is reported instead of silently compared.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pydantic import ValidationError

from pgmigrate._files import safe_name, write_atomic
from pgmigrate.exceptions import PersistenceError
from pgmigrate.models import Side
from pgmigrate.snapshots.interface import COUNTS_ADAPTER, Snapshot, SnapshotStore, snapshot_key

logger = logging.getLogger(__name__)

_SUFFIXES: dict[Side, str] = {
    Side.SOURCE: ".src_counts.json",
    Side.DESTINATION: ".dst_counts.json",
}


def _read_if_exists(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _write_once(path: Path, data: bytes) -> bool:
    if path.exists():
        return False
    write_atomic(path, data)
    return True


class FileSnapshotStore(SnapshotStore):
    """
    SnapshotStore keeping one JSON file per (unit, side).

    Example:
        >>> store = FileSnapshotStore(config.verify_dir)
        >>> snapshot = await store.load("orders", Side.SOURCE)
    """

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, unit: str, side: Side) -> Path:
        """Snapshot file path for a (unit, side) pair."""
        return self._directory / f"{safe_name(unit)}{_SUFFIXES[side]}"

    async def load(self, unit: str, side: Side) -> Snapshot | None:
        path = self.path_for(unit, side)
        key = snapshot_key(unit, side)
        try:
            data = await asyncio.to_thread(_read_if_exists, path)
        except OSError as e:
            raise PersistenceError(
                f"Cannot read snapshot {key}: {e}", key=key, path=str(path), unit=unit
            ) from e

        if data is None:
            return None

        try:
            counts = COUNTS_ADAPTER.validate_json(data)
        except ValidationError as e:
            raise PersistenceError(
                f"Snapshot {key} is corrupt: {e.error_count()} validation error(s)",
                key=key,
                path=str(path),
                unit=unit,
            ) from e

        logger.debug("Loaded snapshot %s from %s", key, path)
        return Snapshot(unit=unit, side=side, counts=counts)

    async def save(self, snapshot: Snapshot) -> None:
        path = self.path_for(snapshot.unit, snapshot.side)
        key = snapshot_key(snapshot.unit, snapshot.side)
        try:
            written = await asyncio.to_thread(_write_once, path, snapshot.to_json())
        except OSError as e:
            raise PersistenceError(
                f"Cannot write snapshot {key}: {e}", key=key, path=str(path), unit=snapshot.unit
            ) from e

        if not written:
            raise PersistenceError(
                f"Snapshot {key} already exists", key=key, path=str(path), unit=snapshot.unit
            )
        logger.debug("Saved snapshot %s to %s", key, path)


__all__ = ["FileSnapshotStore"]
