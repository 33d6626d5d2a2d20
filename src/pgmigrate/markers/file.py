"""
File-backed marker store.

Persisted layout (one empty file per marker):

    <state_dir>/<unit>.dumped     dump completed
    <state_dir>/<unit>.done       restore completed
    <state_dir>/<unit>.globals    global objects migrated
    <verify_dir>/<unit>.verify    verification passed

Stage-completion markers and verification markers live in separate
directories, so verification can be re-run by clearing only verify_dir.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pgmigrate._files import safe_name, write_atomic
from pgmigrate.exceptions import PersistenceError
from pgmigrate.markers.interface import MarkerStore, marker_key
from pgmigrate.models import Stage

logger = logging.getLogger(__name__)

_SUFFIXES: dict[Stage, str] = {
    Stage.DUMP: ".dumped",
    Stage.RESTORE: ".done",
    Stage.GLOBALS: ".globals",
    Stage.VERIFY: ".verify",
}


class FileMarkerStore(MarkerStore):
    """
    MarkerStore keeping one marker file per (unit, stage).

    Filesystem calls run in a worker thread so a slow disk never stalls
    the event loop.

    Example:
        >>> store = FileMarkerStore(config.state_dir, config.verify_dir)
        >>> await store.mark("orders", Stage.DUMP)
    """

    def __init__(self, state_dir: Path, verify_dir: Path) -> None:
        self._state_dir = Path(state_dir)
        self._verify_dir = Path(verify_dir)

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    @property
    def verify_dir(self) -> Path:
        return self._verify_dir

    def path_for(self, unit: str, stage: Stage) -> Path:
        """Marker file path for a (unit, stage) pair."""
        directory = self._verify_dir if stage == Stage.VERIFY else self._state_dir
        return directory / f"{safe_name(unit)}{_SUFFIXES[stage]}"

    async def exists(self, unit: str, stage: Stage) -> bool:
        path = self.path_for(unit, stage)
        try:
            return await asyncio.to_thread(path.is_file)
        except OSError as e:
            raise PersistenceError(
                f"Cannot read marker {marker_key(unit, stage)}: {e}",
                key=marker_key(unit, stage),
                path=str(path),
                unit=unit,
            ) from e

    async def mark(self, unit: str, stage: Stage) -> None:
        path = self.path_for(unit, stage)
        try:
            await asyncio.to_thread(write_atomic, path, b"")
        except OSError as e:
            raise PersistenceError(
                f"Cannot write marker {marker_key(unit, stage)}: {e}",
                key=marker_key(unit, stage),
                path=str(path),
                unit=unit,
            ) from e
        logger.debug("Wrote marker %s", path)


__all__ = ["FileMarkerStore"]
