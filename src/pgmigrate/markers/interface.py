"""
Marker store interface.

A marker is a durable boolean recording that a (unit, stage) pair ran to
completion. Markers make the pipeline resumable: before scheduling a unit
for a stage, the scheduler checks exists() and skips units already marked.

Design principles:
- mark() is the last action of a successful stage, so a marker is never
  observable before the effect it represents is durable
- Markers are write-once; nothing in the pipeline clears them
- Keys are partitioned per (unit, stage), so concurrent units never
  contend on the same key
"""

from abc import ABC, abstractmethod

from pgmigrate.models import Stage


class MarkerStore(ABC):
    """
    Abstract base class for stage completion markers.

    Implementations must provide:
    - exists: Whether the stage has been durably completed for the unit
    - mark: Durably record completion (idempotent)

    See Also:
        - InMemoryMarkerStore: Testing implementation
        - FileMarkerStore: Marker files under the state directories
        - SQLiteMarkerStore: Markers in a SQLite database
    """

    @abstractmethod
    async def exists(self, unit: str, stage: Stage) -> bool:
        """
        Check whether a stage has completed for a unit.

        Args:
            unit: Unit (database) name
            stage: Stage to check

        Returns:
            True if the marker exists

        Raises:
            PersistenceError: If the store cannot be read
        """
        pass  # pragma: no cover

    @abstractmethod
    async def mark(self, unit: str, stage: Stage) -> None:
        """
        Durably record that a stage has completed for a unit.

        Marking an already marked pair is a no-op.

        Args:
            unit: Unit (database) name
            stage: Completed stage

        Raises:
            PersistenceError: If the marker cannot be written
        """
        pass  # pragma: no cover


def marker_key(unit: str, stage: Stage) -> str:
    """Human-readable key used in logs and errors."""
    return f"{unit}/{stage.value}"


__all__ = ["MarkerStore", "marker_key"]
