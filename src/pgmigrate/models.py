"""
Data models for the pgmigrate pipeline.

Enums:
    - Stage: Ordered steps of a unit's migration
    - Side: Which server a snapshot was captured from
    - UnitState: Per-unit progression through the pipeline

Core Models:
    - Unit: One independently migratable database
    - PhaseResult: Outcome of one scheduled phase
    - RunResult: Outcome of a complete run
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pgmigrate.verification import VerificationReport


class Stage(Enum):
    """
    Stages of a unit's migration.

    Within a unit, DUMP always precedes RESTORE which always precedes
    VERIFY. GLOBALS is the cluster-wide roles/tablespaces step; it is not
    tied to a unit.
    """

    DUMP = "dump"
    """Unit dumped to the dump root."""

    RESTORE = "restore"
    """Unit loaded into the destination server."""

    VERIFY = "verify"
    """Source and destination counts reconciled without mismatch."""

    GLOBALS = "globals"
    """Global objects copied to the destination server."""


class Side(Enum):
    """Server a row-count snapshot was captured from."""

    SOURCE = "source"
    DESTINATION = "destination"


class UnitState(Enum):
    """
    Per-unit progression through the pipeline.

    State machine transitions:
        PENDING -> DUMPED -> COUNTS_READY -> RESTORED -> VERIFIED_OK
                                                    \\-> VERIFIED_MISMATCH
        Any non-terminal state ------------------------> FAILED
    """

    PENDING = "pending"
    DUMPED = "dumped"
    COUNTS_READY = "counts_ready"
    RESTORED = "restored"
    VERIFIED_OK = "verified_ok"
    VERIFIED_MISMATCH = "verified_mismatch"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """
        Check if this is a terminal state.

        Returns:
            True for VERIFIED_OK, VERIFIED_MISMATCH and FAILED.
        """
        return self in (
            UnitState.VERIFIED_OK,
            UnitState.VERIFIED_MISMATCH,
            UnitState.FAILED,
        )


@dataclass(frozen=True)
class Unit:
    """
    One independently migratable data collection (a database).

    Attributes:
        name: Database name, unique within the source server.
        size_bytes: Size on the source server; only used for ordering.
    """

    name: str
    size_bytes: int = 0

    def __post_init__(self) -> None:
        """Validate field values."""
        if not self.name:
            raise ValueError("unit name must not be empty")
        if self.size_bytes < 0:
            raise ValueError(f"size_bytes must be >= 0, got {self.size_bytes}")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class PhaseResult:
    """
    Outcome of a phase run by the bounded scheduler.

    Attributes:
        stage: Stage that was executed.
        completed: Units whose stage ran and was marked in this run.
        skipped: Units skipped because their marker already existed.
    """

    stage: Stage
    completed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()


@dataclass
class RunResult:
    """
    Outcome of a migration run.

    This is a mutable dataclass because the controller fills it in phase
    by phase; it is returned once the run has finished.

    Attributes:
        units: Discovered units in processing order.
        states: Current state per unit name.
        reports: Verification reports produced in this run, by unit name.
        phases: Results of the scheduled phases.
        duration_seconds: Wall-clock duration of the run.
    """

    units: list[Unit] = field(default_factory=list)
    states: dict[str, UnitState] = field(default_factory=dict)
    reports: dict[str, VerificationReport] = field(default_factory=dict)
    phases: list[PhaseResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def mismatched_units(self) -> list[str]:
        """Units whose verification found a mismatch."""
        return [
            name for name, state in self.states.items() if state == UnitState.VERIFIED_MISMATCH
        ]

    def advance(self, unit: str, state: UnitState) -> None:
        """Record a state transition for a unit."""
        self.states[unit] = state

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "units": [unit.name for unit in self.units],
            "states": {name: state.value for name, state in self.states.items()},
            "mismatched_units": self.mismatched_units,
            "duration_seconds": self.duration_seconds,
        }


__all__ = [
    "Stage",
    "Side",
    "UnitState",
    "Unit",
    "PhaseResult",
    "RunResult",
]
