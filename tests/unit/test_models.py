"""
Unit tests for pgmigrate data models and exceptions.
"""

import pytest

from pgmigrate.exceptions import (
    CancellationError,
    ConnectivityError,
    ExternalOperationError,
    MigrationError,
    PersistenceError,
    VerificationMismatchError,
)
from pgmigrate.models import RunResult, Stage, Unit, UnitState
from pgmigrate.verification import verify


class TestUnit:
    """Tests for Unit."""

    def test_str_is_name(self) -> None:
        assert str(Unit("orders", 10)) == "orders"

    def test_rejects_empty_name(self) -> None:
        with pytest.raises(ValueError):
            Unit("")

    def test_rejects_negative_size(self) -> None:
        with pytest.raises(ValueError):
            Unit("orders", -1)


class TestUnitState:
    """Tests for UnitState."""

    @pytest.mark.parametrize(
        ("state", "terminal"),
        [
            (UnitState.PENDING, False),
            (UnitState.DUMPED, False),
            (UnitState.COUNTS_READY, False),
            (UnitState.RESTORED, False),
            (UnitState.VERIFIED_OK, True),
            (UnitState.VERIFIED_MISMATCH, True),
            (UnitState.FAILED, True),
        ],
    )
    def test_is_terminal(self, state: UnitState, terminal: bool) -> None:
        assert state.is_terminal is terminal


class TestRunResult:
    """Tests for RunResult."""

    def test_mismatched_units(self) -> None:
        """mismatched_units lists units in VERIFIED_MISMATCH."""
        result = RunResult(units=[Unit("a"), Unit("b")])
        result.advance("a", UnitState.VERIFIED_OK)
        result.advance("b", UnitState.VERIFIED_MISMATCH)

        assert result.mismatched_units == ["b"]

    def test_to_dict(self) -> None:
        result = RunResult(units=[Unit("a")], states={"a": UnitState.DUMPED})

        assert result.to_dict() == {
            "units": ["a"],
            "states": {"a": "dumped"},
            "mismatched_units": [],
            "duration_seconds": 0.0,
        }


class TestExceptions:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        "error",
        [
            ConnectivityError("source", "old-db"),
            ExternalOperationError("pg_dump", unit="orders", returncode=1),
            CancellationError("pg_dump", unit="orders"),
            VerificationMismatchError([verify("orders", {"t": "1"}, {})]),
            PersistenceError("disk full", key="orders/dump"),
        ],
    )
    def test_all_are_migration_errors(self, error: MigrationError) -> None:
        """Every error derives from MigrationError and suggests an action."""
        assert isinstance(error, MigrationError)
        assert error.suggested_action

    def test_connectivity_message(self) -> None:
        error = ConnectivityError("destination", "new-db", "connection refused")

        assert str(error) == "Cannot connect to destination server new-db: connection refused"
        assert error.side == "destination"

    def test_external_operation_message(self) -> None:
        """The message carries the exit status and the tool output."""
        error = ExternalOperationError(
            "pg_restore", unit="orders", returncode=1, stderr="ERROR: out of disk\n"
        )

        assert str(error) == "pg_restore failed for orders (exit status 1): ERROR: out of disk"
        assert error.unit == "orders"

    def test_cancellation_message(self) -> None:
        assert str(CancellationError("pg_dump", unit="orders")) == (
            "Migration cancelled by user during pg_dump of orders"
        )
        assert str(CancellationError()) == "Migration cancelled by user"

    def test_cancellation_is_not_external_failure(self) -> None:
        """A cancelled operation is distinguishable from a failed one."""
        assert not isinstance(CancellationError(), ExternalOperationError)

    def test_mismatch_lists_units(self) -> None:
        reports = [verify("a", {"t": "1"}, {}), verify("b", {}, {"t": "1"})]

        error = VerificationMismatchError(reports)

        assert error.units == ["a", "b"]
        assert str(error) == "Verification failed for a, b: tables or row counts mismatch"

    def test_unit_appended_when_not_in_message(self) -> None:
        error = PersistenceError("disk full", key="orders/dump", unit="orders")

        assert str(error) == "disk full (unit=orders)"

    def test_stage_values(self) -> None:
        """Stage values are stable; they are persisted by the SQLite stores."""
        assert [stage.value for stage in Stage] == ["dump", "restore", "verify", "globals"]
