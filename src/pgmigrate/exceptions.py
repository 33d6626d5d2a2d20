"""
Exceptions raised by the pgmigrate pipeline.

Exception Hierarchy:
    MigrationError (base)
    +-- ConnectivityError
    +-- ExternalOperationError
    +-- CancellationError
    +-- VerificationMismatchError
    +-- PersistenceError

Errors are never retried automatically. When several tasks of a phase fail
at once, a CancellationError takes precedence over every other error in the
cause reported to the operator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pgmigrate.verification import VerificationReport


class MigrationError(Exception):
    """
    Base exception for all migration errors.

    Attributes:
        message: Human-readable error description.
        unit: Name of the unit (database) involved, if applicable.
        suggested_action: Guidance for the operator.
    """

    _default_suggested_action: str | None = None

    def __init__(
        self,
        message: str,
        *,
        unit: str | None = None,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.unit = unit
        self.suggested_action = suggested_action or self._default_suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        """Return formatted error string with context."""
        if self.unit and self.unit not in self.message:
            return f"{self.message} (unit={self.unit})"
        return self.message


class ConnectivityError(MigrationError):
    """
    Raised when the source or destination server cannot be reached.

    Attributes:
        side: "source" or "destination".
        host: Host that could not be reached.
    """

    _default_suggested_action = (
        "Check host, port, credentials and that the server accepts connections"
    )

    def __init__(
        self,
        side: str,
        host: str,
        details: str | None = None,
        *,
        unit: str | None = None,
    ) -> None:
        self.side = side
        self.host = host
        self.details = details
        message = f"Cannot connect to {side} server {host}"
        if details:
            message = f"{message}: {details}"
        super().__init__(message, unit=unit)


class ExternalOperationError(MigrationError):
    """
    Raised when a dump, restore or count operation fails.

    Attributes:
        operation: Name of the operation (e.g. "pg_dump", "count_tables").
        returncode: Exit status of the external process, if one was run.
        stderr: Captured standard error (truncated), if any.
    """

    _default_suggested_action = (
        "Inspect the tool output, fix the cause and re-run; completed stages are skipped"
    )

    def __init__(
        self,
        operation: str,
        *,
        unit: str | None = None,
        returncode: int | None = None,
        stderr: str | None = None,
        details: str | None = None,
    ) -> None:
        self.operation = operation
        self.returncode = returncode
        self.stderr = stderr
        target = f" for {unit}" if unit else ""
        message = f"{operation} failed{target}"
        if returncode is not None:
            message = f"{message} (exit status {returncode})"
        if details:
            message = f"{message}: {details}"
        elif stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message, unit=unit)


class CancellationError(MigrationError):
    """
    Raised when an operation is terminated by a user-requested shutdown.

    Distinguishable from ExternalOperationError so that a run interrupted
    by Ctrl+C is reported as cancelled rather than as a tool failure.

    Attributes:
        operation: Operation that was interrupted, if known.
    """

    _default_suggested_action = "Re-run the migration to resume from the last completed stage"

    def __init__(
        self,
        operation: str | None = None,
        *,
        unit: str | None = None,
    ) -> None:
        self.operation = operation
        if operation and unit:
            message = f"Migration cancelled by user during {operation} of {unit}"
        elif operation:
            message = f"Migration cancelled by user during {operation}"
        else:
            message = "Migration cancelled by user"
        super().__init__(message, unit=unit)


class VerificationMismatchError(MigrationError):
    """
    Raised after the verify phase when any unit's counts disagree.

    Every report has already been emitted when this error is raised.

    Attributes:
        reports: Reports of the units that failed verification.
    """

    _default_suggested_action = (
        "Review the verification reports; a fresh migration requires clearing the state directories"
    )

    def __init__(self, reports: list[VerificationReport]) -> None:
        self.reports = reports
        names = ", ".join(report.unit for report in reports)
        unit = reports[0].unit if len(reports) == 1 else None
        super().__init__(
            f"Verification failed for {names}: tables or row counts mismatch",
            unit=unit,
        )

    @property
    def units(self) -> list[str]:
        """Names of the mismatched units."""
        return [report.unit for report in self.reports]


class PersistenceError(MigrationError):
    """
    Raised when a marker or snapshot cannot be read or written.

    Attributes:
        key: Store key that failed, e.g. "db1/dump" or "db1/source".
        path: Backing file path, if the store is file based.
    """

    _default_suggested_action = "Check permissions and free space of the state directories"

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        path: str | None = None,
        unit: str | None = None,
    ) -> None:
        self.key = key
        self.path = path
        super().__init__(message, unit=unit)


__all__ = [
    "MigrationError",
    "ConnectivityError",
    "ExternalOperationError",
    "CancellationError",
    "VerificationMismatchError",
    "PersistenceError",
]
