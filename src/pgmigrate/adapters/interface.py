"""
Interfaces of the external collaborators driven by the pipeline.

The pipeline never runs a tool or a query itself; it goes through three
injected capabilities so that the scheduler and controller can be tested
with the in-memory fakes:

- TransferAdapter: produces and loads the bytes of a unit (pg_dump/pg_restore)
- CountAdapter: exact per-table row counts of one database
- ServerAdapter: catalogue queries, database creation and server settings
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pgmigrate.cancellation import CancellationToken
from pgmigrate.config import ConnectionParams
from pgmigrate.models import Side, Unit


class TransferAdapter(ABC):
    """
    Dumps units from the source server and restores them into the destination.

    Every operation receives the run's CancellationToken and must terminate
    its underlying work promptly once the token fires, raising
    CancellationError rather than the error the terminated work would
    have produced.
    """

    @abstractmethod
    async def dump(
        self,
        unit: str,
        destination: Path,
        jobs: int,
        cancel: CancellationToken,
    ) -> None:
        """
        Dump one unit to a directory.

        Args:
            unit: Database to dump
            destination: Dump directory; replaced if left over from an
                interrupted attempt
            jobs: Parallel jobs hint for the dump tool
            cancel: Run cancellation token

        Raises:
            ExternalOperationError: If the dump fails
            CancellationError: If cancelled while outstanding
        """
        pass  # pragma: no cover

    @abstractmethod
    async def restore(
        self,
        unit: str,
        source: Path,
        jobs: int,
        cancel: CancellationToken,
    ) -> None:
        """
        Restore one unit from a dump directory into the destination server.

        The destination database must already exist. Restoring the same
        dump twice leaves the destination in the same state.

        Raises:
            ExternalOperationError: If the restore fails
            CancellationError: If cancelled while outstanding
        """
        pass  # pragma: no cover

    @abstractmethod
    async def dump_globals(self, path: Path, cancel: CancellationToken) -> None:
        """Write the source server's global objects (roles, tablespaces) as SQL to path."""
        pass  # pragma: no cover

    @abstractmethod
    async def restore_globals(self, path: Path, cancel: CancellationToken) -> list[str]:
        """
        Execute a global objects SQL file against the destination server.

        Statement failures do not stop the script.

        Returns:
            Error lines reported for individual statements
        """
        pass  # pragma: no cover


class CountAdapter(ABC):
    """Counts the rows of every user table of a database."""

    @abstractmethod
    async def count_tables(
        self,
        params: ConnectionParams,
        side: Side = Side.SOURCE,
    ) -> dict[str, str]:
        """
        Count rows of every user table.

        Args:
            params: Connection parameters; params.database is counted
            side: Server the parameters point at, for error reporting

        Returns:
            "schema.table" -> exact row count as a canonical decimal string

        Raises:
            ConnectivityError: If the server is unreachable
            ExternalOperationError: If a count query fails
        """
        pass  # pragma: no cover


class ServerAdapter(ABC):
    """Server-level operations: catalogue, database creation and settings."""

    @abstractmethod
    async def list_databases(self, params: ConnectionParams) -> list[Unit]:
        """
        List the connectable, non-template databases of the source server.

        Order of the result is unspecified.

        Raises:
            ConnectivityError: If the server is unreachable
        """
        pass  # pragma: no cover

    @abstractmethod
    async def create_database(self, params: ConnectionParams, name: str) -> bool:
        """
        Create a database on the destination server if it does not exist.

        Returns:
            True if the database was created, False if it already existed
        """
        pass  # pragma: no cover

    @abstractmethod
    async def set_setting(self, params: ConnectionParams, key: str, value: str) -> None:
        """Persistently override a destination server setting (ALTER SYSTEM SET)."""
        pass  # pragma: no cover

    @abstractmethod
    async def reset_setting(self, params: ConnectionParams, key: str) -> None:
        """Return a destination server setting to its default (ALTER SYSTEM RESET)."""
        pass  # pragma: no cover

    @abstractmethod
    async def reload_configuration(self, params: ConnectionParams) -> None:
        """Make setting changes effective without a restart."""
        pass  # pragma: no cover


__all__ = ["TransferAdapter", "CountAdapter", "ServerAdapter"]
