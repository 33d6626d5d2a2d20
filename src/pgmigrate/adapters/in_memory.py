"""
In-memory adapter implementations.

Deterministic stand-ins for the client tools and the servers, used to test
the scheduler and controller without PostgreSQL. Every fake records its
calls, can be told to fail for specific units, and honours cancellation
the same way the real adapters do.

A shared `journal` list can be passed to several fakes to observe the
global order of operations across them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path

from pgmigrate.adapters.interface import CountAdapter, ServerAdapter, TransferAdapter
from pgmigrate.cancellation import CancellationToken
from pgmigrate.config import ConnectionParams
from pgmigrate.exceptions import ConnectivityError, ExternalOperationError
from pgmigrate.models import Side, Unit


class InMemoryTransferAdapter(TransferAdapter):
    """
    Fake TransferAdapter.

    Each dump or restore takes `delay` seconds, raced against the
    cancellation token like a real external process.

    Attributes:
        dumps: Units dumped successfully, in completion order
        restores: Units restored successfully, in completion order
        max_active: Highest number of operations outstanding at once
        started: Set after the first operation starts

    Example:
        >>> transfer = InMemoryTransferAdapter(delay=0.01, fail_dump={"b"})
        >>> await transfer.dump("b", Path("/tmp/b"), 4, token)
        Traceback (most recent call last):
        ExternalOperationError: pg_dump failed for b (exit status 1): ...
    """

    def __init__(
        self,
        *,
        delay: float = 0.0,
        delays: Mapping[str, float] | None = None,
        fail_dump: set[str] | None = None,
        fail_restore: set[str] | None = None,
        globals_sql: str = "",
        globals_errors: list[str] | None = None,
        journal: list[str] | None = None,
    ) -> None:
        self._delay = delay
        self._delays = dict(delays or {})
        self._fail_dump = set(fail_dump or ())
        self._fail_restore = set(fail_restore or ())
        self._globals_sql = globals_sql
        self._globals_errors = list(globals_errors or [])
        self.journal = journal if journal is not None else []
        self.dumps: list[str] = []
        self.restores: list[str] = []
        self.restored_globals: list[str] = []
        self.globals_dumped = 0
        self.active = 0
        self.max_active = 0
        self.started = asyncio.Event()

    async def _operate(
        self,
        operation: str,
        unit: str,
        failing: set[str],
        cancel: CancellationToken,
    ) -> None:
        cancel.raise_if_cancelled(operation, unit)
        self.journal.append(f"{operation}:{unit}")
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            await cancel.race(
                asyncio.sleep(self._delays.get(unit, self._delay)),
                operation=operation,
                unit=unit,
            )
            if unit in failing:
                raise ExternalOperationError(
                    operation, unit=unit, returncode=1, stderr=f"simulated {operation} failure"
                )
        finally:
            self.active -= 1

    async def dump(
        self,
        unit: str,
        destination: Path,
        jobs: int,
        cancel: CancellationToken,
    ) -> None:
        await self._operate("pg_dump", unit, self._fail_dump, cancel)
        self.dumps.append(unit)

    async def restore(
        self,
        unit: str,
        source: Path,
        jobs: int,
        cancel: CancellationToken,
    ) -> None:
        await self._operate("pg_restore", unit, self._fail_restore, cancel)
        self.restores.append(unit)

    async def dump_globals(self, path: Path, cancel: CancellationToken) -> None:
        cancel.raise_if_cancelled("pg_dumpall")
        self.journal.append("pg_dumpall")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self._globals_sql, encoding="utf-8")
        self.globals_dumped += 1

    async def restore_globals(self, path: Path, cancel: CancellationToken) -> list[str]:
        cancel.raise_if_cancelled("psql")
        self.journal.append("psql")
        self.restored_globals.append(path.read_text(encoding="utf-8"))
        return list(self._globals_errors)


class InMemoryCountAdapter(CountAdapter):
    """
    Fake CountAdapter serving fixed counts per database and side.

    Destination counts default to the source counts, i.e. a faithful copy.

    Attributes:
        calls: (side, database) of every count_tables call, in order
    """

    def __init__(
        self,
        source: Mapping[str, Mapping[str, str]] | None = None,
        destination: Mapping[str, Mapping[str, str]] | None = None,
        *,
        unreachable: set[Side] | None = None,
        journal: list[str] | None = None,
    ) -> None:
        self._counts = {
            Side.SOURCE: {db: dict(c) for db, c in (source or {}).items()},
            Side.DESTINATION: {db: dict(c) for db, c in (destination or {}).items()},
        }
        self._unreachable = set(unreachable or ())
        self.journal = journal if journal is not None else []
        self.calls: list[tuple[Side, str]] = []

    async def count_tables(
        self,
        params: ConnectionParams,
        side: Side = Side.SOURCE,
    ) -> dict[str, str]:
        if side in self._unreachable:
            raise ConnectivityError(side.value, params.host, "simulated outage")
        self.calls.append((side, params.database))
        self.journal.append(f"count:{side.value}:{params.database}")
        counts = self._counts[side].get(params.database)
        if counts is None and side == Side.DESTINATION:
            counts = self._counts[Side.SOURCE].get(params.database)
        return dict(counts or {})


class InMemoryServerAdapter(ServerAdapter):
    """
    Fake ServerAdapter holding a database catalogue and a settings table.

    Attributes:
        settings: Currently overridden settings (key -> value)
        history: Every setting operation as ("set"|"reset"|"reload", key)
        created: Databases created on the destination, in order
    """

    def __init__(
        self,
        databases: Mapping[str, int] | None = None,
        *,
        existing: set[str] | None = None,
        fail_settings: set[str] | None = None,
        unreachable: bool = False,
        journal: list[str] | None = None,
    ) -> None:
        self._databases = dict(databases or {})
        self._existing = set(existing or ())
        self._fail_settings = set(fail_settings or ())
        self._unreachable = unreachable
        self.journal = journal if journal is not None else []
        self.settings: dict[str, str] = {}
        self.history: list[tuple[str, str | None]] = []
        self.created: list[str] = []

    async def list_databases(self, params: ConnectionParams) -> list[Unit]:
        if self._unreachable:
            raise ConnectivityError(Side.SOURCE.value, params.host, "simulated outage")
        return [Unit(name=name, size_bytes=size) for name, size in self._databases.items()]

    async def create_database(self, params: ConnectionParams, name: str) -> bool:
        self.journal.append(f"create:{name}")
        if name in self._existing:
            return False
        self._existing.add(name)
        self.created.append(name)
        return True

    async def set_setting(self, params: ConnectionParams, key: str, value: str) -> None:
        if key in self._fail_settings:
            raise ExternalOperationError(f"set {key}", details="simulated settings failure")
        self.journal.append(f"set:{key}")
        self.history.append(("set", key))
        self.settings[key] = value

    async def reset_setting(self, params: ConnectionParams, key: str) -> None:
        self.journal.append(f"reset:{key}")
        self.history.append(("reset", key))
        self.settings.pop(key, None)

    async def reload_configuration(self, params: ConnectionParams) -> None:
        self.journal.append("reload")
        self.history.append(("reload", None))


__all__ = [
    "InMemoryTransferAdapter",
    "InMemoryCountAdapter",
    "InMemoryServerAdapter",
]
