"""
Transfer adapter backed by the PostgreSQL client tools.

Each operation runs one external process (pg_dump, pg_restore, pg_dumpall
or psql) and races its completion against the run's cancellation token;
when cancellation wins the process is sent SIGTERM, killed if it is still
running after a grace period, and reaped before CancellationError is
raised.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path

from pgmigrate._files import is_strictly_inside
from pgmigrate.adapters.interface import TransferAdapter
from pgmigrate.cancellation import CancellationToken
from pgmigrate.config import ConnectionParams
from pgmigrate.exceptions import ExternalOperationError
from pgmigrate.observability import (
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_JOBS,
    ATTR_OPERATION,
    ATTR_SERVER_ADDRESS,
    ATTR_UNIT_NAME,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20
TERMINATE_GRACE_SECONDS = 10.0


def _tail(text: str, lines: int = STDERR_TAIL_LINES) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


async def run_external(
    argv: Sequence[str],
    cancel: CancellationToken,
    *,
    env: Mapping[str, str] | None = None,
    operation: str | None = None,
    unit: str | None = None,
    check: bool = True,
) -> tuple[int, str]:
    """
    Run an external program as a cancellable operation.

    Args:
        argv: Program and arguments
        cancel: Run cancellation token; observed before the start and
            raced against the running process
        env: Variables added to the inherited environment
        operation: Name used in logs and errors (defaults to argv[0])
        unit: Unit the operation belongs to
        check: Raise ExternalOperationError on a non-zero exit status

    Returns:
        Tuple of (exit status, decoded standard error)

    Raises:
        CancellationError: If cancelled before start or while running
        ExternalOperationError: If the program cannot be started, or exits
            non-zero while check is True
    """
    operation = operation or argv[0]
    cancel.raise_if_cancelled(operation, unit)

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
            env={**os.environ, **(env or {})},
        )
    except OSError as e:
        raise ExternalOperationError(
            operation, unit=unit, details=f"cannot start {argv[0]}: {e}"
        ) from e

    async def terminate() -> None:
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            logger.warning(
                "%s (pid %s) did not exit after SIGTERM, killing it", operation, process.pid
            )
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    logger.debug("Started %s (pid %s) for %s", operation, process.pid, unit or "cluster")
    _, stderr_bytes = await cancel.race(
        process.communicate(),
        on_cancel=terminate,
        operation=operation,
        unit=unit,
    )
    stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""
    returncode = process.returncode if process.returncode is not None else -1

    if check and returncode != 0:
        raise ExternalOperationError(
            operation,
            unit=unit,
            returncode=returncode,
            stderr=_tail(stderr),
        )
    return returncode, stderr


class PgToolsTransferAdapter(TransferAdapter):
    """
    TransferAdapter running pg_dump, pg_restore, pg_dumpall and psql.

    Dumps use the directory format with zstd compression. Restores run
    with --clean --if-exists so that retrying an interrupted restore does
    not fail on objects the first attempt already created.

    Example:
        >>> transfer = PgToolsTransferAdapter(
        ...     config.source, config.destination, dump_root=config.dump_root
        ... )
        >>> await transfer.dump("orders", config.dump_path("orders"), 24, token)
    """

    def __init__(
        self,
        source: ConnectionParams,
        destination: ConnectionParams,
        *,
        bin_dir: Path | None = None,
        dump_root: Path | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            source: Server units are dumped from
            destination: Server units are restored into
            bin_dir: Directory holding the client tools; PATH lookup if None
            dump_root: Directory every dump destination must lie below;
                defaults to the parent of each destination
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing (default True).
                          Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._source = source
        self._destination = destination
        self._bin_dir = bin_dir
        self._dump_root = dump_root

    def _program(self, name: str) -> str:
        return str(self._bin_dir / name) if self._bin_dir else name

    def _attributes(self, params: ConnectionParams, operation: str, unit: str) -> dict[str, object]:
        return {
            ATTR_OPERATION: operation,
            ATTR_UNIT_NAME: unit,
            ATTR_DB_SYSTEM: "postgresql",
            ATTR_DB_NAME: unit,
            ATTR_SERVER_ADDRESS: params.host,
        }

    def dump_argv(self, unit: str, destination: Path, jobs: int) -> list[str]:
        return [
            self._program("pg_dump"),
            *self._source.cli_args(),
            "-Fd",
            "-j",
            str(jobs),
            "-Z",
            "zstd:5",
            "-f",
            str(destination),
            unit,
        ]

    def restore_argv(self, unit: str, source: Path, jobs: int) -> list[str]:
        return [
            self._program("pg_restore"),
            *self._destination.cli_args(),
            "-j",
            str(jobs),
            "--clean",
            "--if-exists",
            "--disable-triggers",
            "-d",
            unit,
            str(source),
        ]

    async def dump(
        self,
        unit: str,
        destination: Path,
        jobs: int,
        cancel: CancellationToken,
    ) -> None:
        attributes = self._attributes(self._source, "pg_dump", unit)
        attributes[ATTR_JOBS] = jobs
        with self._tracer.span("pgmigrate.transfer.dump", attributes):
            cancel.raise_if_cancelled("pg_dump", unit)
            root = self._dump_root if self._dump_root is not None else destination.parent
            if not is_strictly_inside(destination, root):
                raise ValueError(f"dump destination {destination} of {unit} is not below {root}")
            if destination.exists():
                # pg_dump -Fd refuses to write into an existing directory
                logger.warning("Removing incomplete dump of %s at %s", unit, destination)
                await asyncio.to_thread(shutil.rmtree, destination)
            await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)

            await run_external(
                self.dump_argv(unit, destination, jobs),
                cancel,
                env=self._source.subprocess_env(),
                operation="pg_dump",
                unit=unit,
            )
            logger.info("Dumped %s to %s", unit, destination)

    async def restore(
        self,
        unit: str,
        source: Path,
        jobs: int,
        cancel: CancellationToken,
    ) -> None:
        attributes = self._attributes(self._destination, "pg_restore", unit)
        attributes[ATTR_JOBS] = jobs
        with self._tracer.span("pgmigrate.transfer.restore", attributes):
            await run_external(
                self.restore_argv(unit, source, jobs),
                cancel,
                env=self._destination.subprocess_env(),
                operation="pg_restore",
                unit=unit,
            )
            logger.info("Restored %s from %s", unit, source)

    async def dump_globals(self, path: Path, cancel: CancellationToken) -> None:
        with self._tracer.span(
            "pgmigrate.transfer.dump_globals",
            {ATTR_OPERATION: "pg_dumpall", ATTR_SERVER_ADDRESS: self._source.host},
        ):
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await run_external(
                [
                    self._program("pg_dumpall"),
                    *self._source.cli_args(),
                    "--globals-only",
                    "-f",
                    str(path),
                ],
                cancel,
                env=self._source.subprocess_env(),
                operation="pg_dumpall",
            )

    async def restore_globals(self, path: Path, cancel: CancellationToken) -> list[str]:
        with self._tracer.span(
            "pgmigrate.transfer.restore_globals",
            {ATTR_OPERATION: "psql", ATTR_SERVER_ADDRESS: self._destination.host},
        ):
            # psql keeps going after a failed statement and exits 0;
            # per-statement errors are reported on stderr
            _, stderr = await run_external(
                [
                    self._program("psql"),
                    *self._destination.cli_args(),
                    "-d",
                    self._destination.database,
                    "-X",
                    "-q",
                    "-f",
                    str(path),
                ],
                cancel,
                env=self._destination.subprocess_env(),
                operation="psql",
            )
            return [line for line in stderr.splitlines() if "ERROR:" in line or "WARNING:" in line]


__all__ = [
    "PgToolsTransferAdapter",
    "run_external",
    "STDERR_TAIL_LINES",
    "TERMINATE_GRACE_SECONDS",
]
