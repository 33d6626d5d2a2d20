"""
PipelineController - Orchestrates a complete migration run.

The controller sequences the phases of a run and owns the per-unit state
machine:

    PENDING -(dump)-> DUMPED -(count barrier)-> COUNTS_READY
        -(restore)-> RESTORED -(verify)-> VERIFIED_OK | VERIFIED_MISMATCH

Any stage error moves the unit to FAILED and ends the run once the
already-started tasks of the phase have settled.

Phases are hard barriers: every unit finishes its dump (or is skipped as
already dumped) before the first source count is taken, and every source
count is captured before the first restore starts. Source counts are
therefore taken at one "just after dump" instant for the whole batch, and
never compete with dump I/O on the source server.

Every transition is gated by a marker, so re-running after a crash or a
cancellation only performs the work that was not durably completed.

Usage:
    >>> controller = PipelineController(
    ...     config,
    ...     transfer=PgToolsTransferAdapter(
    ...         config.source, config.destination, dump_root=config.dump_root
    ...     ),
    ...     counts=PostgreSQLCountAdapter(),
    ...     server=PostgreSQLServerAdapter(),
    ...     markers=FileMarkerStore(config.state_dir, config.verify_dir),
    ...     snapshots=FileSnapshotStore(config.verify_dir),
    ... )
    >>> result = await controller.run()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from pgmigrate.adapters.interface import CountAdapter, ServerAdapter, TransferAdapter
from pgmigrate.bracket import SettingsBracket
from pgmigrate.cancellation import CancellationToken
from pgmigrate.config import RunConfig
from pgmigrate.discovery import discover_units
from pgmigrate.exceptions import VerificationMismatchError
from pgmigrate.globals import migrate_globals
from pgmigrate.markers.interface import MarkerStore
from pgmigrate.models import RunResult, Side, Stage, Unit, UnitState
from pgmigrate.observability import (
    ATTR_MISMATCH,
    ATTR_SIDE,
    ATTR_UNIT_COUNT,
    ATTR_UNIT_NAME,
    Tracer,
    create_tracer,
)
from pgmigrate.scheduler import BoundedScheduler, StageTask
from pgmigrate.snapshots.interface import Snapshot, SnapshotStore, load_or_capture
from pgmigrate.verification import VerificationReport, render_report, verify

logger = logging.getLogger(__name__)

ReportSink = Callable[[VerificationReport], None]


def log_report(report: VerificationReport) -> None:
    """Default report sink: log the rendered report at INFO."""
    logger.info("%s", render_report(report))


class PipelineController:
    """
    Runs discovery, global objects, dump, count barrier, restore and verify.

    The controller is single-use: create one per run.

    Attributes:
        result: State of the run; complete after run() returns, and
            reflecting the failed unit when run() raises
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        transfer: TransferAdapter,
        counts: CountAdapter,
        server: ServerAdapter,
        markers: MarkerStore,
        snapshots: SnapshotStore,
        cancel: CancellationToken | None = None,
        report_sink: ReportSink | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the controller.

        Args:
            config: Run configuration
            transfer: Dump/restore adapter
            counts: Row count adapter
            server: Catalogue and settings adapter
            markers: Stage marker store
            snapshots: Row count snapshot store
            cancel: Cancellation token; a fresh one is created if None
            report_sink: Receives every verification report as soon as it
                is produced; logs it by default
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing (default True).
                          Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._config = config
        self._transfer = transfer
        self._counts = counts
        self._server = server
        self._markers = markers
        self._snapshots = snapshots
        self._cancel = cancel or CancellationToken()
        self._report_sink = report_sink or log_report
        self._scheduler = BoundedScheduler(markers, self._cancel, tracer=self._tracer)
        self.result = RunResult()

    @property
    def cancel_token(self) -> CancellationToken:
        return self._cancel

    async def run(self) -> RunResult:
        """
        Execute the migration.

        Returns:
            The run result, with every unit VERIFIED_OK

        Raises:
            ConnectivityError: If a server cannot be reached
            ExternalOperationError: If a dump, restore or count fails
            CancellationError: If the run was cancelled
            VerificationMismatchError: If any unit's counts disagree; raised
                after every unit has been verified and reported
            PersistenceError: If a marker or snapshot cannot be read or written
        """
        started = time.monotonic()
        logger.info("Starting migration run: %s", self._config.to_dict())
        try:
            with self._tracer.span("pgmigrate.run", {}) as span:
                units = await discover_units(self._server, self._config.source)
                self.result = RunResult(
                    units=list(units),
                    states={unit.name: UnitState.PENDING for unit in units},
                )
                if span is not None:
                    span.set_attribute(ATTR_UNIT_COUNT, len(units))
                if not units:
                    return self.result

                bracket = SettingsBracket(
                    self._server,
                    self._config.destination,
                    self._config.tuning_settings,
                    enabled=not self._config.skip_tuning,
                    tracer=self._tracer,
                )
                async with bracket:
                    if self._config.migrate_globals:
                        await migrate_globals(
                            self._transfer,
                            self._markers,
                            self._config.globals_path,
                            self._config.destination.user,
                            self._cancel,
                        )
                    await self._run_phase(
                        Stage.DUMP,
                        units,
                        self._dump_unit,
                        self._config.dump_parallelism,
                        UnitState.DUMPED,
                    )
                    await self._capture_source_counts(units)
                    await self._run_phase(
                        Stage.RESTORE,
                        units,
                        self._restore_unit,
                        self._config.restore_parallelism,
                        UnitState.RESTORED,
                    )
                    await self._verify_units(units)
        finally:
            self.result.duration_seconds = time.monotonic() - started

        logger.info(
            "Migration completed: %d databases in %.1fs",
            len(self.result.units),
            self.result.duration_seconds,
        )
        return self.result

    # =========================================================================
    # Phases
    # =========================================================================

    async def _run_phase(
        self,
        stage: Stage,
        units: Sequence[Unit],
        task: StageTask,
        limit: int,
        state: UnitState,
    ) -> None:
        def settled(unit: Unit, error: Exception | None) -> None:
            self.result.advance(unit.name, UnitState.FAILED if error is not None else state)

        phase = await self._scheduler.run_phase(
            stage, units, task, limit=limit, on_settled=settled
        )
        self.result.phases.append(phase)
        for name in phase.skipped:
            self.result.advance(name, state)

    async def _dump_unit(self, unit: Unit) -> None:
        await self._transfer.dump(
            unit.name,
            self._config.dump_path(unit.name),
            self._config.dump_jobs,
            self._cancel,
        )

    async def _restore_unit(self, unit: Unit) -> None:
        self._cancel.raise_if_cancelled("create_database", unit.name)
        await self._server.create_database(self._config.destination, unit.name)
        await self._transfer.restore(
            unit.name,
            self._config.dump_path(unit.name),
            self._config.restore_jobs,
            self._cancel,
        )

    async def _capture_source_counts(self, units: Sequence[Unit]) -> None:
        """Count barrier: capture source snapshots one unit at a time."""
        with self._tracer.span(
            "pgmigrate.controller.count_barrier", {ATTR_UNIT_COUNT: len(units)}
        ):
            for unit in units:
                self._cancel.raise_if_cancelled("count_tables", unit.name)
                if not await self._markers.exists(unit.name, Stage.VERIFY):
                    try:
                        await self._snapshot(unit, Side.SOURCE)
                    except Exception:
                        self.result.advance(unit.name, UnitState.FAILED)
                        raise
                self.result.advance(unit.name, UnitState.COUNTS_READY)

    async def _verify_units(self, units: Sequence[Unit]) -> None:
        """
        Verify every unit, emitting each report before deciding the outcome.

        Units that match get their verify marker; mismatched units are
        collected and reported together once every unit has been verified.
        """
        mismatched: list[VerificationReport] = []
        for unit in units:
            if await self._markers.exists(unit.name, Stage.VERIFY):
                logger.info("Skipping verify of %s: already completed", unit.name)
                self.result.advance(unit.name, UnitState.VERIFIED_OK)
                continue

            self._cancel.raise_if_cancelled("verify", unit.name)
            with self._tracer.span(
                "pgmigrate.controller.verify", {ATTR_UNIT_NAME: unit.name}
            ) as span:
                try:
                    source = await self._snapshot(unit, Side.SOURCE)
                    destination = await self._snapshot(unit, Side.DESTINATION)
                except Exception:
                    self.result.advance(unit.name, UnitState.FAILED)
                    raise

                report = verify(unit.name, source, destination)
                if span is not None:
                    span.set_attribute(ATTR_MISMATCH, report.mismatch)
                self.result.reports[unit.name] = report
                self._report_sink(report)

                if report.mismatch:
                    logger.error("Verification of %s found mismatches", unit.name)
                    self.result.advance(unit.name, UnitState.VERIFIED_MISMATCH)
                    mismatched.append(report)
                else:
                    await self._markers.mark(unit.name, Stage.VERIFY)
                    self.result.advance(unit.name, UnitState.VERIFIED_OK)

        if mismatched:
            raise VerificationMismatchError(mismatched)

    async def _snapshot(self, unit: Unit, side: Side) -> Snapshot:
        params = (
            self._config.source if side == Side.SOURCE else self._config.destination
        ).for_database(unit.name)

        def capture() -> Awaitable[dict[str, str]]:
            return self._cancel.race(
                self._counts.count_tables(params, side),
                operation="count_tables",
                unit=unit.name,
            )

        with self._tracer.span(
            "pgmigrate.controller.snapshot",
            {ATTR_UNIT_NAME: unit.name, ATTR_SIDE: side.value},
        ):
            return await load_or_capture(self._snapshots, unit.name, side, capture)


__all__ = ["PipelineController", "ReportSink", "log_report"]
