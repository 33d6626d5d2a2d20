"""
Bounded, marker-gated execution of one pipeline phase.

A phase runs one task per unit for a single stage. The scheduler:

- Skips units whose marker for the stage already exists
- Bounds the number of concurrently running tasks with a semaphore
- Writes the marker as the last action of every successful task
- On the first failure, stops units that have not started yet while
  letting already-started siblings run to completion
- Reports a cancelled run as cancelled, whatever else failed alongside

The scheduler does not know what a task does; the controller supplies it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from pgmigrate.cancellation import CancellationToken
from pgmigrate.exceptions import CancellationError
from pgmigrate.markers.interface import MarkerStore
from pgmigrate.models import PhaseResult, Stage, Unit
from pgmigrate.observability import (
    ATTR_CONCURRENCY_LIMIT,
    ATTR_ERROR_TYPE,
    ATTR_STAGE,
    ATTR_UNIT_COUNT,
    ATTR_UNITS_SKIPPED,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)

StageTask = Callable[[Unit], Awaitable[None]]
SettledCallback = Callable[[Unit, Exception | None], None]


class BoundedScheduler:
    """
    Runs stage tasks for many units under a concurrency ceiling.

    Example:
        >>> scheduler = BoundedScheduler(markers, token)
        >>> result = await scheduler.run_phase(Stage.DUMP, units, dump_unit, limit=6)
        >>> result.skipped
        ('already_dumped_db',)
    """

    def __init__(
        self,
        markers: MarkerStore,
        cancel: CancellationToken,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._markers = markers
        self._cancel = cancel

    async def run_phase(
        self,
        stage: Stage,
        units: Sequence[Unit],
        task: StageTask,
        *,
        limit: int,
        on_settled: SettledCallback | None = None,
    ) -> PhaseResult:
        """
        Run task for every unit not yet marked for stage.

        Units are started in the given order as permits free up. A unit is
        marked only after its task returned successfully.

        Args:
            stage: Stage being executed; selects the markers consulted
            units: Units of the batch
            task: Coroutine function doing the stage's work for one unit
            limit: Maximum number of tasks running at once
            on_settled: Called once per started unit after its marker was
                written (with None) or after its task or marker failed
                (with the error)

        Returns:
            Units completed and skipped by this phase

        Raises:
            ValueError: If limit is less than 1
            CancellationError: If the run was cancelled, even when other
                tasks failed with ordinary errors
            MigrationError: The first ordinary error, in completion order,
                after all started tasks have settled
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        with self._tracer.span(
            f"pgmigrate.scheduler.{stage.value}",
            {
                ATTR_STAGE: stage.value,
                ATTR_UNIT_COUNT: len(units),
                ATTR_CONCURRENCY_LIMIT: limit,
            },
        ) as span:
            pending: list[Unit] = []
            skipped: list[str] = []
            for unit in units:
                if await self._markers.exists(unit.name, stage):
                    logger.info("Skipping %s of %s: already completed", stage.value, unit.name)
                    skipped.append(unit.name)
                else:
                    pending.append(unit)
            if span is not None:
                span.set_attribute(ATTR_UNITS_SKIPPED, len(skipped))

            semaphore = asyncio.Semaphore(limit)
            abort = asyncio.Event()
            completed: list[str] = []
            not_started: list[str] = []
            errors: list[Exception] = []

            def settled(unit: Unit, error: Exception | None) -> None:
                if on_settled is not None:
                    on_settled(unit, error)

            async def run_unit(unit: Unit) -> None:
                async with semaphore:
                    if self._cancel.cancelled or abort.is_set():
                        not_started.append(unit.name)
                        return
                    try:
                        await task(unit)
                        await self._markers.mark(unit.name, stage)
                    except CancellationError as e:
                        logger.warning("%s of %s cancelled", stage.value, unit.name)
                        errors.append(e)
                        settled(unit, e)
                        abort.set()
                        return
                    except Exception as e:
                        logger.error("%s of %s failed: %s", stage.value, unit.name, e)
                        errors.append(e)
                        settled(unit, e)
                        abort.set()
                        return
                    completed.append(unit.name)
                    settled(unit, None)
                    logger.debug("%s of %s completed", stage.value, unit.name)

            if pending:
                logger.info(
                    "Starting %s phase: %d units, %d at a time",
                    stage.value,
                    len(pending),
                    limit,
                )
            await asyncio.gather(*(run_unit(unit) for unit in pending))

            if not_started:
                logger.info(
                    "%s phase stopped before starting %s", stage.value, ", ".join(not_started)
                )

            failure: Exception | None = None
            cancellations = [e for e in errors if isinstance(e, CancellationError)]
            if cancellations:
                failure = cancellations[0]
            elif self._cancel.cancelled:
                failure = CancellationError(stage.value)
            elif errors:
                failure = errors[0]
            if failure is not None:
                if span is not None:
                    span.set_attribute(ATTR_ERROR_TYPE, type(failure).__name__)
                raise failure

            return PhaseResult(stage=stage, completed=tuple(completed), skipped=tuple(skipped))


__all__ = ["BoundedScheduler", "SettledCallback", "StageTask"]
