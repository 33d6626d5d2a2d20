"""
Unit tests for BoundedScheduler.

Tests cover:
- Concurrency ceiling
- Marker gating and write-after-effect ordering
- Fail-fast with settling of started siblings
- Cancellation precedence over ordinary errors
"""

import asyncio

import pytest

from pgmigrate.cancellation import CancellationToken
from pgmigrate.exceptions import CancellationError, ExternalOperationError, PersistenceError
from pgmigrate.markers import InMemoryMarkerStore
from pgmigrate.models import Stage, Unit
from pgmigrate.observability import MockTracer
from pgmigrate.scheduler import BoundedScheduler


def make_units(*names: str) -> list[Unit]:
    return [Unit(name) for name in names]


class UnwritableMarkerStore(InMemoryMarkerStore):
    """Marker store that cannot persist markers of the given units."""

    def __init__(self, failing: set[str]) -> None:
        super().__init__()
        self._failing = failing

    async def mark(self, unit: str, stage: Stage) -> None:
        if unit in self._failing:
            raise PersistenceError(f"cannot write marker {unit}/{stage.value}", unit=unit)
        await super().mark(unit, stage)


class TestConcurrency:
    """Tests for the permit ceiling."""

    @pytest.mark.asyncio
    async def test_never_exceeds_limit(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """With P=2 and 5 units, at most 2 tasks run at any instant."""
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)
        active = 0
        peak = 0

        async def task(unit: Unit) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        result = await scheduler.run_phase(
            Stage.DUMP, make_units("a", "b", "c", "d", "e"), task, limit=2
        )

        assert peak == 2
        assert sorted(result.completed) == ["a", "b", "c", "d", "e"]

    @pytest.mark.asyncio
    async def test_limit_one_is_sequential(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """A ceiling of one runs units strictly in order."""
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)
        order: list[str] = []

        async def task(unit: Unit) -> None:
            order.append(f"start:{unit.name}")
            await asyncio.sleep(0)
            order.append(f"end:{unit.name}")

        await scheduler.run_phase(Stage.DUMP, make_units("a", "b"), task, limit=1)

        assert order == ["start:a", "end:a", "start:b", "end:b"]

    @pytest.mark.asyncio
    async def test_rejects_zero_limit(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)

        async def task(unit: Unit) -> None:
            pass

        with pytest.raises(ValueError):
            await scheduler.run_phase(Stage.DUMP, make_units("a"), task, limit=0)


class TestMarkers:
    """Tests for marker gating."""

    @pytest.mark.asyncio
    async def test_marks_after_success(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """Each successful unit is marked for the phase's stage."""
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)

        async def task(unit: Unit) -> None:
            assert not await markers.exists(unit.name, Stage.RESTORE)

        await scheduler.run_phase(Stage.RESTORE, make_units("a", "b"), task, limit=2)

        assert await markers.exists("a", Stage.RESTORE)
        assert await markers.exists("b", Stage.RESTORE)
        assert not await markers.exists("a", Stage.DUMP)

    @pytest.mark.asyncio
    async def test_skips_marked_units(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """Units already marked never reach the task."""
        await markers.mark("b", Stage.DUMP)
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)
        seen: list[str] = []

        async def task(unit: Unit) -> None:
            seen.append(unit.name)

        result = await scheduler.run_phase(Stage.DUMP, make_units("a", "b", "c"), task, limit=3)

        assert sorted(seen) == ["a", "c"]
        assert result.skipped == ("b",)
        assert sorted(result.completed) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_failed_unit_not_marked(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """A failing task leaves no marker behind."""
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)

        async def task(unit: Unit) -> None:
            raise ExternalOperationError("pg_dump", unit=unit.name, returncode=1)

        with pytest.raises(ExternalOperationError):
            await scheduler.run_phase(Stage.DUMP, make_units("a"), task, limit=1)

        assert not await markers.exists("a", Stage.DUMP)

    @pytest.mark.asyncio
    async def test_settled_after_marker_written(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """A completed unit is reported only once its marker exists."""
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)
        settled: list[tuple[str, bool, Exception | None]] = []

        async def task(unit: Unit) -> None:
            pass

        def on_settled(unit: Unit, error: Exception | None) -> None:
            settled.append((unit.name, (unit.name, Stage.DUMP) in markers.markers, error))

        await scheduler.run_phase(
            Stage.DUMP, make_units("a", "b"), task, limit=1, on_settled=on_settled
        )

        assert settled == [("a", True, None), ("b", True, None)]

    @pytest.mark.asyncio
    async def test_marker_failure_settles_unit_as_failed(self, token: CancellationToken) -> None:
        """A unit whose marker cannot be written is reported with the error."""
        markers = UnwritableMarkerStore({"a"})
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)
        settled: dict[str, Exception | None] = {}

        async def task(unit: Unit) -> None:
            pass

        def on_settled(unit: Unit, error: Exception | None) -> None:
            settled[unit.name] = error

        with pytest.raises(PersistenceError) as exc_info:
            await scheduler.run_phase(
                Stage.DUMP, make_units("a"), task, limit=1, on_settled=on_settled
            )

        assert settled == {"a": exc_info.value}
        assert not await markers.exists("a", Stage.DUMP)

    @pytest.mark.asyncio
    async def test_empty_phase(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)

        async def task(unit: Unit) -> None:
            raise AssertionError("no unit to run")

        result = await scheduler.run_phase(Stage.DUMP, [], task, limit=2)

        assert result.completed == ()
        assert result.skipped == ()


class TestFailures:
    """Tests for fail-fast behaviour."""

    @pytest.mark.asyncio
    async def test_started_siblings_settle_and_unstarted_skip(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """A failure stops new units but waits for the ones already running."""
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)
        started: list[str] = []
        finished: list[str] = []

        async def task(unit: Unit) -> None:
            started.append(unit.name)
            if unit.name == "a":
                await asyncio.sleep(0.01)
                raise ExternalOperationError("pg_dump", unit="a", returncode=1)
            await asyncio.sleep(0.05)
            finished.append(unit.name)

        with pytest.raises(ExternalOperationError) as exc_info:
            await scheduler.run_phase(Stage.DUMP, make_units("a", "b", "c", "d"), task, limit=2)

        assert exc_info.value.unit == "a"
        assert started == ["a", "b"]
        assert finished == ["b"]
        assert await markers.exists("b", Stage.DUMP)
        assert not await markers.exists("c", Stage.DUMP)

    @pytest.mark.asyncio
    async def test_first_error_by_completion_order(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """The error that happened first is the one reported."""
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)

        async def task(unit: Unit) -> None:
            await asyncio.sleep(0.05 if unit.name == "slow" else 0.01)
            raise ExternalOperationError("pg_dump", unit=unit.name, returncode=1)

        with pytest.raises(ExternalOperationError) as exc_info:
            await scheduler.run_phase(Stage.DUMP, make_units("slow", "fast"), task, limit=2)

        assert exc_info.value.unit == "fast"

    @pytest.mark.asyncio
    async def test_cancellation_takes_precedence(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """A cancelled sibling wins over an earlier ordinary failure."""
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)

        async def task(unit: Unit) -> None:
            if unit.name == "fails":
                await asyncio.sleep(0.01)
                raise ExternalOperationError("pg_dump", unit="fails", returncode=1)
            await token.race(asyncio.sleep(0.05), operation="pg_dump", unit=unit.name)

        asyncio.get_running_loop().call_later(0.02, token.cancel)

        with pytest.raises(CancellationError):
            await scheduler.run_phase(
                Stage.DUMP, make_units("fails", "cancelled"), task, limit=2
            )

    @pytest.mark.asyncio
    async def test_cancelled_token_starts_nothing(
        self, markers: InMemoryMarkerStore, token: CancellationToken
    ) -> None:
        """After cancellation no task starts and the phase reports cancellation."""
        scheduler = BoundedScheduler(markers, token, enable_tracing=False)
        token.cancel()
        seen: list[str] = []

        async def task(unit: Unit) -> None:
            seen.append(unit.name)

        with pytest.raises(CancellationError):
            await scheduler.run_phase(Stage.DUMP, make_units("a", "b"), task, limit=2)

        assert seen == []


class TestTracing:
    """Tests for scheduler spans."""

    @pytest.mark.asyncio
    async def test_phase_span(self, markers: InMemoryMarkerStore, token: CancellationToken) -> None:
        tracer = MockTracer()
        scheduler = BoundedScheduler(markers, token, tracer=tracer)

        async def task(unit: Unit) -> None:
            pass

        await scheduler.run_phase(Stage.RESTORE, make_units("a", "b"), task, limit=4)

        assert tracer.span_names == ["pgmigrate.scheduler.restore"]
        _, attributes = tracer.spans[0]
        assert attributes["pgmigrate.unit.count"] == 2
        assert attributes["pgmigrate.concurrency.limit"] == 4
