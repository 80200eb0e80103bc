"""
Tests for the refresh scheduler.

============================================================
PURPOSE
============================================================
TEST PRINCIPLES:
- A failing tick leaves the previous state visible
- The first tick fires immediately on start
- stop() lets an in-flight tick finish

============================================================
"""

import asyncio

import pytest

from outbreak_risk.alerting import AlertDispatcher
from outbreak_risk.config import OutbreakRiskConfig, SchedulerConfig
from outbreak_risk.scheduler import RefreshScheduler, create_scheduler
from outbreak_risk.sources import (
    CallableObservationSource,
    FileObservationSource,
    StaticObservationSource,
)
from outbreak_risk.types import (
    AlertEvent,
    ObservationFetchFailure,
    RegionObservation,
    RiskTier,
)


HOT = RegionObservation("kerala", case_count=80, water_quality_index=20, population=900_000)
CALM = RegionObservation("kerala", case_count=1, water_quality_index=95, population=1000)
OTHER = RegionObservation("goa", case_count=5, water_quality_index=3, population=10_000)


class RecordingSink:

    def __init__(self):
        self.events = []

    async def notify(self, event: AlertEvent) -> bool:
        self.events.append(event)
        return True


class FailingSource:
    """Source that fails on demand."""

    def __init__(self, observations):
        self.observations = observations
        self.fail = False
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        if self.fail:
            raise ObservationFetchFailure("sensor feed offline")
        return self.observations


class SlowSource:

    def __init__(self, delay: float, observations):
        self.delay = delay
        self.observations = observations

    async def fetch(self):
        await asyncio.sleep(self.delay)
        return self.observations


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def source():
    return StaticObservationSource([HOT, OTHER])


@pytest.fixture
def scheduler(source, sink):
    return create_scheduler(source, sinks=[sink])


# ============================================================
# TICK TESTS
# ============================================================

class TestRunTick:

    @pytest.mark.asyncio
    async def test_tick_updates_store_and_summary(self, scheduler):
        result = await scheduler.run_tick()

        assert not result.skipped
        assert result.tick_number == 1
        assert result.region_count == 2
        assert scheduler.store.get("kerala").tier == RiskTier.HIGH
        assert scheduler.latest_summary.high_tier_count == 1
        # kerala is HIGH, goa has water quality below the floor
        assert scheduler.latest_summary.active_alert_count == 2
        assert scheduler.last_result is result

    @pytest.mark.asyncio
    async def test_tick_emits_alert_once(self, scheduler, sink):
        first = await scheduler.run_tick()
        second = await scheduler.run_tick()

        assert [e.region_id for e in first.alerts] == ["kerala"]
        assert second.alerts == []
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_re_entry_fires_again(self, scheduler, source, sink):
        await scheduler.run_tick()
        source.set_observations([CALM, OTHER])
        await scheduler.run_tick()
        source.set_observations([HOT, OTHER])
        await scheduler.run_tick()

        assert len(sink.events) == 2

    @pytest.mark.asyncio
    async def test_empty_source(self, sink):
        scheduler = create_scheduler(StaticObservationSource([]), sinks=[sink])

        result = await scheduler.run_tick()

        assert result.region_count == 0
        assert result.summary.total_reports == 0
        assert result.summary.average_water_quality == 0.0

    @pytest.mark.asyncio
    async def test_latest_summary_before_first_tick(self, scheduler):
        assert scheduler.latest_summary.region_count == 0
        assert scheduler.last_result is None

    @pytest.mark.asyncio
    async def test_tick_result_to_dict(self, scheduler):
        data = (await scheduler.run_tick()).to_dict()

        assert data["tick_number"] == 1
        assert data["summary"]["high_tier_count"] == 1
        assert data["alerts"][0]["region_id"] == "kerala"

    @pytest.mark.asyncio
    async def test_overflowing_file_count_is_scored(self, tmp_path):
        path = tmp_path / "regions.json"
        path.write_text('[{"id": "a", "cases": 1e999}, {"id": "b", "cases": 3}]')
        scheduler = create_scheduler(FileObservationSource(path))

        result = await scheduler.run_tick()

        assert not result.skipped
        assert result.region_count == 2
        assert scheduler.store.get("a").case_count == 100


# ============================================================
# FAILURE TESTS
# ============================================================

class TestTickFailures:

    @pytest.mark.asyncio
    async def test_fetch_failure_skips_tick(self, sink):
        source = FailingSource([HOT])
        scheduler = create_scheduler(source, sinks=[sink])

        await scheduler.run_tick()
        before_summary = scheduler.latest_summary
        before_snapshot = scheduler.store.get("kerala")

        source.fail = True
        result = await scheduler.run_tick()

        assert result.skipped
        assert "sensor feed offline" in result.skip_reason
        assert scheduler.latest_summary is before_summary
        assert scheduler.store.get("kerala") is before_snapshot
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_does_not_touch_alert_state(self, sink):
        source = FailingSource([HOT])
        scheduler = create_scheduler(source, sinks=[sink])

        await scheduler.run_tick()
        source.fail = True
        await scheduler.run_tick()
        source.fail = False
        await scheduler.run_tick()

        # Still ALERTED across the skipped tick, so no second alert
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_unexpected_source_error_skips_tick(self):
        def broken():
            raise ConnectionError("refused")

        scheduler = create_scheduler(CallableObservationSource(broken))

        result = await scheduler.run_tick()

        assert result.skipped
        assert "refused" in result.skip_reason

    @pytest.mark.asyncio
    async def test_fetch_timeout_skips_tick(self):
        config = OutbreakRiskConfig(scheduler=SchedulerConfig(fetch_timeout_seconds=0.05))
        scheduler = create_scheduler(SlowSource(1.0, [HOT]), config=config)

        result = await scheduler.run_tick()

        assert result.skipped
        assert "timed out" in result.skip_reason
        assert len(scheduler.store) == 0

    @pytest.mark.asyncio
    async def test_scoring_failure_skips_tick(self, sink):
        source = StaticObservationSource([HOT])
        scheduler = create_scheduler(source, sinks=[sink])
        await scheduler.run_tick()

        source.set_observations([RegionObservation("bad", case_count="many")])
        result = await scheduler.run_tick()

        assert result.skipped
        assert "kerala" in scheduler.store
        assert "bad" not in scheduler.store


# ============================================================
# LIFECYCLE TESTS
# ============================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_first_tick_is_immediate(self, source):
        scheduler = RefreshScheduler(
            source=source,
            dispatcher=AlertDispatcher(),
            config=SchedulerConfig(refresh_interval_ms=60_000),
        )

        await scheduler.start()
        await asyncio.sleep(0.05)

        assert scheduler.is_running
        assert scheduler.tick_count == 1

        await scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_ticks_repeat_on_interval(self, source):
        scheduler = RefreshScheduler(
            source=source,
            config=SchedulerConfig(refresh_interval_ms=20),
        )

        await scheduler.start()
        await asyncio.sleep(0.15)
        await scheduler.stop()

        assert scheduler.tick_count >= 3

    @pytest.mark.asyncio
    async def test_no_tick_after_stop(self, source):
        scheduler = RefreshScheduler(
            source=source,
            config=SchedulerConfig(refresh_interval_ms=20),
        )

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        count = scheduler.tick_count

        await asyncio.sleep(0.1)
        assert scheduler.tick_count == count

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_tick(self):
        scheduler = RefreshScheduler(
            source=SlowSource(0.1, [HOT]),
            config=SchedulerConfig(refresh_interval_ms=60_000),
        )

        await scheduler.start()
        await asyncio.sleep(0.02)
        await scheduler.stop()

        assert scheduler.tick_count == 1
        assert scheduler.last_result is not None
        assert not scheduler.last_result.skipped
        assert "kerala" in scheduler.store

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, source):
        scheduler = RefreshScheduler(
            source=source,
            config=SchedulerConfig(refresh_interval_ms=60_000),
        )

        await scheduler.start()
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert scheduler.tick_count == 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self, scheduler):
        await scheduler.stop()

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_run_forever_cancellation_stops(self, source):
        scheduler = RefreshScheduler(
            source=source,
            config=SchedulerConfig(refresh_interval_ms=60_000),
        )

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert not scheduler.is_running
        assert scheduler.tick_count == 1

    @pytest.mark.asyncio
    async def test_start_then_immediate_stop_runs_one_tick(self, source):
        scheduler = RefreshScheduler(
            source=source,
            config=SchedulerConfig(refresh_interval_ms=60_000),
        )

        await scheduler.start()
        await scheduler.stop()

        assert scheduler.tick_count == 1
        assert "kerala" in scheduler.store


def test_scheduler_built_outside_event_loop(source):
    scheduler = RefreshScheduler(source=source)

    async def two_ticks():
        await asyncio.gather(scheduler.run_tick(), scheduler.run_tick())

    asyncio.run(two_ticks())

    assert scheduler.tick_count == 2
    assert scheduler.last_result.tick_number == 2
