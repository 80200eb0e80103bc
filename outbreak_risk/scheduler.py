"""
Outbreak Risk Engine - Refresh Scheduler.

============================================================
RESPONSIBILITY
============================================================
Drives periodic re-evaluation of all regions.

One tick runs, in order:
1. source.fetch()              acquire observations
2. store.update()              rescore, atomic commit
3. aggregator.summarize()      fleet statistics
4. dispatcher.evaluate()       dedup alerts

============================================================
FAILURE HANDLING
============================================================
- Fetch failure or timeout: tick skipped, previous snapshot
  set and summary remain visible, no alert logic runs
- Scoring failure: same as a fetch failure
- Sink failure: handled inside the dispatcher
- No error stops the loop

============================================================
LIFECYCLE
============================================================
start():  first tick fires immediately, then every interval
stop():   cancels the pending wait; an in-flight tick runs to
          completion, no further tick is scheduled

Ticks never overlap.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .aggregation import AggregationEngine
from .alerting import AlertDispatcher, AlertSink
from .config import OutbreakRiskConfig, SchedulerConfig
from .scorer import RiskScorer
from .sources import ObservationSource
from .store import RegionRiskStore
from .types import (
    AlertEvent,
    FleetSummary,
    ObservationFetchFailure,
    SnapshotUpdateError,
)


logger = logging.getLogger(__name__)


# ============================================================
# TICK RESULT
# ============================================================


@dataclass
class TickResult:
    """Outcome of one refresh tick."""

    tick_number: int
    started_at: datetime
    completed_at: Optional[datetime] = None

    skipped: bool = False
    skip_reason: Optional[str] = None

    region_count: int = 0
    summary: Optional[FleetSummary] = None
    alerts: List[AlertEvent] = field(default_factory=list)

    @property
    def duration_ms(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tick_number": self.tick_number,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "region_count": self.region_count,
            "summary": self.summary.to_dict() if self.summary else None,
            "alerts": [a.to_dict() for a in self.alerts],
        }


# ============================================================
# REFRESH SCHEDULER
# ============================================================


class RefreshScheduler:
    """
    Owns the refresh timer and runs the tick pipeline.

    The scheduler is the only writer of the snapshot store.
    """

    def __init__(
        self,
        source: ObservationSource,
        store: Optional[RegionRiskStore] = None,
        aggregator: Optional[AggregationEngine] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        config: Optional[SchedulerConfig] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            source: Observation source polled every tick
            store: Snapshot store (a default one is created if omitted)
            aggregator: Aggregation engine
            dispatcher: Alert dispatcher
            config: Refresh interval and fetch timeout
        """
        self._source = source
        self._store = store or RegionRiskStore()
        self._aggregator = aggregator or AggregationEngine()
        self._dispatcher = dispatcher or AlertDispatcher()
        self._config = config or SchedulerConfig()

        self._latest_summary: FleetSummary = FleetSummary()
        self._last_result: Optional[TickResult] = None
        self._tick_count = 0

        self._running = False
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        # Created on first use so it binds to the running loop
        self._tick_lock: Optional[asyncio.Lock] = None

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def store(self) -> RegionRiskStore:
        return self._store

    @property
    def aggregator(self) -> AggregationEngine:
        return self._aggregator

    @property
    def dispatcher(self) -> AlertDispatcher:
        return self._dispatcher

    @property
    def interval_seconds(self) -> float:
        return self._config.refresh_interval_seconds

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_result(self) -> Optional[TickResult]:
        return self._last_result

    @property
    def latest_summary(self) -> FleetSummary:
        """Summary of the last successful tick."""
        return self._latest_summary

    # --------------------------------------------------------
    # Tick
    # --------------------------------------------------------

    async def run_tick(self) -> TickResult:
        """
        Run one full fetch -> score -> aggregate -> alert pass.

        Never raises for source, scoring or sink errors.

        Returns:
            TickResult describing the outcome
        """
        if self._tick_lock is None:
            self._tick_lock = asyncio.Lock()

        async with self._tick_lock:
            self._tick_count += 1
            result = TickResult(
                tick_number=self._tick_count,
                started_at=datetime.now(timezone.utc),
            )

            try:
                observations = await self._fetch()
            except ObservationFetchFailure as e:
                logger.warning(f"Tick {result.tick_number} skipped: {e.message}")
                return self._finish(result, skip_reason=e.message)

            try:
                snapshots = self._store.update(observations, assessed_at=result.started_at)
            except SnapshotUpdateError as e:
                logger.error(f"Tick {result.tick_number} skipped: {e.message}")
                return self._finish(result, skip_reason=e.message)

            summary = self._aggregator.summarize(snapshots.values())
            self._latest_summary = summary

            alerts = await self._dispatcher.evaluate(snapshots.values())

            result.region_count = len(snapshots)
            result.summary = summary
            result.alerts = alerts
            return self._finish(result)

    async def _fetch(self):
        """
        Fetch observations with a timeout.

        Raises:
            ObservationFetchFailure: On any source error or timeout
        """
        try:
            return list(await asyncio.wait_for(
                self._source.fetch(),
                timeout=self._config.fetch_timeout_seconds,
            ))
        except ObservationFetchFailure:
            raise
        except asyncio.TimeoutError as e:
            raise ObservationFetchFailure(
                f"Observation source timed out after {self._config.fetch_timeout_seconds}s"
            ) from e
        except Exception as e:
            raise ObservationFetchFailure(f"Observation source failed: {e}") from e

    def _finish(self, result: TickResult, skip_reason: Optional[str] = None) -> TickResult:
        result.completed_at = datetime.now(timezone.utc)
        if skip_reason is not None:
            result.skipped = True
            result.skip_reason = skip_reason
        else:
            logger.info(
                f"Tick {result.tick_number} complete | regions={result.region_count} "
                f"high={result.summary.high_tier_count} alerts={len(result.alerts)} "
                f"duration={result.duration_ms:.1f}ms"
            )
        self._last_result = result
        return result

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def start(self) -> None:
        """Start the refresh loop. The first tick fires immediately."""
        if self._running:
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Refresh scheduler started | interval={self.interval_seconds}s")

    async def stop(self) -> None:
        """
        Stop the refresh loop.

        Waits for an in-flight tick to finish; no further tick
        is scheduled.
        """
        if not self._running:
            return

        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

        if self._task is not None:
            await self._task
            self._task = None

        logger.info("Refresh scheduler stopped")

    async def run_forever(self) -> None:
        """Start and block until stop() is called or the task is cancelled."""
        await self.start()
        task = self._task
        try:
            if task is not None:
                await asyncio.shield(task)
        except asyncio.CancelledError:
            await self.stop()
            raise

    async def _run(self) -> None:
        """
        Main loop.

        The first tick runs before the stop event is checked, so a
        started scheduler always completes at least one tick.
        """
        loop = asyncio.get_running_loop()

        while True:
            tick_started = loop.time()

            try:
                await self.run_tick()
            except Exception as e:
                logger.error(f"Unexpected tick error: {e}", exc_info=True)

            if self._stop_event.is_set():
                break

            wait_seconds = max(0.0, self.interval_seconds - (loop.time() - tick_started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=wait_seconds)
                break
            except asyncio.TimeoutError:
                pass


# ============================================================
# FACTORY
# ============================================================


def create_scheduler(
    source: ObservationSource,
    config: Optional[OutbreakRiskConfig] = None,
    sinks: Optional[List[AlertSink]] = None,
) -> RefreshScheduler:
    """
    Wire a scheduler with a store, aggregator and dispatcher
    built from one configuration.
    """
    config = config or OutbreakRiskConfig()

    return RefreshScheduler(
        source=source,
        store=RegionRiskStore(scorer=RiskScorer(config=config)),
        aggregator=AggregationEngine(config=config.alerting),
        dispatcher=AlertDispatcher(sinks=sinks, config=config.alerting),
        config=config.scheduler,
    )
