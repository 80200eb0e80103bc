"""
Outbreak Risk Engine - Alerting.

============================================================
PURPOSE
============================================================
Detects tier transitions into HIGH and emits one alert per
region per transition.

Provides:
- AlertDispatcher: per-region NORMAL/ALERTED state machine
- AlertSink protocol for notification destinations
- Logging, callback and Telegram sinks

============================================================
STATE MACHINE
============================================================
    NORMAL  --(tier == HIGH)-->  ALERTED   emits one AlertEvent
    ALERTED --(tier != HIGH)-->  NORMAL    silent
    ALERTED --(tier == HIGH)-->  ALERTED   silent (no re-fire)

Repeated HIGH ticks never re-fire an alert. This is what
keeps a persistently high region from flooding the sinks.

============================================================
DELIVERY
============================================================
- At-most-once, best-effort, never retried
- Each sink call is bounded by a timeout
- A failing sink is logged and the dispatcher moves on
- The region stays ALERTED even if delivery failed: the risk
  condition itself was real

============================================================
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

import aiohttp

from .config import AlertingConfig, TelegramConfig
from .types import (
    AlertEvent,
    AlertSinkFailure,
    AlertState,
    RiskSnapshot,
    RiskTier,
)


logger = logging.getLogger(__name__)


# ============================================================
# ALERT SINK PROTOCOL
# ============================================================


class AlertSink(Protocol):
    """
    Protocol for alert destinations.

    Implementations render or route the event: a UI toast,
    an SMS gateway, a message bus publish.
    """

    async def notify(self, event: AlertEvent) -> bool:
        """
        Deliver an event.

        Returns:
            True if the sink accepted the event
        """
        ...


# ============================================================
# LOGGING SINK
# ============================================================


class LoggingAlertSink:
    """Writes alerts to the log (console deployments and development)."""

    def __init__(self, level: int = logging.WARNING):
        self._level = level

    async def notify(self, event: AlertEvent) -> bool:
        logger.log(
            self._level,
            f"{event.title} {event.description} "
            f"(score={event.score:.1f}, factors={', '.join(event.factors)})",
        )
        return True


# ============================================================
# CALLBACK SINK
# ============================================================


class CallbackAlertSink:
    """
    Adapts a plain callable into a sink.

    The callable may be sync or async. A None return counts as
    accepted; any other falsy value counts as rejected.
    """

    def __init__(self, callback: Callable[[AlertEvent], Any]):
        self._callback = callback

    async def notify(self, event: AlertEvent) -> bool:
        result = self._callback(event)
        if inspect.isawaitable(result):
            result = await result
        return result is None or bool(result)


# ============================================================
# TELEGRAM SINK
# ============================================================


class TelegramAlertSink:
    """
    Sends alerts to Telegram chats via the Bot API.

    Notification-only. Disabled unless a bot token and at
    least one chat id are configured.
    """

    BASE_URL = "https://api.telegram.org/bot"

    def __init__(
        self,
        config: Optional[TelegramConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._config = config or TelegramConfig()
        self._session = session
        self._owns_session = session is None

        if self.enabled:
            logger.info(f"TelegramAlertSink enabled with {len(self._config.chat_ids)} chat(s)")
        else:
            logger.warning("TelegramAlertSink NOT configured - check TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID")

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def notify(self, event: AlertEvent) -> bool:
        if not self.enabled:
            return False

        message = event.to_telegram_message(include_details=self._config.include_details)

        success = True
        for chat_id in self._config.chat_ids:
            if not await self._send_message(chat_id, message):
                success = False
        return success

    async def _send_message(self, chat_id: str, message: str) -> bool:
        """Send message to a specific chat."""
        session = await self._get_session()
        url = f"{self.BASE_URL}{self._config.bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": message,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        try:
            async with session.post(url, json=payload) as response:
                if response.status == 200:
                    return True
                body = await response.text()
                logger.error(f"Telegram API error: {response.status} - {body[:200]}")
                return False
        except aiohttp.ClientError as e:
            logger.error(f"Error sending Telegram message: {e}")
            return False


# ============================================================
# ALERT DISPATCHER
# ============================================================


class AlertDispatcher:
    """
    Compares each tick's tiers against the previous tick and
    fires alerts for new HIGH entries.

    The last known state per region is the only memory kept;
    there is no alert history.
    """

    def __init__(
        self,
        sinks: Optional[List[AlertSink]] = None,
        config: Optional[AlertingConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            sinks: Alert destinations
            config: Alerting configuration (sink timeout)
            clock: Returns the event timestamp, defaults to UTC now
        """
        self._sinks: List[AlertSink] = list(sinks or [])
        self._config = config or AlertingConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._states: Dict[str, AlertState] = {}

    # --------------------------------------------------------
    # Sinks
    # --------------------------------------------------------

    def add_sink(self, sink: AlertSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, sink: AlertSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    @property
    def sinks(self) -> List[AlertSink]:
        return list(self._sinks)

    # --------------------------------------------------------
    # State
    # --------------------------------------------------------

    def state_of(self, region_id: str) -> AlertState:
        return self._states.get(region_id, AlertState.NORMAL)

    def alerted_regions(self) -> List[str]:
        return [r for r, s in self._states.items() if s == AlertState.ALERTED]

    def reset(self) -> None:
        """Forget all regions (every region returns to NORMAL)."""
        self._states.clear()

    # --------------------------------------------------------
    # Evaluation
    # --------------------------------------------------------

    def _transition(self, snapshots: Iterable[RiskSnapshot]) -> List[AlertEvent]:
        """
        Apply one tick to the state machine.

        Runs without awaiting, so the tick's transitions are
        recorded for every region or for none.
        """
        events: List[AlertEvent] = []
        seen = set()
        now = self._clock()

        for snapshot in snapshots:
            seen.add(snapshot.region_id)
            previous = self.state_of(snapshot.region_id)

            if snapshot.tier == RiskTier.HIGH:
                if previous == AlertState.NORMAL:
                    self._states[snapshot.region_id] = AlertState.ALERTED
                    events.append(AlertEvent(
                        region_id=snapshot.region_id,
                        tier=RiskTier.HIGH,
                        confidence=snapshot.confidence,
                        timestamp=now,
                        score=snapshot.score,
                        name=snapshot.name,
                        factors=snapshot.factors,
                    ))
            elif previous == AlertState.ALERTED:
                self._states[snapshot.region_id] = AlertState.NORMAL

        # Regions that left the snapshot set are forgotten
        for region_id in list(self._states):
            if region_id not in seen:
                del self._states[region_id]

        return events

    async def evaluate(self, snapshots: Iterable[RiskSnapshot]) -> List[AlertEvent]:
        """
        Process one tick's snapshot set.

        Args:
            snapshots: Complete snapshot set of the tick

        Returns:
            Events emitted this tick (whether or not a sink accepted them)
        """
        events = self._transition(snapshots)

        if events:
            # Delivery finishes even if the caller is cancelled mid-tick
            await asyncio.shield(self._deliver_all(events))

        return events

    async def _deliver_all(self, events: List[AlertEvent]) -> None:
        for event in events:
            logger.info(
                f"Alert emitted: region={event.region_id} "
                f"score={event.score:.1f} confidence={event.confidence}"
            )
            for sink in self._sinks:
                try:
                    await self._deliver(sink, event)
                except AlertSinkFailure as e:
                    logger.error(f"Alert sink failure: {e.message}")

    async def _deliver(self, sink: AlertSink, event: AlertEvent) -> None:
        """
        Deliver one event to one sink.

        Raises:
            AlertSinkFailure: If the sink rejected, raised or timed out
        """
        sink_name = type(sink).__name__
        try:
            accepted = await asyncio.wait_for(
                sink.notify(event),
                timeout=self._config.sink_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise AlertSinkFailure(
                f"{sink_name} timed out after {self._config.sink_timeout_seconds}s "
                f"for region {event.region_id}",
                region_id=event.region_id,
            ) from e
        except Exception as e:
            raise AlertSinkFailure(
                f"{sink_name} raised for region {event.region_id}: {e}",
                region_id=event.region_id,
            ) from e

        if not accepted:
            raise AlertSinkFailure(
                f"{sink_name} rejected alert for region {event.region_id}",
                region_id=event.region_id,
            )


# ============================================================
# FACTORY FUNCTIONS
# ============================================================


def create_console_dispatcher(config: Optional[AlertingConfig] = None) -> AlertDispatcher:
    """Create a dispatcher that logs alerts. Useful for development."""
    return AlertDispatcher(sinks=[LoggingAlertSink()], config=config)


def create_telegram_dispatcher(
    telegram: TelegramConfig,
    config: Optional[AlertingConfig] = None,
) -> AlertDispatcher:
    """Create a dispatcher that logs alerts and forwards them to Telegram."""
    return AlertDispatcher(
        sinks=[LoggingAlertSink(), TelegramAlertSink(config=telegram)],
        config=config,
    )
