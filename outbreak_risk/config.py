"""
Outbreak Risk Engine - Configuration.

============================================================
PURPOSE
============================================================
Configuration dataclasses and policy constants for the
Outbreak Risk Engine.

Configuration can be loaded from:
- Default values
- Environment variables (a local .env file is honoured)
- YAML config file

============================================================
RECOGNIZED OPTIONS
============================================================
    refreshIntervalMs: 30000
    scoreThresholds:
      highAbove: 70
      mediumAbove: 40
    alertWaterQualityFloor: 5
    sinkTimeoutSeconds: 5
    fetchTimeoutSeconds: 10
    telegram:
      botToken: "..."
      chatIds: ["..."]

============================================================
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv


logger = logging.getLogger(__name__)


# ============================================================
# SCORE THRESHOLDS
# ============================================================


@dataclass(frozen=True)
class ScoreThresholds:
    """
    Tier boundaries on the 0-100 risk score.

    - HIGH:   score >  high_above
    - MEDIUM: medium_above < score <= high_above
    - LOW:    score <= medium_above

    These are policy constants, not learned values.
    """

    high_above: float = 70.0
    medium_above: float = 40.0

    def __post_init__(self) -> None:
        """Validate thresholds."""
        if not 0 <= self.medium_above <= 100:
            raise ValueError("medium_above must be 0-100")
        if not 0 <= self.high_above <= 100:
            raise ValueError("high_above must be 0-100")
        if self.medium_above >= self.high_above:
            raise ValueError("medium_above must be < high_above")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "highAbove": self.high_above,
            "mediumAbove": self.medium_above,
        }


# ============================================================
# SCORING WEIGHTS
# ============================================================


@dataclass(frozen=True)
class ScoringWeights:
    """
    Linear blend used by the scorer.

    Each input contributes at most its weight; the three
    weights sum to the 100-point scale.
    """

    case_weight: float = 40.0
    water_weight: float = 30.0
    population_weight: float = 30.0

    # Saturation caps
    case_count_cap: int = 100
    population_cap: int = 1_000_000


# ============================================================
# ALERTING CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class AlertingConfig:
    """
    Configuration for alert eligibility and delivery.

    ============================================================
    ALERT PHILOSOPHY
    ============================================================
    - One alert per region per transition into HIGH
    - Delivery is best-effort and never retried
    - Water quality below the floor counts toward the active
      alert total even when the tier is not HIGH
    ============================================================
    """

    water_quality_floor: float = 5.0
    sink_timeout_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.sink_timeout_seconds <= 0:
            raise ValueError("sink_timeout_seconds must be > 0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alertWaterQualityFloor": self.water_quality_floor,
            "sinkTimeoutSeconds": self.sink_timeout_seconds,
        }


# ============================================================
# SCHEDULER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class SchedulerConfig:
    """Refresh loop timing."""

    refresh_interval_ms: int = 30000  # 30 seconds

    # A source that hangs longer than this skips the tick
    fetch_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.refresh_interval_ms <= 0:
            raise ValueError("refresh_interval_ms must be > 0")
        if self.fetch_timeout_seconds <= 0:
            raise ValueError("fetch_timeout_seconds must be > 0")

    @property
    def refresh_interval_seconds(self) -> float:
        return self.refresh_interval_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "refreshIntervalMs": self.refresh_interval_ms,
            "fetchTimeoutSeconds": self.fetch_timeout_seconds,
        }


# ============================================================
# TELEGRAM CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class TelegramConfig:
    """Telegram sink settings. Disabled unless token and chat are set."""

    bot_token: str = ""
    chat_ids: Tuple[str, ...] = ()
    include_details: bool = True

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_ids)

    def to_dict(self) -> Dict[str, Any]:
        # Token is never serialized
        return {
            "enabled": self.enabled,
            "chatIds": list(self.chat_ids),
            "includeDetails": self.include_details,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class OutbreakRiskConfig:
    """
    Master configuration for the Outbreak Risk Engine.
    """

    thresholds: ScoreThresholds = field(default_factory=ScoreThresholds)
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)

    engine_version: str = "1.0.0"

    @classmethod
    def from_env(cls) -> "OutbreakRiskConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - OUTBREAK_REFRESH_INTERVAL_MS
        - OUTBREAK_HIGH_ABOVE
        - OUTBREAK_MEDIUM_ABOVE
        - OUTBREAK_ALERT_WATER_QUALITY_FLOOR
        - OUTBREAK_SINK_TIMEOUT_SECONDS
        - OUTBREAK_FETCH_TIMEOUT_SECONDS
        - TELEGRAM_BOT_TOKEN
        - TELEGRAM_CHAT_ID (comma-separated)
        """
        load_dotenv()

        defaults = cls()

        thresholds = ScoreThresholds(
            high_above=_float_env("OUTBREAK_HIGH_ABOVE", defaults.thresholds.high_above),
            medium_above=_float_env("OUTBREAK_MEDIUM_ABOVE", defaults.thresholds.medium_above),
        )
        alerting = AlertingConfig(
            water_quality_floor=_float_env(
                "OUTBREAK_ALERT_WATER_QUALITY_FLOOR", defaults.alerting.water_quality_floor
            ),
            sink_timeout_seconds=_float_env(
                "OUTBREAK_SINK_TIMEOUT_SECONDS", defaults.alerting.sink_timeout_seconds
            ),
        )
        scheduler = SchedulerConfig(
            refresh_interval_ms=_int_env(
                "OUTBREAK_REFRESH_INTERVAL_MS", defaults.scheduler.refresh_interval_ms
            ),
            fetch_timeout_seconds=_float_env(
                "OUTBREAK_FETCH_TIMEOUT_SECONDS", defaults.scheduler.fetch_timeout_seconds
            ),
        )

        chat_ids = tuple(
            c.strip() for c in os.getenv("TELEGRAM_CHAT_ID", "").split(",") if c.strip()
        )
        telegram = TelegramConfig(
            bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            chat_ids=chat_ids,
        )

        return cls(
            thresholds=thresholds,
            alerting=alerting,
            scheduler=scheduler,
            telegram=telegram,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutbreakRiskConfig":
        """
        Build configuration from a mapping using the camelCase option names.

        Missing keys fall back to defaults.
        """
        defaults = cls()
        data = data or {}

        t = data.get("scoreThresholds") or {}
        thresholds = ScoreThresholds(
            high_above=float(t.get("highAbove", defaults.thresholds.high_above)),
            medium_above=float(t.get("mediumAbove", defaults.thresholds.medium_above)),
        )

        alerting = AlertingConfig(
            water_quality_floor=float(
                data.get("alertWaterQualityFloor", defaults.alerting.water_quality_floor)
            ),
            sink_timeout_seconds=float(
                data.get("sinkTimeoutSeconds", defaults.alerting.sink_timeout_seconds)
            ),
        )

        scheduler = SchedulerConfig(
            refresh_interval_ms=int(
                data.get("refreshIntervalMs", defaults.scheduler.refresh_interval_ms)
            ),
            fetch_timeout_seconds=float(
                data.get("fetchTimeoutSeconds", defaults.scheduler.fetch_timeout_seconds)
            ),
        )

        tg = data.get("telegram") or {}
        chat_ids = tg.get("chatIds", [])
        if isinstance(chat_ids, str):
            chat_ids = [chat_ids]
        telegram = TelegramConfig(
            bot_token=str(tg.get("botToken", "")),
            chat_ids=tuple(str(c) for c in chat_ids),
            include_details=bool(tg.get("includeDetails", True)),
        )

        return cls(
            thresholds=thresholds,
            alerting=alerting,
            scheduler=scheduler,
            telegram=telegram,
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "OutbreakRiskConfig":
        """
        Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file does not hold a mapping or
                        a threshold is out of range
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        logger.info(f"Loaded outbreak risk config from {path}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.scheduler.to_dict(),
            "scoreThresholds": self.thresholds.to_dict(),
            **self.alerting.to_dict(),
            "telegram": self.telegram.to_dict(),
            "engineVersion": self.engine_version,
        }


# ============================================================
# ENV HELPERS
# ============================================================


def _float_env(key: str, default: float) -> float:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {key}={val!r}, using {default}")
        return default


def _int_env(key: str, default: int) -> int:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError:
        logger.warning(f"Ignoring non-integer {key}={val!r}, using {default}")
        return default


# ============================================================
# DEFAULT CONFIGURATION
# ============================================================


def get_default_config() -> OutbreakRiskConfig:
    """
    Return the default configuration.

    The default thresholds (70 / 40) and water floor (5) must be
    preserved for compatibility.
    """
    return OutbreakRiskConfig()


_default_config: Optional[OutbreakRiskConfig] = None


def get_config() -> OutbreakRiskConfig:
    """Get the process-wide configuration, loading it from env on first use."""
    global _default_config
    if _default_config is None:
        _default_config = OutbreakRiskConfig.from_env()
    return _default_config


def set_config(config: Optional[OutbreakRiskConfig]) -> None:
    """Set (or with None, clear) the process-wide configuration."""
    global _default_config
    _default_config = config
