"""
Outbreak Risk Engine - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the Outbreak Risk Engine.

This module defines the enums, dataclasses and exceptions
shared by the scorer, the store, the aggregation layer and
the alert dispatcher.

============================================================
DESIGN PRINCIPLES
============================================================
- Observations and snapshots are immutable
- Enums for discrete tier and alert states
- Clear separation between input and derived types

============================================================
RISK TIERS
============================================================
Every region is classified into exactly one tier:

- LOW     score <= 40
- MEDIUM  40 < score <= 70
- HIGH    score > 70

Thresholds are configurable, the values above are defaults.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4


# ============================================================
# ENUMS
# ============================================================


class RiskTier(str, Enum):
    """
    Discrete outbreak-risk classification for a region.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def all_tiers(cls) -> List["RiskTier"]:
        """Return all tiers in ascending severity."""
        return [cls.LOW, cls.MEDIUM, cls.HIGH]

    @property
    def severity_order(self) -> int:
        """Numeric ordering for severity comparison."""
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class AlertState(str, Enum):
    """
    Per-region alert state held by the dispatcher.

    - NORMAL: no outstanding high-risk alert
    - ALERTED: an alert was emitted and the region is still high
    """

    NORMAL = "normal"
    ALERTED = "alerted"


# ============================================================
# INPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class RegionObservation:
    """
    Raw per-region reading supplied by an observation source.

    Produced once per tick and never persisted by the engine.
    Values outside their domain are clamped by the scorer.
    """

    region_id: str
    case_count: int = 0
    water_quality_index: float = 100.0  # 0-100, higher = cleaner
    population: int = 1

    # Display name (village or state), defaults to the id
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.region_id


# ============================================================
# DERIVED DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class RiskSnapshot:
    """
    Current risk assessment of a single region.

    ============================================================
    OUTPUT GUARANTEES
    ============================================================
    - score: always 0-100
    - tier: deterministic function of score
    - confidence: always 70-100
    - factors: length determined by tier only

    The observation fields are copies of the clamped input,
    kept for display.
    ============================================================
    """

    region_id: str
    score: float
    tier: RiskTier
    confidence: int
    factors: Tuple[str, ...]

    # Copies of the originating observation
    case_count: int
    water_quality_index: float
    population: int
    name: Optional[str] = None

    assessed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def display_name(self) -> str:
        return self.name or self.region_id

    @property
    def is_high(self) -> bool:
        return self.tier == RiskTier.HIGH

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "region_id": self.region_id,
            "name": self.display_name,
            "score": round(self.score, 2),
            "tier": self.tier.value,
            "confidence": self.confidence,
            "factors": list(self.factors),
            "case_count": self.case_count,
            "water_quality_index": round(self.water_quality_index, 2),
            "population": self.population,
            "assessed_at": self.assessed_at.isoformat(),
        }


@dataclass(frozen=True)
class FleetSummary:
    """
    Fleet-wide statistics over the current snapshot set.

    Has no identity of its own: always recomputed from the
    complete snapshot set.
    """

    total_reports: int = 0
    high_tier_count: int = 0
    active_alert_count: int = 0
    total_population: int = 0
    average_water_quality: float = 0.0

    region_count: int = 0
    tier_counts: Dict[str, int] = field(
        default_factory=lambda: {tier.value: 0 for tier in RiskTier.all_tiers()}
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_reports": self.total_reports,
            "high_tier_count": self.high_tier_count,
            "active_alert_count": self.active_alert_count,
            "total_population": self.total_population,
            "average_water_quality": round(self.average_water_quality, 2),
            "region_count": self.region_count,
            "tier_counts": dict(self.tier_counts),
        }


@dataclass(frozen=True)
class AlertEvent:
    """
    Notification emitted when a region enters the HIGH tier.

    Emitted transiently, the engine keeps no alert history.
    """

    region_id: str
    tier: RiskTier
    confidence: int
    timestamp: datetime

    score: float = 0.0
    name: Optional[str] = None
    factors: Tuple[str, ...] = ()
    event_id: UUID = field(default_factory=uuid4)

    @property
    def display_name(self) -> str:
        return self.name or self.region_id

    @property
    def title(self) -> str:
        return f"High outbreak risk detected in {self.display_name}!"

    @property
    def description(self) -> str:
        return f"Confidence: {self.confidence}% - Immediate attention required"

    def to_telegram_message(self, include_details: bool = True) -> str:
        """
        Format the event for Telegram (HTML parse mode).

        Args:
            include_details: Whether to include score and factors

        Returns:
            Formatted message string
        """
        import html

        lines = [
            f"🚨 <b>{html.escape(self.title)}</b>",
            "",
            html.escape(self.description),
            "",
            f"🕐 {self.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        ]

        if include_details:
            lines.append("")
            lines.append(f"<b>Score:</b> {self.score:.1f}/100")
            if self.factors:
                lines.append("<b>Factors:</b>")
                for factor in self.factors:
                    lines.append(f"• {html.escape(factor)}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "event_id": str(self.event_id),
            "region_id": self.region_id,
            "name": self.display_name,
            "tier": self.tier.value,
            "confidence": self.confidence,
            "score": round(self.score, 2),
            "factors": list(self.factors),
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# ERROR TYPES
# ============================================================


class OutbreakRiskError(Exception):
    """Base exception for outbreak risk engine errors."""

    def __init__(self, message: str, region_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.region_id = region_id


class ObservationFetchFailure(OutbreakRiskError):
    """
    Raised when the observation source cannot supply a reading set.

    The scheduler skips the tick: previous snapshots and summary
    stay visible and no alert logic runs.
    """
    pass


class AlertSinkFailure(OutbreakRiskError):
    """
    Raised when a sink does not accept an alert event.

    Delivery is at-most-once: the failure is logged and the region
    still transitions to ALERTED.
    """
    pass


class InvalidObservation(OutbreakRiskError):
    """
    An observation that cannot be interpreted at all.

    NOTE: out-of-range numbers are clamped by the scorer and do not
    raise this. It is reserved for structurally broken records,
    e.g. a row without a region id.
    """
    pass


class SnapshotUpdateError(OutbreakRiskError):
    """Raised when a batch could not be scored; the previous set is kept."""
    pass
