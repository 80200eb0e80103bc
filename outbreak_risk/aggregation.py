"""
Outbreak Risk Engine - Aggregation Engine.

============================================================
PURPOSE
============================================================
Fleet-wide statistics over the current snapshot set, used
for dashboard summaries.

============================================================
SUMMARY FIELDS
============================================================
- total_reports:         sum of case counts
- high_tier_count:       regions in the HIGH tier
- active_alert_count:    regions in HIGH, or with water quality
                         below the alert floor
- total_population:      sum of populations
- average_water_quality: mean water quality, 0 when empty

The active alert condition is broader than the HIGH tier so
that borderline water-quality cases are counted even when the
blended score stays at or below the high threshold.

============================================================
"""

from typing import Iterable, List, Optional

from .config import AlertingConfig
from .types import FleetSummary, RiskSnapshot, RiskTier


class AggregationEngine:
    """
    Pure reduction over a snapshot set.

    Holds no state between calls.
    """

    def __init__(self, config: Optional[AlertingConfig] = None):
        self._config = config or AlertingConfig()

    @property
    def water_quality_floor(self) -> float:
        return self._config.water_quality_floor

    def needs_attention(self, snapshot: RiskSnapshot) -> bool:
        """True if the region counts toward the active alert total."""
        return (
            snapshot.tier == RiskTier.HIGH
            or snapshot.water_quality_index < self._config.water_quality_floor
        )

    def summarize(self, snapshots: Iterable[RiskSnapshot]) -> FleetSummary:
        """
        Reduce a snapshot set to a FleetSummary.

        Args:
            snapshots: Complete snapshot set of one tick

        Returns:
            FleetSummary (all zeros for an empty set)
        """
        snapshots = list(snapshots)

        tier_counts = {tier.value: 0 for tier in RiskTier.all_tiers()}
        total_reports = 0
        total_population = 0
        active_alerts = 0
        water_total = 0.0

        for snapshot in snapshots:
            tier_counts[snapshot.tier.value] += 1
            total_reports += snapshot.case_count
            total_population += snapshot.population
            water_total += snapshot.water_quality_index
            if self.needs_attention(snapshot):
                active_alerts += 1

        average_water = water_total / len(snapshots) if snapshots else 0.0

        return FleetSummary(
            total_reports=total_reports,
            high_tier_count=tier_counts[RiskTier.HIGH.value],
            active_alert_count=active_alerts,
            total_population=total_population,
            average_water_quality=average_water,
            region_count=len(snapshots),
            tier_counts=tier_counts,
        )

    def attention_regions(self, snapshots: Iterable[RiskSnapshot]) -> List[RiskSnapshot]:
        """Regions counted in active_alert_count, in input order."""
        return [s for s in snapshots if self.needs_attention(s)]

    def hot_regions(
        self,
        snapshots: Iterable[RiskSnapshot],
        limit: Optional[int] = None,
    ) -> List[RiskSnapshot]:
        """
        HIGH-tier regions, highest score first.

        Ties are broken by region id so the order is stable.
        """
        hot = sorted(
            (s for s in snapshots if s.tier == RiskTier.HIGH),
            key=lambda s: (-s.score, s.region_id),
        )
        if limit is not None:
            hot = hot[:limit]
        return hot


def summarize_snapshots(
    snapshots: Iterable[RiskSnapshot],
    config: Optional[AlertingConfig] = None,
) -> FleetSummary:
    """Convenience wrapper around a temporary AggregationEngine."""
    return AggregationEngine(config).summarize(snapshots)
