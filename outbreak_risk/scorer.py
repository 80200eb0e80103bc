"""
Outbreak Risk Engine - Risk Scorer.

============================================================
PURPOSE
============================================================
Maps a raw region observation to a bounded risk score and
a discrete tier.

============================================================
SCORING
============================================================
    case_weight       = min(cases, 100) / 100 * 40
    water_weight      = (100 - water_quality) / 100 * 30
    population_weight = min(population, 1_000_000) / 1_000_000 * 30

    score = min(case_weight + water_weight + population_weight, 100)

The blend is linear and monotone in each input.

============================================================
OUT-OF-RANGE INPUT
============================================================
Inputs are clamped, never rejected:
- negative case counts and populations become 0
- non-finite counts: NaN becomes 0, +inf becomes the saturation cap
- water quality is clamped to [0, 100]
- non-finite water quality is treated as 0 (worst)

The scorer is therefore total: it never raises for numeric
input of the declared types.

============================================================
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional, Tuple

from .config import OutbreakRiskConfig, ScoreThresholds, ScoringWeights
from .explainer import RiskFactorExplainer
from .types import RegionObservation, RiskSnapshot, RiskTier


logger = logging.getLogger(__name__)


MIN_CONFIDENCE = 70
MAX_CONFIDENCE = 100

# Confidence points gained per score point of distance from
# the nearest tier boundary.
CONFIDENCE_PER_POINT = 2


def _clamp_count(value, cap: int) -> int:
    """
    Clamp a count to a non-negative int.

    NaN becomes 0 and +inf becomes the saturation cap, where the
    count stops adding to the score anyway.
    """
    if isinstance(value, int):
        return max(0, value)
    number = float(value)
    if math.isnan(number):
        return 0
    if math.isinf(number):
        return cap if number > 0 else 0
    return max(0, int(number))


class RiskScorer:
    """
    Pure scoring function with configurable thresholds.

    Holds no state between calls: the same observation always
    produces the same score, tier and confidence.
    """

    def __init__(
        self,
        config: Optional[OutbreakRiskConfig] = None,
        explainer: Optional[RiskFactorExplainer] = None,
    ):
        """
        Initialize the scorer.

        Args:
            config: Engine configuration. Uses defaults if not provided.
            explainer: Factor explainer used by assess().
        """
        self.config = config or OutbreakRiskConfig()
        self._thresholds: ScoreThresholds = self.config.thresholds
        self._weights: ScoringWeights = self.config.weights
        self._explainer = explainer or RiskFactorExplainer()

    @property
    def thresholds(self) -> ScoreThresholds:
        return self._thresholds

    # --------------------------------------------------------
    # Normalization
    # --------------------------------------------------------

    def normalize(self, observation: RegionObservation) -> RegionObservation:
        """
        Return a copy of the observation with every field in domain.
        """
        w = self._weights
        case_count = _clamp_count(observation.case_count, w.case_count_cap)
        population = _clamp_count(observation.population, w.population_cap)

        water = float(observation.water_quality_index)
        if not math.isfinite(water):
            water = 0.0
        water = min(100.0, max(0.0, water))

        if (
            case_count != observation.case_count
            or population != observation.population
            or water != observation.water_quality_index
        ):
            logger.debug(
                f"Clamped observation for {observation.region_id}: "
                f"cases={observation.case_count}->{case_count} "
                f"water={observation.water_quality_index}->{water} "
                f"population={observation.population}->{population}"
            )

        return replace(
            observation,
            case_count=case_count,
            water_quality_index=water,
            population=population,
        )

    # --------------------------------------------------------
    # Scoring
    # --------------------------------------------------------

    def compute_score(self, observation: RegionObservation) -> float:
        """Blend the clamped observation into a 0-100 score."""
        obs = self.normalize(observation)
        w = self._weights

        case_weight = min(obs.case_count, w.case_count_cap) * w.case_weight / w.case_count_cap
        water_weight = (100.0 - obs.water_quality_index) * w.water_weight / 100.0
        population_weight = (
            min(obs.population, w.population_cap) * w.population_weight / w.population_cap
        )

        return min(case_weight + water_weight + population_weight, 100.0)

    def tier_for_score(self, score: float) -> RiskTier:
        """
        Classify a score.

        Boundaries are exclusive at the bottom of each band:
        70.0 is MEDIUM, anything above 70.0 is HIGH.
        """
        if score > self._thresholds.high_above:
            return RiskTier.HIGH
        elif score > self._thresholds.medium_above:
            return RiskTier.MEDIUM
        return RiskTier.LOW

    def score(self, observation: RegionObservation) -> Tuple[float, RiskTier]:
        """
        Score an observation.

        Args:
            observation: Raw region reading

        Returns:
            (score, tier)
        """
        value = self.compute_score(observation)
        return value, self.tier_for_score(value)

    def confidence(self, score: float, tier: Optional[RiskTier] = None) -> int:
        """
        Confidence in the tier assignment, 70-100.

        Scores sitting on a threshold are the least certain; the
        further a score is from the nearest threshold, the higher
        the confidence.
        """
        t = self._thresholds
        margin = min(abs(score - t.high_above), abs(score - t.medium_above))
        value = MIN_CONFIDENCE + int(round(margin * CONFIDENCE_PER_POINT))
        return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, value))

    def assess(
        self,
        observation: RegionObservation,
        assessed_at: Optional[datetime] = None,
    ) -> RiskSnapshot:
        """
        Produce a full snapshot for one observation.

        Args:
            observation: Raw region reading
            assessed_at: Snapshot timestamp (defaults to now, UTC)

        Returns:
            RiskSnapshot with score, tier, confidence and factors
        """
        obs = self.normalize(observation)
        value, tier = self.score(obs)

        return RiskSnapshot(
            region_id=obs.region_id,
            score=value,
            tier=tier,
            confidence=self.confidence(value, tier),
            factors=self._explainer.explain(tier),
            case_count=obs.case_count,
            water_quality_index=obs.water_quality_index,
            population=obs.population,
            name=obs.name,
            assessed_at=assessed_at or datetime.now(timezone.utc),
        )


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================


def score_observation(
    observation: RegionObservation,
    config: Optional[OutbreakRiskConfig] = None,
) -> Tuple[float, RiskTier]:
    """
    Score one observation with a temporary scorer.

    For repeated scoring, prefer a persistent RiskScorer.
    """
    return RiskScorer(config=config).score(observation)


def get_tier_from_score(score: float, thresholds: Optional[ScoreThresholds] = None) -> RiskTier:
    """Classify a score with the given (or default) thresholds."""
    config = OutbreakRiskConfig(thresholds=thresholds or ScoreThresholds())
    return RiskScorer(config=config).tier_for_score(score)
