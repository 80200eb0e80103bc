"""
Outbreak Risk Engine - Risk Factor Explainer.

Maps a tier to the supporting evidence shown next to a
classification. The factor list is always a prefix of
RISK_FACTOR_CANDIDATES and depends on the tier only.
"""

from typing import Dict, Tuple, Union

from .types import RiskTier


RISK_FACTOR_CANDIDATES: Tuple[str, ...] = (
    "High case density",
    "Poor water quality",
    "Population density",
    "Weather patterns",
    "Healthcare capacity",
    "Historical trends",
)

FACTOR_COUNT_BY_TIER: Dict[RiskTier, int] = {
    RiskTier.HIGH: 4,
    RiskTier.MEDIUM: 2,
    RiskTier.LOW: 1,
}


class RiskFactorExplainer:
    """Derives the ordered factor list for a tier."""

    def __init__(self, candidates: Tuple[str, ...] = RISK_FACTOR_CANDIDATES):
        self._candidates = tuple(candidates)

    @property
    def candidates(self) -> Tuple[str, ...]:
        return self._candidates

    def explain(self, tier: Union[RiskTier, str]) -> Tuple[str, ...]:
        """
        Return the factors supporting a tier.

        Args:
            tier: RiskTier or its string value

        Returns:
            Prefix of the candidate list (high: 4, medium: 2, low: 1)

        Raises:
            ValueError: If tier is not a known tier value
        """
        tier = RiskTier(tier)
        return self._candidates[:FACTOR_COUNT_BY_TIER[tier]]


def explain_tier(tier: Union[RiskTier, str]) -> Tuple[str, ...]:
    """Convenience wrapper around the default explainer."""
    return RiskFactorExplainer().explain(tier)
