"""
Tests for the risk scorer and factor explainer.

============================================================
PURPOSE
============================================================
TEST PRINCIPLES:
- Scores are bounded and deterministic
- Tier boundaries are exclusive at the bottom of each band
- Out-of-range input is clamped, never rejected
- Factor lists depend on the tier only

============================================================
"""

import math

import pytest

from outbreak_risk.config import OutbreakRiskConfig, ScoreThresholds
from outbreak_risk.explainer import (
    RISK_FACTOR_CANDIDATES,
    RiskFactorExplainer,
    explain_tier,
)
from outbreak_risk.scorer import (
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    RiskScorer,
    get_tier_from_score,
    score_observation,
)
from outbreak_risk.types import RegionObservation, RiskTier


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def scorer():
    return RiskScorer()


@pytest.fixture
def hot_observation():
    """80 cases, poor water, dense population."""
    return RegionObservation(
        region_id="kerala",
        case_count=80,
        water_quality_index=20,
        population=900_000,
        name="Kerala",
    )


# ============================================================
# SCORE TESTS
# ============================================================

class TestComputeScore:
    """Tests for the linear blend."""

    def test_reference_region_scores_83(self, scorer, hot_observation):
        score, tier = scorer.score(hot_observation)

        assert score == pytest.approx(83.0)
        assert tier == RiskTier.HIGH

    def test_clean_empty_region_scores_zero(self, scorer):
        obs = RegionObservation("empty", case_count=0, water_quality_index=100, population=0)

        assert scorer.compute_score(obs) == pytest.approx(0.0)

    def test_worst_case_is_capped_at_100(self, scorer):
        obs = RegionObservation(
            "worst", case_count=10_000, water_quality_index=0, population=50_000_000
        )

        assert scorer.compute_score(obs) == pytest.approx(100.0)

    def test_case_count_saturates(self, scorer):
        at_cap = RegionObservation("a", case_count=100, water_quality_index=100, population=0)
        over_cap = RegionObservation("b", case_count=5000, water_quality_index=100, population=0)

        assert scorer.compute_score(at_cap) == pytest.approx(40.0)
        assert scorer.compute_score(over_cap) == pytest.approx(40.0)

    def test_monotone_in_each_input(self, scorer):
        base = RegionObservation("r", case_count=10, water_quality_index=60, population=1000)

        more_cases = RegionObservation("r", case_count=20, water_quality_index=60, population=1000)
        worse_water = RegionObservation("r", case_count=10, water_quality_index=40, population=1000)
        more_people = RegionObservation("r", case_count=10, water_quality_index=60, population=5000)

        assert scorer.compute_score(more_cases) >= scorer.compute_score(base)
        assert scorer.compute_score(worse_water) >= scorer.compute_score(base)
        assert scorer.compute_score(more_people) >= scorer.compute_score(base)

    def test_scoring_is_deterministic(self, scorer, hot_observation):
        first = scorer.assess(hot_observation)
        second = scorer.assess(hot_observation)

        assert first.score == second.score
        assert first.tier == second.tier
        assert first.confidence == second.confidence
        assert first.factors == second.factors


# ============================================================
# TIER TESTS
# ============================================================

class TestTierForScore:
    """Tests for threshold classification."""

    def test_exactly_70_is_medium(self, scorer):
        assert scorer.tier_for_score(70.0) == RiskTier.MEDIUM

    def test_just_above_70_is_high(self, scorer):
        assert scorer.tier_for_score(70.0001) == RiskTier.HIGH

    def test_exactly_40_is_low(self, scorer):
        assert scorer.tier_for_score(40.0) == RiskTier.LOW

    def test_just_above_40_is_medium(self, scorer):
        assert scorer.tier_for_score(40.0001) == RiskTier.MEDIUM

    def test_zero_is_low(self, scorer):
        assert scorer.tier_for_score(0.0) == RiskTier.LOW

    def test_custom_thresholds(self):
        config = OutbreakRiskConfig(thresholds=ScoreThresholds(high_above=50, medium_above=20))
        scorer = RiskScorer(config=config)

        assert scorer.tier_for_score(55) == RiskTier.HIGH
        assert scorer.tier_for_score(50) == RiskTier.MEDIUM
        assert scorer.tier_for_score(20) == RiskTier.LOW

    def test_get_tier_from_score_uses_defaults(self):
        assert get_tier_from_score(71) == RiskTier.HIGH
        assert get_tier_from_score(70) == RiskTier.MEDIUM


# ============================================================
# NORMALIZATION TESTS
# ============================================================

class TestNormalize:
    """Out-of-range input is clamped."""

    def test_negative_case_count_is_clamped(self, scorer):
        obs = RegionObservation("r", case_count=-5, water_quality_index=100, population=0)

        snapshot = scorer.assess(obs)

        assert snapshot.case_count == 0
        assert snapshot.score == pytest.approx(0.0)

    def test_negative_population_is_clamped(self, scorer):
        obs = RegionObservation("r", case_count=0, water_quality_index=100, population=-10)

        assert scorer.normalize(obs).population == 0

    def test_water_quality_clamped_to_range(self, scorer):
        high = RegionObservation("r", water_quality_index=250)
        low = RegionObservation("r", water_quality_index=-30)

        assert scorer.normalize(high).water_quality_index == 100.0
        assert scorer.normalize(low).water_quality_index == 0.0

    def test_nan_water_quality_is_worst(self, scorer):
        obs = RegionObservation("r", water_quality_index=math.nan)

        assert scorer.normalize(obs).water_quality_index == 0.0

    def test_infinite_counts_clamp_to_caps(self, scorer):
        obs = RegionObservation("r", case_count=math.inf, water_quality_index=50, population=math.inf)

        normalized = scorer.normalize(obs)

        assert normalized.case_count == 100
        assert normalized.population == 1_000_000
        assert scorer.compute_score(obs) <= 100.0

    def test_nan_counts_become_zero(self, scorer):
        obs = RegionObservation("r", case_count=math.nan, water_quality_index=100, population=math.nan)

        normalized = scorer.normalize(obs)

        assert normalized.case_count == 0
        assert normalized.population == 0

    def test_non_numeric_count_still_raises(self, scorer):
        with pytest.raises(ValueError):
            scorer.normalize(RegionObservation("r", case_count="many"))

    def test_normalize_keeps_identity_fields(self, scorer):
        obs = RegionObservation("r", case_count=-1, name="River Town")

        normalized = scorer.normalize(obs)

        assert normalized.region_id == "r"
        assert normalized.name == "River Town"


# ============================================================
# CONFIDENCE TESTS
# ============================================================

class TestConfidence:
    """Confidence grows with distance from the nearest threshold."""

    def test_reference_region_confidence(self, scorer):
        # 83 is 13 points above the high threshold
        assert scorer.confidence(83.0) == 96

    def test_on_threshold_is_minimum(self, scorer):
        assert scorer.confidence(70.0) == MIN_CONFIDENCE
        assert scorer.confidence(40.0) == MIN_CONFIDENCE

    def test_far_from_threshold_is_capped(self, scorer):
        assert scorer.confidence(0.0) == MAX_CONFIDENCE
        assert scorer.confidence(100.0) == MAX_CONFIDENCE

    def test_always_in_range(self, scorer):
        for value in range(0, 101):
            assert MIN_CONFIDENCE <= scorer.confidence(float(value)) <= MAX_CONFIDENCE


# ============================================================
# ASSESS TESTS
# ============================================================

class TestAssess:
    """Tests for full snapshot production."""

    def test_high_region_snapshot(self, scorer, hot_observation):
        snapshot = scorer.assess(hot_observation)

        assert snapshot.region_id == "kerala"
        assert snapshot.display_name == "Kerala"
        assert snapshot.tier == RiskTier.HIGH
        assert snapshot.is_high
        assert snapshot.confidence == 96
        assert snapshot.factors == (
            "High case density",
            "Poor water quality",
            "Population density",
            "Weather patterns",
        )

    def test_snapshot_to_dict(self, scorer, hot_observation):
        data = scorer.assess(hot_observation).to_dict()

        assert data["tier"] == "high"
        assert data["score"] == 83.0
        assert data["name"] == "Kerala"
        assert len(data["factors"]) == 4

    def test_score_observation_helper(self, hot_observation):
        score, tier = score_observation(hot_observation)

        assert score == pytest.approx(83.0)
        assert tier == RiskTier.HIGH


# ============================================================
# EXPLAINER TESTS
# ============================================================

class TestRiskFactorExplainer:
    """Factor lists are prefixes of the candidate list."""

    def test_factor_counts_by_tier(self):
        explainer = RiskFactorExplainer()

        assert len(explainer.explain(RiskTier.HIGH)) == 4
        assert len(explainer.explain(RiskTier.MEDIUM)) == 2
        assert len(explainer.explain(RiskTier.LOW)) == 1

    def test_factors_are_candidate_prefix(self):
        for tier in RiskTier.all_tiers():
            factors = explain_tier(tier)
            assert factors == RISK_FACTOR_CANDIDATES[:len(factors)]

    def test_accepts_string_tier(self):
        assert explain_tier("medium") == ("High case density", "Poor water quality")

    def test_unknown_tier_raises(self):
        with pytest.raises(ValueError):
            explain_tier("critical")

    def test_custom_candidates(self):
        explainer = RiskFactorExplainer(candidates=("a", "b", "c", "d", "e"))

        assert explainer.explain(RiskTier.MEDIUM) == ("a", "b")
