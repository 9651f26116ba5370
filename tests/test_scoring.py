"""
Tests for the risk scorer: score combination, disposition precedence and
risk level labels.
"""

import itertools

import pytest

from src.claims.config import ScoringConfig
from src.claims.schema import Disposition
from src.claims.scoring import RiskScorer, clamp


@pytest.fixture
def scorer():
    return RiskScorer()


GRID = [-0.5, 0.0, 0.1, 0.3, 0.5, 0.7, 0.9, 1.0, 1.7]


class TestCombination:

    def test_weighted_blend(self, scorer):
        assert scorer.score(0.5, 0.5, 0.0) == pytest.approx(0.3)
        assert scorer.score(0.0, 0.5, 0.5) == pytest.approx(0.2)
        assert scorer.score(0.05, 0.9, 0.05) == pytest.approx(0.05)

    def test_always_in_unit_interval(self, scorer):
        for stat, narr in itertools.product(GRID, GRID):
            assert 0.0 <= scorer.score(stat, 0.5, narr) <= 1.0

    def test_monotonic_in_both_signals(self, scorer):
        for fixed in GRID:
            by_stat = [scorer.score(v, 0.5, fixed) for v in sorted(GRID)]
            by_narr = [scorer.score(fixed, 0.5, v) for v in sorted(GRID)]
            assert by_stat == sorted(by_stat)
            assert by_narr == sorted(by_narr)

    def test_deterministic(self, scorer):
        assert scorer.score(0.42, 0.6, 0.17) == scorer.score(0.42, 0.6, 0.17)

    def test_approval_does_not_change_blend(self, scorer):
        assert scorer.score(0.4, 0.0, 0.4) == scorer.score(0.4, 1.0, 0.4)

    def test_clamp_handles_nan(self):
        assert clamp(float("nan")) == 0.0
        assert clamp(2.0) == 1.0
        assert clamp(-1.0) == 0.0


class TestDecision:

    def test_reject_dominates_high_approval(self, scorer):
        combined = scorer.score(0.9, 0.95, 0.9)
        assert combined == pytest.approx(0.9)
        assert scorer.decide(combined, 0.95) == Disposition.REJECT

    def test_auto_approve(self, scorer):
        combined = scorer.score(0.1, 0.85, 0.1)
        assert combined == pytest.approx(0.1)
        assert scorer.decide(combined, 0.85) == Disposition.AUTO_APPROVE

    def test_manual_review(self, scorer):
        combined = scorer.score(0.5, 0.5, 0.5)
        assert scorer.decide(combined, 0.5) == Disposition.MANUAL_REVIEW

    @pytest.mark.parametrize("combined,approval,expected", [
        (0.70, 0.95, Disposition.MANUAL_REVIEW),   # reject needs strictly above 0.70
        (0.71, 0.95, Disposition.REJECT),
        (0.29, 0.81, Disposition.AUTO_APPROVE),
        (0.30, 0.95, Disposition.MANUAL_REVIEW),   # auto approve needs fraud strictly below 0.30
        (0.10, 0.80, Disposition.MANUAL_REVIEW),   # and approval strictly above 0.80
    ])
    def test_threshold_edges(self, scorer, combined, approval, expected):
        assert scorer.decide(combined, approval) == expected

    def test_custom_thresholds(self):
        scorer = RiskScorer(ScoringConfig(reject_threshold=0.5))
        assert scorer.decide(0.6, 0.9) == Disposition.REJECT

    def test_invalid_weights(self):
        with pytest.raises(ValueError):
            ScoringConfig(statistical_weight=0.0, narrative_weight=0.0)


class TestRiskLevel:

    @pytest.mark.parametrize("fraud,level", [
        (0.05, "Low"),
        (0.40, "Low"),
        (0.41, "Medium"),
        (0.70, "Medium"),
        (0.71, "High"),
    ])
    def test_labels(self, scorer, fraud, level):
        assert scorer.risk_level(fraud) == level

    def test_explain_mentions_scores(self, scorer):
        reason = scorer.explain(Disposition.REJECT, 0.9, 0.95)
        assert "0.90" in reason
        assert "rejection threshold" in reason
