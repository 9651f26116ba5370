"""
Risk scoring for claims.

Combines the statistical model's fraud probability with the narrative
analysis fraud probability, then maps scores to a disposition.
Pure and side-effect free: callers supply already-obtained scores.
"""

from typing import Optional

from .config import DEFAULT_SCORING_CONFIG, ScoringConfig
from .schema import Disposition


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]; NaN maps to low."""
    if value != value:  # NaN
        return low
    return max(low, min(high, value))


class RiskScorer:
    """
    Fraud/approval risk scorer.

    Usage:
        scorer = RiskScorer()
        combined = scorer.score(0.05, 0.9, 0.05)
        disposition = scorer.decide(combined, 0.9)
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or DEFAULT_SCORING_CONFIG

    def score(
        self,
        statistical_fraud: float,
        statistical_approval: float,
        narrative_fraud: float,
    ) -> float:
        """
        Blend the statistical and narrative fraud probabilities.

        Inputs are clamped to [0, 1] before weighting, so the result is
        non-decreasing in both fraud signals and always lies in [0, 1].
        statistical_approval does not affect the blend; it is accepted so
        callers pass the full statistical verdict in one place.

        Returns:
            Combined fraud probability
        """
        weights = self.config.statistical_weight + self.config.narrative_weight
        combined = (
            self.config.statistical_weight * clamp(statistical_fraud)
            + self.config.narrative_weight * clamp(narrative_fraud)
        ) / weights
        return clamp(combined)

    def decide(self, combined_fraud: float, statistical_approval: float) -> Disposition:
        """
        Map scores to a disposition.

        Reject is checked first so it dominates a high approval score.
        """
        combined_fraud = clamp(combined_fraud)
        statistical_approval = clamp(statistical_approval)

        if combined_fraud > self.config.reject_threshold:
            return Disposition.REJECT

        if (
            statistical_approval > self.config.auto_approve_threshold
            and combined_fraud < self.config.auto_approve_max_fraud
        ):
            return Disposition.AUTO_APPROVE

        return Disposition.MANUAL_REVIEW

    def risk_level(self, fraud_score: float) -> str:
        """Reporting label for a fraud score: High, Medium or Low."""
        if fraud_score > self.config.high_risk_threshold:
            return "High"
        if fraud_score > self.config.medium_risk_threshold:
            return "Medium"
        return "Low"

    def explain(self, disposition: Disposition, combined_fraud: float, statistical_approval: float) -> str:
        """Human-readable reason for a disposition."""
        if disposition == Disposition.REJECT:
            return (
                f"High fraud risk score ({combined_fraud:.2f}) exceeds "
                f"rejection threshold ({self.config.reject_threshold:.2f})"
            )
        if disposition == Disposition.AUTO_APPROVE:
            return (
                f"Low fraud risk ({combined_fraud:.2f}) and high approval "
                f"score ({statistical_approval:.2f})"
            )
        return (
            f"Requires manual review: fraud risk {combined_fraud:.2f}, "
            f"approval score {statistical_approval:.2f}"
        )
