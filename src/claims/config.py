"""
Explicit configuration objects for the rules engine and risk scorer.

Both engines receive one of these at construction; neither reads global
settings on its own.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict

from .schema import to_money


def _default_tiers() -> Dict[str, Decimal]:
    return {
        "PREM": Decimal("100000.00"),
        "STD": Decimal("25000.00"),
        "BASIC": Decimal("10000.00"),
    }


@dataclass(frozen=True)
class RulesConfig:
    """Thresholds for policy compliance checks."""

    max_claim_amount: Decimal = Decimal("50000.00")
    max_claims_per_month: int = 3
    min_days_between_claims: int = 7
    duplicate_window_days: int = 7
    document_required_threshold: Decimal = Decimal("1000.00")
    min_policy_id_length: int = 5
    coverage_tiers: Dict[str, Decimal] = field(default_factory=_default_tiers)

    def coverage_ceiling(self, policy_id: str) -> Decimal:
        """
        Coverage ceiling implied by the policy id's tier prefix.

        Prefixes match case-insensitively; the longest matching prefix wins.
        Unrecognized prefixes fall back to the global maximum.
        """
        upper = (policy_id or "").upper()
        for prefix in sorted(self.coverage_tiers, key=len, reverse=True):
            if upper.startswith(prefix.upper()):
                return self.coverage_tiers[prefix]
        return self.max_claim_amount

    @classmethod
    def from_settings(cls, settings) -> "RulesConfig":
        return cls(
            max_claim_amount=to_money(settings.max_claim_amount),
            max_claims_per_month=settings.max_claims_per_month,
            min_days_between_claims=settings.min_days_between_claims,
            duplicate_window_days=settings.duplicate_window_days,
            document_required_threshold=to_money(settings.document_required_threshold),
            min_policy_id_length=settings.min_policy_id_length,
            coverage_tiers={k: to_money(v) for k, v in settings.coverage_tiers.items()},
        )


@dataclass(frozen=True)
class ScoringConfig:
    """Weights and thresholds for combining risk signals."""

    statistical_weight: float = 0.6
    narrative_weight: float = 0.4
    reject_threshold: float = 0.70
    auto_approve_threshold: float = 0.80
    auto_approve_max_fraud: float = 0.30
    high_risk_threshold: float = 0.70
    medium_risk_threshold: float = 0.40

    def __post_init__(self):
        if self.statistical_weight < 0 or self.narrative_weight < 0:
            raise ValueError("Scoring weights must be non-negative")
        if self.statistical_weight + self.narrative_weight <= 0:
            raise ValueError("At least one scoring weight must be positive")

    @classmethod
    def from_settings(cls, settings) -> "ScoringConfig":
        return cls(
            statistical_weight=settings.statistical_weight,
            narrative_weight=settings.narrative_weight,
            reject_threshold=settings.reject_threshold,
            auto_approve_threshold=settings.auto_approve_threshold,
            auto_approve_max_fraud=settings.auto_approve_max_fraud,
            high_risk_threshold=settings.high_risk_threshold,
            medium_risk_threshold=settings.medium_risk_threshold,
        )


DEFAULT_RULES_CONFIG = RulesConfig()
DEFAULT_SCORING_CONFIG = ScoringConfig()
