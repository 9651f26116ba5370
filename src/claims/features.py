"""
Feature sources for the statistical scorer.

Amount and document count come from the claim itself; claimant history
features come from an injectable source.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional

from ..providers.statistical import ClaimFeatures
from .rules import ClaimHistory
from .schema import Claim, as_utc, utc_now


class FeatureSource(ABC):
    """Builds statistical features for a claim."""

    def features_for(self, claim: Claim) -> ClaimFeatures:
        history_count, days_since_last = self.history_features(claim)
        return ClaimFeatures(
            amount=float(claim.total_amount),
            document_count=len(claim.documents),
            claimant_history_count=history_count,
            days_since_last_claim=days_since_last,
        )

    @abstractmethod
    def history_features(self, claim: Claim) -> tuple:
        """Return (claimant_history_count, days_since_last_claim)."""
        pass


class ColdStartFeatureSource(FeatureSource):
    """No claimant history: both history features are zero."""

    def history_features(self, claim: Claim) -> tuple:
        return 0, 0


class ClaimHistoryFeatureSource(FeatureSource):
    """Derives history features from the claimant's earlier claims."""

    def __init__(self, history: ClaimHistory, clock: Optional[Callable[[], datetime]] = None):
        self.history = history
        self.clock = clock or utc_now

    def history_features(self, claim: Claim) -> tuple:
        submitted_at = as_utc(claim.submitted_at)
        prior = [
            c for c in self.history.claims_for_claimant(claim.claimant_id)
            if c.claim_id != claim.claim_id and as_utc(c.submitted_at) <= submitted_at
        ]
        if not prior:
            return 0, 0

        last = max(as_utc(c.submitted_at) for c in prior)
        days_since_last = max((self.clock() - last).days, 0)
        return len(prior), days_since_last
