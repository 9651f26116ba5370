"""
Statistical fraud/approval scorers.

Scorers take numeric claim features and return a fraud probability and an
approval probability. Model training is out of scope here; the joblib scorer
loads an already trained scikit-learn classifier.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from ..claims.errors import ScoringError

logger = logging.getLogger(__name__)


class ClaimFeatures(BaseModel):
    """Inputs to the statistical model."""
    amount: float = Field(ge=0.0)
    document_count: int = Field(default=0, ge=0)
    claimant_history_count: int = Field(default=0, ge=0)
    days_since_last_claim: int = Field(default=0, ge=0)

    def as_row(self) -> list:
        return [self.amount, self.document_count, self.claimant_history_count, self.days_since_last_claim]


class StatisticalScore(BaseModel):
    """Model output."""
    fraud_probability: float = Field(ge=0.0, le=1.0)
    approval_probability: float = Field(ge=0.0, le=1.0)


class StatisticalScorer(ABC):
    """Base class for statistical scorers."""

    @abstractmethod
    async def score(self, features: ClaimFeatures) -> StatisticalScore:
        """
        Score a claim.

        Raises:
            ScoringError: if the model cannot produce a score
        """
        pass


class HeuristicStatisticalScorer(StatisticalScorer):
    """
    Fixed logistic model over claim features.

    Larger amounts and frequent recent claims raise fraud probability;
    supporting documents lower it. Approval probability is its complement.
    """

    INTERCEPT = -3.2
    AMOUNT_PER_THOUSAND = 0.06
    PER_DOCUMENT = -0.35
    PER_PRIOR_CLAIM = 0.45
    RECENT_CLAIM_BONUS = 0.8
    RECENT_CLAIM_DAYS = 30

    async def score(self, features: ClaimFeatures) -> StatisticalScore:
        z = (
            self.INTERCEPT
            + self.AMOUNT_PER_THOUSAND * (features.amount / 1000.0)
            + self.PER_DOCUMENT * min(features.document_count, 5)
            + self.PER_PRIOR_CLAIM * features.claimant_history_count
        )
        if features.claimant_history_count and features.days_since_last_claim < self.RECENT_CLAIM_DAYS:
            z += self.RECENT_CLAIM_BONUS

        fraud = 1.0 / (1.0 + math.exp(-z))
        fraud = round(fraud, 4)
        return StatisticalScore(fraud_probability=fraud, approval_probability=round(1.0 - fraud, 4))


class JoblibStatisticalScorer(StatisticalScorer):
    """
    Scorer backed by a scikit-learn classifier serialized with joblib.

    The model must implement predict_proba over the feature row
    [amount, document_count, claimant_history_count, days_since_last_claim].
    """

    def __init__(self, model_path: Path):
        try:
            import joblib
        except ImportError:
            raise ImportError(
                "joblib package required for the joblib scorer. "
                "Install with: pip install 'claims-adjudication[ml]'"
            )

        model_path = Path(model_path)
        if not model_path.exists():
            raise FileNotFoundError(f"Fraud model not found at {model_path}")

        self.model_path = model_path
        self.model = joblib.load(model_path)
        logger.info(f"Loaded fraud model from {model_path}")

    async def score(self, features: ClaimFeatures) -> StatisticalScore:
        try:
            proba = await asyncio.to_thread(self.model.predict_proba, [features.as_row()])
            fraud = float(proba[0][1])
        except Exception as e:
            raise ScoringError(f"Fraud model prediction failed: {e}") from e

        fraud = max(0.0, min(1.0, fraud))
        return StatisticalScore(fraud_probability=fraud, approval_probability=1.0 - fraud)


def create_statistical_scorer(settings: Any = None) -> StatisticalScorer:
    """Factory function to create the configured statistical scorer."""
    provider = getattr(settings, "statistical_provider", "heuristic").lower()
    if provider == "heuristic":
        return HeuristicStatisticalScorer()
    if provider == "joblib":
        return JoblibStatisticalScorer(settings.fraud_model_path)
    raise ValueError(f"Unsupported statistical provider: {provider}")
