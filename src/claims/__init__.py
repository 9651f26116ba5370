"""
Insurance claim adjudication core.

Rules engine, risk scorer and the claim lifecycle model. The processing
pipeline lives in .pipeline and the use cases in .service.
"""

from .config import RulesConfig, ScoringConfig
from .errors import (
    ClaimNotFoundError,
    ClaimsError,
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    ProviderError,
)
from .rules import ClaimHistory, InMemoryClaimHistory, RulesEngine, ValidationReport
from .schema import (
    # Enums
    ClaimStatus,
    DecisionStatus,
    Disposition,
    DocumentType,
    OcrStatus,
    NotificationType,
    NotificationStatus,
    # Models
    Claim,
    Document,
    Decision,
    Notification,
    ClaimSubmission,
    DocumentUpload,
)
from .scoring import RiskScorer

__all__ = [
    # Components
    "RulesEngine",
    "RiskScorer",
    "RulesConfig",
    "ScoringConfig",
    "ClaimHistory",
    "InMemoryClaimHistory",
    "ValidationReport",
    # Errors
    "ClaimsError",
    "ClaimNotFoundError",
    "DocumentNotFoundError",
    "InvalidStatusTransitionError",
    "ProviderError",
    # Enums
    "ClaimStatus",
    "DecisionStatus",
    "Disposition",
    "DocumentType",
    "OcrStatus",
    "NotificationType",
    "NotificationStatus",
    # Models
    "Claim",
    "Document",
    "Decision",
    "Notification",
    "ClaimSubmission",
    "DocumentUpload",
]
