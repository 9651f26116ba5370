"""
Exception hierarchy for claim processing.

Expected business outcomes (a rules rejection, a failed document) are not
exceptions; these classes cover missing records, illegal state changes and
collaborator faults.
"""

from typing import Optional


class ClaimsError(Exception):
    """Base class for all claim processing errors."""


class ClaimNotFoundError(ClaimsError):
    """Referenced claim does not exist."""

    def __init__(self, claim_id: str):
        self.claim_id = claim_id
        super().__init__(f"Claim {claim_id} not found")


class DocumentNotFoundError(ClaimsError):
    """Referenced document does not exist."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found")


class InvalidStatusTransitionError(ClaimsError):
    """A claim status change that the state machine does not allow."""

    def __init__(self, claim_id: Optional[str], current: str, target: str, message: Optional[str] = None):
        self.claim_id = claim_id
        self.current = current
        self.target = target
        super().__init__(
            message or f"Claim {claim_id or '?'} cannot move from {current} to {target}"
        )


class ProviderError(ClaimsError):
    """An external collaborator failed."""


class DocumentAnalysisError(ProviderError):
    """OCR / document analysis failed for a single document."""


class NarrativeAnalysisError(ProviderError):
    """Narrative NLP provider failed."""


class ScoringError(ProviderError):
    """Statistical scorer failed."""


class NotificationError(ClaimsError):
    """Notification delivery failed."""
