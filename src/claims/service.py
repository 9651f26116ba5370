"""
Claims use cases.

ClaimsService is the single entry point used by the API and the CLI:
submit, inspect, process and manually resolve claims.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Union

from pydantic import BaseModel

from ..notifications import NotificationService, create_notification_channel
from ..providers import (
    DocumentClassifier,
    create_document_analyzer,
    create_narrative_analyzer,
    create_statistical_scorer,
)
from ..storage import ClaimStore, get_claim_store
from .config import RulesConfig, ScoringConfig
from .errors import ClaimNotFoundError, InvalidStatusTransitionError
from .features import ClaimHistoryFeatureSource, ColdStartFeatureSource
from .pipeline import ClaimPipeline, PipelineResult
from .rules import RulesEngine
from .schema import (
    Claim,
    ClaimStatus,
    ClaimSubmission,
    Decision,
    DecisionStatus,
    Document,
    DocumentType,
    NotificationType,
    utc_now,
)
from .scoring import RiskScorer

logger = logging.getLogger(__name__)


class ClaimStatusView(BaseModel):
    """Status snapshot returned to callers."""
    claim_id: str
    status: ClaimStatus
    submitted_at: datetime
    last_updated_at: datetime
    fraud_score: Optional[float] = None
    approval_score: Optional[float] = None
    assigned_specialist_id: Optional[str] = None

    @classmethod
    def from_claim(cls, claim: Claim) -> "ClaimStatusView":
        return cls(
            claim_id=claim.claim_id,
            status=claim.status,
            submitted_at=claim.submitted_at,
            last_updated_at=claim.last_updated_at,
            fraud_score=claim.fraud_score,
            approval_score=claim.approval_score,
            assigned_specialist_id=claim.assigned_specialist_id,
        )


class SubmissionReceipt(BaseModel):
    claim_id: str
    status: ClaimStatus
    submitted_at: datetime
    message: str = "Claim submitted successfully"


# Specialists may only resolve claims the pipeline sent to review
_MANUAL_TRANSITIONS = {
    ClaimStatus.UNDER_REVIEW: frozenset({ClaimStatus.APPROVED, ClaimStatus.REJECTED}),
}

_MANUAL_DECISIONS = {
    ClaimStatus.APPROVED: DecisionStatus.APPROVED,
    ClaimStatus.REJECTED: DecisionStatus.REJECTED,
}


class ClaimsService:
    """
    Claim use cases on top of the store and the processing pipeline.

    Usage:
        service = create_claims_service(get_settings())
        receipt = await service.submit_claim(submission)
        result = await service.process_claim(receipt.claim_id)
    """

    def __init__(
        self,
        store: ClaimStore,
        pipeline: ClaimPipeline,
        notifications: Optional[NotificationService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.pipeline = pipeline
        self.notifications = notifications
        self.clock = clock or utc_now

    async def submit_claim(self, submission: ClaimSubmission) -> SubmissionReceipt:
        """Create a claim in SUBMITTED with the listed documents attached."""
        now = self.clock()
        claim = Claim(
            policy_id=submission.policy_id,
            claimant_id=submission.claimant_id,
            total_amount=submission.total_amount,
            submitted_at=now,
            last_updated_at=now,
        )
        claim.documents = [
            Document(
                claim_id=claim.claim_id,
                document_type=upload.document_type,
                storage_uri=upload.file_path,
                uploaded_at=now,
            )
            for upload in submission.documents
        ]
        self.store.create_claim(claim)
        logger.info(f"Claim {claim.claim_id} submitted by {claim.claimant_id} for ${claim.total_amount:,.2f}")

        await self._notify(claim, NotificationType.CLAIM_RECEIVED)

        return SubmissionReceipt(
            claim_id=claim.claim_id,
            status=claim.status,
            submitted_at=claim.submitted_at,
        )

    def get_claim(self, claim_id: str) -> Claim:
        return self.store.require_claim(claim_id)

    def get_claim_status(self, claim_id: str) -> ClaimStatusView:
        """
        Raises:
            ClaimNotFoundError: if the claim does not exist
        """
        return ClaimStatusView.from_claim(self.store.require_claim(claim_id, with_documents=False))

    def get_claims_for_claimant(self, claimant_id: str) -> List[Claim]:
        """A claimant's claims, newest first."""
        return self.store.claims_for_claimant(claimant_id)

    async def update_claim_status(
        self,
        claim_id: str,
        status: Union[ClaimStatus, str],
        specialist_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Claim:
        """
        Manually resolve a claim that is under review.

        Only UNDER_REVIEW -> APPROVED or REJECTED is accepted; the pipeline
        owns every other move. The new status and a decision naming the
        specialist as reviewer are stored together.

        Raises:
            ClaimNotFoundError: if the claim does not exist
            InvalidStatusTransitionError: if the transition is not allowed
            ValueError: if status names no known status
        """
        target = ClaimStatus(status)
        claim = self.store.require_claim(claim_id, with_documents=False)

        if target not in _MANUAL_TRANSITIONS.get(claim.status, frozenset()):
            raise InvalidStatusTransitionError(claim_id, claim.status.value, target.value)

        now = self.clock()
        previous = claim.status
        claim.transition_to(target, now)
        if specialist_id:
            claim.assigned_specialist_id = specialist_id
        decision = Decision(
            claim_id=claim_id,
            status=_MANUAL_DECISIONS[target],
            decided_at=now,
            reason=reason or f"Manually {target.value} by specialist",
            decided_by=specialist_id or claim.assigned_specialist_id or "specialist",
            fraud_score=claim.fraud_score,
            approval_score=claim.approval_score,
        )

        if not self.store.record_outcome(claim, decision, {previous}):
            # Someone else moved the claim between our read and write
            current = self.store.require_claim(claim_id, with_documents=False)
            raise InvalidStatusTransitionError(claim_id, current.status.value, target.value)

        await self._notify(claim, NotificationType.DECISION_MADE)

        logger.info(f"Claim {claim_id} manually moved to {target.value}")
        return claim

    def add_document(
        self,
        claim_id: str,
        file_path: str,
        document_type: Union[DocumentType, str] = DocumentType.OTHER,
    ) -> Document:
        """
        Attach a document to a claim that has not been decided yet.

        Raises:
            ClaimNotFoundError: if the claim does not exist
            InvalidStatusTransitionError: if the claim is already decided
        """
        if isinstance(document_type, str):
            document_type = DocumentType.parse(document_type)

        claim = self.store.require_claim(claim_id, with_documents=False)
        if claim.status.is_terminal:
            raise InvalidStatusTransitionError(
                claim_id, claim.status.value, claim.status.value,
                message=f"Cannot add documents to claim {claim_id}: already {claim.status.value}",
            )

        document = Document(
            claim_id=claim_id,
            document_type=document_type,
            storage_uri=file_path,
            uploaded_at=self.clock(),
        )
        return self.store.add_document(document)

    async def process_claim(self, claim_id: str) -> PipelineResult:
        """Run the processing pipeline for one claim."""
        return await self.pipeline.process(claim_id)

    async def submit_and_process(self, submission: ClaimSubmission) -> PipelineResult:
        """Submit a claim then process it immediately."""
        receipt = await self.submit_claim(submission)
        return await self.process_claim(receipt.claim_id)

    def list_decisions(self, claim_id: str) -> List[Decision]:
        """
        Raises:
            ClaimNotFoundError: if the claim does not exist
        """
        if self.store.get_claim(claim_id, with_documents=False) is None:
            raise ClaimNotFoundError(claim_id)
        return self.store.list_decisions(claim_id)

    def list_claims(self, status: Optional[ClaimStatus] = None, limit: int = 100, offset: int = 0) -> List[Claim]:
        return self.store.list_claims(status=status, limit=limit, offset=offset)

    def stats(self) -> dict:
        """Claim counts by status."""
        counts = {s.value: self.store.count(s) for s in ClaimStatus}
        counts["total"] = self.store.count()
        return counts

    async def _notify(self, claim: Claim, kind: NotificationType) -> None:
        if self.notifications is not None and claim.claimant_id:
            await self.notifications.notify(claim.claim_id, claim.claimant_id, kind)


# =============================================================================
# Factory
# =============================================================================

def create_claims_service(settings, store: Optional[ClaimStore] = None) -> ClaimsService:
    """
    Wire a ClaimsService from settings.

    Provider selection happens here, once; the pipeline only sees the
    resulting collaborators.
    """
    store = store or get_claim_store(settings.database_path)
    rules_config = RulesConfig.from_settings(settings)
    scoring_config = ScoringConfig.from_settings(settings)

    notifications = NotificationService(store, create_notification_channel(settings))
    classifier = DocumentClassifier()

    if settings.use_claim_history_features:
        feature_source = ClaimHistoryFeatureSource(store)
    else:
        feature_source = ColdStartFeatureSource()

    pipeline = ClaimPipeline(
        store=store,
        document_analyzer=create_document_analyzer(settings),
        narrative_analyzer=create_narrative_analyzer(settings),
        statistical_scorer=create_statistical_scorer(settings),
        rules_engine=RulesEngine(rules_config, history=store),
        risk_scorer=RiskScorer(scoring_config),
        feature_source=feature_source,
        notifications=notifications,
        classifier=classifier,
        provider_timeout=settings.provider_timeout_seconds,
        parallel_documents=settings.parallel_document_analysis,
    )

    logger.info(
        f"Initialized claims service with "
        f"document analysis: {settings.document_analysis_provider}, "
        f"narrative: {settings.narrative_provider}, "
        f"statistical: {settings.statistical_provider}"
    )
    return ClaimsService(store, pipeline, notifications)
