"""
Claim processing pipeline.

Public API: ClaimPipeline.process(claim_id) -> PipelineResult

Stages run strictly in order, each feeding the next:
document analysis -> rules validation -> narrative + statistical scoring
-> disposition -> decision record -> notification.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from ..providers.classifier import DocumentClassifier
from ..providers.document_analysis import DocumentAnalyzer
from ..providers.narrative import NarrativeAnalyzer
from ..providers.statistical import StatisticalScorer
from .errors import ClaimNotFoundError
from .features import ColdStartFeatureSource, FeatureSource
from .rules import RulesEngine, ValidationReport
from .schema import (
    AUTOMATED_REVIEWER,
    PROCESSABLE_STATUSES,
    UNASSIGNED_REVIEWER,
    Claim,
    ClaimStatus,
    Decision,
    DecisionStatus,
    Disposition,
    Document,
    NotificationType,
    utc_now,
)
from .scoring import RiskScorer

logger = logging.getLogger(__name__)


# ============================================================================
# Results
# ============================================================================


class DocumentAnalysisOutcome(BaseModel):
    """Analysis result for a single document."""
    document_id: str
    success: bool
    extracted_text: Optional[str] = None
    confidence: float = 0.0
    classified_type: Optional[str] = None
    error_message: Optional[str] = None


class RulesValidationResult(BaseModel):
    """Rules verdict as reported in a pipeline result."""
    is_valid: bool
    reason: Optional[str] = None
    rules_checked: List[str] = Field(default_factory=list)
    rule_results: dict = Field(default_factory=dict)

    @classmethod
    def from_report(cls, report: ValidationReport) -> "RulesValidationResult":
        return cls(
            is_valid=report.is_valid,
            reason=report.reason,
            rules_checked=report.rules_checked,
            rule_results=report.rule_results,
        )


class RiskScoringResult(BaseModel):
    """Combined scores and what contributed to them."""
    fraud_score: float = Field(ge=0.0, le=1.0)
    approval_score: float = Field(ge=0.0, le=1.0)
    statistical_fraud_score: float = Field(ge=0.0, le=1.0)
    narrative_fraud_score: float = Field(ge=0.0, le=1.0)
    fraud_risk_level: str
    risk_factors: List[str] = Field(default_factory=list)
    summary: Optional[str] = None


class PipelineResult(BaseModel):
    """
    Aggregated result of one processing run.

    success=True means the run completed with a disposition (a rules
    rejection included). success=False means the run failed and must not
    be read as a decision.
    """
    claim_id: str
    success: bool
    error_message: Optional[str] = None
    final_decision: Optional[Disposition] = None
    final_status: Optional[ClaimStatus] = None
    decision_reason: Optional[str] = None
    document_results: List[DocumentAnalysisOutcome] = Field(default_factory=list)
    rules_validation: Optional[RulesValidationResult] = None
    risk_scoring: Optional[RiskScoringResult] = None
    processing_time_ms: float = 0.0


_DISPOSITION_STATUS = {
    Disposition.AUTO_APPROVE: (ClaimStatus.APPROVED, DecisionStatus.APPROVED, AUTOMATED_REVIEWER),
    Disposition.REJECT: (ClaimStatus.REJECTED, DecisionStatus.REJECTED, AUTOMATED_REVIEWER),
    Disposition.MANUAL_REVIEW: (ClaimStatus.UNDER_REVIEW, DecisionStatus.PENDING_REVIEW, UNASSIGNED_REVIEWER),
}


# ============================================================================
# Pipeline
# ============================================================================


class ClaimPipeline:
    """
    Orchestrates processing of a single claim.

    Only claims in SUBMITTED or PROCESSING_FAILED are picked up. The move to
    PROCESSING is a compare-and-set in the store, so concurrent runs for the
    same claim cannot both proceed. Any fault after that point moves the claim
    to PROCESSING_FAILED, from where it may be processed again.

    Usage:
        pipeline = ClaimPipeline(store, analyzer, narrative, scorer)
        result = await pipeline.process(claim_id)
    """

    def __init__(
        self,
        store,
        document_analyzer: DocumentAnalyzer,
        narrative_analyzer: NarrativeAnalyzer,
        statistical_scorer: StatisticalScorer,
        rules_engine: Optional[RulesEngine] = None,
        risk_scorer: Optional[RiskScorer] = None,
        feature_source: Optional[FeatureSource] = None,
        notifications=None,
        classifier: Optional[DocumentClassifier] = None,
        provider_timeout: Optional[float] = 30.0,
        parallel_documents: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            store: ClaimStore (claims, documents, decisions)
            document_analyzer: OCR / document analysis provider
            narrative_analyzer: Narrative NLP provider
            statistical_scorer: Statistical fraud/approval model
            rules_engine: Policy rules (defaults to store-backed history)
            risk_scorer: Score combiner (default thresholds if None)
            feature_source: Statistical feature builder (cold start if None)
            notifications: NotificationService, or None to skip notifying
            classifier: Classifier applied to extracted text
            provider_timeout: Seconds allowed per provider call (None = no limit)
            parallel_documents: Analyze documents concurrently
            clock: Time source
        """
        self.store = store
        self.document_analyzer = document_analyzer
        self.narrative_analyzer = narrative_analyzer
        self.statistical_scorer = statistical_scorer
        self.clock = clock or utc_now
        self.rules_engine = rules_engine or RulesEngine(history=store, clock=self.clock)
        self.risk_scorer = risk_scorer or RiskScorer()
        self.feature_source = feature_source or ColdStartFeatureSource()
        self.notifications = notifications
        self.classifier = classifier or DocumentClassifier()
        self.provider_timeout = provider_timeout
        self.parallel_documents = parallel_documents

    async def process(self, claim_id: str) -> PipelineResult:
        """
        Run the full pipeline for one claim.

        Raises:
            ClaimNotFoundError: if the claim does not exist (nothing is changed)

        Returns:
            PipelineResult; success=False carries the error message
        """
        start = time.perf_counter()
        result = PipelineResult(claim_id=claim_id, success=False)

        claim = self.store.get_claim(claim_id)
        if claim is None:
            raise ClaimNotFoundError(claim_id)

        if not claim.status.is_processable:
            logger.info(f"Claim {claim_id} is {claim.status.value}; not reprocessing")
            result.final_status = claim.status
            result.error_message = f"Claim {claim_id} cannot be processed in status {claim.status.value}"
            return self._finish(result, start)

        if not self.store.transition_status(claim_id, PROCESSABLE_STATUSES, ClaimStatus.PROCESSING, self.clock()):
            logger.warning(f"Claim {claim_id} was picked up by another run")
            result.error_message = f"Claim {claim_id} is already being processed"
            return self._finish(result, start)

        claim.status = ClaimStatus.PROCESSING
        claim.touch(self.clock())
        logger.info(f"Processing claim {claim_id}: {len(claim.documents)} document(s), amount ${claim.total_amount:,.2f}")

        try:
            await self._run(claim, result)
        except Exception as e:
            logger.exception(f"Processing failed for claim {claim_id}")
            result.success = False
            result.error_message = str(e) or type(e).__name__
            result.final_decision = None
            result.final_status = self._mark_failed(claim_id)

        return self._finish(result, start)

    async def _run(self, claim: Claim, result: PipelineResult) -> None:
        # Step 1: document analysis
        logger.debug(f"Step 1: Analyzing {len(claim.documents)} document(s)...")
        result.document_results = await self._analyze_documents(claim.documents)

        # Step 2: rules
        logger.debug("Step 2: Validating business rules...")
        report = self.rules_engine.validate(claim)
        result.rules_validation = RulesValidationResult.from_report(report)

        if not report.is_valid:
            await self._conclude(claim, result, Disposition.REJECT, report.reason, None, None)
            return

        # Step 3: narrative + statistical scoring
        logger.debug("Step 3: Scoring fraud risk...")
        texts = [d.extracted_text for d in claim.completed_documents if d.extracted_text]
        narrative_text = texts[0] if texts else ""

        summary = await self._call(self.narrative_analyzer.summarize(narrative_text, "\n\n".join(texts)))
        assessment = await self._call(self.narrative_analyzer.analyze_fraud_narrative(narrative_text))
        features = self.feature_source.features_for(claim)
        statistical = await self._call(self.statistical_scorer.score(features))

        combined = self.risk_scorer.score(
            statistical.fraud_probability,
            statistical.approval_probability,
            assessment.risk_score,
        )
        approval = statistical.approval_probability
        scoring = RiskScoringResult(
            fraud_score=combined,
            approval_score=approval,
            statistical_fraud_score=statistical.fraud_probability,
            narrative_fraud_score=assessment.risk_score,
            fraud_risk_level=self.risk_scorer.risk_level(combined),
            risk_factors=list(assessment.indicators),
            summary=summary,
        )
        result.risk_scoring = scoring

        claim.fraud_score = combined
        claim.approval_score = approval
        claim.touch(self.clock())
        self.store.save_claim(claim)

        # Step 4: disposition
        disposition = self.risk_scorer.decide(combined, approval)
        reason = self.risk_scorer.explain(disposition, combined, approval)
        if await self._conclude(claim, result, disposition, reason, combined, approval):
            logger.info(
                f"Claim {claim.claim_id} -> {disposition.value} "
                f"(fraud={combined:.2f}, approval={approval:.2f}, risk={scoring.fraud_risk_level})"
            )

    async def _conclude(
        self,
        claim: Claim,
        result: PipelineResult,
        disposition: Disposition,
        reason: Optional[str],
        fraud_score: Optional[float],
        approval_score: Optional[float],
    ) -> bool:
        """Record the disposition and fill in the result. False if the run lost the claim."""
        if not await self._record(claim, disposition, reason, fraud_score, approval_score):
            stored = self.store.require_claim(claim.claim_id, with_documents=False).status
            logger.warning(
                f"Claim {claim.claim_id} moved to {stored.value} during processing; "
                f"dropping {disposition.value}"
            )
            result.success = False
            result.final_decision = None
            result.final_status = stored
            result.error_message = (
                f"Claim {claim.claim_id} was moved to {stored.value} by another writer during processing"
            )
            return False

        result.success = True
        result.final_decision = disposition
        result.final_status = claim.status
        result.decision_reason = reason
        return True

    async def _record(
        self,
        claim: Claim,
        disposition: Disposition,
        reason: Optional[str],
        fraud_score: Optional[float],
        approval_score: Optional[float],
    ) -> bool:
        """
        Apply the disposition, append its decision and notify the claimant.

        The status change and the decision are stored in one transaction and
        only while the claim is still processing. Returns False, with nothing
        written or sent, when another writer got there first.
        """
        status, decision_status, reviewer = _DISPOSITION_STATUS[disposition]

        now = self.clock()
        claim.transition_to(status, now)
        decision = Decision(
            claim_id=claim.claim_id,
            status=decision_status,
            decided_at=now,
            reason=reason,
            decided_by=reviewer,
            fraud_score=fraud_score,
            approval_score=approval_score,
        )
        if not self.store.record_outcome(claim, decision, {ClaimStatus.PROCESSING}):
            return False

        if self.notifications is not None:
            kind = (
                NotificationType.MANUAL_REVIEW_ASSIGNED
                if disposition == Disposition.MANUAL_REVIEW
                else NotificationType.DECISION_MADE
            )
            await self.notifications.notify(claim.claim_id, claim.claimant_id, kind)
        return True

    # =========================================================================
    # Documents
    # =========================================================================

    async def _analyze_documents(self, documents: List[Document]) -> List[DocumentAnalysisOutcome]:
        if self.parallel_documents:
            return list(await asyncio.gather(*(self._analyze_document(d) for d in documents)))
        return [await self._analyze_document(d) for d in documents]

    async def _analyze_document(self, document: Document) -> DocumentAnalysisOutcome:
        """Analyze one document; failures stay with that document."""
        document.reset_for_analysis()
        try:
            analysis = await self._call(self.document_analyzer.analyze(document.storage_uri))
            classified_type = await self.classifier.classify(analysis.text)
        except Exception as e:
            message = str(e) or type(e).__name__
            if isinstance(e, asyncio.TimeoutError):
                message = f"Document analysis timed out after {self.provider_timeout}s"
            logger.warning(f"Document {document.document_id} analysis failed: {message}")
            document.mark_failed()
            self.store.update_document(document)
            return DocumentAnalysisOutcome(
                document_id=document.document_id,
                success=False,
                error_message=message,
            )

        document.mark_completed(analysis.text, analysis.confidence)
        self.store.update_document(document)
        return DocumentAnalysisOutcome(
            document_id=document.document_id,
            success=True,
            extracted_text=analysis.text,
            confidence=analysis.confidence,
            classified_type=classified_type,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _call(self, awaitable):
        """Await a provider call under the configured timeout."""
        if self.provider_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.provider_timeout)

    def _mark_failed(self, claim_id: str) -> Optional[ClaimStatus]:
        try:
            if self.store.transition_status(
                claim_id, {ClaimStatus.PROCESSING}, ClaimStatus.PROCESSING_FAILED, self.clock()
            ):
                return ClaimStatus.PROCESSING_FAILED
        except Exception:
            logger.exception(f"Could not mark claim {claim_id} as processing_failed")
        return None

    def _finish(self, result: PipelineResult, start: float) -> PipelineResult:
        result.processing_time_ms = (time.perf_counter() - start) * 1000
        self._log_metrics(result)
        return result

    def _log_metrics(self, result: PipelineResult):
        """Log performance and outcome metrics."""
        metrics = {
            'claim_id': result.claim_id,
            'success': result.success,
            'total_time_ms': round(result.processing_time_ms, 1),
            'documents': len(result.document_results),
            'documents_analyzed': sum(1 for d in result.document_results if d.success),
            'final_decision': result.final_decision.value if result.final_decision else None,
            'fraud_score': result.risk_scoring.fraud_score if result.risk_scoring else None,
            'approval_score': result.risk_scoring.approval_score if result.risk_scoring else None,
        }
        logger.info(f"Processing metrics: {metrics}")
