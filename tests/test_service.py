"""
Tests for the claims service use cases.
"""

import asyncio
from decimal import Decimal

import pytest

from src.claims.errors import ClaimNotFoundError, InvalidStatusTransitionError
from src.claims.schema import (
    ClaimStatus,
    ClaimSubmission,
    DecisionStatus,
    DocumentType,
    DocumentUpload,
    NotificationStatus,
    NotificationType,
)
from src.claims.service import create_claims_service
from src.utils.config import Settings

from conftest import FakeNarrativeAnalyzer, FakeStatisticalScorer


def run(coro):
    return asyncio.run(coro)


def submission(**overrides) -> ClaimSubmission:
    data = {
        "policy_id": "STD-1001",
        "claimant_id": "john@example.com",
        "total_amount": Decimal("8850.00"),
        "documents": [DocumentUpload(document_type=DocumentType.INVOICE, file_path="docs/invoice.txt")],
    }
    data.update(overrides)
    return ClaimSubmission(**data)


class TestSubmit:

    def test_submit_creates_claim_with_documents(self, service, store):
        receipt = run(service.submit_claim(submission()))

        assert receipt.status == ClaimStatus.SUBMITTED
        claim = store.get_claim(receipt.claim_id)
        assert claim.total_amount == Decimal("8850.00")
        assert [d.document_type for d in claim.documents] == [DocumentType.INVOICE]

    def test_submit_sends_claim_received(self, service, store, channel):
        receipt = run(service.submit_claim(submission()))

        [note] = store.list_notifications(receipt.claim_id)
        assert note.notification_type == NotificationType.CLAIM_RECEIVED
        assert note.status == NotificationStatus.SENT
        assert channel.sent[0][0] == "john@example.com"

    def test_submit_and_process(self, service):
        result = run(service.submit_and_process(submission()))

        assert result.success
        assert result.final_status == ClaimStatus.APPROVED


class TestQueries:

    def test_status_view(self, service):
        receipt = run(service.submit_claim(submission()))
        view = service.get_claim_status(receipt.claim_id)

        assert view.claim_id == receipt.claim_id
        assert view.status == ClaimStatus.SUBMITTED
        assert view.fraud_score is None

    def test_status_of_missing_claim(self, service):
        with pytest.raises(ClaimNotFoundError):
            service.get_claim_status("nope")

    def test_claims_for_claimant(self, service):
        run(service.submit_claim(submission()))
        run(service.submit_claim(submission(claimant_id="jane@example.com")))

        claims = service.get_claims_for_claimant("jane@example.com")
        assert [c.claimant_id for c in claims] == ["jane@example.com"]

    def test_decisions_of_missing_claim(self, service):
        with pytest.raises(ClaimNotFoundError):
            service.list_decisions("nope")

    def test_stats(self, service):
        run(service.submit_claim(submission()))
        stats = service.stats()
        assert stats["submitted"] == 1
        assert stats["total"] == 1


class TestManualUpdate:

    def _under_review(self, store, build_pipeline, service):
        service.pipeline = build_pipeline(
            narrative_analyzer=FakeNarrativeAnalyzer(risk_score=0.5),
            statistical_scorer=FakeStatisticalScorer(fraud=0.5, approval=0.5),
        )
        result = run(service.submit_and_process(submission()))
        assert result.final_status == ClaimStatus.UNDER_REVIEW
        return result.claim_id

    def test_specialist_resolves_review(self, store, build_pipeline, service):
        claim_id = self._under_review(store, build_pipeline, service)

        claim = run(service.update_claim_status(claim_id, "approved", specialist_id="specialist-7"))

        assert claim.status == ClaimStatus.APPROVED
        assert claim.assigned_specialist_id == "specialist-7"
        review, approval = store.list_decisions(claim_id)
        assert review.status == DecisionStatus.PENDING_REVIEW
        assert approval.status == DecisionStatus.APPROVED
        assert approval.decided_by == "specialist-7"
        assert approval.fraud_score == pytest.approx(0.5)

    def test_invalid_transition(self, service):
        receipt = run(service.submit_claim(submission()))
        with pytest.raises(InvalidStatusTransitionError):
            run(service.update_claim_status(receipt.claim_id, ClaimStatus.APPROVED))

    def test_cannot_move_submitted_claim_to_processing(self, service, store):
        receipt = run(service.submit_claim(submission()))

        with pytest.raises(InvalidStatusTransitionError):
            run(service.update_claim_status(receipt.claim_id, "processing"))

        assert store.get_claim(receipt.claim_id).status == ClaimStatus.SUBMITTED
        result = run(service.process_claim(receipt.claim_id))
        assert result.success
        assert result.final_status == ClaimStatus.APPROVED

    @pytest.mark.parametrize("target", ["processing_failed", "under_review", "submitted"])
    def test_review_can_only_be_resolved(self, store, build_pipeline, service, target):
        claim_id = self._under_review(store, build_pipeline, service)

        with pytest.raises(InvalidStatusTransitionError):
            run(service.update_claim_status(claim_id, target))

        assert store.get_claim(claim_id).status == ClaimStatus.UNDER_REVIEW
        assert len(store.list_decisions(claim_id)) == 1

    def test_decided_claim_cannot_be_reopened(self, service, store):
        result = run(service.submit_and_process(submission()))
        assert result.final_status == ClaimStatus.APPROVED

        with pytest.raises(InvalidStatusTransitionError):
            run(service.update_claim_status(result.claim_id, "rejected"))

        assert [d.status for d in store.list_decisions(result.claim_id)] == [DecisionStatus.APPROVED]

    def test_concurrent_resolution_loses_cleanly(self, store, build_pipeline, service):
        claim_id = self._under_review(store, build_pipeline, service)
        stale_read = store.require_claim

        def resolved_elsewhere(cid, with_documents=True):
            claim = stale_read(cid, with_documents)
            store.transition_status(cid, {ClaimStatus.UNDER_REVIEW}, ClaimStatus.REJECTED)
            return claim

        store.require_claim = resolved_elsewhere
        with pytest.raises(InvalidStatusTransitionError):
            run(service.update_claim_status(claim_id, "approved", specialist_id="specialist-7"))
        store.require_claim = stale_read

        assert store.get_claim(claim_id).status == ClaimStatus.REJECTED
        assert [d.status for d in store.list_decisions(claim_id)] == [DecisionStatus.PENDING_REVIEW]

    def test_unknown_status(self, service):
        receipt = run(service.submit_claim(submission()))
        with pytest.raises(ValueError):
            run(service.update_claim_status(receipt.claim_id, "escalated"))

    def test_missing_claim(self, service):
        with pytest.raises(ClaimNotFoundError):
            run(service.update_claim_status("nope", "approved"))


class TestAddDocument:

    def test_add_document(self, service, store):
        receipt = run(service.submit_claim(submission(documents=[])))
        doc = service.add_document(receipt.claim_id, "docs/receipt.txt", "Receipt")

        assert doc.document_type == DocumentType.RECEIPT
        assert [d.document_id for d in store.get_claim(receipt.claim_id).documents] == [doc.document_id]

    def test_cannot_add_to_decided_claim(self, service):
        result = run(service.submit_and_process(submission()))
        with pytest.raises(InvalidStatusTransitionError):
            service.add_document(result.claim_id, "late.txt")

    def test_bad_document_type(self, service):
        receipt = run(service.submit_claim(submission()))
        with pytest.raises(ValueError):
            service.add_document(receipt.claim_id, "x.txt", "Selfie")


def test_factory_wires_from_settings(tmp_path):
    settings = Settings(database_path=tmp_path / "claims.db", _env_file=None)
    service = create_claims_service(settings)

    receipt = run(service.submit_claim(submission(documents=[], total_amount=Decimal("250"))))
    assert service.get_claim_status(receipt.claim_id).status == ClaimStatus.SUBMITTED
