"""
Tests for the claims HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from src.api.app import app, get_claims_service
from src.claims.service import ClaimsService

from conftest import FakeNarrativeAnalyzer, FakeStatisticalScorer, fixed_clock

SUBMISSION = {
    "policy_id": "STD-1001",
    "claimant_id": "john@example.com",
    "total_amount": "8850.00",
    "documents": [{"document_type": "Invoice", "file_path": "docs/invoice.txt"}],
}


def _client_for(service):
    app.dependency_overrides[get_claims_service] = lambda: service
    return TestClient(app)


@pytest.fixture
def client(service):
    with _client_for(service) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def review_client(store, build_pipeline, notifications):
    """Client whose pipeline routes every clean claim to manual review."""
    pipeline = build_pipeline(
        narrative_analyzer=FakeNarrativeAnalyzer(risk_score=0.5),
        statistical_scorer=FakeStatisticalScorer(fraud=0.5, approval=0.5),
    )
    service = ClaimsService(store, pipeline, notifications, clock=fixed_clock)
    with _client_for(service) as c:
        yield c
    app.dependency_overrides.clear()


def submit(client, **overrides) -> str:
    response = client.post("/api/claims", json={**SUBMISSION, **overrides})
    assert response.status_code == 201
    return response.json()["claim_id"]


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert "narrative_provider" in data["config"]


class TestSubmitAndStatus:

    def test_submit(self, client):
        response = client.post("/api/claims", json=SUBMISSION)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "submitted"
        assert body["message"] == "Claim submitted successfully"

    def test_invalid_submission(self, client):
        response = client.post("/api/claims", json={**SUBMISSION, "total_amount": "-5"})
        assert response.status_code == 422

    def test_status(self, client):
        claim_id = submit(client)

        data = client.get(f"/api/claims/{claim_id}/status").json()
        assert data["claim_id"] == claim_id
        assert data["status"] == "submitted"

    def test_status_of_missing_claim(self, client):
        response = client.get("/api/claims/nope/status")
        assert response.status_code == 404
        assert "nope" in response.json()["error"]

    def test_claims_for_claimant(self, client):
        submit(client)
        submit(client, claimant_id="jane@example.com")

        claims = client.get("/api/claims/user/jane@example.com").json()
        assert [c["claimant_id"] for c in claims] == ["jane@example.com"]


class TestProcessing:

    def test_process_auto_approves(self, client):
        claim_id = submit(client)

        response = client.post(f"/api/claims/{claim_id}/process")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["final_decision"] == "auto_approve"
        assert body["final_status"] == "approved"

    def test_reprocessing_is_rejected(self, client):
        claim_id = submit(client)
        client.post(f"/api/claims/{claim_id}/process")

        response = client.post(f"/api/claims/{claim_id}/process")

        assert response.status_code == 400
        assert response.json()["final_status"] == "approved"

    def test_process_missing_claim(self, client):
        assert client.post("/api/claims/nope/process").status_code == 404

    def test_submit_and_process(self, client):
        response = client.post("/api/claims/submit-and-process", json=SUBMISSION)
        assert response.status_code == 200
        assert response.json()["final_status"] == "approved"

    def test_rules_rejection_reports_reason(self, client):
        response = client.post(
            "/api/claims/submit-and-process",
            json={**SUBMISSION, "total_amount": "60000", "policy_id": "PREM-1001"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["final_decision"] == "reject"
        assert body["rules_validation"]["is_valid"] is False

    def test_decision_trail(self, client):
        claim_id = submit(client)
        client.post(f"/api/claims/{claim_id}/process")

        decisions = client.get(f"/api/claims/{claim_id}/decisions").json()
        assert [d["status"] for d in decisions] == ["approved"]


class TestManualUpdate:

    def test_specialist_approves_review(self, review_client):
        claim_id = submit(review_client)
        assert review_client.post(f"/api/claims/{claim_id}/process").json()["final_status"] == "under_review"

        response = review_client.put(
            f"/api/claims/{claim_id}/status",
            json={"status": "approved", "specialist_id": "specialist-7", "reason": "Invoice verified"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        assert response.json()["assigned_specialist_id"] == "specialist-7"
        decisions = review_client.get(f"/api/claims/{claim_id}/decisions").json()
        assert [d["status"] for d in decisions] == ["pending_review", "approved"]

    def test_invalid_transition(self, client):
        claim_id = submit(client)
        response = client.put(f"/api/claims/{claim_id}/status", json={"status": "approved"})
        assert response.status_code == 409

    def test_cannot_force_claim_into_processing(self, client):
        claim_id = submit(client)

        response = client.put(f"/api/claims/{claim_id}/status", json={"status": "processing"})

        assert response.status_code == 409
        assert client.post(f"/api/claims/{claim_id}/process").json()["final_status"] == "approved"

    def test_unknown_status(self, client):
        claim_id = submit(client)
        response = client.put(f"/api/claims/{claim_id}/status", json={"status": "escalated"})
        assert response.status_code == 400


class TestDocuments:

    def test_add_document(self, client):
        claim_id = submit(client, documents=[])

        response = client.post(
            f"/api/claims/{claim_id}/documents",
            json={"file_path": "docs/receipt.txt", "document_type": "Receipt"},
        )

        assert response.status_code == 201
        assert response.json()["document_type"] == "receipt"
        assert response.json()["ocr_status"] == "pending"

    def test_bad_document_type(self, client):
        claim_id = submit(client)
        response = client.post(
            f"/api/claims/{claim_id}/documents",
            json={"file_path": "x.txt", "document_type": "Selfie"},
        )
        assert response.status_code == 400

    def test_document_on_decided_claim(self, client):
        claim_id = submit(client)
        client.post(f"/api/claims/{claim_id}/process")

        response = client.post(f"/api/claims/{claim_id}/documents", json={"file_path": "late.txt"})
        assert response.status_code == 409
