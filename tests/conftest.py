"""
Shared fixtures and fake collaborators for claim tests.

All fakes are deterministic and make no network calls.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.claims.errors import NarrativeAnalysisError, NotificationError, ScoringError
from src.claims.pipeline import ClaimPipeline
from src.claims.rules import RulesEngine
from src.claims.schema import Claim, Document, DocumentType
from src.claims.service import ClaimsService
from src.notifications import NotificationChannel, NotificationService
from src.providers.document_analysis import DocumentAnalysis, DocumentAnalyzer
from src.providers.narrative import ExtractedEntities, NarrativeAnalyzer, NarrativeRiskAssessment
from src.providers.statistical import StatisticalScore, StatisticalScorer
from src.storage import ClaimStore


# Setup logging for tests
logging.basicConfig(level=logging.INFO)


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


# ============================================================================
# Fake collaborators
# ============================================================================


class FakeDocumentAnalyzer(DocumentAnalyzer):
    """Returns canned analyses per locator; an Exception value is raised."""

    def __init__(self, results=None, default_text="Invoice number 1001. Bill to John. Total due $8,850.00",
                 default_confidence=0.95, delay=0.0):
        super().__init__()
        self.results = results or {}
        self.default = DocumentAnalysis(text=default_text, confidence=default_confidence)
        self.delay = delay
        self.calls = []

    async def analyze(self, locator: str) -> DocumentAnalysis:
        self.calls.append(locator)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.get(locator, self.default)
        if isinstance(result, Exception):
            raise result
        return result


class FakeNarrativeAnalyzer(NarrativeAnalyzer):
    def __init__(self, risk_score=0.05, indicators=None, fail=False, delay=0.0):
        self.risk_score = risk_score
        self.indicators = indicators or []
        self.fail = fail
        self.delay = delay
        self.texts = []

    async def summarize(self, description: str, document_text: str) -> str:
        return (description or "")[:100]

    async def analyze_fraud_narrative(self, description: str) -> NarrativeRiskAssessment:
        self.texts.append(description)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise NarrativeAnalysisError("NLP provider unavailable")
        return NarrativeRiskAssessment(risk_score=self.risk_score, indicators=self.indicators)

    async def extract_entities(self, text: str) -> ExtractedEntities:
        return ExtractedEntities()


class FakeStatisticalScorer(StatisticalScorer):
    def __init__(self, fraud=0.05, approval=0.9, fail=False):
        self.fraud = fraud
        self.approval = approval
        self.fail = fail
        self.features = []

    async def score(self, features) -> StatisticalScore:
        self.features.append(features)
        if self.fail:
            raise ScoringError("Fraud model prediction failed")
        return StatisticalScore(fraud_probability=self.fraud, approval_probability=self.approval)


class RecordingChannel(NotificationChannel):
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, recipient: str, subject: str, body: str) -> None:
        if self.fail:
            raise NotificationError("mail server down")
        self.sent.append((recipient, subject, body))


# ============================================================================
# Factories
# ============================================================================


def make_claim(**overrides) -> Claim:
    """Build a claim that passes every rule by default."""
    data = {
        "policy_id": "STD-1001",
        "claimant_id": "john@example.com",
        "total_amount": Decimal("8850.00"),
        "submitted_at": NOW,
        "last_updated_at": NOW,
    }
    data.update(overrides)
    documents = data.pop("documents", None)
    claim = Claim(**data)
    if documents is None:
        documents = [make_document(claim.claim_id)]
    claim.documents = [d.model_copy(update={"claim_id": claim.claim_id}) for d in documents]
    return claim


def make_document(claim_id: str = "pending", locator: str = "docs/invoice.txt",
                  document_type: DocumentType = DocumentType.INVOICE) -> Document:
    return Document(
        claim_id=claim_id,
        document_type=document_type,
        storage_uri=locator,
        uploaded_at=NOW,
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite store per test."""
    return ClaimStore(tmp_path / "claims.db")


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def notifications(store, channel):
    return NotificationService(store, channel)


@pytest.fixture
def build_pipeline(store, notifications):
    """Factory for pipelines wired to fakes; override any collaborator by keyword."""

    def _build(**overrides):
        options = {
            "store": store,
            "document_analyzer": FakeDocumentAnalyzer(),
            "narrative_analyzer": FakeNarrativeAnalyzer(),
            "statistical_scorer": FakeStatisticalScorer(),
            "rules_engine": RulesEngine(history=store, clock=fixed_clock),
            "notifications": notifications,
            "clock": fixed_clock,
            "provider_timeout": 5.0,
        }
        options.update(overrides)
        return ClaimPipeline(**options)

    return _build


@pytest.fixture
def pipeline(build_pipeline):
    return build_pipeline()


@pytest.fixture
def service(store, pipeline, notifications):
    return ClaimsService(store, pipeline, notifications, clock=fixed_clock)


def days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)
