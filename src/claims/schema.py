"""
Canonical entities for insurance claim adjudication.

Defines the Claim / Document / Decision / Notification models, their enums,
and the claim status state machine.
"""

import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import InvalidStatusTransitionError

# Reviewer identities recorded on decisions
AUTOMATED_REVIEWER = "automated-system"
UNASSIGNED_REVIEWER = "unassigned"

CENTS = Decimal("0.01")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def new_id() -> str:
    """Generate an opaque unique identifier."""
    return uuid.uuid4().hex


def to_money(value) -> Decimal:
    """Coerce a value to a Decimal quantized to cents."""
    try:
        # str() keeps floats like 8850.1 from turning into 8850.0999...
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount


# ============================================================================
# Enums
# ============================================================================


class ClaimStatus(str, Enum):
    """Lifecycle status of a claim."""
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    APPROVED = "approved"
    REJECTED = "rejected"
    UNDER_REVIEW = "under_review"
    PROCESSING_FAILED = "processing_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ClaimStatus.APPROVED, ClaimStatus.REJECTED)

    @property
    def is_processable(self) -> bool:
        """Whether the automated pipeline may pick this claim up."""
        return self in PROCESSABLE_STATUSES

    def can_transition_to(self, target: "ClaimStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: Dict[ClaimStatus, FrozenSet[ClaimStatus]] = {
    ClaimStatus.SUBMITTED: frozenset({ClaimStatus.PROCESSING}),
    ClaimStatus.PROCESSING: frozenset({
        ClaimStatus.APPROVED,
        ClaimStatus.REJECTED,
        ClaimStatus.UNDER_REVIEW,
        ClaimStatus.PROCESSING_FAILED,
    }),
    ClaimStatus.PROCESSING_FAILED: frozenset({ClaimStatus.PROCESSING}),
    ClaimStatus.UNDER_REVIEW: frozenset({ClaimStatus.APPROVED, ClaimStatus.REJECTED}),
    ClaimStatus.APPROVED: frozenset(),
    ClaimStatus.REJECTED: frozenset(),
}

PROCESSABLE_STATUSES = frozenset({ClaimStatus.SUBMITTED, ClaimStatus.PROCESSING_FAILED})


class DecisionStatus(str, Enum):
    """Status recorded on a decision audit record."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING_REVIEW = "pending_review"


class Disposition(str, Enum):
    """Outcome class produced by the risk scorer."""
    AUTO_APPROVE = "auto_approve"
    REJECT = "reject"
    MANUAL_REVIEW = "manual_review"


class DocumentType(str, Enum):
    """Declared type of an attached document."""
    INVOICE = "invoice"
    RECEIPT = "receipt"
    MEDICAL_REPORT = "medical_report"
    POLICY_DOCUMENT = "policy_document"
    IDENTITY_PROOF = "identity_proof"
    OTHER = "other"

    @classmethod
    def parse(cls, label: str) -> "DocumentType":
        """
        Parse a document type label case-insensitively.

        Accepts both 'MedicalReport' and 'medical_report' spellings.

        Raises:
            ValueError: if the label names no known type
        """
        normalized = label.strip().replace("_", "").replace(" ", "").lower()
        for member in cls:
            if member.value.replace("_", "") == normalized:
                return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Invalid document type '{label}'. Valid types: {valid}")


class OcrStatus(str, Enum):
    """Document analysis status."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationType(str, Enum):
    CLAIM_RECEIVED = "claim_received"
    STATUS_UPDATE = "status_update"
    DECISION_MADE = "decision_made"
    DOCUMENTS_REQUESTED = "documents_requested"
    MANUAL_REVIEW_ASSIGNED = "manual_review_assigned"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


# ============================================================================
# Entities
# ============================================================================


class Document(BaseModel):
    """
    Evidence attached to a claim.

    Extracted text is present if and only if the OCR status is COMPLETED;
    use mark_completed() / mark_failed() rather than setting fields by hand.
    """

    document_id: str = Field(default_factory=new_id, description="Unique document identifier")
    claim_id: str = Field(description="Owning claim")
    document_type: DocumentType = Field(default=DocumentType.OTHER, description="Declared type")
    storage_uri: str = Field(description="Opaque storage locator")
    uploaded_at: datetime = Field(default_factory=utc_now)
    ocr_status: OcrStatus = Field(default=OcrStatus.PENDING)
    ocr_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    extracted_text: Optional[str] = None

    @model_validator(mode="after")
    def validate_text_matches_status(self) -> "Document":
        """Extracted text only accompanies a completed analysis."""
        completed = self.ocr_status == OcrStatus.COMPLETED
        if completed and self.extracted_text is None:
            raise ValueError("Completed documents must carry extracted text")
        if not completed and self.extracted_text is not None:
            raise ValueError("Only completed documents may carry extracted text")
        return self

    def reset_for_analysis(self) -> None:
        """Start a fresh processing attempt."""
        self.ocr_status = OcrStatus.PENDING
        self.ocr_confidence = None
        self.extracted_text = None

    def mark_completed(self, text: str, confidence: float) -> None:
        if self.ocr_status != OcrStatus.PENDING:
            raise ValueError(f"Document {self.document_id} already {self.ocr_status.value}")
        if not 0.0 <= confidence <= 1.0:
            raise ValueError("Confidence must be between 0.0 and 1.0")
        self.ocr_status = OcrStatus.COMPLETED
        self.ocr_confidence = confidence
        self.extracted_text = text or ""

    def mark_failed(self) -> None:
        if self.ocr_status != OcrStatus.PENDING:
            raise ValueError(f"Document {self.document_id} already {self.ocr_status.value}")
        self.ocr_status = OcrStatus.FAILED
        self.ocr_confidence = None
        self.extracted_text = None


class Claim(BaseModel):
    """
    The unit of adjudication.

    Scores are re-validated on assignment so they always stay within [0, 1].
    """

    model_config = ConfigDict(validate_assignment=True)

    claim_id: str = Field(default_factory=new_id, description="Unique claim identifier")
    policy_id: str = Field(default="", description="Insurance policy identifier")
    claimant_id: str = Field(default="", description="Claimant identifier (often an email)")
    total_amount: Decimal = Field(ge=0, description="Total claimed amount")
    status: ClaimStatus = Field(default=ClaimStatus.SUBMITTED)
    submitted_at: datetime = Field(default_factory=utc_now)
    last_updated_at: datetime = Field(default_factory=utc_now)
    fraud_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    approval_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    assigned_specialist_id: Optional[str] = None
    documents: List[Document] = Field(default_factory=list)

    @field_validator("total_amount", mode="before")
    @classmethod
    def quantize_amount(cls, v):
        if v is None:
            return v
        return to_money(v)

    def touch(self, at: Optional[datetime] = None) -> None:
        """Advance last_updated_at; it never moves backwards."""
        now = at or utc_now()
        if now > self.last_updated_at:
            self.last_updated_at = now

    def transition_to(self, target: ClaimStatus, at: Optional[datetime] = None) -> None:
        """
        Move the claim to a new status.

        Raises:
            InvalidStatusTransitionError: if the state machine forbids it
        """
        if not self.status.can_transition_to(target):
            raise InvalidStatusTransitionError(self.claim_id, self.status.value, target.value)
        self.status = target
        self.touch(at)

    @property
    def completed_documents(self) -> List[Document]:
        return [d for d in self.documents if d.ocr_status == OcrStatus.COMPLETED]


class Decision(BaseModel):
    """Immutable audit record of a disposition."""

    model_config = ConfigDict(frozen=True)

    decision_id: str = Field(default_factory=new_id)
    claim_id: str
    status: DecisionStatus
    decided_at: datetime = Field(default_factory=utc_now)
    reason: Optional[str] = None
    decided_by: str = Field(default=AUTOMATED_REVIEWER, description="Reviewer identity")
    fraud_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    approval_score: Optional[float] = Field(None, ge=0.0, le=1.0)


class Notification(BaseModel):
    """A notification triggered for a claim."""

    notification_id: str = Field(default_factory=new_id)
    claim_id: str
    recipient: str
    notification_type: NotificationType
    sent_at: datetime = Field(default_factory=utc_now)
    status: NotificationStatus = NotificationStatus.PENDING
    message_body: Optional[str] = None


# ============================================================================
# Submission inputs
# ============================================================================


class DocumentUpload(BaseModel):
    """A document listed at submission time."""
    document_type: DocumentType = DocumentType.OTHER
    file_path: str

    @field_validator("document_type", mode="before")
    @classmethod
    def parse_document_type(cls, v):
        if isinstance(v, str):
            return DocumentType.parse(v)
        return v


class ClaimSubmission(BaseModel):
    """Input for submitting a new claim."""

    policy_id: str = ""
    claimant_id: str = ""
    total_amount: Decimal = Field(ge=0)
    documents: List[DocumentUpload] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "policy_id": "STD-1001",
                    "claimant_id": "john@example.com",
                    "total_amount": "8850.00",
                    "documents": [{"document_type": "invoice", "file_path": "docs/invoice.txt"}],
                }
            ]
        }
    )
