"""
SQLite-based claim storage.

Stores claims, their documents, the append-only decision trail and
notifications in a local SQLite database.
No external database setup required - just works.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional

from ..claims.errors import ClaimNotFoundError, DocumentNotFoundError
from ..claims.rules import ClaimHistory
from ..claims.schema import (
    Claim,
    ClaimStatus,
    Decision,
    DecisionStatus,
    Document,
    DocumentType,
    Notification,
    NotificationStatus,
    NotificationType,
    OcrStatus,
    as_utc,
    utc_now,
)
from ..utils.config import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return as_utc(datetime.fromisoformat(value)) if value else None


class ClaimStore(ClaimHistory):
    """
    SQLite-based storage for insurance claims.

    Usage:
        store = ClaimStore()

        # Save a claim
        store.create_claim(claim)

        # Retrieve (with documents)
        claim = store.get_claim(claim_id)

        # Claim the right to process it
        store.transition_status(claim_id, {ClaimStatus.SUBMITTED}, ClaimStatus.PROCESSING)

        # Decide it: status and decision in one commit
        store.record_outcome(claim, decision, {ClaimStatus.PROCESSING})

    Rows are never deleted; decisions are insert-only.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the claim store."""
        self.db_path = Path(db_path or DEFAULT_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS claims (
                    claim_id TEXT PRIMARY KEY,
                    policy_id TEXT NOT NULL,
                    claimant_id TEXT NOT NULL,
                    total_amount TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'submitted',
                    submitted_at TEXT NOT NULL,
                    last_updated_at TEXT NOT NULL,
                    fraud_score REAL,
                    approval_score REAL,
                    assigned_specialist_id TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    document_id TEXT PRIMARY KEY,
                    claim_id TEXT NOT NULL REFERENCES claims(claim_id),
                    document_type TEXT NOT NULL,
                    storage_uri TEXT NOT NULL,
                    uploaded_at TEXT NOT NULL,
                    ocr_status TEXT NOT NULL DEFAULT 'pending',
                    ocr_confidence REAL,
                    extracted_text TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS decisions (
                    decision_id TEXT PRIMARY KEY,
                    claim_id TEXT NOT NULL REFERENCES claims(claim_id),
                    status TEXT NOT NULL,
                    decided_at TEXT NOT NULL,
                    reason TEXT,
                    decided_by TEXT NOT NULL,
                    fraud_score REAL,
                    approval_score REAL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    notification_id TEXT PRIMARY KEY,
                    claim_id TEXT NOT NULL REFERENCES claims(claim_id),
                    recipient TEXT NOT NULL,
                    notification_type TEXT NOT NULL,
                    sent_at TEXT NOT NULL,
                    status TEXT NOT NULL,
                    message_body TEXT
                )
            """)

            # Create indexes for common queries
            conn.execute("CREATE INDEX IF NOT EXISTS idx_claims_status ON claims(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_claims_claimant ON claims(claimant_id, submitted_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_claim ON documents(claim_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_decisions_claim ON decisions(claim_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notifications_claim ON notifications(claim_id)")

            # Decisions are an audit trail: refuse updates and deletes
            conn.execute("""
                CREATE TRIGGER IF NOT EXISTS decisions_no_update
                BEFORE UPDATE ON decisions
                BEGIN SELECT RAISE(ABORT, 'decisions are immutable'); END
            """)
            conn.execute("""
                CREATE TRIGGER IF NOT EXISTS decisions_no_delete
                BEFORE DELETE ON decisions
                BEGIN SELECT RAISE(ABORT, 'decisions are immutable'); END
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # =========================================================================
    # Claims
    # =========================================================================

    def create_claim(self, claim: Claim) -> str:
        """
        Insert a new claim together with any documents it already carries.

        Returns:
            The claim ID
        """
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO claims (
                    claim_id, policy_id, claimant_id, total_amount, status,
                    submitted_at, last_updated_at, fraud_score, approval_score,
                    assigned_specialist_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                claim.claim_id,
                claim.policy_id,
                claim.claimant_id,
                str(claim.total_amount),
                claim.status.value,
                _ts(claim.submitted_at),
                _ts(claim.last_updated_at),
                claim.fraud_score,
                claim.approval_score,
                claim.assigned_specialist_id,
            ))
            for document in claim.documents:
                self._insert_document(conn, document)
            conn.commit()

        logger.debug(f"Stored claim {claim.claim_id} with {len(claim.documents)} document(s)")
        return claim.claim_id

    def get_claim(self, claim_id: str, with_documents: bool = True) -> Optional[Claim]:
        """
        Retrieve a claim by ID.

        Returns:
            Claim or None if not found
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM claims WHERE claim_id = ?",
                (claim_id,)
            ).fetchone()
            if not row:
                return None

            documents = []
            if with_documents:
                doc_rows = conn.execute(
                    "SELECT * FROM documents WHERE claim_id = ? ORDER BY uploaded_at, rowid",
                    (claim_id,)
                ).fetchall()
                documents = [self._row_to_document(r) for r in doc_rows]

        return self._row_to_claim(row, documents)

    def require_claim(self, claim_id: str, with_documents: bool = True) -> Claim:
        """Like get_claim() but raises ClaimNotFoundError."""
        claim = self.get_claim(claim_id, with_documents=with_documents)
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        return claim

    def save_claim(self, claim: Claim) -> bool:
        """
        Persist a claim's scores, specialist and last update time.

        Status is not written here; it only changes through
        transition_status() or record_outcome().

        Returns:
            True if updated, False if claim not found
        """
        with self._get_connection() as conn:
            result = conn.execute("""
                UPDATE claims SET
                    last_updated_at = MAX(last_updated_at, ?), fraud_score = ?,
                    approval_score = ?, assigned_specialist_id = ?
                WHERE claim_id = ?
            """, (
                _ts(claim.last_updated_at),
                claim.fraud_score,
                claim.approval_score,
                claim.assigned_specialist_id,
                claim.claim_id,
            ))
            conn.commit()
            return result.rowcount > 0

    def transition_status(
        self,
        claim_id: str,
        allowed_from: Iterable[ClaimStatus],
        to: ClaimStatus,
        at: Optional[datetime] = None,
    ) -> bool:
        """
        Compare-and-set the claim status.

        Only succeeds when the stored status is one of allowed_from, so two
        concurrent writers cannot both win the same transition.

        Returns:
            True if this call performed the transition
        """
        allowed = [s.value for s in allowed_from]
        if not allowed:
            return False
        placeholders = ", ".join("?" for _ in allowed)
        now = _ts(at or utc_now())

        with self._get_connection() as conn:
            result = conn.execute(
                f"UPDATE claims SET status = ?, "
                f"last_updated_at = MAX(last_updated_at, ?) "
                f"WHERE claim_id = ? AND status IN ({placeholders})",
                [to.value, now, claim_id, *allowed],
            )
            conn.commit()
            return result.rowcount > 0

    def list_claims(
        self,
        status: Optional[ClaimStatus] = None,
        claimant_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Claim]:
        """
        List claims with optional filtering, newest first.

        Documents are not loaded.
        """
        query = "SELECT * FROM claims WHERE 1=1"
        params: list = []

        if status:
            query += " AND status = ?"
            params.append(ClaimStatus(status).value)

        if claimant_id:
            query += " AND claimant_id = ?"
            params.append(claimant_id)

        query += " ORDER BY submitted_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_claim(row, []) for row in rows]

    def claims_for_claimant(self, claimant_id: str) -> List[Claim]:
        """All claims for a claimant (claim history lookup)."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM claims WHERE claimant_id = ? ORDER BY submitted_at DESC",
                (claimant_id,)
            ).fetchall()
            return [self._row_to_claim(row, []) for row in rows]

    def count(self, status: Optional[ClaimStatus] = None) -> int:
        """Count claims, optionally by status."""
        with self._get_connection() as conn:
            if status:
                row = conn.execute(
                    "SELECT COUNT(*) FROM claims WHERE status = ?",
                    (ClaimStatus(status).value,)
                ).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM claims").fetchone()
            return row[0]

    # =========================================================================
    # Documents
    # =========================================================================

    def add_document(self, document: Document) -> Document:
        """Attach a document to an existing claim."""
        with self._get_connection() as conn:
            exists = conn.execute(
                "SELECT 1 FROM claims WHERE claim_id = ?",
                (document.claim_id,)
            ).fetchone()
            if not exists:
                raise ClaimNotFoundError(document.claim_id)
            self._insert_document(conn, document)
            conn.commit()
        return document

    def get_document(self, document_id: str) -> Document:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE document_id = ?",
                (document_id,)
            ).fetchone()
        if not row:
            raise DocumentNotFoundError(document_id)
        return self._row_to_document(row)

    def update_document(self, document: Document) -> bool:
        """Persist a document's analysis outcome."""
        with self._get_connection() as conn:
            result = conn.execute("""
                UPDATE documents SET ocr_status = ?, ocr_confidence = ?, extracted_text = ?
                WHERE document_id = ?
            """, (
                document.ocr_status.value,
                document.ocr_confidence,
                document.extracted_text,
                document.document_id,
            ))
            conn.commit()
            return result.rowcount > 0

    def _insert_document(self, conn: sqlite3.Connection, document: Document) -> None:
        conn.execute("""
            INSERT INTO documents (
                document_id, claim_id, document_type, storage_uri, uploaded_at,
                ocr_status, ocr_confidence, extracted_text
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            document.document_id,
            document.claim_id,
            document.document_type.value,
            document.storage_uri,
            _ts(document.uploaded_at),
            document.ocr_status.value,
            document.ocr_confidence,
            document.extracted_text,
        ))

    # =========================================================================
    # Decisions
    # =========================================================================

    def append_decision(self, decision: Decision) -> Decision:
        """Insert a decision record. Decisions are never updated."""
        with self._get_connection() as conn:
            self._insert_decision(conn, decision)
            conn.commit()

        logger.debug(f"Recorded {decision.status.value} decision for claim {decision.claim_id}")
        return decision

    def record_outcome(
        self,
        claim: Claim,
        decision: Decision,
        allowed_from: Iterable[ClaimStatus],
    ) -> bool:
        """
        Move a claim to its decided status and append the decision together.

        The status change is a compare-and-set against allowed_from, and
        it shares one transaction with the decision insert: either both are
        committed or neither is.

        Returns:
            True if the outcome was recorded, False if the stored status was
            no longer one of allowed_from
        """
        allowed = [s.value for s in allowed_from]
        if not allowed:
            return False
        placeholders = ", ".join("?" for _ in allowed)

        with self._get_connection() as conn:
            result = conn.execute(
                f"UPDATE claims SET status = ?, "
                f"last_updated_at = MAX(last_updated_at, ?), fraud_score = ?, "
                f"approval_score = ?, assigned_specialist_id = ? "
                f"WHERE claim_id = ? AND status IN ({placeholders})",
                [
                    claim.status.value,
                    _ts(claim.last_updated_at),
                    claim.fraud_score,
                    claim.approval_score,
                    claim.assigned_specialist_id,
                    claim.claim_id,
                    *allowed,
                ],
            )
            if result.rowcount == 0:
                return False
            self._insert_decision(conn, decision)
            conn.commit()

        logger.debug(
            f"Claim {claim.claim_id} -> {claim.status.value} "
            f"with {decision.status.value} decision"
        )
        return True

    def _insert_decision(self, conn: sqlite3.Connection, decision: Decision) -> None:
        conn.execute("""
            INSERT INTO decisions (
                decision_id, claim_id, status, decided_at, reason,
                decided_by, fraud_score, approval_score
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            decision.decision_id,
            decision.claim_id,
            decision.status.value,
            _ts(decision.decided_at),
            decision.reason,
            decision.decided_by,
            decision.fraud_score,
            decision.approval_score,
        ))

    def list_decisions(self, claim_id: str) -> List[Decision]:
        """Decision trail for a claim, oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM decisions WHERE claim_id = ? ORDER BY decided_at, rowid",
                (claim_id,)
            ).fetchall()
        return [
            Decision(
                decision_id=row["decision_id"],
                claim_id=row["claim_id"],
                status=DecisionStatus(row["status"]),
                decided_at=_parse_ts(row["decided_at"]),
                reason=row["reason"],
                decided_by=row["decided_by"],
                fraud_score=row["fraud_score"],
                approval_score=row["approval_score"],
            )
            for row in rows
        ]

    # =========================================================================
    # Notifications
    # =========================================================================

    def add_notification(self, notification: Notification) -> Notification:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO notifications (
                    notification_id, claim_id, recipient, notification_type,
                    sent_at, status, message_body
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                notification.notification_id,
                notification.claim_id,
                notification.recipient,
                notification.notification_type.value,
                _ts(notification.sent_at),
                notification.status.value,
                notification.message_body,
            ))
            conn.commit()
        return notification

    def update_notification_status(self, notification_id: str, status: NotificationStatus) -> bool:
        with self._get_connection() as conn:
            result = conn.execute(
                "UPDATE notifications SET status = ? WHERE notification_id = ?",
                (status.value, notification_id)
            )
            conn.commit()
            return result.rowcount > 0

    def list_notifications(self, claim_id: str) -> List[Notification]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM notifications WHERE claim_id = ? ORDER BY sent_at, rowid",
                (claim_id,)
            ).fetchall()
        return [
            Notification(
                notification_id=row["notification_id"],
                claim_id=row["claim_id"],
                recipient=row["recipient"],
                notification_type=NotificationType(row["notification_type"]),
                sent_at=_parse_ts(row["sent_at"]),
                status=NotificationStatus(row["status"]),
                message_body=row["message_body"],
            )
            for row in rows
        ]

    # =========================================================================
    # Row mapping
    # =========================================================================

    def _row_to_claim(self, row: sqlite3.Row, documents: List[Document]) -> Claim:
        """Convert a database row to Claim."""
        return Claim(
            claim_id=row["claim_id"],
            policy_id=row["policy_id"],
            claimant_id=row["claimant_id"],
            total_amount=Decimal(row["total_amount"]),
            status=ClaimStatus(row["status"]),
            submitted_at=_parse_ts(row["submitted_at"]),
            last_updated_at=_parse_ts(row["last_updated_at"]),
            fraud_score=row["fraud_score"],
            approval_score=row["approval_score"],
            assigned_specialist_id=row["assigned_specialist_id"],
            documents=documents,
        )

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        """Convert a database row to Document."""
        return Document(
            document_id=row["document_id"],
            claim_id=row["claim_id"],
            document_type=DocumentType(row["document_type"]),
            storage_uri=row["storage_uri"],
            uploaded_at=_parse_ts(row["uploaded_at"]),
            ocr_status=OcrStatus(row["ocr_status"]),
            ocr_confidence=row["ocr_confidence"],
            extracted_text=row["extracted_text"],
        )


# =============================================================================
# Convenience Functions
# =============================================================================

@lru_cache
def get_claim_store(db_path: Optional[Path] = None) -> ClaimStore:
    """Get the claim store for a database path (singleton per path)."""
    if db_path is None:
        from ..utils.config import get_settings
        db_path = get_settings().database_path
    return ClaimStore(db_path)
