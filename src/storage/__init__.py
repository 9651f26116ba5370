"""
Storage module for persisting claims and their audit trail.

Provides SQLite-based storage for:
- Claims and their attached documents
- Append-only decision records
- Notifications sent for each claim
"""

from .claim_store import ClaimStore, get_claim_store

__all__ = [
    "ClaimStore",
    "get_claim_store",
]
