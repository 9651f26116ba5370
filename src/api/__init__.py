"""
HTTP API for claim adjudication.

FastAPI application exposing claim submission, processing, manual status
updates and the decision trail.
"""

from .app import app, get_claims_service, main

__all__ = ["app", "get_claims_service", "main"]
