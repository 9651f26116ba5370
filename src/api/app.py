"""
FastAPI application for claim adjudication.

Provides:
- Claim submission and status endpoints
- Processing endpoints returning the structured pipeline result
- Manual review resolution and the decision trail
- Health check
"""

# Configure logging before importing libraries that log on import
import logging

logging.getLogger("python_multipart").setLevel(logging.WARNING)
logging.getLogger("python_multipart.multipart").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)
logging.getLogger("openai._base_client").setLevel(logging.WARNING)

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..claims.errors import ClaimNotFoundError, DocumentNotFoundError, InvalidStatusTransitionError
from ..claims.pipeline import PipelineResult
from ..claims.schema import Claim, ClaimSubmission, Decision, Document, DocumentType
from ..claims.service import ClaimsService, ClaimStatusView, SubmissionReceipt, create_claims_service
from ..utils.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Claims service (created lazily so importing the app does not open the database)
_claims_service: Optional[ClaimsService] = None


def get_claims_service() -> ClaimsService:
    """Lazy-load the claims service."""
    global _claims_service
    if _claims_service is None:
        _claims_service = create_claims_service(settings)
    return _claims_service


class StatusUpdateRequest(BaseModel):
    status: str
    specialist_id: Optional[str] = None
    reason: Optional[str] = None


class DocumentRequest(BaseModel):
    file_path: str
    document_type: str = DocumentType.OTHER.value


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting claims adjudication server...")
    logger.info(f"Database: {settings.database_path}")
    yield
    logger.info("Shutting down claims adjudication server...")


app = FastAPI(
    title="Claims Adjudication API",
    description="Automated insurance claim validation, scoring and decisioning",
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Error Mapping
# =============================================================================


@app.exception_handler(ClaimNotFoundError)
async def claim_not_found(request: Request, exc: ClaimNotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(DocumentNotFoundError)
async def document_not_found(request: Request, exc: DocumentNotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(InvalidStatusTransitionError)
async def invalid_transition(request: Request, exc: InvalidStatusTransitionError):
    return JSONResponse(status_code=409, content={"error": str(exc)})


def _pipeline_response(result: PipelineResult):
    """Unsuccessful runs are reported as 400 with the full result body."""
    if not result.success:
        return JSONResponse(status_code=400, content=result.model_dump(mode="json"))
    return result


# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "service": "Claims Adjudication API",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Detailed health check endpoint."""
    return {
        "status": "healthy",
        "config": {
            "document_analysis_provider": settings.document_analysis_provider,
            "narrative_provider": settings.narrative_provider,
            "statistical_provider": settings.statistical_provider,
            "notification_channel": settings.notification_channel,
        },
    }


# =============================================================================
# Claim Endpoints
# =============================================================================


@app.post("/api/claims", response_model=SubmissionReceipt, status_code=201)
async def submit_claim(
    submission: ClaimSubmission,
    service: ClaimsService = Depends(get_claims_service),
):
    """Submit a new claim."""
    return await service.submit_claim(submission)


@app.post("/api/claims/submit-and-process", response_model=PipelineResult)
async def submit_and_process(
    submission: ClaimSubmission,
    service: ClaimsService = Depends(get_claims_service),
):
    """Submit a claim and run the processing pipeline in one call."""
    return _pipeline_response(await service.submit_and_process(submission))


@app.get("/api/claims/user/{claimant_id}", response_model=List[Claim])
async def get_claims_for_claimant(
    claimant_id: str,
    service: ClaimsService = Depends(get_claims_service),
):
    """All claims for a claimant, newest first."""
    return service.get_claims_for_claimant(claimant_id)


@app.get("/api/claims/{claim_id}/status", response_model=ClaimStatusView)
async def get_claim_status(
    claim_id: str,
    service: ClaimsService = Depends(get_claims_service),
):
    return service.get_claim_status(claim_id)


@app.put("/api/claims/{claim_id}/status", response_model=ClaimStatusView)
async def update_claim_status(
    claim_id: str,
    update: StatusUpdateRequest,
    service: ClaimsService = Depends(get_claims_service),
):
    """Resolve a claim under manual review to approved or rejected."""
    try:
        claim = await service.update_claim_status(
            claim_id, update.status, specialist_id=update.specialist_id, reason=update.reason
        )
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return ClaimStatusView.from_claim(claim)


@app.post("/api/claims/{claim_id}/process", response_model=PipelineResult)
async def process_claim(
    claim_id: str,
    service: ClaimsService = Depends(get_claims_service),
):
    """Run the processing pipeline for a claim."""
    return _pipeline_response(await service.process_claim(claim_id))


@app.post("/api/claims/{claim_id}/documents", response_model=Document, status_code=201)
async def add_document(
    claim_id: str,
    request: DocumentRequest,
    service: ClaimsService = Depends(get_claims_service),
):
    """Attach a document to a claim."""
    try:
        return service.add_document(claim_id, request.file_path, request.document_type)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})


@app.get("/api/claims/{claim_id}/decisions", response_model=List[Decision])
async def list_decisions(
    claim_id: str,
    service: ClaimsService = Depends(get_claims_service),
):
    """Decision trail for a claim, oldest first."""
    return service.list_decisions(claim_id)


def main():
    """Run the server directly."""
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
