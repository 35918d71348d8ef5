"""Validation endpoints: start a queued run, revalidate one citation."""

from __future__ import annotations

import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from citeguard.core.exceptions import (
    CitationNotFoundError,
    ConfigurationError,
    DocumentNotFoundError,
    PanelEvaluationError,
)
from citeguard.database.session import get_db
from citeguard.services.job_tracker import JobTracker
from citeguard.services.llm.verdict_provider import VerdictProvider
from citeguard.services.revalidation import CitationRevalidator
from citeguard.services.worker_pool import WorkerPool

from ..dependencies import get_verdict_provider, get_worker_pool
from ..schemas import (
    RevalidateCitationRequest,
    RevalidateCitationResponse,
    StartValidationRequest,
    StartValidationResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["validation"])


@router.post(
    "/checks/{check_id}/validate",
    response_model=StartValidationResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_validation(
    check_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    pool: Annotated[WorkerPool | None, Depends(get_worker_pool)],
    request: Annotated[StartValidationRequest | None, Body()] = None,
) -> StartValidationResponse:
    """Start validating every citation of a document version.

    Args:
        check_id: Document version to validate
        db: Database session
        pool: Background worker pool to wake, if running
        request: Optional run options

    Returns:
        Job id and the document version the job runs against

    Raises:
        HTTPException: 503 if provider credentials are missing, 404 if the
            document does not exist
    """
    options = request or StartValidationRequest()
    try:
        job = await JobTracker(db).start_validation(
            check_id,
            force_tier3=options.force_tier3,
            create_version=options.create_version,
        )
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "configuration_error", "message": str(e)},
        ) from e
    except DocumentNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "document_not_found", "message": str(e)},
        ) from e

    if pool is not None:
        pool.notify()

    return StartValidationResponse(job_id=job.id, check_id=job.check_id, status=job.status)


@router.post(
    "/checks/{check_id}/citations/{citation_id}/revalidate",
    response_model=RevalidateCitationResponse,
)
async def revalidate_citation(
    check_id: uuid.UUID,
    citation_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    provider: Annotated[VerdictProvider, Depends(get_verdict_provider)],
    request: Annotated[RevalidateCitationRequest | None, Body()] = None,
) -> RevalidateCitationResponse:
    """Re-run Tier 2, and Tier 3 when triggered or forced, for one citation.

    Runs synchronously and writes the results onto the given document
    version; no job or queue item is created.

    Raises:
        HTTPException: 503 if provider credentials are missing, 404 if the
            document or citation does not exist, 502 if an agent fails
    """
    options = request or RevalidateCitationRequest()
    try:
        citation = await CitationRevalidator(db, provider).revalidate(
            check_id, citation_id, force_tier3=options.force_tier3
        )
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "configuration_error", "message": str(e)},
        ) from e
    except DocumentNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "document_not_found", "message": str(e)},
        ) from e
    except CitationNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "citation_not_found", "message": str(e)},
        ) from e
    except PanelEvaluationError as e:
        logger.warning(
            "citation_revalidation_failed",
            check_id=str(check_id),
            citation_id=citation_id,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "validation_failed", "message": str(e)},
        ) from e

    return RevalidateCitationResponse(
        check_id=check_id, citation=citation.model_dump(by_alias=True)
    )
