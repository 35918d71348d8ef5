"""Manual worker trigger endpoint."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from citeguard.core.exceptions import ConfigurationError
from citeguard.services.worker import ValidationWorker

from ..dependencies import get_worker
from ..schemas import ProcessQueueResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/worker", tags=["worker"])


@router.post("/process-queue", response_model=ProcessQueueResponse)
async def process_queue(
    worker: Annotated[ValidationWorker, Depends(get_worker)],
    max_items: Annotated[int, Query(ge=1, le=100, description="Items per batch")] = 5,
    max_batches: Annotated[
        int | None, Query(ge=1, le=1000, description="Override the batch safety cap")
    ] = None,
) -> ProcessQueueResponse:
    """Drain the queue in chained batches until it is empty or the cap is hit.

    Raises:
        HTTPException: 503 if provider credentials are missing; no item is
            claimed in that case
    """
    try:
        summary = await worker.run_batches(max_items=max_items, max_batches=max_batches)
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "configuration_error", "message": str(e)},
        ) from e

    logger.info(
        "worker_run_triggered",
        processed=summary.total_processed,
        batches=summary.batches,
        has_more=summary.has_more,
    )
    return ProcessQueueResponse(
        processed=summary.total_processed,
        batches=summary.batches,
        has_more=summary.has_more,
        remaining_pending=summary.remaining_pending,
        capped=summary.capped,
    )
