"""Job status, progress stream, item inspection and re-drive endpoints."""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncGenerator
from typing import Annotated, Any, Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from citeguard.core.exceptions import JobNotFoundError
from citeguard.database.repositories.job_repository import JobRepository
from citeguard.database.repositories.queue_repository import QueueRepository
from citeguard.database.session import get_db, get_session_factory
from citeguard.models.jobs import JobStatus
from citeguard.services.job_tracker import JobTracker, stream_job_events
from citeguard.services.worker_pool import WorkerPool

from ..dependencies import get_worker_pool
from ..schemas import QueueItemListResponse, QueueItemResponse, RetryResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _not_found(job_id: uuid.UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "job_not_found", "message": f"Job {job_id} not found"},
    )


def format_sse(event: dict[str, Any]) -> str:
    """Encode one event as a server-sent event frame."""
    return f"data: {json.dumps(event, default=str)}\n\n"


@router.get("/{job_id}", response_model=JobStatus)
async def get_job_status(
    job_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> JobStatus:
    """Get status and per-tier progress of a validation job."""
    try:
        return await JobTracker(db).get_job_status(job_id)
    except JobNotFoundError as e:
        raise _not_found(job_id) from e


@router.get("/{job_id}/stream")
async def stream_job(
    job_id: uuid.UUID,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> StreamingResponse:
    """Stream job progress as server-sent events until it completes or fails."""

    async def event_generator() -> AsyncGenerator[str, None]:
        async for event in stream_job_events(session_factory, job_id):
            yield format_sse(event)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{job_id}/items", response_model=QueueItemListResponse)
async def list_job_items(
    job_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    item_status: Annotated[
        Literal["pending", "processing", "completed", "failed"] | None,
        Query(alias="status"),
    ] = None,
) -> QueueItemListResponse:
    """List a job's queue items, optionally filtered by status."""
    try:
        await JobRepository(db).get_job(job_id)
    except JobNotFoundError as e:
        raise _not_found(job_id) from e

    items = await QueueRepository(db).list_items(job_id, status=item_status)
    return QueueItemListResponse(
        job_id=job_id,
        items=[
            QueueItemResponse(
                id=item.id,
                citation_id=item.citation_id,
                citation_index=item.citation_index,
                tier=item.tier,
                status=item.status,
                error=item.error,
                attempts=item.attempts,
                redrive_count=item.redrive_count,
                created_at=item.created_at,
                claimed_at=item.claimed_at,
                completed_at=item.completed_at,
            )
            for item in items
        ],
        total=len(items),
    )


@router.post("/{job_id}/retry", response_model=RetryResponse)
async def retry_failed_items(
    job_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    pool: Annotated[WorkerPool | None, Depends(get_worker_pool)],
) -> RetryResponse:
    """Put a job's failed items back on the queue."""
    try:
        requeued = await JobTracker(db).retry_failed(job_id)
    except JobNotFoundError as e:
        raise _not_found(job_id) from e

    if requeued and pool is not None:
        pool.notify()
    return RetryResponse(job_id=job_id, requeued=requeued)
