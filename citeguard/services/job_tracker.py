"""Job tracker: start validation runs, report progress, stream events."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncGenerator
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.exceptions import CiteguardError
from ..database.models import ValidationJob
from ..database.repositories.document_repository import DocumentRepository
from ..database.repositories.job_repository import JobRepository
from ..database.repositories.queue_repository import QueueRepository
from ..models.jobs import JobStatus, TierProgress, percentage

logger = structlog.get_logger(__name__)

# Document status while a run is in progress
VALIDATING_DOCUMENT_STATUS = "validating"


class JobTracker:
    """Creates validation jobs and reports their progress.

    Example:
        >>> tracker = JobTracker(db)
        >>> job = await tracker.start_validation(check_id)
        >>> status = await tracker.get_job_status(job.id)
        >>> status.tier2_progress.percentage
        0
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.documents = DocumentRepository(db)
        self.jobs = JobRepository(db)
        self.queue = QueueRepository(db)

    async def start_validation(
        self,
        check_id: uuid.UUID,
        force_tier3: bool = False,
        create_version: bool | None = None,
    ) -> ValidationJob:
        """Create a job and enqueue one Tier 2 item per citation.

        When ``create_version`` (default CREATE_VERSION_ON_VALIDATE) is set,
        the document is first copied into a new version and the job runs
        against that copy.

        Args:
            check_id: Document version to validate
            force_tier3: Escalate every citation to Tier 3 regardless of consensus
            create_version: Override the copy-on-write setting

        Returns:
            The new job

        Raises:
            ConfigurationError: If provider credentials are missing
            DocumentNotFoundError: If the document version does not exist
        """
        settings.require_api_key()

        create_version = (
            settings.CREATE_VERSION_ON_VALIDATE if create_version is None else create_version
        )
        if create_version:
            document = await self.documents.create_document_version(
                check_id, status=VALIDATING_DOCUMENT_STATUS
            )
        else:
            document = await self.documents.get_document_version(check_id)
            await self.documents.set_status(check_id, VALIDATING_DOCUMENT_STATUS, commit=False)

        job = await self.jobs.create_job(document.check_id, force_tier3=force_tier3)
        citations = [(index, c.id) for index, c in enumerate(document.citations) if c.id]
        await self.queue.enqueue(job.id, citations, "tier2")
        await self.db.commit()

        logger.info(
            "validation_started",
            job_id=str(job.id),
            check_id=str(document.check_id),
            source_check_id=str(check_id),
            citations=len(citations),
            force_tier3=force_tier3,
        )

        if not citations:
            return await self.jobs.refresh_status(job.id)
        return await self.jobs.get_job(job.id)

    async def get_job_status(self, job_id: uuid.UUID) -> JobStatus:
        """Return status and per-tier progress of a job.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = await self.jobs.get_job(job_id)
        counts = await self.jobs.item_status_counts(job_id)

        return JobStatus(
            id=job.id,
            check_id=job.check_id,
            status=job.status,
            tier2_progress=TierProgress(
                current=job.tier2_completed,
                total=job.tier2_total,
                percentage=percentage(job.tier2_completed, job.tier2_total),
                **counts["tier2"],
            ),
            tier3_progress=TierProgress(
                current=job.tier3_completed,
                total=job.tier3_total,
                percentage=percentage(job.tier3_completed, job.tier3_total),
                **counts["tier3"],
            ),
            error=job.error,
            force_tier3=job.force_tier3,
        )

    async def retry_failed(self, job_id: uuid.UUID) -> int:
        """Re-drive a job's failed items.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        await self.jobs.get_job(job_id)
        return await self.queue.retry_failed(job_id)


async def stream_job_events(
    session_factory: async_sessionmaker[AsyncSession],
    job_id: uuid.UUID,
    poll_interval: float | None = None,
    max_duration: float | None = None,
) -> AsyncGenerator[dict[str, Any], None]:
    """Yield progress events for a job until it completes or fails.

    Events: ``start`` once, ``tier2_progress`` / ``tier3_progress`` when a
    counter moves, ``tier2_complete`` once Tier 2 has no work left, then a
    final ``complete`` (with the validated document) or ``error``.
    """
    poll_interval = poll_interval or settings.STREAM_POLL_INTERVAL
    max_duration = max_duration or settings.STREAM_MAX_DURATION
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max_duration

    try:
        async with session_factory() as db:
            status = await JobTracker(db).get_job_status(job_id)
    except CiteguardError as e:
        yield {"type": "error", "error": str(e)}
        return

    yield {
        "type": "start",
        "jobId": str(job_id),
        "tier2Total": status.tier2_progress.total,
        "tier3Total": status.tier3_progress.total,
    }

    tier2_seen = -1
    tier3_seen = -1
    tier2_announced = False

    while True:
        tier2, tier3 = status.tier2_progress, status.tier3_progress

        if tier2.current != tier2_seen:
            tier2_seen = tier2.current
            yield {
                "type": "tier2_progress",
                "tier2Current": tier2.current,
                "tier2Total": tier2.total,
                "tier2Percentage": tier2.percentage,
            }

        if not tier2_announced and tier2.pending == 0 and tier2.processing == 0:
            tier2_announced = True
            yield {
                "type": "tier2_complete",
                "tier3Count": tier3.total,
                "tier3Total": tier3.total,
            }

        if tier3.total and tier3.current != tier3_seen:
            tier3_seen = tier3.current
            yield {
                "type": "tier3_progress",
                "tier2Current": tier2.current,
                "tier2Total": tier2.total,
                "tier3Current": tier3.current,
                "tier3Total": tier3.total,
                "tier3Percentage": tier3.percentage,
            }

        if status.status == "completed":
            async with session_factory() as db:
                document = await DocumentRepository(db).get_document_version(status.check_id)
            yield {
                "type": "complete",
                "checkId": str(status.check_id),
                "jsonData": document.to_payload(),
            }
            return

        if status.status == "failed":
            yield {"type": "error", "error": status.error or "Validation failed"}
            return

        if loop.time() >= deadline:
            logger.warning("job_stream_timed_out", job_id=str(job_id))
            yield {"type": "error", "error": "Timed out waiting for validation to finish"}
            return

        await asyncio.sleep(poll_interval)
        async with session_factory() as db:
            status = await JobTracker(db).get_job_status(job_id)
