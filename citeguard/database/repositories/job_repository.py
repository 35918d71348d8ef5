"""Repository for validation jobs and their derived status."""

import uuid

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.exceptions import JobNotFoundError
from ..models import ValidationJob, ValidationQueueItem, utcnow
from .document_repository import DocumentRepository
from .queue_repository import ITEM_STATUSES, TIERS

logger = structlog.get_logger(__name__)

ACTIVE_JOB_STATUSES = ("pending", "processing")

# Document status once a run finishes
DOCUMENT_STATUS_BY_JOB_STATUS = {
    "completed": "citations_validated",
    "failed": "validation_failed",
}


class JobRepository:
    """Repository for validation jobs."""

    def __init__(self, db: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            db: Async SQLAlchemy database session
        """
        self.db = db

    async def create_job(self, check_id: uuid.UUID, force_tier3: bool = False) -> ValidationJob:
        """Add a pending job for a document version. Does not commit."""
        now = utcnow()
        job = ValidationJob(
            id=uuid.uuid4(),
            check_id=check_id,
            status="pending",
            tier2_total=0,
            tier2_completed=0,
            tier3_total=0,
            tier3_completed=0,
            force_tier3=force_tier3,
            created_at=now,
            updated_at=now,
        )
        self.db.add(job)
        await self.db.flush()
        return job

    async def get_job(self, job_id: uuid.UUID) -> ValidationJob:
        """Load a job with fresh counters.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = await self.db.get(ValidationJob, job_id, populate_existing=True)
        if job is None:
            raise JobNotFoundError(f"Validation job {job_id} not found")
        return job

    async def item_status_counts(self, job_id: uuid.UUID) -> dict[str, dict[str, int]]:
        """Count a job's queue items per tier and status.

        Returns:
            ``{"tier2": {"pending": 0, "processing": 0, ...}, "tier3": {...}}``
        """
        counts = {tier: dict.fromkeys(ITEM_STATUSES, 0) for tier in TIERS}
        result = await self.db.execute(
            select(ValidationQueueItem.tier, ValidationQueueItem.status, func.count())
            .where(ValidationQueueItem.job_id == job_id)
            .group_by(ValidationQueueItem.tier, ValidationQueueItem.status)
        )
        for tier, status, count in result.all():
            counts.setdefault(tier, dict.fromkeys(ITEM_STATUSES, 0))[status] = count
        return counts

    async def first_error(self, job_id: uuid.UUID) -> str | None:
        """Return the error of the earliest failed item of a job."""
        return await self.db.scalar(
            select(ValidationQueueItem.error)
            .where(
                ValidationQueueItem.job_id == job_id,
                ValidationQueueItem.status == "failed",
            )
            .order_by(ValidationQueueItem.completed_at, ValidationQueueItem.created_at)
            .limit(1)
        )

    async def refresh_status(self, job_id: uuid.UUID) -> ValidationJob:
        """Recompute a job's status from its items and commit.

        While any item is pending or processing the job stays active. Once
        work is exhausted, any failed item fails the job with the first
        recorded error; otherwise the job completes when both tier counters
        are full. The document version status follows the outcome.

        Returns:
            The job with its (possibly new) status
        """
        job = await self.get_job(job_id)
        if job.status not in ACTIVE_JOB_STATUSES:
            return job

        counts = await self.item_status_counts(job_id)
        active = sum(counts[tier]["pending"] + counts[tier]["processing"] for tier in counts)
        if active:
            return job

        failed = sum(counts[tier]["failed"] for tier in counts)
        now = utcnow()
        if failed:
            values = {"status": "failed", "error": await self.first_error(job_id)}
        elif (
            job.tier2_completed == job.tier2_total
            and job.tier3_completed == job.tier3_total
        ):
            values = {"status": "completed", "error": None}
        else:
            logger.error(
                "job_counters_inconsistent",
                job_id=str(job_id),
                tier2=f"{job.tier2_completed}/{job.tier2_total}",
                tier3=f"{job.tier3_completed}/{job.tier3_total}",
            )
            return job

        try:
            result = await self.db.execute(
                update(ValidationJob)
                .where(
                    ValidationJob.id == job_id,
                    ValidationJob.status.in_(ACTIVE_JOB_STATUSES),
                )
                .values(**values, completed_at=now, updated_at=now)
            )
            if result.rowcount:
                await DocumentRepository(self.db).set_status(
                    job.check_id, DOCUMENT_STATUS_BY_JOB_STATUS[values["status"]], commit=False
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if result.rowcount:
            logger.info(
                "job_finished",
                job_id=str(job_id),
                status=values["status"],
                error=values["error"],
            )
        return await self.get_job(job_id)

