"""Repository for the validation queue.

Queue items move ``pending -> processing -> completed | failed``. Every
transition is a conditional UPDATE on the current status (compare-and-swap),
so two workers can never both move the same item out of a state.
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import settings
from ...core.exceptions import DocumentNotFoundError, InvalidStateError, QueueItemNotFoundError
from ...models.citation import CitationDocument
from ..models import ValidationJob, ValidationQueueItem, utcnow
from .document_repository import DocumentRepository

logger = structlog.get_logger(__name__)

TIERS = ("tier2", "tier3")
ITEM_STATUSES = ("pending", "processing", "completed", "failed")

# Longest error message stored on an item
MAX_ERROR_LENGTH = 2000


@dataclass
class ClaimedItem:
    """A claimed queue item with its parent job and document snapshot.

    ``document`` is None when the job's document version could not be read;
    ``snapshot_error`` then says why, and the item must be failed.
    """

    item: ValidationQueueItem
    job: ValidationJob
    document: CitationDocument | None
    snapshot_error: str | None = None


class QueueRepository:
    """Validation queue operations.

    ``enqueue`` joins the caller's transaction. ``claim_next``,
    ``complete``, ``fail`` and ``retry_failed`` each run as one transaction
    and commit (or roll back) before returning.

    Example:
        >>> queue = QueueRepository(db)
        >>> claimed = await queue.claim_next()
        >>> if claimed:
        ...     await queue.complete(claimed.item.id, result, escalate=False)
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            db: Async SQLAlchemy database session
        """
        self.db = db

    async def enqueue(
        self,
        job_id: uuid.UUID,
        citations: Sequence[tuple[int, str]],
        tier: str,
    ) -> list[ValidationQueueItem]:
        """Insert one pending item per citation and grow the job's tier total.

        Args:
            job_id: Owning job
            citations: ``(citation_index, citation_id)`` pairs
            tier: 'tier2' or 'tier3'

        Returns:
            The new (flushed, uncommitted) items
        """
        if tier not in TIERS:
            raise ValueError(f"Invalid tier: {tier}")

        now = utcnow()
        items = [
            ValidationQueueItem(
                id=uuid.uuid4(),
                job_id=job_id,
                citation_id=citation_id,
                citation_index=index,
                tier=tier,
                status="pending",
                created_at=now,
                updated_at=now,
            )
            for index, citation_id in citations
        ]
        self.db.add_all(items)

        total_column = ValidationJob.tier2_total if tier == "tier2" else ValidationJob.tier3_total
        await self.db.execute(
            update(ValidationJob)
            .where(ValidationJob.id == job_id)
            .values({total_column: total_column + len(items), ValidationJob.updated_at: now})
        )
        await self.db.flush()
        return items

    async def claim_next(self, attempts: int | None = None) -> ClaimedItem | None:
        """Atomically claim the oldest pending item.

        Reads a candidate, then moves it to ``processing`` with an UPDATE
        guarded by ``status = 'pending'``. If another worker won the race
        (no row updated) the next candidate is tried, up to ``attempts``.

        Returns:
            ClaimedItem, or None when nothing could be claimed
        """
        attempts = attempts or settings.WORKER_CLAIM_ATTEMPTS

        for _ in range(attempts):
            candidate = (
                await self.db.execute(
                    select(ValidationQueueItem.id, ValidationQueueItem.job_id)
                    .where(ValidationQueueItem.status == "pending")
                    .order_by(
                        ValidationQueueItem.created_at,
                        ValidationQueueItem.citation_index,
                        ValidationQueueItem.id,
                    )
                    .limit(1)
                )
            ).first()
            if candidate is None:
                await self.db.rollback()
                return None

            item_id, job_id = candidate
            now = utcnow()
            try:
                result = await self.db.execute(
                    update(ValidationQueueItem)
                    .where(
                        ValidationQueueItem.id == item_id,
                        ValidationQueueItem.status == "pending",
                    )
                    .values(
                        status="processing",
                        claimed_at=now,
                        updated_at=now,
                        attempts=ValidationQueueItem.attempts + 1,
                    )
                )
                if result.rowcount != 1:
                    await self.db.rollback()
                    logger.debug("queue_claim_lost", item_id=str(item_id))
                    continue

                await self.db.execute(
                    update(ValidationJob)
                    .where(ValidationJob.id == job_id, ValidationJob.status == "pending")
                    .values(status="processing", started_at=now, updated_at=now)
                )

                # Snapshot is read inside the claim transaction; a claim is
                # never committed without one or without the reason it is missing.
                item = await self.db.get(ValidationQueueItem, item_id, populate_existing=True)
                job = await self.db.get(ValidationJob, job_id, populate_existing=True)
                document: CitationDocument | None = None
                snapshot_error: str | None = None
                try:
                    document = await DocumentRepository(self.db).get_document_version(
                        job.check_id
                    )
                except DocumentNotFoundError as e:
                    snapshot_error = str(e)

                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

            if snapshot_error:
                logger.warning(
                    "queue_item_claimed_without_document",
                    item_id=str(item_id),
                    job_id=str(job_id),
                    error=snapshot_error,
                )
            else:
                logger.info(
                    "queue_item_claimed",
                    item_id=str(item_id),
                    job_id=str(job_id),
                    tier=item.tier,
                    citation_id=item.citation_id,
                )
            return ClaimedItem(
                item=item, job=job, document=document, snapshot_error=snapshot_error
            )

        return None

    async def complete(
        self, item_id: uuid.UUID, result: dict[str, Any], escalate: bool = False
    ) -> ValidationQueueItem:
        """Complete an item in one transaction.

        Marks the item completed with ``result``, writes the result into the
        citation row (matched by citation id), increments the job's completed
        counter for the tier and, when ``escalate`` is set on a Tier 2 item,
        enqueues a Tier 3 item for the same citation. Either all of it is
        committed or none of it is.

        Raises:
            QueueItemNotFoundError: If the item does not exist
            InvalidStateError: If the item is not processing
            DataIntegrityError: If the citation is missing from the document
        """
        item = await self._get_item(item_id)
        job = await self.db.get(ValidationJob, item.job_id)
        tier, citation_id, citation_index = item.tier, item.citation_id, item.citation_index

        try:
            now = utcnow()
            updated = await self.db.execute(
                update(ValidationQueueItem)
                .where(
                    ValidationQueueItem.id == item_id,
                    ValidationQueueItem.status == "processing",
                )
                .values(
                    status="completed",
                    result=result,
                    error=None,
                    completed_at=now,
                    updated_at=now,
                )
            )
            if updated.rowcount != 1:
                raise InvalidStateError(f"Queue item {item_id} is not processing")

            if tier == "tier2":
                patch = {"validation": result, "tier_2": result}
            else:
                patch = {"tier_3": result}
            await DocumentRepository(self.db).update_document_citation(
                job.check_id, citation_id, patch
            )

            completed_column = (
                ValidationJob.tier2_completed if tier == "tier2" else ValidationJob.tier3_completed
            )
            await self.db.execute(
                update(ValidationJob)
                .where(ValidationJob.id == job.id)
                .values({completed_column: completed_column + 1, ValidationJob.updated_at: now})
            )

            if escalate and tier == "tier2":
                await self.enqueue(job.id, [(citation_index, citation_id)], "tier3")

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "queue_item_completed",
            item_id=str(item_id),
            tier=tier,
            citation_id=citation_id,
            escalated=escalate and tier == "tier2",
        )
        return await self._get_item(item_id)

    async def fail(self, item_id: uuid.UUID, reason: str) -> ValidationQueueItem:
        """Mark a processing item failed. Job counters are not touched.

        Raises:
            QueueItemNotFoundError: If the item does not exist
            InvalidStateError: If the item is not processing
        """
        now = utcnow()
        try:
            updated = await self.db.execute(
                update(ValidationQueueItem)
                .where(
                    ValidationQueueItem.id == item_id,
                    ValidationQueueItem.status == "processing",
                )
                .values(
                    status="failed",
                    error=reason[:MAX_ERROR_LENGTH],
                    completed_at=now,
                    updated_at=now,
                )
            )
            if updated.rowcount != 1:
                await self._get_item(item_id)
                raise InvalidStateError(f"Queue item {item_id} is not processing")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.warning("queue_item_failed", item_id=str(item_id), error=reason[:200])
        return await self._get_item(item_id)

    async def retry_failed(self, job_id: uuid.UUID, max_redrives: int | None = None) -> int:
        """Put a job's failed items back to pending for another attempt.

        Items that have already been re-driven ``max_redrives`` times stay
        failed. The job returns to ``processing`` when anything was re-queued.

        Returns:
            Number of items re-queued
        """
        max_redrives = settings.MAX_ITEM_REDRIVES if max_redrives is None else max_redrives
        now = utcnow()
        try:
            result = await self.db.execute(
                update(ValidationQueueItem)
                .where(
                    ValidationQueueItem.job_id == job_id,
                    ValidationQueueItem.status == "failed",
                    ValidationQueueItem.redrive_count < max_redrives,
                )
                .values(
                    status="pending",
                    error=None,
                    completed_at=None,
                    claimed_at=None,
                    updated_at=now,
                    redrive_count=ValidationQueueItem.redrive_count + 1,
                )
            )
            requeued = result.rowcount
            if requeued:
                await self.db.execute(
                    update(ValidationJob)
                    .where(ValidationJob.id == job_id)
                    .values(status="processing", error=None, completed_at=None, updated_at=now)
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("queue_items_redriven", job_id=str(job_id), count=requeued)
        return requeued

    async def count_pending(self, job_id: uuid.UUID | None = None) -> int:
        """Count pending items, system-wide or for one job."""
        query = select(func.count()).select_from(ValidationQueueItem).where(
            ValidationQueueItem.status == "pending"
        )
        if job_id is not None:
            query = query.where(ValidationQueueItem.job_id == job_id)
        return await self.db.scalar(query) or 0

    async def list_items(
        self, job_id: uuid.UUID, status: str | None = None
    ) -> list[ValidationQueueItem]:
        """List a job's items in enqueue order, optionally filtered by status."""
        query = select(ValidationQueueItem).where(ValidationQueueItem.job_id == job_id)
        if status is not None:
            query = query.where(ValidationQueueItem.status == status)
        result = await self.db.execute(
            query.order_by(
                ValidationQueueItem.created_at,
                ValidationQueueItem.tier,
                ValidationQueueItem.citation_index,
            ).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _get_item(self, item_id: uuid.UUID) -> ValidationQueueItem:
        item = await self.db.get(ValidationQueueItem, item_id, populate_existing=True)
        if item is None:
            raise QueueItemNotFoundError(f"Queue item {item_id} not found")
        return item
