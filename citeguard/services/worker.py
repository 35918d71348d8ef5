"""Validation worker: drains the queue one claimed item at a time.

Each item is handled in three short database sessions (claim, then
complete or fail, then job refresh) with the panel run in between, so no
transaction stays open while agents are being called.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.exceptions import CiteguardError, DataIntegrityError
from ..database.repositories.job_repository import JobRepository
from ..database.repositories.queue_repository import ClaimedItem, QueueRepository
from ..models.citation import Citation, CitationDocument
from ..validation.context import extract_document_context
from ..validation.tier2_panel import Tier2Panel
from ..validation.tier3_panel import Tier3Panel
from .llm.verdict_provider import VerdictProvider

logger = structlog.get_logger(__name__)


@dataclass
class BatchResult:
    """Outcome of one batch.

    Attributes:
        processed: Items handled (completed or failed) in this batch
        item_ids: Ids of those items
        failed: How many of them failed
        has_more: Whether pending items remain anywhere in the queue
        remaining_pending: Pending items left when the batch ended
    """

    processed: int = 0
    item_ids: list[uuid.UUID] = field(default_factory=list)
    failed: int = 0
    has_more: bool = False
    remaining_pending: int = 0


@dataclass
class RunSummary:
    """Outcome of a chain of batches."""

    total_processed: int = 0
    batches: int = 0
    has_more: bool = False
    remaining_pending: int = 0
    capped: bool = False


def resolve_citation(document: CitationDocument, citation_index: int, citation_id: str) -> Citation:
    """Find a queue item's citation in a document snapshot.

    The position recorded at enqueue time is tried first; if it now holds a
    different citation the stable id decides.

    Raises:
        DataIntegrityError: If the citation is gone or has no id
    """
    citation = document.citation_at(citation_index)
    if citation is None or citation.id != citation_id:
        citation = document.find_citation(citation_id)
    if citation is None or not citation.id:
        raise DataIntegrityError(
            f"Citation {citation_id} (index {citation_index}) not found in "
            f"document version {document.check_id}"
        )
    return citation


class ValidationWorker:
    """Claims queue items, runs the matching panel and records the outcome.

    Example:
        >>> worker = ValidationWorker(AsyncSessionLocal, LLMVerdictProvider())
        >>> batch = await worker.process_queue_items(max_items=5)
        >>> batch.has_more
        False
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider: VerdictProvider,
        batch_deadline: float | None = None,
    ):
        self.session_factory = session_factory
        self.tier2_panel = Tier2Panel(provider)
        self.tier3_panel = Tier3Panel(provider)
        self.batch_deadline = batch_deadline or settings.WORKER_BATCH_DEADLINE_SECONDS

    async def process_queue_items(self, max_items: int | None = None) -> BatchResult:
        """Process up to ``max_items`` items or until the batch deadline passes.

        Args:
            max_items: Item budget for this batch (defaults to WORKER_BATCH_SIZE)

        Returns:
            BatchResult; ``has_more`` tells the caller to schedule another batch

        Raises:
            ConfigurationError: If provider credentials are missing; nothing
                is claimed in that case
        """
        settings.require_api_key()
        max_items = max_items or settings.WORKER_BATCH_SIZE
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.batch_deadline
        batch = BatchResult()

        while batch.processed < max_items and loop.time() < deadline:
            async with self.session_factory() as db:
                claimed = await QueueRepository(db).claim_next()
            if claimed is None:
                break

            completed = await self.process_item(claimed)
            batch.processed += 1
            batch.item_ids.append(claimed.item.id)
            if not completed:
                batch.failed += 1

        async with self.session_factory() as db:
            batch.remaining_pending = await QueueRepository(db).count_pending()
        batch.has_more = batch.remaining_pending > 0

        if batch.processed:
            logger.info(
                "worker_batch_finished",
                processed=batch.processed,
                failed=batch.failed,
                remaining_pending=batch.remaining_pending,
            )
        return batch

    async def run_batches(
        self, max_items: int | None = None, max_batches: int | None = None
    ) -> RunSummary:
        """Chain batches while work remains and progress is being made.

        ``max_batches`` (default WORKER_MAX_BATCHES) caps the chain so one
        invocation cannot run forever.
        """
        max_batches = max_batches or settings.WORKER_MAX_BATCHES
        summary = RunSummary()

        while summary.batches < max_batches:
            batch = await self.process_queue_items(max_items)
            summary.batches += 1
            summary.total_processed += batch.processed
            summary.has_more = batch.has_more
            summary.remaining_pending = batch.remaining_pending
            if not batch.has_more or batch.processed == 0:
                break
        else:
            summary.capped = summary.has_more

        if summary.capped:
            logger.warning(
                "worker_batch_cap_reached",
                batches=summary.batches,
                remaining_pending=summary.remaining_pending,
            )
        return summary

    async def process_item(self, claimed: ClaimedItem) -> bool:
        """Run one claimed item to completion or failure.

        Any error while evaluating or completing the item fails that item
        only; the worker carries on with the next one.

        Returns:
            True if the item completed, False if it failed
        """
        item, job = claimed.item, claimed.job
        log = logger.bind(
            item_id=str(item.id),
            job_id=str(job.id),
            tier=item.tier,
            citation_id=item.citation_id,
        )

        try:
            result, escalate = await self._evaluate(claimed)
            async with self.session_factory() as db:
                await QueueRepository(db).complete(item.id, result, escalate=escalate)
            completed = True
        except Exception as e:
            log.warning("queue_item_processing_failed", error=str(e), error_type=type(e).__name__)
            await self._fail(item.id, str(e) or type(e).__name__, log)
            completed = False

        async with self.session_factory() as db:
            await JobRepository(db).refresh_status(job.id)
        return completed

    async def _evaluate(self, claimed: ClaimedItem) -> tuple[dict[str, Any], bool]:
        item, job, document = claimed.item, claimed.job, claimed.document
        if document is None:
            raise DataIntegrityError(claimed.snapshot_error or "Document snapshot missing")
        citation = resolve_citation(document, item.citation_index, item.citation_id)
        context = extract_document_context(citation.id, document)

        if item.tier == "tier2":
            validation = await self.tier2_panel.evaluate(citation, context)
            escalate = validation.consensus.tier_3_trigger or job.force_tier3
            return validation.model_dump(mode="json"), escalate

        tier2_result = citation.validation or citation.tier_2
        if not tier2_result:
            raise DataIntegrityError(f"Tier 2 result not found for citation {citation.id}")
        triggered = bool((tier2_result.get("consensus") or {}).get("tier_3_trigger"))
        tier3 = await self.tier3_panel.evaluate(
            citation, context, tier2_result, forced=job.force_tier3 and not triggered
        )
        return tier3.model_dump(mode="json"), False

    async def _fail(self, item_id: uuid.UUID, reason: str, log: Any) -> None:
        try:
            async with self.session_factory() as db:
                await QueueRepository(db).fail(item_id, reason)
        except CiteguardError as e:
            # Item left processing elsewhere; nothing to record
            log.error("queue_item_fail_rejected", error=str(e))
