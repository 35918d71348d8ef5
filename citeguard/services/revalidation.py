"""Re-run the validation panels for a single citation, outside the queue."""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import CitationNotFoundError
from ..database.repositories.document_repository import DocumentRepository
from ..models.citation import Citation
from ..validation.context import extract_document_context
from ..validation.tier2_panel import Tier2Panel
from ..validation.tier3_panel import Tier3Panel
from .llm.verdict_provider import VerdictProvider

logger = structlog.get_logger(__name__)


class CitationRevalidator:
    """Validates one citation of a document version in place.

    Tier 2 always runs; Tier 3 runs when the Tier 2 consensus triggers it or
    the caller forces it. Both results replace the stored ones, so a citation
    that no longer escalates loses its old Tier 3 result.

    Example:
        >>> revalidator = CitationRevalidator(db, LLMVerdictProvider())
        >>> citation = await revalidator.revalidate(check_id, "cit_002", force_tier3=True)
        >>> citation.tier_3["forced"]
        True
    """

    def __init__(self, db: AsyncSession, provider: VerdictProvider) -> None:
        self.db = db
        self.documents = DocumentRepository(db)
        self.tier2_panel = Tier2Panel(provider)
        self.tier3_panel = Tier3Panel(provider)

    async def revalidate(
        self, check_id: uuid.UUID, citation_id: str, force_tier3: bool = False
    ) -> Citation:
        """Run the panels for ``citation_id`` and store the results.

        Args:
            check_id: Document version holding the citation
            citation_id: Stable citation id
            force_tier3: Run Tier 3 even when Tier 2 does not trigger it

        Returns:
            The citation as stored after the update

        Raises:
            ConfigurationError: If provider credentials are missing
            DocumentNotFoundError: If the document version does not exist
            CitationNotFoundError: If the citation is not in the document
            PanelEvaluationError: If any agent fails; nothing is stored
        """
        settings.require_api_key()

        document = await self.documents.get_document_version(check_id)
        citation = document.find_citation(citation_id)
        if citation is None:
            raise CitationNotFoundError(
                f"Citation {citation_id} not found in document version {check_id}"
            )
        context = extract_document_context(citation_id, document)

        validation = await self.tier2_panel.evaluate(citation, context)
        tier2_result = validation.model_dump(mode="json")
        triggered = validation.consensus.tier_3_trigger

        tier3_result = None
        if triggered or force_tier3:
            tier3 = await self.tier3_panel.evaluate(
                citation, context, tier2_result, forced=force_tier3 and not triggered
            )
            tier3_result = tier3.model_dump(mode="json")

        try:
            await self.documents.update_document_citation(
                check_id,
                citation_id,
                {"validation": tier2_result, "tier_2": tier2_result, "tier_3": tier3_result},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "citation_revalidated",
            check_id=str(check_id),
            citation_id=citation_id,
            tier_3_trigger=triggered,
            force_tier3=force_tier3,
            tier3_ran=tier3_result is not None,
        )
        updated = await self.documents.get_document_version(check_id)
        return updated.find_citation(citation_id)
