"""Repository for versioned citation documents.

Documents are stored as one ``document_versions`` row plus one
``citation_records`` row per citation. Validation results are written per
citation row, so completing one citation never rewrites its siblings.
New versions copy every row of the source version (copy-on-write).
"""

import uuid
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.exceptions import DataIntegrityError, DocumentNotFoundError
from ...models.citation import (
    Citation,
    CitationDocument,
    ContentBlock,
    DocumentMetadata,
    DocumentPayload,
)
from ..models import CitationRecord, DocumentVersion, utcnow

logger = structlog.get_logger(__name__)

# Citation fields the pipeline may write back
CITATION_PATCH_FIELDS = frozenset({"tier_1", "tier_2", "tier_3", "validation", "recommendations"})


def _citation_from_record(record: CitationRecord) -> Citation:
    return Citation(
        id=record.citation_id,
        citation_text=record.citation_text,
        citation_type=record.citation_type,
        extracted_components=record.extracted_components or {},
        tier_1=record.tier_1,
        tier_2=record.tier_2,
        tier_3=record.tier_3,
        validation=record.validation,
        recommendations=record.recommendations,
    )


def _record_from_citation(
    version_id: uuid.UUID, position: int, citation: Citation
) -> CitationRecord:
    return CitationRecord(
        document_version_id=version_id,
        citation_id=citation.id,
        position=position,
        citation_text=citation.citation_text,
        citation_type=citation.citation_type,
        extracted_components=dict(citation.extracted_components),
        tier_1=citation.tier_1,
        tier_2=citation.tier_2,
        tier_3=citation.tier_3,
        validation=citation.validation,
        recommendations=citation.recommendations,
        updated_at=utcnow(),
    )


class DocumentRepository:
    """Repository for document versions and their citation rows.

    ``import_document``, ``create_document_version`` and ``set_status``
    commit. ``update_document_citation`` only joins the caller's
    transaction so it can be combined with queue updates atomically.
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            db: Async SQLAlchemy database session
        """
        self.db = db

    async def import_document(
        self,
        payload: DocumentPayload,
        source_file_id: str | None = None,
        status: str = "citations_identified",
    ) -> CitationDocument:
        """Store a canonical document JSON as a new version.

        Citations without an id are given ``cit_NNN`` ids from their
        position; ids must be unique within the document.

        Args:
            payload: Canonical ``{"document": ...}`` JSON
            source_file_id: Lineage key; a new lineage is created when omitted
            status: Initial check status

        Returns:
            The stored document snapshot

        Raises:
            ValueError: If citation ids are duplicated
        """
        body = payload.document
        citations = [
            c if c.id else c.model_copy(update={"id": f"cit_{i + 1:03d}"})
            for i, c in enumerate(body.citations)
        ]
        ids = [c.id for c in citations]
        if len(set(ids)) != len(ids):
            raise ValueError("Citation ids must be unique within a document")

        source_file_id = source_file_id or str(uuid.uuid4())
        version = await self._next_version_number(source_file_id)

        metadata = body.metadata.model_copy(update={"total_citations": len(citations)})
        document = DocumentVersion(
            id=uuid.uuid4(),
            source_file_id=source_file_id,
            version=version,
            status=status,
            doc_metadata=metadata.model_dump(by_alias=True, exclude_none=True),
            content=[block.model_dump(exclude_none=True) for block in body.content],
        )
        self.db.add(document)
        self.db.add_all(
            _record_from_citation(document.id, i, c) for i, c in enumerate(citations)
        )
        await self.db.commit()

        logger.info(
            "document_imported",
            check_id=str(document.id),
            source_file_id=source_file_id,
            version=version,
            citations=len(citations),
        )
        return await self.get_document_version(document.id)

    async def get_document_version(self, check_id: uuid.UUID) -> CitationDocument:
        """Load a document version with its citations in position order.

        Raises:
            DocumentNotFoundError: If the version does not exist
        """
        document = await self.db.get(DocumentVersion, check_id, populate_existing=True)
        if document is None:
            raise DocumentNotFoundError(f"Document version {check_id} not found")

        result = await self.db.execute(
            select(CitationRecord)
            .where(CitationRecord.document_version_id == check_id)
            .order_by(CitationRecord.position)
            .execution_options(populate_existing=True)
        )
        records = result.scalars().all()

        return CitationDocument(
            check_id=document.id,
            source_file_id=document.source_file_id,
            version=document.version,
            status=document.status,
            created_at=document.created_at,
            metadata=DocumentMetadata.model_validate(document.doc_metadata or {}),
            content=[ContentBlock.model_validate(block) for block in document.content or []],
            citations=[_citation_from_record(record) for record in records],
        )

    async def update_document_citation(
        self, check_id: uuid.UUID, citation_id: str, patch: dict[str, Any]
    ) -> None:
        """Merge ``patch`` into one citation row, matched by citation id.

        Does not commit.

        Raises:
            ValueError: If the patch names a field that may not be written
            DataIntegrityError: If the citation is not in the document
        """
        unknown = set(patch) - CITATION_PATCH_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch citation fields: {sorted(unknown)}")

        result = await self.db.execute(
            update(CitationRecord)
            .where(
                CitationRecord.document_version_id == check_id,
                CitationRecord.citation_id == citation_id,
            )
            .values(**patch, updated_at=utcnow())
        )
        if result.rowcount == 0:
            raise DataIntegrityError(
                f"Citation {citation_id} not found in document version {check_id}"
            )

    async def create_document_version(
        self, source_check_id: uuid.UUID, status: str | None = None
    ) -> CitationDocument:
        """Copy a version and all of its citation rows into a new version.

        Args:
            source_check_id: Version to copy
            status: Status of the new version (defaults to the source status)

        Returns:
            The new version, numbered one above the lineage's latest

        Raises:
            DocumentNotFoundError: If the source version does not exist
        """
        source = await self.db.get(DocumentVersion, source_check_id)
        if source is None:
            raise DocumentNotFoundError(f"Document version {source_check_id} not found")

        version = await self._next_version_number(source.source_file_id)
        new_version = DocumentVersion(
            id=uuid.uuid4(),
            source_file_id=source.source_file_id,
            version=version,
            status=status or source.status,
            doc_metadata=dict(source.doc_metadata or {}),
            content=list(source.content or []),
            parent_version_id=source.id,
        )
        self.db.add(new_version)

        result = await self.db.execute(
            select(CitationRecord)
            .where(CitationRecord.document_version_id == source_check_id)
            .order_by(CitationRecord.position)
        )
        for record in result.scalars().all():
            self.db.add(
                _record_from_citation(
                    new_version.id, record.position, _citation_from_record(record)
                )
            )
        await self.db.commit()

        logger.info(
            "document_version_created",
            source_check_id=str(source_check_id),
            check_id=str(new_version.id),
            version=version,
        )
        return await self.get_document_version(new_version.id)

    async def list_versions(self, source_file_id: str) -> list[DocumentVersion]:
        """List all versions of one file, oldest first."""
        result = await self.db.execute(
            select(DocumentVersion)
            .where(DocumentVersion.source_file_id == source_file_id)
            .order_by(DocumentVersion.version)
        )
        return list(result.scalars().all())

    async def set_status(self, check_id: uuid.UUID, status: str, commit: bool = True) -> None:
        """Update the check status of a version."""
        await self.db.execute(
            update(DocumentVersion)
            .where(DocumentVersion.id == check_id)
            .values(status=status, updated_at=utcnow())
        )
        if commit:
            await self.db.commit()

    async def _next_version_number(self, source_file_id: str) -> int:
        current = await self.db.scalar(
            select(func.max(DocumentVersion.version)).where(
                DocumentVersion.source_file_id == source_file_id
            )
        )
        return (current or 0) + 1
