"""Citation document models.

Pydantic models for the canonical citation JSON document
(``{"document": {"metadata", "content", "citations"}}``) and the
normalized snapshot the worker reads from the database.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

CitationType = Literal["case", "statute", "regulation", "rule", "secondary"]


class ContentBlock(BaseModel):
    """One block of document text.

    Inline citations are marked as ``[CITATION:cit_001]...[/CITATION:cit_001]``.
    """

    type: str = Field(default="paragraph", description="paragraph, heading, ...")
    id: str = Field(..., description="Block identifier (para_001, heading_001, ...)")
    level: int | None = Field(default=None, ge=1, le=6, description="Heading level")
    text: str = Field(default="", description="Block text with citation markers")


class DocumentMetadata(BaseModel):
    """Document-level metadata."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    filename: str = Field(default="", description="Original file name")
    upload_date: str | None = Field(default=None, alias="uploadDate")
    document_type: str | None = Field(default=None, alias="documentType")
    total_citations: int = Field(default=0, ge=0, alias="totalCitations")


class Citation(BaseModel):
    """One identified citation and its accumulated tier results.

    Tier results are stored as opaque JSON; they are produced by
    :mod:`citeguard.models.verdicts` models dumped with ``mode="json"``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, description="Stable citation id (cit_001, ...)")
    citation_text: str = Field(default="", alias="citationText")
    citation_type: str = Field(default="case", alias="citationType")
    extracted_components: dict[str, Any] = Field(
        default_factory=dict, alias="extractedComponents"
    )
    tier_1: dict[str, Any] | None = None
    tier_2: dict[str, Any] | None = None
    tier_3: dict[str, Any] | None = None
    validation: dict[str, Any] | None = None
    recommendations: list[dict[str, Any]] | None = None


class DocumentBody(BaseModel):
    """Body of the canonical document JSON."""

    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    content: list[ContentBlock] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)


class DocumentPayload(BaseModel):
    """Canonical document JSON as produced by citation identification."""

    document: DocumentBody


class CitationDocument(BaseModel):
    """Snapshot of one document version with its citation rows.

    Attributes:
        check_id: Document version id (what a validation job points at)
        source_file_id: Lineage key shared by all versions of one file
        version: Monotonic version number within the lineage
        status: Check status (citations_identified, citations_validated, ...)
        metadata: Document metadata
        content: Ordered content blocks
        citations: Citations ordered by position
    """

    check_id: uuid.UUID
    source_file_id: str
    version: int
    status: str
    created_at: datetime | None = None
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    content: list[ContentBlock] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)

    def citation_at(self, index: int) -> Citation | None:
        """Return the citation at ``index`` or None when out of range."""
        if 0 <= index < len(self.citations):
            return self.citations[index]
        return None

    def find_citation(self, citation_id: str) -> Citation | None:
        """Return the citation with ``citation_id`` or None."""
        for citation in self.citations:
            if citation.id == citation_id:
                return citation
        return None

    def to_payload(self) -> dict[str, Any]:
        """Export the snapshot back to the canonical document JSON."""
        return {
            "document": {
                "metadata": self.metadata.model_dump(by_alias=True, exclude_none=True),
                "content": [block.model_dump(exclude_none=True) for block in self.content],
                "citations": [
                    citation.model_dump(by_alias=True) for citation in self.citations
                ],
            }
        }
