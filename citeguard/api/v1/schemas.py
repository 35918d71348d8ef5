"""API request/response schemas for citeguard endpoints.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field

from ...models.citation import DocumentBody
from ...models.jobs import CamelModel

# ============================================================================
# Document Schemas
# ============================================================================


class DocumentImportRequest(CamelModel):
    """Request model for importing a citation document.

    Attributes:
        document: Canonical document body (metadata, content, citations)
        source_file_id: Existing lineage to add a version to (new lineage if omitted)
    """

    document: DocumentBody
    source_file_id: str | None = Field(
        None, max_length=255, description="Lineage key shared by all versions of one file"
    )


class RiskSummary(CamelModel):
    """Citation counts per effective risk level."""

    low_risk: int = 0
    moderate_risk: int = 0
    needs_review: int = 0
    total: int = 0


class DocumentResponse(CamelModel):
    """One document version."""

    check_id: uuid.UUID
    source_file_id: str
    version: int
    status: str
    created_at: datetime | None = None
    citation_count: int
    risk_summary: RiskSummary
    json_data: dict[str, Any] = Field(..., description="Canonical document JSON")


# ============================================================================
# Validation Schemas
# ============================================================================


class StartValidationRequest(CamelModel):
    """Request model for starting a validation run."""

    force_tier3: bool = Field(
        False, description="Escalate every citation to Tier 3 regardless of Tier 2 consensus"
    )
    create_version: bool | None = Field(
        None, description="Validate a fresh copy of the document (defaults to configuration)"
    )


class StartValidationResponse(CamelModel):
    """Response model for a started validation run."""

    job_id: uuid.UUID
    check_id: uuid.UUID = Field(..., description="Document version being validated")
    status: str


class RevalidateCitationRequest(CamelModel):
    """Request model for revalidating one citation."""

    force_tier3: bool = Field(
        False, description="Run Tier 3 even when the Tier 2 consensus does not trigger it"
    )


class RevalidateCitationResponse(CamelModel):
    """Response model for a revalidated citation."""

    check_id: uuid.UUID
    citation: dict[str, Any] = Field(..., description="Citation as stored, canonical JSON")


# ============================================================================
# Job Schemas
# ============================================================================


class QueueItemResponse(CamelModel):
    """One validation queue item."""

    id: uuid.UUID
    citation_id: str
    citation_index: int
    tier: str
    status: str
    error: str | None = None
    attempts: int = 0
    redrive_count: int = 0
    created_at: datetime
    claimed_at: datetime | None = None
    completed_at: datetime | None = None


class QueueItemListResponse(CamelModel):
    """Queue items of one job."""

    job_id: uuid.UUID
    items: list[QueueItemResponse]
    total: int


class RetryResponse(CamelModel):
    """Outcome of re-driving a job's failed items."""

    job_id: uuid.UUID
    requeued: int


# ============================================================================
# Worker Schemas
# ============================================================================


class ProcessQueueResponse(CamelModel):
    """Outcome of a manually triggered worker run."""

    processed: int
    batches: int
    has_more: bool
    remaining_pending: int
    capped: bool = Field(False, description="Stopped by the batch safety cap with work left")
