"""Document endpoints.

Provides API routes for:
- Importing a citation document (canonical JSON)
- Reading a document version with its risk summary
- Creating a new version (copy-on-write)
"""

from __future__ import annotations

import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from citeguard.core.exceptions import DocumentNotFoundError
from citeguard.database.repositories.document_repository import DocumentRepository
from citeguard.database.session import get_db
from citeguard.models.citation import CitationDocument, DocumentPayload
from citeguard.validation.risk import risk_statistics

from ..schemas import DocumentImportRequest, DocumentResponse, RiskSummary

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


def _document_response(document: CitationDocument) -> DocumentResponse:
    return DocumentResponse(
        check_id=document.check_id,
        source_file_id=document.source_file_id,
        version=document.version,
        status=document.status,
        created_at=document.created_at,
        citation_count=len(document.citations),
        risk_summary=RiskSummary(**risk_statistics(document.citations)),
        json_data=document.to_payload(),
    )


def _not_found(check_id: uuid.UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "document_not_found", "message": f"Document {check_id} not found"},
    )


@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def import_document(
    request: DocumentImportRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DocumentResponse:
    """Import a citation document as a new version.

    Args:
        request: Canonical document body and optional lineage key
        db: Database session

    Returns:
        The stored document version

    Raises:
        HTTPException: 400 if citation ids are duplicated
    """
    try:
        document = await DocumentRepository(db).import_document(
            DocumentPayload(document=request.document),
            source_file_id=request.source_file_id,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_document", "message": str(e)},
        ) from e

    return _document_response(document)


@router.get("/{check_id}", response_model=DocumentResponse)
async def get_document(
    check_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DocumentResponse:
    """Get a document version with its citations and risk summary."""
    try:
        document = await DocumentRepository(db).get_document_version(check_id)
    except DocumentNotFoundError as e:
        raise _not_found(check_id) from e

    return _document_response(document)


@router.post(
    "/{check_id}/versions", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED
)
async def create_version(
    check_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DocumentResponse:
    """Copy a document version into a new version of the same file."""
    try:
        document = await DocumentRepository(db).create_document_version(check_id)
    except DocumentNotFoundError as e:
        raise _not_found(check_id) from e

    return _document_response(document)
