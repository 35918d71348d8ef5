"""Database models for the citation validation pipeline."""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class DocumentVersion(Base):
    """One version of a citation document.

    Versions of the same file share ``source_file_id`` and are numbered
    monotonically. The version id is the ``check_id`` validation jobs point at.
    """

    __tablename__ = "document_versions"
    __table_args__ = (UniqueConstraint("source_file_id", "version", name="uq_document_version"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_file_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        String(40), nullable=False, default="citations_identified"
    )  # 'citations_identified', 'validating', 'citations_validated'
    doc_metadata: Mapped[dict[str, Any]] = mapped_column("doc_metadata", JSON, nullable=False)
    content: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    parent_version_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("document_versions.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Relationships
    citations: Mapped[list["CitationRecord"]] = relationship(
        back_populates="document_version",
        cascade="all, delete-orphan",
        order_by="CitationRecord.position",
    )


class CitationRecord(Base):
    """One citation row of a document version, keyed by (version, citation id)."""

    __tablename__ = "citation_records"
    __table_args__ = (Index("ix_citation_records_position", "document_version_id", "position"),)

    document_version_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_versions.id", ondelete="CASCADE"), primary_key=True
    )
    citation_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    citation_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    citation_type: Mapped[str] = mapped_column(String(20), nullable=False, default="case")
    extracted_components: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    tier_1: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    tier_2: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    tier_3: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    validation: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    recommendations: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Relationships
    document_version: Mapped["DocumentVersion"] = relationship(back_populates="citations")


class ValidationJob(Base):
    """One validation run over one document version."""

    __tablename__ = "validation_jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    check_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_versions.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True, default="pending"
    )  # 'pending', 'processing', 'completed', 'failed'
    tier2_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier2_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier3_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier3_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    force_tier3: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    items: Mapped[list["ValidationQueueItem"]] = relationship(back_populates="job")


class ValidationQueueItem(Base):
    """One unit of work: one tier of validation for one citation."""

    __tablename__ = "validation_queue_items"
    __table_args__ = (
        Index("ix_queue_items_status_created", "status", "created_at"),
        Index("ix_queue_items_job_status", "job_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("validation_jobs.id", ondelete="CASCADE"), nullable=False
    )
    citation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    citation_index: Mapped[int] = mapped_column(Integer, nullable=False)
    tier: Mapped[str] = mapped_column(String(10), nullable=False)  # 'tier2' or 'tier3'
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # 'pending', 'processing', 'completed', 'failed'
    result: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    redrive_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    job: Mapped["ValidationJob"] = relationship(back_populates="items")
