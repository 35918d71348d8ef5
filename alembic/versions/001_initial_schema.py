"""Initial database schema.

Revision ID: 001
Revises:
Create Date: 2025-10-20 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create document, citation, job and queue tables."""
    # Create document_versions table
    op.create_table(
        "document_versions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source_file_id", sa.String(length=255), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("doc_metadata", sa.JSON(), nullable=False),
        sa.Column("content", sa.JSON(), nullable=False),
        sa.Column("parent_version_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["parent_version_id"], ["document_versions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_file_id", "version", name="uq_document_version"),
    )
    op.create_index(
        op.f("ix_document_versions_source_file_id"),
        "document_versions",
        ["source_file_id"],
        unique=False,
    )

    # Create citation_records table (one row per citation per version)
    op.create_table(
        "citation_records",
        sa.Column("document_version_id", sa.Uuid(), nullable=False),
        sa.Column("citation_id", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("citation_text", sa.Text(), nullable=False),
        sa.Column("citation_type", sa.String(length=20), nullable=False),
        sa.Column("extracted_components", sa.JSON(), nullable=False),
        sa.Column("tier_1", sa.JSON(), nullable=True),
        sa.Column("tier_2", sa.JSON(), nullable=True),
        sa.Column("tier_3", sa.JSON(), nullable=True),
        sa.Column("validation", sa.JSON(), nullable=True),
        sa.Column("recommendations", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["document_version_id"], ["document_versions.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("document_version_id", "citation_id"),
    )
    op.create_index(
        "ix_citation_records_position",
        "citation_records",
        ["document_version_id", "position"],
        unique=False,
    )

    # Create validation_jobs table
    op.create_table(
        "validation_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("check_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("tier2_total", sa.Integer(), nullable=False),
        sa.Column("tier2_completed", sa.Integer(), nullable=False),
        sa.Column("tier3_total", sa.Integer(), nullable=False),
        sa.Column("tier3_completed", sa.Integer(), nullable=False),
        sa.Column("force_tier3", sa.Boolean(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["check_id"], ["document_versions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_validation_jobs_check_id"), "validation_jobs", ["check_id"], unique=False
    )
    op.create_index(op.f("ix_validation_jobs_status"), "validation_jobs", ["status"], unique=False)

    # Create validation_queue_items table
    op.create_table(
        "validation_queue_items",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("job_id", sa.Uuid(), nullable=False),
        sa.Column("citation_id", sa.String(length=64), nullable=False),
        sa.Column("citation_index", sa.Integer(), nullable=False),
        sa.Column("tier", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("redrive_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["job_id"], ["validation_jobs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_queue_items_status_created",
        "validation_queue_items",
        ["status", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_queue_items_job_status",
        "validation_queue_items",
        ["job_id", "status"],
        unique=False,
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("ix_queue_items_job_status", table_name="validation_queue_items")
    op.drop_index("ix_queue_items_status_created", table_name="validation_queue_items")
    op.drop_table("validation_queue_items")
    op.drop_index(op.f("ix_validation_jobs_status"), table_name="validation_jobs")
    op.drop_index(op.f("ix_validation_jobs_check_id"), table_name="validation_jobs")
    op.drop_table("validation_jobs")
    op.drop_index("ix_citation_records_position", table_name="citation_records")
    op.drop_table("citation_records")
    op.drop_index(op.f("ix_document_versions_source_file_id"), table_name="document_versions")
    op.drop_table("document_versions")
