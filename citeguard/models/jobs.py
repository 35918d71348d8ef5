"""Job status and progress models (camelCase on the wire)."""

from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

JobState = Literal["pending", "processing", "completed", "failed"]


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TierProgress(CamelModel):
    """Progress of one tier of a job.

    ``current``/``total`` come from the job counters; the per-status counts
    come from the queue items.
    """

    current: int = 0
    total: int = 0
    percentage: int = Field(default=0, ge=0, le=100)
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0


class JobStatus(CamelModel):
    """Status snapshot returned by ``get_job_status``."""

    id: uuid.UUID
    check_id: uuid.UUID
    status: JobState
    tier2_progress: TierProgress
    tier3_progress: TierProgress
    error: str | None = None
    force_tier3: bool = False


def percentage(current: int, total: int) -> int:
    """Completed share as a whole percentage; 0 when there is nothing to do."""
    if total <= 0:
        return 0
    return min(100, round(current / total * 100))
