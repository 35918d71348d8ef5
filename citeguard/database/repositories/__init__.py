"""Repositories for documents, the validation queue and jobs."""

from .document_repository import DocumentRepository
from .job_repository import JobRepository
from .queue_repository import ClaimedItem, QueueRepository

__all__ = [
    "ClaimedItem",
    "DocumentRepository",
    "JobRepository",
    "QueueRepository",
]
