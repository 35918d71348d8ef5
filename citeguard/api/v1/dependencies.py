"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...database.session import get_session_factory
from ...services.llm.verdict_provider import LLMVerdictProvider, VerdictProvider
from ...services.worker import ValidationWorker
from ...services.worker_pool import WorkerPool

_verdict_provider: VerdictProvider | None = None


def get_verdict_provider() -> VerdictProvider:
    """Get the process-wide LLM verdict provider."""
    global _verdict_provider
    if _verdict_provider is None:
        _verdict_provider = LLMVerdictProvider()
    return _verdict_provider


def get_worker(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    provider: Annotated[VerdictProvider, Depends(get_verdict_provider)],
) -> ValidationWorker:
    """Build a worker for a manually triggered queue run."""
    return ValidationWorker(session_factory, provider)


def get_worker_pool(request: Request) -> WorkerPool | None:
    """Return the background worker pool, if the app started one."""
    return getattr(request.app.state, "worker_pool", None)
