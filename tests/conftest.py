"""Pytest configuration for tests."""
# ruff: noqa: E402  # Module imports after environment setup

import asyncio
import os
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any

# Settings are read at import time; keep tests off real services
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.citeguard-test.db")
os.environ.setdefault("ENABLE_BACKGROUND_WORKERS", "false")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from citeguard.database.models import Base
from citeguard.database.repositories.document_repository import DocumentRepository
from citeguard.database.session import build_session_factory
from citeguard.models.citation import Citation, CitationDocument, DocumentPayload
from citeguard.models.verdicts import (
    AgentVerdict,
    RiskLevel,
    ScoredJudgment,
    Tier3AgentVerdict,
    TokenUsage,
)
from citeguard.validation.pricing import calculate_cost
from citeguard.validation.prompts import TIER2_AGENTS, TIER3_AGENTS, AgentPersona

TIER2_MODEL = "anthropic/claude-haiku-4.5"
TIER3_MODEL = "anthropic/claude-sonnet-4.5"


def scored_verdict(agent: str, score: int, reasoning: str = "") -> AgentVerdict:
    """Build a scored Tier 2 verdict."""
    return AgentVerdict(
        agent=agent,
        judgment=ScoredJudgment(score=score),
        reasoning=reasoning or f"score {score}",
        timestamp=datetime.now(timezone.utc),
        model=TIER2_MODEL,
    )


def risk_verdict(agent: str, level: RiskLevel, reasoning: str = "") -> Tier3AgentVerdict:
    """Build a Tier 3 risk verdict."""
    return Tier3AgentVerdict(
        agent=agent,
        risk_level=level,
        reasoning=reasoning or f"assessed {level.value}",
        timestamp=datetime.now(timezone.utc),
        model=TIER3_MODEL,
    )


class FakeVerdictProvider:
    """Scripted verdict provider.

    Tier 2 scores and Tier 3 risk levels are looked up per citation id (one
    entry per agent, in panel order). Citations listed in ``fail_for`` raise
    on every call.
    """

    def __init__(self) -> None:
        self.default_scores: list[int] = [9, 9, 9, 9, 9]
        self.tier2_scores: dict[str, list[int]] = {}
        self.default_risks: list[RiskLevel] = [
            RiskLevel.LOW_RISK,
            RiskLevel.LOW_RISK,
            RiskLevel.MODERATE_RISK,
        ]
        self.tier3_risks: dict[str, list[RiskLevel]] = {}
        self.fail_for: set[str] = set()
        self.calls: list[dict[str, Any]] = []
        self.delay: float = 0.0

    async def evaluate(
        self,
        persona: AgentPersona,
        citation: Citation,
        context: str,
        tier2_result: dict[str, Any] | None = None,
    ) -> AgentVerdict | Tier3AgentVerdict:
        self.calls.append(
            {
                "agent": persona.name,
                "tier": persona.tier,
                "citation_id": citation.id,
                "context": context,
                "tier2_result": tier2_result,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if citation.id in self.fail_for:
            raise RuntimeError(f"provider unavailable for {citation.id}")

        if persona.tier == "tier3":
            index = [a.name for a in TIER3_AGENTS].index(persona.name)
            level = self.tier3_risks.get(citation.id, self.default_risks)[index]
            usage = TokenUsage(
                input_tokens=1200, output_tokens=150, total_tokens=1350, model=TIER3_MODEL
            )
            return risk_verdict(persona.name, level).model_copy(
                update={"token_usage": usage, "cost": calculate_cost(usage)}
            )

        index = [a.name for a in TIER2_AGENTS].index(persona.name)
        score = self.tier2_scores.get(citation.id, self.default_scores)[index]
        usage = TokenUsage(input_tokens=800, output_tokens=60, total_tokens=860, model=TIER2_MODEL)
        return scored_verdict(persona.name, score).model_copy(
            update={"token_usage": usage, "cost": calculate_cost(usage)}
        )


@pytest.fixture
def fake_provider() -> FakeVerdictProvider:
    """Scripted verdict provider (all 9s, Tier 3 LOW/LOW/MODERATE)."""
    return FakeVerdictProvider()


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """Canonical document JSON with three marked citations."""
    return {
        "document": {
            "metadata": {
                "filename": "motion_to_dismiss.docx",
                "uploadDate": "2025-10-01T12:00:00Z",
                "documentType": "motion",
                "totalCitations": 3,
            },
            "content": [
                {"type": "heading", "id": "heading_001", "level": 1, "text": "Argument"},
                {
                    "type": "paragraph",
                    "id": "para_001",
                    "text": (
                        "The standard is well settled. Courts apply it strictly. See "
                        "[CITATION:cit_001]Smith v. Jones, 123 F.3d 456 (9th Cir. 1999)"
                        "[/CITATION:cit_001]."
                    ),
                },
                {
                    "type": "paragraph",
                    "id": "para_002",
                    "text": (
                        "Statutory text controls. [CITATION:cit_002]42 U.S.C. § 1983"
                        "[/CITATION:cit_002] provides the remedy."
                    ),
                },
                {
                    "type": "paragraph",
                    "id": "para_003",
                    "text": (
                        "Compare [CITATION:cit_003]Doe v. Acme Corp., 999 F.4th 1 "
                        "(2d Cir. 2031)[/CITATION:cit_003]."
                    ),
                },
            ],
            "citations": [
                {
                    "id": "cit_001",
                    "citationText": "Smith v. Jones, 123 F.3d 456 (9th Cir. 1999)",
                    "citationType": "case",
                    "extractedComponents": {
                        "parties": "Smith v. Jones",
                        "volume": "123",
                        "reporter": "F.3d",
                        "page": "456",
                        "court": "9th Cir.",
                        "year": "1999",
                    },
                    "tier_1": {"status": "passed"},
                },
                {
                    "id": "cit_002",
                    "citationText": "42 U.S.C. § 1983",
                    "citationType": "statute",
                    "extractedComponents": {"title": "42", "code": "U.S.C.", "section": "1983"},
                },
                {
                    "id": "cit_003",
                    "citationText": "Doe v. Acme Corp., 999 F.4th 1 (2d Cir. 2031)",
                    "citationType": "case",
                    "extractedComponents": {
                        "parties": "Doe v. Acme Corp.",
                        "volume": "999",
                        "reporter": "F.4th",
                        "page": "1",
                        "court": "2d Cir.",
                        "year": "2031",
                    },
                },
            ],
        }
    }


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine; every session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'citeguard.db'}",
        poolclass=NullPool,
        echo=False,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def imported_document(session_factory, sample_payload) -> CitationDocument:
    """The sample document stored as version 1."""
    async with session_factory() as session:
        return await DocumentRepository(session).import_document(
            DocumentPayload.model_validate(sample_payload), source_file_id="file-001"
        )


@pytest.fixture
def api_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Pretend provider credentials are configured."""
    from citeguard.core.config import settings

    monkeypatch.setattr(settings, "OPENROUTER_API_KEY", "test-key")
    return "test-key"
