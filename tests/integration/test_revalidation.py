"""Integration tests for revalidating a single citation."""

from __future__ import annotations

import pytest

from citeguard.core.config import settings
from citeguard.core.exceptions import (
    CitationNotFoundError,
    ConfigurationError,
    PanelEvaluationError,
)
from citeguard.database.repositories.document_repository import DocumentRepository
from citeguard.services.revalidation import CitationRevalidator

SPLIT_SCORES = [9, 8, 2, 1, 3]


async def stored_citation(session_factory, check_id, citation_id):
    async with session_factory() as db:
        document = await DocumentRepository(db).get_document_version(check_id)
    return document.find_citation(citation_id)


@pytest.mark.integration
class TestRevalidateCitation:
    """Test the single-citation revalidation path."""

    @pytest.mark.asyncio
    async def test_unanimous_panel_skips_tier3(
        self, db_session, session_factory, imported_document, fake_provider, api_key
    ):
        """Test a clean Tier 2 panel is stored without running Tier 3."""
        citation = await CitationRevalidator(db_session, fake_provider).revalidate(
            imported_document.check_id, "cit_002"
        )

        assert citation.id == "cit_002"
        consensus = citation.validation["consensus"]
        assert consensus["recommendation"] == "CITATION_LIKELY_VALID"
        assert consensus["tier_3_trigger"] is False
        assert citation.tier_2 == citation.validation
        assert citation.tier_3 is None
        assert [c["tier"] for c in fake_provider.calls] == ["tier2"] * 5

        stored = await stored_citation(session_factory, imported_document.check_id, "cit_002")
        assert stored.validation == citation.validation
        untouched = await stored_citation(
            session_factory, imported_document.check_id, "cit_001"
        )
        assert untouched.validation is None

    @pytest.mark.asyncio
    async def test_split_panel_runs_tier3(
        self, db_session, imported_document, fake_provider, api_key
    ):
        """Test a triggering Tier 2 consensus runs Tier 3 without marking it forced."""
        fake_provider.tier2_scores["cit_003"] = SPLIT_SCORES

        citation = await CitationRevalidator(db_session, fake_provider).revalidate(
            imported_document.check_id, "cit_003"
        )

        assert citation.validation["consensus"]["tier_3_trigger"] is True
        assert citation.tier_3["forced"] is False
        assert citation.tier_3["consensus"]["final_risk_level"] == "LOW_RISK"
        tier3_calls = [c for c in fake_provider.calls if c["tier"] == "tier3"]
        assert len(tier3_calls) == 3
        assert all(c["tier2_result"] == citation.validation for c in tier3_calls)
        assert "Doe v. Acme Corp." in tier3_calls[0]["context"]

    @pytest.mark.asyncio
    async def test_forced_tier3(self, db_session, imported_document, fake_provider, api_key):
        """Test the caller flag runs Tier 3 on a clean panel and records it as forced."""
        citation = await CitationRevalidator(db_session, fake_provider).revalidate(
            imported_document.check_id, "cit_001", force_tier3=True
        )

        assert citation.validation["consensus"]["tier_3_trigger"] is False
        assert citation.tier_3["forced"] is True
        assert len(fake_provider.calls) == 8

    @pytest.mark.asyncio
    async def test_rerun_clears_stale_tier3(
        self, db_session, imported_document, fake_provider, api_key
    ):
        """Test a later run without escalation drops the earlier Tier 3 result."""
        revalidator = CitationRevalidator(db_session, fake_provider)
        first = await revalidator.revalidate(
            imported_document.check_id, "cit_001", force_tier3=True
        )
        assert first.tier_3 is not None

        second = await revalidator.revalidate(imported_document.check_id, "cit_001")

        assert second.tier_3 is None
        assert second.validation is not None

    @pytest.mark.asyncio
    async def test_unknown_citation(self, db_session, imported_document, fake_provider, api_key):
        """Test an unknown citation id raises before any agent is called."""
        with pytest.raises(CitationNotFoundError):
            await CitationRevalidator(db_session, fake_provider).revalidate(
                imported_document.check_id, "cit_999"
            )

        assert fake_provider.calls == []

    @pytest.mark.asyncio
    async def test_requires_api_key(
        self, db_session, imported_document, fake_provider, monkeypatch: pytest.MonkeyPatch
    ):
        """Test revalidation is refused without provider credentials."""
        monkeypatch.setattr(settings, "OPENROUTER_API_KEY", None)

        with pytest.raises(ConfigurationError):
            await CitationRevalidator(db_session, fake_provider).revalidate(
                imported_document.check_id, "cit_001"
            )

        assert fake_provider.calls == []

    @pytest.mark.asyncio
    async def test_agent_failure_stores_nothing(
        self, db_session, session_factory, imported_document, fake_provider, api_key
    ):
        """Test a failing agent leaves the stored citation unchanged."""
        fake_provider.fail_for.add("cit_002")

        with pytest.raises(PanelEvaluationError):
            await CitationRevalidator(db_session, fake_provider).revalidate(
                imported_document.check_id, "cit_002"
            )

        stored = await stored_citation(session_factory, imported_document.check_id, "cit_002")
        assert stored.validation is None
        assert stored.tier_3 is None
