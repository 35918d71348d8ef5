"""End-to-end tests for the validation worker against a real database."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import delete

from citeguard.core.config import settings
from citeguard.core.exceptions import ConfigurationError, DocumentNotFoundError
from citeguard.database.models import CitationRecord
from citeguard.database.repositories.document_repository import DocumentRepository
from citeguard.database.repositories.job_repository import JobRepository
from citeguard.database.repositories.queue_repository import QueueRepository
from citeguard.services.job_tracker import JobTracker
from citeguard.services.worker import ValidationWorker

SPLIT_SCORES = [9, 8, 2, 1, 3]


async def start(session_factory, check_id, **kwargs):
    async with session_factory() as db:
        return await JobTracker(db).start_validation(check_id, **kwargs)


async def load(session_factory, job_id):
    """Return the job, its items and the document it validates."""
    async with session_factory() as db:
        job = await JobRepository(db).get_job(job_id)
        items = await QueueRepository(db).list_items(job_id)
        document = await DocumentRepository(db).get_document_version(job.check_id)
    return job, items, document


@pytest.fixture
def worker(session_factory, fake_provider) -> ValidationWorker:
    return ValidationWorker(session_factory, fake_provider)


@pytest.mark.integration
class TestPipeline:
    """Test full runs through both tiers."""

    @pytest.mark.asyncio
    async def test_clean_run_settles_at_tier2(
        self, session_factory, imported_document, worker, fake_provider, api_key
    ):
        """Test a unanimous valid panel for every citation needs no Tier 3."""
        job = await start(session_factory, imported_document.check_id)

        summary = await worker.run_batches()

        assert summary.total_processed == 3
        assert summary.batches == 1
        assert summary.has_more is False
        job, items, document = await load(session_factory, job.id)
        assert job.status == "completed"
        assert job.completed_at is not None
        assert (job.tier2_completed, job.tier2_total) == (3, 3)
        assert job.tier3_total == 0
        assert {i.status for i in items} == {"completed"}
        assert document.status == "citations_validated"
        for citation in document.citations:
            consensus = citation.validation["consensus"]
            assert consensus["recommendation"] == "CITATION_LIKELY_VALID"
            assert citation.tier_2 == citation.validation
            assert citation.tier_3 is None
            assert len(citation.validation["panel_evaluation"]) == 5
        assert len(fake_provider.calls) == 15

    @pytest.mark.asyncio
    async def test_run_writes_to_new_version(
        self, session_factory, imported_document, worker, api_key
    ):
        """Test the source version is left untouched by a run."""
        job = await start(session_factory, imported_document.check_id)
        await worker.run_batches()

        async with session_factory() as db:
            source = await DocumentRepository(db).get_document_version(
                imported_document.check_id
            )
        assert job.check_id != imported_document.check_id
        assert source.status == "citations_identified"
        assert all(c.validation is None for c in source.citations)

    @pytest.mark.asyncio
    async def test_split_panel_escalates_to_tier3(
        self, session_factory, imported_document, worker, fake_provider, api_key
    ):
        """Test a split Tier 2 panel produces exactly one Tier 3 run."""
        fake_provider.tier2_scores["cit_003"] = SPLIT_SCORES
        job = await start(session_factory, imported_document.check_id)

        summary = await worker.run_batches()

        assert summary.total_processed == 4
        job, items, document = await load(session_factory, job.id)
        assert job.status == "completed"
        assert (job.tier3_completed, job.tier3_total) == (1, 1)
        tier3_items = [i for i in items if i.tier == "tier3"]
        assert [i.citation_id for i in tier3_items] == ["cit_003"]

        citation = document.find_citation("cit_003")
        assert citation.validation["consensus"]["tier_3_trigger"] is True
        assert citation.tier_3["consensus"]["final_risk_level"] == "LOW_RISK"
        assert citation.tier_3["forced"] is False
        assert document.find_citation("cit_001").tier_3 is None

        tier3_calls = [c for c in fake_provider.calls if c["tier"] == "tier3"]
        assert len(tier3_calls) == 3
        assert all(c["tier2_result"] == citation.validation for c in tier3_calls)
        assert "Doe v. Acme Corp." in tier3_calls[0]["context"]

    @pytest.mark.asyncio
    async def test_force_tier3(
        self, session_factory, imported_document, worker, fake_provider, api_key
    ):
        """Test forced escalation sends every citation to Tier 3."""
        job = await start(session_factory, imported_document.check_id, force_tier3=True)

        summary = await worker.run_batches()

        assert summary.total_processed == 6
        job, _, document = await load(session_factory, job.id)
        assert job.status == "completed"
        assert job.tier3_total == 3
        assert all(c.tier_3["forced"] is True for c in document.citations)

    @pytest.mark.asyncio
    async def test_provider_failure_fails_item_and_job(
        self, session_factory, imported_document, worker, fake_provider, api_key
    ):
        """Test one failing citation fails its item and, at the end, the job."""
        fake_provider.fail_for.add("cit_002")
        job = await start(session_factory, imported_document.check_id)

        summary = await worker.run_batches()

        assert summary.total_processed == 3
        job, items, document = await load(session_factory, job.id)
        failed = [i for i in items if i.status == "failed"]
        assert [i.citation_id for i in failed] == ["cit_002"]
        expected_error = (
            "Agent citation_authority_validator_v1 failed: provider unavailable for cit_002"
        )
        assert failed[0].error == expected_error
        assert job.status == "failed"
        assert job.error == expected_error
        assert job.tier2_completed == 2
        assert document.status == "validation_failed"
        assert document.find_citation("cit_002").validation is None
        assert document.find_citation("cit_001").validation is not None

    @pytest.mark.asyncio
    async def test_redrive_after_failure(
        self, session_factory, imported_document, worker, fake_provider, api_key
    ):
        """Test re-driving a failed job's items lets it complete."""
        fake_provider.fail_for.add("cit_002")
        job = await start(session_factory, imported_document.check_id)
        await worker.run_batches()

        fake_provider.fail_for.clear()
        async with session_factory() as db:
            assert await JobTracker(db).retry_failed(job.id) == 1
        await worker.run_batches()

        job, items, document = await load(session_factory, job.id)
        assert job.status == "completed"
        assert job.error is None
        assert document.status == "citations_validated"
        redriven = next(i for i in items if i.citation_id == "cit_002")
        assert redriven.redrive_count == 1
        assert redriven.attempts == 2

    @pytest.mark.asyncio
    async def test_missing_citation_fails_item(
        self, session_factory, imported_document, worker, api_key
    ):
        """Test an item whose citation vanished fails with a data integrity error."""
        job = await start(session_factory, imported_document.check_id, create_version=False)
        async with session_factory() as db:
            await db.execute(
                delete(CitationRecord).where(
                    CitationRecord.document_version_id == imported_document.check_id,
                    CitationRecord.citation_id == "cit_002",
                )
            )
            await db.commit()

        await worker.run_batches()

        job, items, document = await load(session_factory, job.id)
        failed = [i for i in items if i.status == "failed"]
        assert [i.citation_id for i in failed] == ["cit_002"]
        assert "Citation cit_002 (index 1) not found" in failed[0].error
        # cit_003 moved to position 1 but is still found by id
        assert document.find_citation("cit_003").validation is not None
        assert job.status == "failed"

    @pytest.mark.asyncio
    async def test_unreadable_document_fails_items(
        self,
        session_factory,
        imported_document,
        worker,
        fake_provider,
        api_key,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Test items whose document cannot be read are failed, not stranded."""
        job = await start(session_factory, imported_document.check_id)
        monkeypatch.setattr(
            DocumentRepository,
            "get_document_version",
            AsyncMock(side_effect=DocumentNotFoundError("Document version gone")),
        )

        summary = await worker.run_batches()
        monkeypatch.undo()

        assert summary.total_processed == 3
        job, items, _ = await load(session_factory, job.id)
        assert [(i.status, i.error) for i in items] == [("failed", "Document version gone")] * 3
        assert job.status == "failed"
        assert job.error == "Document version gone"
        assert fake_provider.calls == []


@pytest.mark.integration
class TestCredentials:
    """Test the worker refuses to run without provider credentials."""

    @pytest.mark.asyncio
    async def test_missing_key_claims_nothing(
        self,
        session_factory,
        imported_document,
        worker,
        fake_provider,
        api_key,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Test a batch without a key raises before claiming any item."""
        job = await start(session_factory, imported_document.check_id)
        monkeypatch.setattr(settings, "OPENROUTER_API_KEY", None)

        with pytest.raises(ConfigurationError):
            await worker.run_batches()

        job, items, _ = await load(session_factory, job.id)
        assert [(i.status, i.attempts) for i in items] == [("pending", 0)] * 3
        assert job.status == "pending"
        assert fake_provider.calls == []


@pytest.mark.integration
class TestBatching:
    """Test batch budgets and continuation."""

    @pytest.mark.asyncio
    async def test_empty_queue(self, worker, api_key):
        """Test a batch on an empty queue does nothing."""
        batch = await worker.process_queue_items()

        assert batch.processed == 0
        assert batch.has_more is False

    @pytest.mark.asyncio
    async def test_single_batch_reports_has_more(
        self, session_factory, imported_document, worker, api_key
    ):
        """Test a batch stops at its item budget and reports remaining work."""
        job = await start(session_factory, imported_document.check_id)

        batch = await worker.process_queue_items(max_items=2)

        assert batch.processed == 2
        assert len(batch.item_ids) == 2
        assert batch.has_more is True
        assert batch.remaining_pending == 1
        job, _, _ = await load(session_factory, job.id)
        assert job.status == "processing"

    @pytest.mark.asyncio
    async def test_batches_chain_until_done(
        self, session_factory, imported_document, worker, fake_provider, api_key
    ):
        """Test continuation picks up Tier 3 work created by an earlier batch."""
        fake_provider.tier2_scores["cit_003"] = SPLIT_SCORES
        await start(session_factory, imported_document.check_id)

        summary = await worker.run_batches(max_items=2)

        assert summary.batches == 2
        assert summary.total_processed == 4
        assert summary.has_more is False
        assert summary.capped is False

    @pytest.mark.asyncio
    async def test_batch_cap(self, session_factory, imported_document, worker, api_key):
        """Test the safety cap stops the chain with work remaining."""
        job = await start(session_factory, imported_document.check_id)

        summary = await worker.run_batches(max_items=1, max_batches=2)

        assert summary.batches == 2
        assert summary.total_processed == 2
        assert summary.has_more is True
        assert summary.remaining_pending == 1
        assert summary.capped is True
        job, _, _ = await load(session_factory, job.id)
        assert job.status == "processing"
