"""Unit tests for the background worker pool."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from citeguard.core.config import settings
from citeguard.core.exceptions import ConfigurationError
from citeguard.services.worker import BatchResult
from citeguard.services.worker_pool import WorkerPool


def idle_worker() -> MagicMock:
    worker = MagicMock()
    worker.process_queue_items = AsyncMock(return_value=BatchResult(processed=0))
    return worker


@pytest.mark.unit
class TestWorkerPool:
    """Test the pool lifecycle and its polling loops."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, api_key):
        """Test the pool runs one loop per slot and stops cleanly."""
        worker = idle_worker()
        pool = WorkerPool(worker, concurrency=3, poll_interval=0.01)

        await pool.start()
        assert pool.running is True
        await asyncio.sleep(0.05)
        await pool.stop()

        assert pool.running is False
        assert worker.process_queue_items.await_count >= 3

    @pytest.mark.asyncio
    async def test_notify_wakes_idle_loop(self, api_key):
        """Test notify() ends the idle sleep early."""
        worker = idle_worker()
        second_poll = asyncio.Event()

        async def poll(*args, **kwargs):
            if worker.process_queue_items.await_count >= 2:
                second_poll.set()
            return BatchResult(processed=0)

        worker.process_queue_items.side_effect = poll
        pool = WorkerPool(worker, concurrency=1, poll_interval=30.0)

        await pool.start()
        await asyncio.sleep(0.01)
        pool.notify()
        await asyncio.wait_for(second_poll.wait(), timeout=1.0)
        await pool.stop()

    @pytest.mark.asyncio
    async def test_loop_survives_worker_errors(self, api_key):
        """Test an exception in one batch does not kill the loop."""
        worker = idle_worker()
        worker.process_queue_items.side_effect = [
            RuntimeError("database unavailable"),
            BatchResult(processed=1),
            BatchResult(processed=0),
            BatchResult(processed=0),
            BatchResult(processed=0),
        ]
        pool = WorkerPool(worker, concurrency=1, poll_interval=0.01)

        await pool.start()
        await asyncio.sleep(0.05)
        await pool.stop()

        assert worker.process_queue_items.await_count >= 3

    @pytest.mark.asyncio
    async def test_start_requires_api_key(self, monkeypatch: pytest.MonkeyPatch):
        """Test the pool refuses to start without provider credentials."""
        monkeypatch.setattr(settings, "OPENROUTER_API_KEY", None)
        worker = idle_worker()
        pool = WorkerPool(worker, concurrency=2, poll_interval=0.01)

        with pytest.raises(ConfigurationError):
            await pool.start()

        assert pool.running is False
        worker.process_queue_items.assert_not_awaited()
