"""Background pool of asyncio worker tasks draining the validation queue."""

from __future__ import annotations

import asyncio
import contextlib

import structlog

from ..core.config import settings
from .worker import ValidationWorker

logger = structlog.get_logger(__name__)


class WorkerPool:
    """Runs ``concurrency`` worker loops against the shared queue.

    Loops coordinate only through the queue's atomic claim. An idle loop
    sleeps for ``poll_interval`` seconds, or until ``notify()`` is called
    after new work has been enqueued.

    Example:
        >>> pool = WorkerPool(worker, concurrency=2)
        >>> await pool.start()
        >>> pool.notify()
        >>> await pool.stop()
    """

    def __init__(
        self,
        worker: ValidationWorker,
        concurrency: int | None = None,
        poll_interval: float | None = None,
    ):
        self.worker = worker
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.poll_interval = poll_interval or settings.WORKER_POLL_INTERVAL
        self._tasks: list[asyncio.Task] = []
        self._running = False
        self._wakeup = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the worker loops.

        Raises:
            ConfigurationError: If provider credentials are missing
        """
        if self._running:
            return
        settings.require_api_key()
        self._running = True
        self._tasks = [
            asyncio.create_task(self._run_loop(index), name=f"validation-worker-{index}")
            for index in range(self.concurrency)
        ]
        logger.info("worker_pool_started", concurrency=self.concurrency)

    async def stop(self) -> None:
        """Cancel the worker loops and wait for them to exit."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("worker_pool_stopped")

    def notify(self) -> None:
        """Wake idle loops because new items were enqueued."""
        self._wakeup.set()

    async def _run_loop(self, index: int) -> None:
        while self._running:
            try:
                batch = await self.worker.process_queue_items()
            except Exception:
                logger.exception("worker_loop_error", worker=index)
                await self._idle()
                continue

            if batch.processed == 0:
                await self._idle()

    async def _idle(self) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
        self._wakeup.clear()
