"""
In-process background work queue.

Side effects that must never block or fail the caller (new-review
notifications, semantic sentiment overrides) are submitted here. Delivery is
best effort: a full queue drops the job, and a failing job is logged and
discarded.

Usage:
    queue = WorkQueue(max_size=1000, workers=2)
    await queue.start()

    queue.submit("notify_new_review", lambda: notifier.notify_new_review(...))

    await queue.stop()
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from replydesk.monitoring.metrics import WORK_QUEUE_JOBS

logger = structlog.get_logger(__name__)

JobFactory = Callable[[], Awaitable[object]]


@dataclass
class _Job:
    name: str
    factory: JobFactory


class WorkQueue:
    """Bounded asyncio queue drained by a fixed pool of worker tasks."""

    def __init__(self, max_size: int = 1000, workers: int = 2):
        self.max_size = max_size
        self.worker_count = workers
        self._queue: asyncio.Queue[_Job] | None = None
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    def _ensure_queue(self) -> asyncio.Queue[_Job]:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.max_size)
        return self._queue

    async def start(self) -> None:
        """Start the worker pool."""
        if self._workers:
            return
        queue = self._ensure_queue()
        for i in range(self.worker_count):
            self._workers.append(asyncio.create_task(self._worker_loop(queue, i)))
        logger.info("work_queue_started", workers=self.worker_count, max_size=self.max_size)

    def submit(self, name: str, factory: JobFactory) -> bool:
        """
        Enqueue a job without waiting for it.

        Returns:
            True if the job was accepted, False if it was dropped.
        """
        queue = self._ensure_queue()
        try:
            queue.put_nowait(_Job(name=name, factory=factory))
        except asyncio.QueueFull:
            WORK_QUEUE_JOBS.labels(job=name, outcome="dropped").inc()
            logger.warning("work_queue_full_job_dropped", job=name, depth=queue.qsize())
            return False
        return True

    async def join(self) -> None:
        """Wait until every accepted job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = 10.0) -> None:
        """Drain pending jobs (bounded by timeout) and stop the workers."""
        if self._queue is not None and self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("work_queue_drain_timeout", pending=self._queue.qsize())

        for worker in self._workers:
            worker.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        logger.info("work_queue_stopped")

    async def _worker_loop(self, queue: asyncio.Queue[_Job], worker_id: int) -> None:
        while True:
            job = await queue.get()
            try:
                await job.factory()
                WORK_QUEUE_JOBS.labels(job=job.name, outcome="success").inc()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                WORK_QUEUE_JOBS.labels(job=job.name, outcome="error").inc()
                logger.error(
                    "work_queue_job_failed",
                    job=job.name,
                    worker=worker_id,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                queue.task_done()
