"""Unit tests for the background work queue."""

import asyncio

import pytest

from replydesk.core.work_queue import WorkQueue


class TestWorkQueue:
    """Test WorkQueue job handling."""

    @pytest.mark.asyncio
    async def test_runs_submitted_jobs(self):
        queue = WorkQueue(max_size=10, workers=2)
        await queue.start()
        done = []

        async def job(n):
            done.append(n)

        try:
            for n in range(5):
                assert queue.submit("record", lambda n=n: job(n)) is True
            await queue.join()
        finally:
            await queue.stop()

        assert sorted(done) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_workers(self):
        """A job that raises is logged and the next job still runs."""
        queue = WorkQueue(max_size=10, workers=1)
        await queue.start()
        done = []

        async def broken():
            raise RuntimeError("boom")

        async def fine():
            done.append("fine")

        try:
            queue.submit("broken", broken)
            queue.submit("fine", fine)
            await queue.join()
        finally:
            await queue.stop()

        assert done == ["fine"]

    @pytest.mark.asyncio
    async def test_full_queue_drops_jobs(self):
        """Submitting past capacity drops the job instead of blocking."""
        queue = WorkQueue(max_size=1, workers=1)

        async def noop():
            return None

        assert queue.submit("first", noop) is True
        assert queue.submit("second", noop) is False
        assert queue.pending == 1

    @pytest.mark.asyncio
    async def test_stop_drains_pending_jobs(self):
        queue = WorkQueue(max_size=10, workers=1)
        done = []

        async def slow():
            await asyncio.sleep(0.01)
            done.append(True)

        queue.submit("slow", slow)
        queue.submit("slow", slow)
        await queue.start()
        await queue.stop(timeout=5)

        assert done == [True, True]
        assert queue.running is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        queue = WorkQueue(max_size=10, workers=2)
        await queue.start()
        await queue.start()

        try:
            assert queue.running is True
            assert len(queue._workers) == 2
        finally:
            await queue.stop()
