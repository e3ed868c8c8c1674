"""In-process cron trigger for the sync and digest jobs.

Deployments that call the /api/cron endpoints from an external scheduler
leave this disabled. With ``scheduler_enabled`` set, the API lifespan starts
an APScheduler instance that runs the same JobRunner methods on the
configured crontab expressions.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from replydesk.scheduler.jobs import JobRunner

logger = structlog.get_logger(__name__)

SYNC_JOB_ID = "review_sync"
DIGEST_JOB_ID = "digest"


class JobScheduler:
    """Wraps AsyncIOScheduler around a JobRunner.

    Example:
        scheduler = JobScheduler(runner, sync_cron="0 */6 * * *", digest_cron="0 9 * * *")
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        runner: JobRunner,
        sync_cron: str,
        digest_cron: str,
        timeout_seconds: float = 3600,
    ):
        self._runner = runner
        self._sync_cron = sync_cron
        self._digest_cron = digest_cron
        self._timeout_seconds = timeout_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    async def start(self) -> None:
        if self._scheduler is not None:
            logger.warning("scheduler_already_running")
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self._execute,
            trigger=CronTrigger.from_crontab(self._sync_cron, timezone="UTC"),
            id=SYNC_JOB_ID,
            args=[SYNC_JOB_ID, self._runner.run_review_sync],
            name="ReplyDesk: review sync",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._execute,
            trigger=CronTrigger.from_crontab(self._digest_cron, timezone="UTC"),
            id=DIGEST_JOB_ID,
            args=[DIGEST_JOB_ID, self._runner.run_digest],
            name="ReplyDesk: digest",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("scheduler_started", sync_cron=self._sync_cron, digest_cron=self._digest_cron)

    async def stop(self) -> None:
        if self._scheduler is None:
            logger.warning("scheduler_not_running")
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("scheduler_stopped")

    async def _execute(self, job_id: str, job: Callable[[], Awaitable[object]]) -> None:
        """Run one job with timeout protection. Errors are re-raised for APScheduler."""
        logger.info("job_execution_start", job_id=job_id)
        try:
            async with asyncio.timeout(self._timeout_seconds):
                await job()
        except asyncio.TimeoutError:
            logger.error("job_execution_timeout", job_id=job_id, timeout_seconds=self._timeout_seconds)
            raise
        except Exception as e:
            logger.error("job_execution_failed", job_id=job_id, error=str(e))
            raise
        logger.info("job_execution_complete", job_id=job_id)
