"""
Periodic job drivers.

``run_review_sync`` walks every syncable business one at a time with a fixed
pause between them to stay under the Business Profile rate limit. A failing
business is recorded in the summary and the run carries on.
``run_digest`` does the same per digest recipient.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import structlog

from replydesk.core.exceptions import NotConnectedError, ReplyDeskError
from replydesk.models.schemas import (
    BusinessSyncOutcome,
    DigestFrequency,
    DigestSummary,
    DigestUserOutcome,
    SyncSummary,
)
from replydesk.monitoring.metrics import track_business_sync
from replydesk.services.digest import STATUS_SENT, DigestService
from replydesk.services.review_sync import STATUS_SUCCESS, ReviewSynchronizer
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def js_weekday(moment: datetime) -> int:
    """Day of week with 0 = Sunday, matching digest_send_day."""
    return (moment.weekday() + 1) % 7


def _error_status(exc: Exception) -> str:
    if isinstance(exc, NotConnectedError):
        return "failed: not connected"
    message = exc.message if isinstance(exc, ReplyDeskError) else str(exc)
    return f"error: {message}"


class JobRunner:
    """Runs the sync and digest jobs over all tenants."""

    def __init__(
        self,
        store: SupabaseStore,
        synchronizer: ReviewSynchronizer,
        digest: DigestService,
        sync_delay: float = 1.0,
        digest_delay: float = 0.5,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self._store = store
        self._synchronizer = synchronizer
        self._digest = digest
        self._sync_delay = sync_delay
        self._digest_delay = digest_delay
        self._sleep = sleep

    async def run_review_sync(self) -> SyncSummary:
        """Sync every active, connected business sequentially."""
        started = datetime.now(timezone.utc)
        businesses = self._store.list_syncable_businesses()
        logger.info("review_sync_started", businesses=len(businesses))

        summary = SyncSummary(timestamp=started)
        for index, business in enumerate(businesses):
            if index > 0 and self._sync_delay > 0:
                await self._sleep(self._sync_delay)

            try:
                with track_business_sync():
                    outcome = await self._synchronizer.sync_business(business)
            except Exception as e:
                logger.error(
                    "business_sync_failed",
                    business_id=business.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                outcome = BusinessSyncOutcome(id=business.id, status=_error_status(e))

            if outcome.status == STATUS_SUCCESS:
                summary.synced += 1
            else:
                summary.errors += 1
            summary.businesses.append(outcome)

        logger.info(
            "review_sync_completed",
            synced=summary.synced,
            errors=summary.errors,
            duration_seconds=(datetime.now(timezone.utc) - started).total_seconds(),
        )
        return summary

    async def run_digest(self, now: Optional[datetime] = None) -> DigestSummary:
        """Send daily digests, plus weekly digests due today."""
        now = now or datetime.now(timezone.utc)
        day_of_week = js_weekday(now)
        summary = DigestSummary(timestamp=now, day_of_week=day_of_week)

        daily = self._store.list_digest_preferences(DigestFrequency.DAILY)
        weekly = self._store.list_digest_preferences(DigestFrequency.WEEKLY, send_day=day_of_week)
        logger.info("digest_started", daily=len(daily), weekly=len(weekly))

        first = True
        for frequency, recipients in ((DigestFrequency.DAILY, daily), (DigestFrequency.WEEKLY, weekly)):
            for prefs in recipients:
                if not first and self._digest_delay > 0:
                    await self._sleep(self._digest_delay)
                first = False

                try:
                    status = await self._digest.send_user_digest(prefs, frequency, now)
                except Exception as e:
                    logger.error("digest_user_failed", user_id=prefs.user_id, error=str(e))
                    status = _error_status(e)

                summary.users.append(DigestUserOutcome(user_id=prefs.user_id, status=status))
                if status == STATUS_SENT:
                    if frequency == DigestFrequency.DAILY:
                        summary.daily_sent += 1
                    else:
                        summary.weekly_sent += 1

        logger.info("digest_completed", daily_sent=summary.daily_sent, weekly_sent=summary.weekly_sent)
        return summary
