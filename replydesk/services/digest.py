"""Digest aggregation: per-business review activity over a lookback window."""

from datetime import datetime, timedelta

import structlog

from replydesk.models.schemas import DigestFrequency, DigestStats, NotificationPreferences
from replydesk.services.notifications import NotificationService
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)

LOOKBACK_DAYS = {
    DigestFrequency.DAILY: 1,
    DigestFrequency.WEEKLY: 7,
}

STATUS_SENT = "sent"
STATUS_NO_ACTIVITY = "skipped: no activity"
STATUS_NO_EMAIL = "error: no email"
STATUS_SEND_FAILED = "error: send failed"


class DigestService:
    """Builds digest statistics and sends one digest per recipient."""

    def __init__(self, store: SupabaseStore, notifications: NotificationService):
        self._store = store
        self._notifications = notifications

    def build_user_stats(self, user_id: str, days_back: int, now: datetime) -> list[DigestStats]:
        businesses = self._store.list_active_businesses(user_id)
        if not businesses:
            return []

        since = now - timedelta(days=days_back)
        reviews = self._store.list_reviews_since([b.id for b in businesses], since)

        stats = []
        for business in businesses:
            rows = [r for r in reviews if r.business_id == business.id]
            total = len(rows)
            counts = {star: sum(1 for r in rows if r.star_rating == star) for star in range(1, 6)}
            responded = sum(1 for r in rows if r.is_responded)
            stats.append(
                DigestStats(
                    business_name=business.name,
                    new_reviews=total,
                    avg_rating=(sum(r.star_rating for r in rows) / total) if total else 0.0,
                    five_star=counts[5],
                    four_star=counts[4],
                    three_star=counts[3],
                    two_star=counts[2],
                    one_star=counts[1],
                    responded_count=responded,
                    pending_count=total - responded,
                    positive_percentage=((counts[5] + counts[4]) / total * 100) if total else 100.0,
                )
            )
        return stats

    async def send_user_digest(
        self,
        prefs: NotificationPreferences,
        frequency: DigestFrequency,
        now: datetime,
    ) -> str:
        """Send one recipient's digest and return its outcome status."""
        profile = self._store.get_profile(prefs.user_id) or {}
        recipient = prefs.email or profile.get("email")
        if not recipient:
            return STATUS_NO_EMAIL

        stats = self.build_user_stats(prefs.user_id, LOOKBACK_DAYS[frequency], now)
        if not stats or all(s.new_reviews == 0 for s in stats):
            return STATUS_NO_ACTIVITY

        sent = await self._notifications.send_digest(
            recipient, profile.get("full_name") or "", stats, frequency.value
        )
        if not sent:
            return STATUS_SEND_FAILED

        self._store.mark_digest_sent(prefs.user_id, now)
        logger.info("digest_sent", user_id=prefs.user_id, period=frequency.value, businesses=len(stats))
        return STATUS_SENT
