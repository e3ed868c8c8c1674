"""
Review synchronization for one business.

Reviews are upserted on the Google review id. New rows are inserted with
``ON CONFLICT DO NOTHING`` so only the writer that actually created a row gets
it back, and only those rows fan out to notifications. Existing rows get
their upstream-editable fields refreshed, and a changed rating resets the
rating-based sentiment; ``is_responded`` and any responses are left alone.
"""

from functools import partial
from typing import Any, Optional

import structlog

from replydesk.core.exceptions import NotConnectedError
from replydesk.core.work_queue import WorkQueue
from replydesk.google.business_profile import BusinessProfileClient
from replydesk.models.schemas import Business, BusinessSyncOutcome, ExternalReview, Review
from replydesk.monitoring.metrics import REVIEWS_INSERTED
from replydesk.services.notifications import NotificationService
from replydesk.services.sentiment import SemanticSentimentClassifier, sentiment_from_rating
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)

STATUS_SUCCESS = "success"


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def mutable_fields(stored: Review, external: ExternalReview) -> dict[str, Any]:
    """Fields a reviewer can change upstream after posting."""
    values = {
        "author_name": external.reviewer_name,
        "author_photo_url": external.reviewer_photo_url,
        "star_rating": external.star_rating,
        "review_text": external.comment,
        "update_time": _iso(external.update_time),
    }
    if stored.star_rating != external.star_rating:
        values["sentiment"] = sentiment_from_rating(external.star_rating).value
    return values


def _has_changed(stored: Review, external: ExternalReview) -> bool:
    return (
        stored.author_name != external.reviewer_name
        or stored.author_photo_url != external.reviewer_photo_url
        or stored.star_rating != external.star_rating
        or stored.review_text != external.comment
        or stored.update_time != external.update_time
    )


class ReviewSynchronizer:
    """Pulls a business's reviews and mirrors them locally."""

    def __init__(
        self,
        store: SupabaseStore,
        adapter: BusinessProfileClient,
        work_queue: WorkQueue,
        notifications: NotificationService,
        sentiment_classifier: Optional[SemanticSentimentClassifier] = None,
    ):
        self._store = store
        self._adapter = adapter
        self._queue = work_queue
        self._notifications = notifications
        self._classifier = sentiment_classifier

    async def sync_business(self, business: Business) -> BusinessSyncOutcome:
        """
        Sync one business. Errors propagate; the job runner isolates them.

        Raises:
            NotConnectedError: Missing Google identifiers or credential.
            RateLimitedError, UpstreamUnavailableError, UpstreamRejectedError:
                From the adapter.
        """
        if not business.is_connected:
            raise NotConnectedError(
                "Business has no Google location", {"business_id": business.id}
            )

        fetched = await self._adapter.list_reviews(
            business.user_id, business.gmb_account_id, business.gmb_location_id
        )
        # Last occurrence wins if a page boundary repeats a review
        external = {r.review_id: r for r in fetched}

        stored = self._store.get_reviews_by_external_ids(external.keys())

        new_rows = [
            self._to_row(business, review)
            for review_id, review in external.items()
            if review_id not in stored
        ]
        inserted = self._store.insert_reviews_if_absent(new_rows)

        updated = 0
        for review_id, review in external.items():
            current = stored.get(review_id)
            if current is not None and _has_changed(current, review):
                self._store.update_review_by_external_id(review_id, mutable_fields(current, review))
                updated += 1

        for review in inserted:
            self._dispatch_new_review(business, review)

        self._store.touch_business(business.id)
        REVIEWS_INSERTED.inc(len(inserted))

        logger.info(
            "business_reviews_synced",
            business_id=business.id,
            fetched=len(external),
            inserted=len(inserted),
            updated=updated,
        )
        return BusinessSyncOutcome(
            id=business.id,
            status=STATUS_SUCCESS,
            reviews_count=len(external),
            new_reviews=len(inserted),
        )

    @staticmethod
    def _to_row(business: Business, review: ExternalReview) -> dict[str, Any]:
        return {
            "business_id": business.id,
            "gmb_review_id": review.review_id,
            "author_name": review.reviewer_name,
            "author_photo_url": review.reviewer_photo_url,
            "star_rating": review.star_rating,
            "review_text": review.comment,
            "create_time": _iso(review.create_time),
            "update_time": _iso(review.update_time),
            "sentiment": sentiment_from_rating(review.star_rating).value,
            "is_responded": False,
        }

    def _dispatch_new_review(self, business: Business, review: Review) -> None:
        self._queue.submit(
            "notify_new_review",
            partial(self._notifications.notify_new_review, business, review),
        )
        if self._classifier is not None:
            self._queue.submit(
                "classify_sentiment",
                partial(self._classifier.reclassify_new_review, review),
            )
