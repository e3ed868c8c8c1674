"""Unit tests for review synchronization."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from replydesk.core.exceptions import NotConnectedError
from replydesk.core.work_queue import WorkQueue
from replydesk.models.schemas import Business, ExternalReview
from replydesk.services.notifications import NotificationService
from replydesk.services.review_sync import STATUS_SUCCESS, ReviewSynchronizer
from replydesk.storage.supabase_store import REVIEW_LOOKUP_BATCH_SIZE
from tests.fakes import USER_ID


def external(review_id, rating=5, comment="Great!", updated="2024-01-15T12:00:00+00:00"):
    return ExternalReview(
        review_id=review_id,
        reviewer_name=f"Reviewer {review_id}",
        star_rating=rating,
        comment=comment,
        create_time=datetime(2024, 1, 15, 12, tzinfo=timezone.utc),
        update_time=datetime.fromisoformat(updated),
    )


@pytest.fixture
def queue():
    queue = MagicMock()
    queue.submit.return_value = True
    return queue


@pytest.fixture
def notifications():
    return MagicMock()


@pytest.fixture
def synchronizer(store, mock_adapter, queue, notifications):
    return ReviewSynchronizer(store, mock_adapter, queue, notifications)


class TestSyncBusiness:
    """Tests for ReviewSynchronizer.sync_business."""

    @pytest.mark.asyncio
    async def test_inserts_new_reviews(self, synchronizer, business, mock_adapter, fake_supabase, queue):
        mock_adapter.list_reviews.return_value = [external("a", 5), external("b", 1, "Cold food")]

        outcome = await synchronizer.sync_business(business)

        assert outcome.status == STATUS_SUCCESS
        assert outcome.reviews_count == 2
        assert outcome.new_reviews == 2

        rows = {r["gmb_review_id"]: r for r in fake_supabase.rows("reviews")}
        assert rows["a"]["sentiment"] == "positive"
        assert rows["b"]["sentiment"] == "negative"
        assert rows["b"]["is_responded"] is False
        assert rows["a"]["business_id"] == business.id

        assert queue.submit.call_count == 2
        assert {c.args[0] for c in queue.submit.call_args_list} == {"notify_new_review"}
        mock_adapter.list_reviews.assert_awaited_once_with(USER_ID, "accounts/111", "locations/222")

    @pytest.mark.asyncio
    async def test_resync_is_idempotent(self, synchronizer, business, mock_adapter, fake_supabase, queue):
        """A second pass over the same reviews inserts and notifies nothing."""
        mock_adapter.list_reviews.return_value = [external("a"), external("b")]

        await synchronizer.sync_business(business)
        queue.submit.reset_mock()
        outcome = await synchronizer.sync_business(business)

        assert outcome.new_reviews == 0
        assert outcome.reviews_count == 2
        assert len(fake_supabase.rows("reviews")) == 2
        queue.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_upstream_edit_refreshes_fields_only(self, synchronizer, business, mock_adapter, fake_supabase):
        """Edited reviews get new text and rating; local state is preserved."""
        mock_adapter.list_reviews.return_value = [external("a", 5, "Great!")]
        await synchronizer.sync_business(business)
        row = fake_supabase.rows("reviews", copy_rows=False)[0]
        row["is_responded"] = True

        mock_adapter.list_reviews.return_value = [
            external("a", 2, "Changed my mind", updated="2024-02-01T09:00:00+00:00")
        ]
        outcome = await synchronizer.sync_business(business)

        stored = fake_supabase.rows("reviews")[0]
        assert outcome.new_reviews == 0
        assert stored["review_text"] == "Changed my mind"
        assert stored["star_rating"] == 2
        assert stored["is_responded"] is True
        assert stored["sentiment"] == "negative"

    @pytest.mark.asyncio
    async def test_rating_change_resets_sentiment(self, synchronizer, business, mock_adapter, fake_supabase):
        mock_adapter.list_reviews.return_value = [external("a", 5)]
        await synchronizer.sync_business(business)

        mock_adapter.list_reviews.return_value = [external("a", 1)]
        await synchronizer.sync_business(business)

        stored = fake_supabase.rows("reviews")[0]
        assert stored["star_rating"] == 1
        assert stored["sentiment"] == "negative"

    @pytest.mark.asyncio
    async def test_text_edit_keeps_sentiment(self, synchronizer, business, mock_adapter, fake_supabase):
        """Without a rating change the stored (possibly semantic) sentiment stays."""
        mock_adapter.list_reviews.return_value = [external("a", 3, "Fine")]
        await synchronizer.sync_business(business)
        fake_supabase.rows("reviews", copy_rows=False)[0]["sentiment"] = "positive"

        mock_adapter.list_reviews.return_value = [external("a", 3, "Fine, really")]
        await synchronizer.sync_business(business)

        assert fake_supabase.rows("reviews")[0]["sentiment"] == "positive"

    @pytest.mark.asyncio
    async def test_resync_larger_than_one_lookup_batch(
        self, synchronizer, business, mock_adapter, fake_supabase, queue
    ):
        """Review ids are looked up in batches; every existing review is still found."""
        reviews = [external(f"review-{i:04d}", 4) for i in range(REVIEW_LOOKUP_BATCH_SIZE * 2 + 7)]
        mock_adapter.list_reviews.return_value = reviews
        await synchronizer.sync_business(business)
        queue.submit.reset_mock()

        outcome = await synchronizer.sync_business(business)

        assert outcome.reviews_count == len(reviews)
        assert outcome.new_reviews == 0
        assert len(fake_supabase.rows("reviews")) == len(reviews)
        queue.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_reviews(self, synchronizer, business, mock_adapter, fake_supabase, queue):
        """A location with no reviews still succeeds and touches the business."""
        mock_adapter.list_reviews.return_value = []

        outcome = await synchronizer.sync_business(business)

        assert outcome.status == STATUS_SUCCESS
        assert outcome.reviews_count == 0
        assert outcome.new_reviews == 0
        assert fake_supabase.rows("businesses")[0].get("updated_at") is not None
        assert fake_supabase.rows("usage_logs") == []
        queue.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_ids_in_one_fetch(self, synchronizer, business, mock_adapter, fake_supabase):
        mock_adapter.list_reviews.return_value = [external("a", 4), external("a", 4)]

        outcome = await synchronizer.sync_business(business)

        assert outcome.new_reviews == 1
        assert len(fake_supabase.rows("reviews")) == 1

    @pytest.mark.asyncio
    async def test_unconnected_business(self, synchronizer, mock_adapter):
        business = Business(id="b-1", user_id=USER_ID, name="No Google", gmb_location_id=None)

        with pytest.raises(NotConnectedError):
            await synchronizer.sync_business(business)

        mock_adapter.list_reviews.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_semantic_classification_is_queued(self, store, mock_adapter, queue, notifications, business):
        classifier = MagicMock()
        synchronizer = ReviewSynchronizer(
            store, mock_adapter, queue, notifications, sentiment_classifier=classifier
        )
        mock_adapter.list_reviews.return_value = [external("a")]

        await synchronizer.sync_business(business)

        assert [c.args[0] for c in queue.submit.call_args_list] == [
            "notify_new_review",
            "classify_sentiment",
        ]


class TestSyncNotifications:
    """End-to-end notification fan-out through the work queue."""

    @pytest.fixture
    def sender(self):
        sender = AsyncMock()
        sender.send.return_value = True
        return sender

    @pytest.fixture
    def prefs(self, fake_supabase):
        return fake_supabase.seed(
            "notification_preferences",
            user_id=USER_ID,
            email="owner@restaurant.com",
            email_for_new_reviews=False,
            email_for_negative_reviews=True,
        )

    @pytest.mark.asyncio
    async def test_one_star_review_notifies_once(self, store, mock_adapter, business, sender, prefs, fake_supabase):
        """A new 1-star review triggers exactly one email across repeated syncs."""
        queue = WorkQueue(max_size=10, workers=1)
        await queue.start()
        notifications = NotificationService(store, sender)
        synchronizer = ReviewSynchronizer(store, mock_adapter, queue, notifications)
        mock_adapter.list_reviews.return_value = [external("bad", 1, "Terrible service")]

        try:
            first = await synchronizer.sync_business(business)
            second = await synchronizer.sync_business(business)
            await queue.join()
        finally:
            await queue.stop()

        assert first.new_reviews == 1
        assert second.new_reviews == 0
        sender.send.assert_awaited_once()
        to, subject, _html = sender.send.await_args.args
        assert to == "owner@restaurant.com"
        assert "1-star" in subject

        ledger = fake_supabase.rows("usage_logs")
        assert [r["action"] for r in ledger] == ["email_sent"]

    @pytest.mark.asyncio
    async def test_concurrent_syncs_notify_once(self, store, mock_adapter, business, sender, prefs):
        """Two overlapping syncs of the same business notify a new review once."""
        queue = WorkQueue(max_size=10, workers=2)
        await queue.start()
        synchronizer = ReviewSynchronizer(store, mock_adapter, queue, NotificationService(store, sender))
        mock_adapter.list_reviews.return_value = [external("bad", 2, "Meh")]

        try:
            outcomes = await asyncio.gather(
                synchronizer.sync_business(business),
                synchronizer.sync_business(business),
            )
            await queue.join()
        finally:
            await queue.stop()

        assert sum(o.new_reviews for o in outcomes) == 1
        assert sender.send.await_count == 1

    @pytest.mark.asyncio
    async def test_positive_review_respects_opt_out(self, store, mock_adapter, business, sender, prefs):
        queue = WorkQueue(max_size=10, workers=1)
        await queue.start()
        synchronizer = ReviewSynchronizer(store, mock_adapter, queue, NotificationService(store, sender))
        mock_adapter.list_reviews.return_value = [external("good", 5)]

        try:
            await synchronizer.sync_business(business)
            await queue.join()
        finally:
            await queue.stop()

        sender.send.assert_not_awaited()


class TestReviewLookup:
    """Tests for SupabaseStore.get_reviews_by_external_ids."""

    def test_lookup_is_split_into_batches(self, store, business, fake_supabase):
        ids = [f"review-{i:04d}" for i in range(REVIEW_LOOKUP_BATCH_SIZE * 3 + 1)]
        for review_id in ids:
            fake_supabase.seed("reviews", business_id=business.id, gmb_review_id=review_id, star_rating=5)
        fake_supabase.executed.clear()

        found = store.get_reviews_by_external_ids(ids)

        assert set(found) == set(ids)
        assert fake_supabase.executed == [("reviews", "select")] * 4

    def test_no_ids_makes_no_request(self, store, fake_supabase):
        assert store.get_reviews_by_external_ids([]) == {}
        assert fake_supabase.executed == []
