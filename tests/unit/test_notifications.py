"""Unit tests for email notifications."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from replydesk.models.schemas import DigestStats
from replydesk.services.notifications import EmailSender, NotificationService, format_star_rating
from tests.fakes import USER_ID


@pytest.fixture
def sender():
    sender = AsyncMock()
    sender.send.return_value = True
    return sender


@pytest.fixture
def service(store, sender):
    return NotificationService(store, sender, app_base_url="https://app.test/")


def seed_prefs(fake_supabase, **values):
    defaults = {"user_id": USER_ID, "email": "owner@restaurant.com"}
    return fake_supabase.seed("notification_preferences", **{**defaults, **values})


class TestFormatStarRating:
    def test_four_stars(self):
        assert format_star_rating(4) == "★★★★☆"

    def test_clamped(self):
        assert format_star_rating(9) == "★★★★★"
        assert format_star_rating(-1) == "☆☆☆☆☆"


class TestShouldNotify:
    """Tests for preference gating."""

    def test_no_preferences_means_no_email(self, service):
        assert service.should_notify(USER_ID, 1) == (False, None)

    def test_master_switch_off(self, service, fake_supabase):
        seed_prefs(fake_supabase, email_enabled=False)

        assert service.should_notify(USER_ID, 1) == (False, None)

    @pytest.mark.parametrize("rating", [1, 2])
    def test_negative_reviews_use_negative_flag(self, service, fake_supabase, rating):
        seed_prefs(fake_supabase, email_for_new_reviews=False, email_for_negative_reviews=True)

        assert service.should_notify(USER_ID, rating) == (True, "owner@restaurant.com")

    @pytest.mark.parametrize("rating", [3, 4, 5])
    def test_other_reviews_use_new_review_flag(self, service, fake_supabase, rating):
        seed_prefs(fake_supabase, email_for_new_reviews=False, email_for_negative_reviews=True)

        assert service.should_notify(USER_ID, rating) == (False, None)

    def test_falls_back_to_profile_email(self, service, fake_supabase):
        seed_prefs(fake_supabase, email=None)
        fake_supabase.seed("profiles", id=USER_ID, full_name="Owner", email="profile@restaurant.com")

        assert service.should_notify(USER_ID, 5) == (True, "profile@restaurant.com")


class TestNotifyNewReview:
    @pytest.mark.asyncio
    async def test_sends_and_records_usage(self, service, sender, fake_supabase, business, review):
        seed_prefs(fake_supabase)

        sent = await service.notify_new_review(business, review)

        assert sent is True
        to, subject, html = sender.send.await_args.args
        assert to == "owner@restaurant.com"
        assert subject == "New 5-star review for Test Restaurant"
        assert "Test Restaurant" in html
        assert "https://app.test/reviews?review=" in html
        ledger = fake_supabase.rows("usage_logs")
        assert [r["action"] for r in ledger] == ["email_sent"]

    @pytest.mark.asyncio
    async def test_failed_send_records_nothing(self, service, sender, fake_supabase, business, review):
        seed_prefs(fake_supabase)
        sender.send.return_value = False

        assert await service.notify_new_review(business, review) is False
        assert fake_supabase.rows("usage_logs") == []

    @pytest.mark.asyncio
    async def test_opted_out(self, service, sender, business, review):
        assert await service.notify_new_review(business, review) is False
        sender.send.assert_not_awaited()


class TestSendDigest:
    @pytest.mark.asyncio
    async def test_weekly_subject_and_body(self, service, sender):
        stats = [DigestStats(business_name="Test Restaurant", new_reviews=3, avg_rating=4.0, pending_count=2)]

        await service.send_digest("owner@restaurant.com", "Sam", stats, "weekly")

        to, subject, html = sender.send.await_args.args
        assert subject.startswith("Your weekly review digest - Week of ")
        assert "Test Restaurant" in html
        assert "this week" in html


class TestEmailSender:
    @pytest.mark.asyncio
    async def test_without_key_logs_instead_of_sending(self):
        sender = EmailSender(api_key=None, from_email="noreply@test", from_name="ReplyDesk")

        assert await sender.send("owner@restaurant.com", "Hi", "<p>Hi</p>") is True

    @pytest.mark.asyncio
    async def test_sends_through_sendgrid(self):
        client = MagicMock()
        client.send.return_value = MagicMock(status_code=202)
        sender = EmailSender(api_key="SG.key", from_email="noreply@test", from_name="ReplyDesk", client=client)

        assert await sender.send("owner@restaurant.com", "Hi", "<p>Hi</p>") is True
        client.send.assert_called_once()

    @pytest.mark.asyncio
    async def test_sendgrid_error_returns_false(self):
        client = MagicMock()
        client.send.side_effect = RuntimeError("HTTP Error 401: Unauthorized")
        sender = EmailSender(api_key="SG.key", from_email="noreply@test", from_name="ReplyDesk", client=client)

        assert await sender.send("owner@restaurant.com", "Hi", "<p>Hi</p>") is False
