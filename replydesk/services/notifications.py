"""
Email notifications.

Renders Jinja2 templates and delivers them through SendGrid. Without a
SendGrid key the message is logged instead of sent, which keeps local
development and tests free of network calls.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from replydesk.models.schemas import Business, DigestStats, Review, UsageAction, UsageLedgerEntry
from replydesk.services.sentiment import sentiment_from_rating
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

NEGATIVE_RATING_THRESHOLD = 2
REVIEW_EXCERPT_LENGTH = 200


def format_star_rating(rating: int) -> str:
    """Return a unicode star string, e.g. '★★★★☆' for 4."""
    filled = max(0, min(5, rating))
    return ("★" * filled) + ("☆" * (5 - filled))


def build_template_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(enabled_extensions=["html"]),
    )


# =============================================================================
# Delivery
# =============================================================================


class EmailSender:
    """SendGrid delivery with a log-only fallback."""

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str,
        from_name: str,
        client: Optional[SendGridAPIClient] = None,
    ):
        self._from_email = from_email
        self._from_name = from_name
        self._client = client or (SendGridAPIClient(api_key) if api_key else None)

    async def send(self, to: str, subject: str, html: str) -> bool:
        """Send one message. Returns False when SendGrid refuses or fails."""
        if self._client is None:
            logger.info("email_not_configured_logged", to=to, subject=subject)
            return True

        message = Mail(
            from_email=(self._from_email, self._from_name),
            to_emails=to,
            subject=subject,
            html_content=html,
        )
        try:
            response = await asyncio.to_thread(self._client.send, message)
        except Exception as e:
            logger.error("email_send_failed", to=to, subject=subject, error=str(e))
            return False

        ok = 200 <= response.status_code < 300
        if not ok:
            logger.error("email_send_rejected", to=to, status_code=response.status_code)
        return ok


# =============================================================================
# Notifications
# =============================================================================


class NotificationService:
    """New-review alerts gated by tenant preferences, and digest emails."""

    def __init__(
        self,
        store: SupabaseStore,
        sender: EmailSender,
        app_base_url: str = "http://localhost:3000",
    ):
        self._store = store
        self._sender = sender
        self._app_base_url = app_base_url.rstrip("/")
        self._env = build_template_environment()
        self._review_tpl = self._env.get_template("new_review_email.html")
        self._digest_tpl = self._env.get_template("digest_email.html")

    def should_notify(self, user_id: str, star_rating: int) -> tuple[bool, Optional[str]]:
        """
        Decide whether a new review warrants an email.

        Returns:
            (send?, recipient address)
        """
        prefs = self._store.get_notification_preferences(user_id)
        if prefs is None or not prefs.email_enabled:
            return False, None

        if star_rating <= NEGATIVE_RATING_THRESHOLD:
            wanted = prefs.email_for_negative_reviews
        else:
            wanted = prefs.email_for_new_reviews
        if not wanted:
            return False, None

        email = prefs.email
        if not email:
            profile = self._store.get_profile(user_id) or {}
            email = profile.get("email")
        return bool(email), email

    async def notify_new_review(self, business: Business, review: Review) -> bool:
        """Send the new-review alert if the tenant opted in. Returns True when sent."""
        send, recipient = self.should_notify(business.user_id, review.star_rating)
        if not send:
            logger.debug("new_review_notification_skipped", review_id=review.id)
            return False

        text = review.review_text or ""
        excerpt = text[:REVIEW_EXCERPT_LENGTH] + ("..." if len(text) > REVIEW_EXCERPT_LENGTH else "")
        html = self._review_tpl.render(
            business_name=business.name,
            reviewer_name=review.author_name or "A customer",
            stars=format_star_rating(review.star_rating),
            sentiment=(review.sentiment or sentiment_from_rating(review.star_rating)).value,
            review_excerpt=excerpt,
            review_url=f"{self._app_base_url}/reviews?review={review.id}",
            year=datetime.now().year,
        )
        subject = f"New {review.star_rating}-star review for {business.name}"

        sent = await self._sender.send(recipient, subject, html)
        if sent:
            self._store.append_usage(
                UsageLedgerEntry(
                    user_id=business.user_id,
                    business_id=business.id,
                    action=UsageAction.EMAIL_SENT,
                )
            )
            logger.info("new_review_notification_sent", review_id=review.id, business_id=business.id)
        return sent

    async def send_digest(
        self,
        recipient: str,
        user_name: str,
        businesses: list[DigestStats],
        period: str,
    ) -> bool:
        """Render and send a daily or weekly digest."""
        today = datetime.now().strftime("%d %b %Y")
        pending_total = sum(b.pending_count for b in businesses)
        html = self._digest_tpl.render(
            user_name=user_name or "there",
            period=period,
            period_text="today" if period == "daily" else "this week",
            businesses=businesses,
            pending_total=pending_total,
            reviews_url=f"{self._app_base_url}/reviews",
            year=datetime.now().year,
        )
        if period == "daily":
            subject = f"Your daily review digest - {today}"
        else:
            subject = f"Your weekly review digest - Week of {today}"
        return await self._sender.send(recipient, subject, html)
