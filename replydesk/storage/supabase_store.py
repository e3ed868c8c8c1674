"""
Supabase repository for the review pipeline.

All table access goes through this class so services never build queries
themselves. The supabase client is synchronous; calls are made inline from
async code, as everywhere else in the service.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import structlog
from postgrest.exceptions import APIError
from supabase import Client

from replydesk.core.exceptions import ConflictError, NotFoundError
from replydesk.models.schemas import (
    IN_FLIGHT_STATUSES,
    BrandSettings,
    Business,
    DigestFrequency,
    NotificationPreferences,
    Response,
    Review,
    ReviewSentiment,
    UsageAction,
    UsageLedgerEntry,
)

logger = structlog.get_logger(__name__)

UNIQUE_VIOLATION = "23505"
ACTIVE_SUBSCRIPTION_STATUSES = ["active", "trialing"]
GOOGLE_PROVIDER = "google"

# Ids per `in.(...)` lookup; keeps the GET url well under proxy limits
REVIEW_LOOKUP_BATCH_SIZE = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SupabaseStore:
    """Typed access to the pipeline tables."""

    def __init__(self, client: Client):
        self._client = client

    @property
    def client(self) -> Client:
        return self._client

    # =========================================================================
    # Businesses
    # =========================================================================

    def list_syncable_businesses(self) -> list[Business]:
        """Active businesses with both Google identifiers set."""
        result = (
            self._client.table("businesses")
            .select("*")
            .eq("is_active", True)
            .not_.is_("gmb_account_id", "null")
            .not_.is_("gmb_location_id", "null")
            .execute()
        )
        return [Business.from_db_row(row) for row in result.data or []]

    def list_active_businesses(self, user_id: str) -> list[Business]:
        result = (
            self._client.table("businesses")
            .select("*")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .execute()
        )
        return [Business.from_db_row(row) for row in result.data or []]

    def get_business(self, business_id: str) -> Optional[Business]:
        result = (
            self._client.table("businesses")
            .select("*")
            .eq("id", business_id)
            .limit(1)
            .execute()
        )
        return Business.from_db_row(result.data[0]) if result.data else None

    def get_owned_business(self, business_id: str, user_id: str) -> Business:
        """Fetch a business the tenant owns. Other tenants' rows look absent."""
        business = self.get_business(business_id)
        if business is None or business.user_id != user_id:
            raise NotFoundError("business", business_id)
        return business

    def create_business(self, values: dict[str, Any]) -> Business:
        result = self._client.table("businesses").insert(values).execute()
        return Business.from_db_row(result.data[0])

    def count_active_businesses(self, user_id: str) -> int:
        result = (
            self._client.table("businesses")
            .select("id", count="exact")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .execute()
        )
        return result.count or 0

    def touch_business(self, business_id: str) -> None:
        (
            self._client.table("businesses")
            .update({"updated_at": utcnow().isoformat()})
            .eq("id", business_id)
            .execute()
        )

    def increment_response_count(self, business_id: str) -> None:
        self._client.rpc(
            "increment_response_count", {"business_uuid": business_id}
        ).execute()

    # =========================================================================
    # Reviews
    # =========================================================================

    def get_review(self, review_id: str) -> Optional[Review]:
        result = (
            self._client.table("reviews")
            .select("*")
            .eq("id", review_id)
            .limit(1)
            .execute()
        )
        return Review.from_db_row(result.data[0]) if result.data else None

    def get_reviews_by_external_ids(self, gmb_review_ids: Iterable[str]) -> dict[str, Review]:
        ids = list(gmb_review_ids)
        found: dict[str, Review] = {}
        for start in range(0, len(ids), REVIEW_LOOKUP_BATCH_SIZE):
            batch = ids[start : start + REVIEW_LOOKUP_BATCH_SIZE]
            result = (
                self._client.table("reviews")
                .select("*")
                .in_("gmb_review_id", batch)
                .execute()
            )
            for row in result.data or []:
                found[row["gmb_review_id"]] = Review.from_db_row(row)
        return found

    def insert_reviews_if_absent(self, rows: list[dict[str, Any]]) -> list[Review]:
        """
        Insert reviews whose gmb_review_id is not stored yet.

        Rows that conflict on gmb_review_id are skipped by Postgres, so the
        returned rows are exactly the reviews this call created.
        """
        if not rows:
            return []
        result = (
            self._client.table("reviews")
            .upsert(rows, on_conflict="gmb_review_id", ignore_duplicates=True)
            .execute()
        )
        return [Review.from_db_row(row) for row in result.data or []]

    def update_review_by_external_id(self, gmb_review_id: str, values: dict[str, Any]) -> None:
        (
            self._client.table("reviews")
            .update(values)
            .eq("gmb_review_id", gmb_review_id)
            .execute()
        )

    def set_review_sentiment(self, review_id: str, sentiment: ReviewSentiment) -> None:
        (
            self._client.table("reviews")
            .update({"sentiment": sentiment.value})
            .eq("id", review_id)
            .execute()
        )

    def mark_review_responded(self, review_id: str) -> None:
        (
            self._client.table("reviews")
            .update({"is_responded": True})
            .eq("id", review_id)
            .execute()
        )

    def list_reviews_since(self, business_ids: Iterable[str], since: datetime) -> list[Review]:
        ids = list(business_ids)
        if not ids:
            return []
        result = (
            self._client.table("reviews")
            .select("*")
            .in_("business_id", ids)
            .gte("created_at", since.isoformat())
            .execute()
        )
        return [Review.from_db_row(row) for row in result.data or []]

    # =========================================================================
    # Brand Settings
    # =========================================================================

    def get_brand_settings(self, business_id: str) -> BrandSettings:
        """Brand settings for a business, or defaults when none are saved."""
        result = (
            self._client.table("brand_settings")
            .select("*")
            .eq("business_id", business_id)
            .limit(1)
            .execute()
        )
        if result.data:
            return BrandSettings.from_db_row(result.data[0])
        return BrandSettings(business_id=business_id)

    # =========================================================================
    # Responses
    # =========================================================================

    def get_response(self, response_id: str) -> Optional[Response]:
        result = (
            self._client.table("responses")
            .select("*")
            .eq("id", response_id)
            .limit(1)
            .execute()
        )
        return Response.from_db_row(result.data[0]) if result.data else None

    def get_in_flight_response(self, review_id: str) -> Optional[Response]:
        result = (
            self._client.table("responses")
            .select("*")
            .eq("review_id", review_id)
            .in_("status", [s.value for s in IN_FLIGHT_STATUSES])
            .limit(1)
            .execute()
        )
        return Response.from_db_row(result.data[0]) if result.data else None

    def insert_response(self, values: dict[str, Any]) -> Response:
        try:
            result = self._client.table("responses").insert(values).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise ConflictError(
                    "Review already has an unpublished response",
                    {"review_id": values.get("review_id")},
                ) from e
            raise
        return Response.from_db_row(result.data[0])

    def update_response(
        self,
        response_id: str,
        expected_version: int,
        values: dict[str, Any],
    ) -> Optional[Response]:
        """
        Compare-and-swap update on the version column.

        Returns:
            The updated response, or None when another writer bumped the
            version first.
        """
        payload = {
            **values,
            "version": expected_version + 1,
            "updated_at": utcnow().isoformat(),
        }
        result = (
            self._client.table("responses")
            .update(payload)
            .eq("id", response_id)
            .eq("version", expected_version)
            .execute()
        )
        return Response.from_db_row(result.data[0]) if result.data else None

    # =========================================================================
    # Usage Ledger
    # =========================================================================

    def append_usage(self, entry: UsageLedgerEntry) -> None:
        self._client.table("usage_logs").insert(entry.to_db_row(exclude_none=True)).execute()

    def count_usage(
        self,
        user_id: str,
        action: UsageAction,
        since: Optional[datetime] = None,
    ) -> int:
        query = (
            self._client.table("usage_logs")
            .select("id", count="exact")
            .eq("user_id", user_id)
            .eq("action", action.value)
        )
        if since is not None:
            query = query.gte("created_at", since.isoformat())
        return query.execute().count or 0

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def get_active_subscription(self, user_id: str) -> Optional[dict[str, Any]]:
        """Most recently created active or trialing subscription."""
        result = (
            self._client.table("subscriptions")
            .select("*")
            .eq("user_id", user_id)
            .in_("status", ACTIVE_SUBSCRIPTION_STATUSES)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    # =========================================================================
    # Google Credentials
    # =========================================================================

    def get_api_key(self, user_id: str, provider: str = GOOGLE_PROVIDER) -> Optional[dict[str, Any]]:
        result = (
            self._client.table("api_keys")
            .select("*")
            .eq("user_id", user_id)
            .eq("provider", provider)
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def save_api_key(
        self,
        user_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: datetime,
        provider: str = GOOGLE_PROVIDER,
    ) -> None:
        (
            self._client.table("api_keys")
            .upsert(
                {
                    "user_id": user_id,
                    "provider": provider,
                    "access_token": access_token,
                    "refresh_token": refresh_token,
                    "expires_at": expires_at.isoformat(),
                    "is_active": True,
                    "updated_at": utcnow().isoformat(),
                },
                on_conflict="user_id,provider",
            )
            .execute()
        )

    # =========================================================================
    # Notifications
    # =========================================================================

    def get_notification_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        result = (
            self._client.table("notification_preferences")
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return NotificationPreferences.from_db_row(result.data[0]) if result.data else None

    def list_digest_preferences(
        self,
        frequency: DigestFrequency,
        send_day: Optional[int] = None,
    ) -> list[NotificationPreferences]:
        query = (
            self._client.table("notification_preferences")
            .select("*")
            .eq("email_enabled", True)
            .eq("email_digest", frequency.value)
        )
        if send_day is not None:
            query = query.eq("digest_send_day", send_day)
        result = query.execute()
        return [NotificationPreferences.from_db_row(row) for row in result.data or []]

    def mark_digest_sent(self, user_id: str, sent_at: datetime) -> None:
        (
            self._client.table("notification_preferences")
            .update({"last_digest_sent": sent_at.isoformat()})
            .eq("user_id", user_id)
            .execute()
        )

    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        result = (
            self._client.table("profiles")
            .select("full_name, email")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None
