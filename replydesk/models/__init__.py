"""Domain models for ReplyDesk."""

from replydesk.models.schemas import (
    IN_FLIGHT_STATUSES,
    BrandSettings,
    Business,
    BusinessSyncOutcome,
    DigestFrequency,
    DigestStats,
    DigestSummary,
    DigestUserOutcome,
    EditHistoryEntry,
    ExternalReview,
    NotificationPreferences,
    PublishedReply,
    Response,
    ResponseLength,
    ResponseStatus,
    ResponseTone,
    Review,
    ReviewSentiment,
    SyncSummary,
    UsageAction,
    UsageLedgerEntry,
)

__all__ = [
    "IN_FLIGHT_STATUSES",
    "BrandSettings",
    "Business",
    "BusinessSyncOutcome",
    "DigestFrequency",
    "DigestStats",
    "DigestSummary",
    "DigestUserOutcome",
    "EditHistoryEntry",
    "ExternalReview",
    "NotificationPreferences",
    "PublishedReply",
    "Response",
    "ResponseLength",
    "ResponseStatus",
    "ResponseTone",
    "Review",
    "ReviewSentiment",
    "SyncSummary",
    "UsageAction",
    "UsageLedgerEntry",
]
