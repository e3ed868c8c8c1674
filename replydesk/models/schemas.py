"""Pydantic models for ReplyDesk core entities."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReviewSentiment(str, Enum):
    """Derived review sentiment."""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class ResponseStatus(str, Enum):
    """Response lifecycle status. PUBLISHED is terminal."""
    GENERATED = "generated"
    APPROVED = "approved"
    PUBLISHED = "published"


IN_FLIGHT_STATUSES = (ResponseStatus.GENERATED, ResponseStatus.APPROVED)


class ResponseTone(str, Enum):
    """Brand voice tones."""
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CASUAL = "casual"
    FORMAL = "formal"


class ResponseLength(str, Enum):
    """Target reply length."""
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class UsageAction(str, Enum):
    """Billable action kinds recorded in the usage ledger."""
    AI_RESPONSE = "ai_response"
    REVIEW_FETCH = "review_fetch"
    EMAIL_SENT = "email_sent"
    API_CALL = "api_call"


class DigestFrequency(str, Enum):
    """Digest email cadence."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"


# =============================================================================
# Base Models
# =============================================================================


class BaseEntity(BaseModel):
    """Base model with database row conversion."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    def to_db_row(self, exclude_none: bool = False) -> dict[str, Any]:
        """Convert model to a JSON-safe Supabase row."""
        return self.model_dump(mode="json", exclude_none=exclude_none)

    @classmethod
    def from_db_row(cls, row: dict[str, Any]):
        """Create model instance from database row."""
        return cls.model_validate(row)


# =============================================================================
# Core Entity Models
# =============================================================================


class Business(BaseEntity):
    """A tenant's Google Business Profile location."""

    id: str = Field(..., description="Unique identifier")
    user_id: str = Field(..., description="Owning tenant")
    name: str = Field(..., min_length=1, max_length=255, description="Business name")
    gmb_account_id: Optional[str] = Field(None, description="accounts/{id} resource name")
    gmb_location_id: Optional[str] = Field(None, description="locations/{id} resource name")
    gmb_location_name: Optional[str] = Field(None, description="Display name on Google")
    responses_used: int = Field(default=0, ge=0, description="Published responses")
    is_active: bool = Field(default=True)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_connected(self) -> bool:
        return bool(self.gmb_account_id and self.gmb_location_id)


class Review(BaseEntity):
    """A Google review mirrored locally. One row per gmb_review_id."""

    id: str
    business_id: str
    gmb_review_id: str = Field(..., description="External review id (natural key)")
    author_name: Optional[str] = None
    author_photo_url: Optional[str] = None
    star_rating: int = Field(..., ge=1, le=5)
    review_text: Optional[str] = None
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None
    sentiment: Optional[ReviewSentiment] = None
    is_responded: bool = False
    created_at: Optional[datetime] = None


class EditHistoryEntry(BaseModel):
    """One version of a response's content."""

    content: str
    timestamp: datetime


class Response(BaseEntity):
    """A drafted reply to a review and its lifecycle state."""

    id: str
    review_id: str
    business_id: str
    content: str
    tone: Optional[str] = None
    status: ResponseStatus = ResponseStatus.GENERATED
    ai_model: Optional[str] = None
    ai_tokens_used: Optional[int] = None
    edit_history: list[EditHistoryEntry] = Field(default_factory=list)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    gmb_reply_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    version: int = Field(default=1, ge=1, description="Optimistic concurrency token")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UsageLedgerEntry(BaseEntity):
    """Append-only billable usage record."""

    user_id: str
    business_id: Optional[str] = None
    action: UsageAction
    tokens_used: int = 0
    cost_cents: int = 0
    created_at: Optional[datetime] = None


class BrandSettings(BaseEntity):
    """Per-business brand voice configuration."""

    business_id: str
    tone: str = ResponseTone.PROFESSIONAL.value
    greeting: Optional[str] = None
    closing: Optional[str] = None
    response_length: str = ResponseLength.MEDIUM.value
    include_coupon: bool = False
    coupon_code: Optional[str] = None
    auto_publish: bool = False
    notify_on_negative: bool = True


class NotificationPreferences(BaseEntity):
    """Tenant email preferences."""

    user_id: str
    email: Optional[str] = None
    email_enabled: bool = True
    email_for_new_reviews: bool = True
    email_for_negative_reviews: bool = True
    email_digest: DigestFrequency = DigestFrequency.NONE
    digest_send_day: Optional[int] = Field(None, ge=0, le=6, description="0 = Sunday")
    digest_send_time: str = "09:00"
    last_digest_sent: Optional[datetime] = None


# =============================================================================
# Google Business Profile Models
# =============================================================================


class ExternalReview(BaseModel):
    """A review as returned by the Business Profile API."""

    review_id: str
    reviewer_name: Optional[str] = None
    reviewer_photo_url: Optional[str] = None
    star_rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None


class PublishedReply(BaseModel):
    """Result of posting a reply upstream."""

    external_reply_id: str
    published_at: datetime


# =============================================================================
# Job Results
# =============================================================================


class BusinessSyncOutcome(BaseModel):
    """Per-business result of a sync run."""

    id: str
    status: str = Field(..., description="'success' or 'error: <message>'")
    reviews_count: int = 0
    new_reviews: int = 0


class SyncSummary(BaseModel):
    """Result of a sync run over all businesses."""

    success: bool = True
    timestamp: datetime
    synced: int = 0
    errors: int = 0
    businesses: list[BusinessSyncOutcome] = Field(default_factory=list)


class DigestStats(BaseModel):
    """Per-business activity aggregated for a digest email."""

    business_name: str
    new_reviews: int = 0
    avg_rating: float = 0.0
    five_star: int = 0
    four_star: int = 0
    three_star: int = 0
    two_star: int = 0
    one_star: int = 0
    responded_count: int = 0
    pending_count: int = 0
    positive_percentage: float = 100.0


class DigestUserOutcome(BaseModel):
    user_id: str
    status: str


class DigestSummary(BaseModel):
    """Result of a digest run."""

    success: bool = True
    timestamp: datetime
    day_of_week: int
    daily_sent: int = 0
    weekly_sent: int = 0
    users: list[DigestUserOutcome] = Field(default_factory=list)
