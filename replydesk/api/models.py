"""Pydantic models for API requests and responses.

Entity payloads reuse ``replydesk.models.schemas``; this module only holds
request bodies and the envelopes specific to the HTTP surface.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from replydesk.billing.quota import LocationQuota, ResponseQuota


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Response Lifecycle Models
# =============================================================================


class EditResponseRequest(BaseModel):
    """Request model for editing a drafted response."""

    content: str = Field(
        ...,
        min_length=1,
        max_length=4096,
        description="New reply text",
        json_schema_extra={"example": "Thanks so much for visiting us!"},
    )
    expected_version: Optional[int] = Field(
        None,
        ge=1,
        description="Reject the edit if the response has moved past this version",
    )


class RejectResponseRequest(BaseModel):
    """Request model for rejecting a drafted response."""

    reason: str = Field(..., min_length=1, max_length=1000, description="Why the draft was rejected")


# =============================================================================
# Business Models
# =============================================================================


class BusinessCreate(BaseModel):
    """Request model for connecting a new business location."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Business name",
        json_schema_extra={"example": "Circolo Popolare"},
    )
    gmb_account_id: Optional[str] = Field(None, description="accounts/{id} resource name")
    gmb_location_id: Optional[str] = Field(None, description="locations/{id} resource name")
    gmb_location_name: Optional[str] = Field(None, max_length=255)


# =============================================================================
# Usage Models
# =============================================================================


class UsageResponse(BaseModel):
    """Current plan allowances for the calling tenant."""

    responses: ResponseQuota
    locations: LocationQuota


# =============================================================================
# Health Models
# =============================================================================


class HealthStatus(BaseModel):
    """Individual service health status."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Service status"
    )
    latency_ms: Optional[float] = Field(None, description="Response latency in milliseconds")
    message: Optional[str] = Field(None, description="Additional status message")


class HealthCheckResponse(BaseModel):
    """Response model for health check endpoint."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Overall system status"
    )
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Check timestamp")
    services: dict[str, HealthStatus] = Field(
        default_factory=dict,
        description="Individual service statuses",
    )
    uptime_seconds: Optional[float] = Field(None, description="Server uptime in seconds")


# =============================================================================
# Error Models
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Message safe to show to the tenant")
    detail: Optional[str] = Field(None, description="Internal detail, only in debug mode")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")


class ValidationErrorDetail(BaseModel):
    """Details for validation errors."""

    field: str = Field(..., description="Field that failed validation")
    message: str = Field(..., description="Validation error message")
    value: Optional[Any] = Field(None, description="Invalid value provided")


class ValidationErrorResponse(BaseModel):
    """Response for validation errors."""

    error: str = Field(default="validation_error", description="Error type")
    message: str = Field(default="Request validation failed", description="Error message")
    errors: list[ValidationErrorDetail] = Field(..., description="List of validation errors")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
