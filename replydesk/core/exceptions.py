"""
Core exception hierarchy for ReplyDesk.

Provides standardized exception types with categorization for retry logic.
Every error carries a ``user_message`` that is safe to show to the tenant;
``message`` and ``details`` are for logs only.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


GENERIC_RETRY_MESSAGE = "Something went wrong on our side. Please try again in a few minutes."


class ReplyDeskError(Exception):
    """Base exception for all ReplyDesk errors."""

    user_message: str = GENERIC_RETRY_MESSAGE

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(ReplyDeskError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, upstream 5xx, transport failures.
    """

    pass


class PermanentError(ReplyDeskError):
    """
    Errors that won't be fixed by retrying.

    Examples: Invalid lifecycle transitions, missing entities, rejected requests.
    """

    pass


# =============================================================================
# Initialization Errors
# =============================================================================


class InitializationError(PermanentError):
    """Raised when a critical component fails to initialize."""

    def __init__(self, component: str, message: str, details: Optional[dict[str, Any]] = None):
        self.component = component
        super().__init__(f"[{component}] {message}", details)


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


# =============================================================================
# Upstream (Google Business Profile) Errors
# =============================================================================


class NotConnectedError(PermanentError):
    """Raised when a tenant or business has no usable Google credential."""

    user_message = (
        "Your Google Business Profile is not connected. "
        "Connect your account in Settings to sync and publish replies."
    )


class RateLimitedError(RetryableError):
    """Raised when upstream throttling persists after all retries."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, details)


class UpstreamUnavailableError(RetryableError):
    """Raised when upstream 5xx or transport errors persist after all retries."""

    pass


class UpstreamRejectedError(PermanentError):
    """Raised on a non-retryable upstream 4xx response."""

    def __init__(
        self,
        status_code: int,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.status_code = status_code
        super().__init__(f"[{status_code}] {message}", details)


# =============================================================================
# Domain Errors
# =============================================================================


class NotFoundError(PermanentError):
    """Raised when a referenced entity does not exist or is not visible to the caller."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        self.user_message = f"{entity.capitalize()} not found."
        super().__init__(f"{entity} {entity_id} not found", {"id": entity_id})


class InvalidTransitionError(PermanentError):
    """Raised when a lifecycle precondition is violated."""

    def __init__(self, response_id: str, current: str, action: str):
        self.response_id = response_id
        self.current = current
        self.action = action
        self.user_message = f"Cannot {action} a response that is {current}."
        super().__init__(
            f"Cannot {action} response {response_id} in status {current}",
            {"response_id": response_id, "status": current},
        )


class ConflictError(PermanentError):
    """Raised when a write loses to a concurrent change."""

    user_message = "This response was changed by someone else. Reload and try again."


class QuotaExceededError(PermanentError):
    """Raised when the tenant's plan limit is reached."""

    def __init__(self, message: str, used: int, limit: int):
        self.used = used
        self.limit = limit
        self.user_message = message
        super().__init__(message, {"used": used, "limit": limit})


class GenerationFailedError(ReplyDeskError):
    """Raised when the language model provider fails to produce a reply."""

    pass


class UnauthorizedError(PermanentError):
    """Raised when the caller identity is missing or invalid."""

    user_message = "Authentication required."
