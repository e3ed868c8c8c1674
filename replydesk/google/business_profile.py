"""Google Business Profile (My Business v4) reviews adapter.

Reads a location's reviews and upserts owner replies. Throttling (429 or a
RESOURCE_EXHAUSTED body) and 5xx/transport failures are retried with capped
exponential backoff; any other 4xx fails immediately.

API Reference: https://developers.google.com/my-business/reference/rest/v4/accounts.locations.reviews
"""

import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from replydesk.core.exceptions import (
    RateLimitedError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from replydesk.google.credentials import CredentialStore
from replydesk.models.schemas import ExternalReview, PublishedReply
from replydesk.monitoring.metrics import UPSTREAM_RETRIES

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

GBP_API_BASE = "https://mybusiness.googleapis.com/v4"

STAR_RATINGS = {"ONE": 1, "TWO": 2, "THREE": 3, "FOUR": 4, "FIVE": 5}

RATE_LIMIT_STATUSES = {"RESOURCE_EXHAUSTED", "RATE_LIMIT_EXCEEDED"}

SleepFunc = Callable[[float], Awaitable[None]]


def star_to_int(star: Optional[str]) -> int:
    """Map the API's ONE..FIVE enum to 1..5 (0 when unspecified)."""
    return STAR_RATINGS.get((star or "").upper(), 0)


def location_path(account_ref: str, location_ref: str) -> str:
    """Build ``accounts/{a}/locations/{l}`` from bare ids or resource names."""
    account = account_ref if account_ref.startswith("accounts/") else f"accounts/{account_ref}"
    if location_ref.startswith("accounts/"):
        return location_ref
    location = location_ref if location_ref.startswith("locations/") else f"locations/{location_ref}"
    return f"{account}/{location}"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given as seconds or an HTTP date."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


class BackoffWait:
    """
    Exponential backoff that defers to a server Retry-After hint.

    Delays start at ``initial`` and double per attempt. Both the computed
    delay and the hint are capped at ``maximum``.
    """

    def __init__(self, initial: float, maximum: float):
        self._exponential = wait_exponential(multiplier=initial, min=initial, max=maximum)
        self._maximum = maximum

    def __call__(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        hint = getattr(exc, "retry_after", None)
        if hint is not None:
            return min(hint, self._maximum)
        return self._exponential(retry_state)


# =============================================================================
# Adapter
# =============================================================================


class BusinessProfileClient:
    """Async adapter for a tenant's Business Profile reviews.

    Example:
        client = BusinessProfileClient(credentials)
        async with client:
            reviews = await client.list_reviews(user_id, "accounts/1", "locations/2")
            reply = await client.post_reply(user_id, "accounts/1", "locations/2", "abc", "Thanks!")
    """

    def __init__(
        self,
        credentials: CredentialStore,
        base_url: str = GBP_API_BASE,
        timeout: float = 30.0,
        max_retries: int = 4,
        initial_backoff: float = 1.0,
        max_backoff: float = 32.0,
        page_size: int = 50,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """Initialize the adapter.

        Args:
            credentials: Source of per-tenant bearer tokens.
            base_url: API root, overridable for tests.
            timeout: Request timeout in seconds.
            max_retries: Total attempts for throttled or unavailable calls.
            initial_backoff: First retry delay in seconds.
            max_backoff: Ceiling for any retry delay, Retry-After included.
            page_size: Reviews requested per page.
            http_client: Pre-built client (tests inject a MockTransport here).
            sleep: Coroutine used between attempts.
        """
        self._credentials = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries
        self._wait = BackoffWait(initial_backoff, max_backoff)
        self._page_size = page_size
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    async def __aenter__(self) -> "BusinessProfileClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers={"Content-Type": "application/json"},
            )
        return self._client

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def list_reviews(
        self,
        user_id: str,
        account_ref: str,
        location_ref: str,
    ) -> list[ExternalReview]:
        """Fetch every review of a location, following page tokens.

        Raises:
            NotConnectedError: The tenant has no usable Google credential.
            RateLimitedError: Throttled on every attempt.
            UpstreamUnavailableError: 5xx or transport failure on every attempt.
            UpstreamRejectedError: Any other 4xx.
        """
        path = f"{location_path(account_ref, location_ref)}/reviews"
        reviews: list[ExternalReview] = []
        page_token: Optional[str] = None

        while True:
            params: dict[str, Any] = {"pageSize": self._page_size}
            if page_token:
                params["pageToken"] = page_token

            data = await self._request("GET", path, user_id, params=params)

            for raw in data.get("reviews", []):
                review = self._to_external_review(raw)
                if review is not None:
                    reviews.append(review)

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.info(
            "gbp_reviews_listed",
            user_id=user_id,
            location=location_ref,
            count=len(reviews),
        )
        return reviews

    async def post_reply(
        self,
        user_id: str,
        account_ref: str,
        location_ref: str,
        review_id: str,
        text: str,
    ) -> PublishedReply:
        """Create or replace the owner reply on a review.

        The v4 reply endpoint is an upsert, so calling this twice for the
        same review leaves a single reply upstream.
        """
        reply_path = f"{location_path(account_ref, location_ref)}/reviews/{review_id}/reply"
        data = await self._request("PUT", reply_path, user_id, json_data={"comment": text})

        published_at = _parse_timestamp(data.get("updateTime")) or datetime.now(timezone.utc)
        logger.info("gbp_reply_posted", user_id=user_id, review_id=review_id)
        return PublishedReply(external_reply_id=reply_path, published_at=published_at)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        user_id: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json_data: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        credential = await self._credentials.get_valid_credential(user_id)
        headers = {"Authorization": f"Bearer {credential.access_token}"}

        retrying = AsyncRetrying(
            retry=retry_if_exception_type((RateLimitedError, UpstreamUnavailableError)),
            stop=stop_after_attempt(self._max_retries),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(method, path, headers, params, json_data)
        raise AssertionError("unreachable")

    async def _send(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        params: Optional[dict[str, Any]],
        json_data: Optional[dict[str, Any]],
    ) -> dict[str, Any]:
        client = await self._ensure_client()
        url = f"{self._base_url}/{path}"

        try:
            response = await client.request(
                method, url, headers=headers, params=params, json=json_data
            )
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(f"Request timeout: {e}", {"path": path}) from e
        except httpx.RequestError as e:
            raise UpstreamUnavailableError(f"Request failed: {e}", {"path": path}) from e

        if response.status_code < 400:
            return response.json() if response.content else {}

        error = self._error_body(response)
        message = error.get("message") or response.reason_phrase or "Unknown error"

        if response.status_code == 429 or error.get("status") in RATE_LIMIT_STATUSES:
            raise RateLimitedError(
                f"Rate limited by Business Profile API: {message}",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
                details={"path": path, "status_code": response.status_code},
            )
        if response.status_code >= 500:
            raise UpstreamUnavailableError(
                f"Business Profile API error {response.status_code}: {message}",
                {"path": path, "status_code": response.status_code},
            )

        logger.error(
            "gbp_request_rejected",
            status_code=response.status_code,
            error=message,
            path=path,
        )
        raise UpstreamRejectedError(response.status_code, message, {"path": path})

    @staticmethod
    def _error_body(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        error = body.get("error") if isinstance(body, dict) else None
        return error if isinstance(error, dict) else {}

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        reason = "rate_limited" if isinstance(exc, RateLimitedError) else "unavailable"
        UPSTREAM_RETRIES.labels(operation="gbp", reason=reason).inc()
        logger.warning(
            "gbp_request_retrying",
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep if retry_state.next_action else None,
            reason=reason,
            error=str(exc),
        )

    @staticmethod
    def _to_external_review(raw: dict[str, Any]) -> Optional[ExternalReview]:
        rating = star_to_int(raw.get("starRating"))
        if rating == 0:
            logger.warning("gbp_review_without_rating", review_id=raw.get("reviewId"))
            return None
        reviewer = raw.get("reviewer") or {}
        return ExternalReview(
            review_id=raw["reviewId"],
            reviewer_name=reviewer.get("displayName"),
            reviewer_photo_url=reviewer.get("profilePhotoUrl"),
            star_rating=rating,
            comment=raw.get("comment"),
            create_time=_parse_timestamp(raw.get("createTime")),
            update_time=_parse_timestamp(raw.get("updateTime")),
        )
