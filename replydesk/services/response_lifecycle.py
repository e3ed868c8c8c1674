"""
Response lifecycle: generated -> approved -> published.

Editing returns a response to ``generated`` from any unpublished state, so an
approved reply that is changed must be approved again. ``published`` is
terminal. Every write is a compare-and-swap on the response version.

Publishing posts upstream first, then records the reply id while the response
is still ``approved``, then flips it to ``published``. A response left
``approved`` with a reply id already set is resumed without posting again.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from replydesk.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotConnectedError,
    NotFoundError,
)
from replydesk.google.business_profile import BusinessProfileClient
from replydesk.models.schemas import Response, ResponseStatus
from replydesk.monitoring.metrics import RESPONSE_TRANSITIONS
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)

MAX_EDIT_ATTEMPTS = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ResponseLifecycleManager:
    """Owns status transitions of responses and the publish side effects."""

    def __init__(self, store: SupabaseStore, adapter: BusinessProfileClient):
        self._store = store
        self._adapter = adapter

    def _load(self, response_id: str, actor_id: Optional[str]) -> Response:
        response = self._store.get_response(response_id)
        if response is None:
            raise NotFoundError("response", response_id)
        if actor_id is not None:
            business = self._store.get_business(response.business_id)
            if business is None or business.user_id != actor_id:
                raise NotFoundError("response", response_id)
        return response

    def _write(self, response: Response, values: dict[str, Any]) -> Response:
        updated = self._store.update_response(response.id, response.version, values)
        if updated is None:
            raise ConflictError(
                "Response changed concurrently",
                {"response_id": response.id, "version": response.version},
            )
        return updated

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def approve(self, response_id: str, actor_id: str) -> Response:
        """generated -> approved."""
        response = self._load(response_id, actor_id)
        if response.status != ResponseStatus.GENERATED:
            raise InvalidTransitionError(response_id, response.status.value, "approve")

        approved = self._write(
            response,
            {
                "status": ResponseStatus.APPROVED.value,
                "approved_by": actor_id,
                "approved_at": _now().isoformat(),
            },
        )
        RESPONSE_TRANSITIONS.labels(to_status=ResponseStatus.APPROVED.value).inc()
        logger.info("response_approved", response_id=response_id, actor_id=actor_id)
        return approved

    async def edit_content(
        self,
        response_id: str,
        content: str,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Response:
        """
        Replace the content, append it to the edit history and reset to generated.

        Without ``expected_version`` a lost race is retried against the fresh
        row, so concurrent edits all land in the history and the last one
        wins. With it, a stale version raises ConflictError.
        """
        for attempt in range(1, MAX_EDIT_ATTEMPTS + 1):
            response = self._load(response_id, actor_id)
            if response.status == ResponseStatus.PUBLISHED:
                raise InvalidTransitionError(response_id, response.status.value, "edit")
            if expected_version is not None and response.version != expected_version:
                raise ConflictError(
                    "Response was edited by someone else",
                    {"response_id": response_id, "version": response.version},
                )

            history = [entry.model_dump(mode="json") for entry in response.edit_history]
            history.append({"content": content, "timestamp": _now().isoformat()})

            updated = self._store.update_response(
                response_id,
                response.version,
                {
                    "content": content,
                    "status": ResponseStatus.GENERATED.value,
                    "edit_history": history,
                    "approved_by": None,
                    "approved_at": None,
                    # A reply posted for the old content must be re-posted
                    "gmb_reply_id": None,
                    "published_at": None,
                },
            )
            if updated is not None:
                RESPONSE_TRANSITIONS.labels(to_status=ResponseStatus.GENERATED.value).inc()
                logger.info(
                    "response_edited",
                    response_id=response_id,
                    version=updated.version,
                    history_length=len(updated.edit_history),
                )
                return updated

            if expected_version is not None:
                raise ConflictError(
                    "Response was edited by someone else",
                    {"response_id": response_id},
                )
            logger.info("response_edit_race_retry", response_id=response_id, attempt=attempt)

        raise ConflictError(
            "Response is being edited concurrently",
            {"response_id": response_id, "attempts": MAX_EDIT_ATTEMPTS},
        )

    async def publish(self, response_id: str, actor_id: Optional[str] = None) -> Response:
        """
        approved -> published, posting the reply to Google.

        Raises:
            NotFoundError, InvalidTransitionError: Precondition failures.
            NotConnectedError: The business has no Google location.
            RateLimitedError, UpstreamRejectedError, UpstreamUnavailableError:
                Propagated from the adapter; local state is unchanged.
        """
        response = self._load(response_id, actor_id)
        if response.status != ResponseStatus.APPROVED:
            raise InvalidTransitionError(response_id, response.status.value, "publish")

        review = self._store.get_review(response.review_id)
        if review is None:
            raise NotFoundError("review", response.review_id)
        business = self._store.get_business(response.business_id)
        if business is None:
            raise NotFoundError("business", response.business_id)
        if not business.is_connected:
            raise NotConnectedError(
                "Business has no Google location", {"business_id": business.id}
            )

        if response.gmb_reply_id is None:
            reply = await self._adapter.post_reply(
                business.user_id,
                business.gmb_account_id,
                business.gmb_location_id,
                review.gmb_review_id,
                response.content,
            )
            try:
                response = self._write(
                    response,
                    {
                        "gmb_reply_id": reply.external_reply_id,
                        "published_at": reply.published_at.isoformat(),
                    },
                )
            except ConflictError:
                # The earlier text is live on Google; the next publish overwrites it
                logger.warning(
                    "response_publish_raced_edit",
                    response_id=response_id,
                    gmb_reply_id=reply.external_reply_id,
                )
                raise
        else:
            logger.info(
                "response_publish_resumed",
                response_id=response_id,
                gmb_reply_id=response.gmb_reply_id,
            )

        published_at = response.published_at or _now()
        published = self._write(
            response,
            {
                "status": ResponseStatus.PUBLISHED.value,
                "published_at": published_at.isoformat(),
            },
        )
        self._store.mark_review_responded(review.id)
        self._store.increment_response_count(business.id)

        RESPONSE_TRANSITIONS.labels(to_status=ResponseStatus.PUBLISHED.value).inc()
        logger.info(
            "response_published",
            response_id=response_id,
            review_id=review.id,
            business_id=business.id,
            gmb_reply_id=published.gmb_reply_id,
        )
        return published

    async def reject(
        self,
        response_id: str,
        reason: str,
        actor_id: Optional[str] = None,
    ) -> Response:
        """Annotate an unpublished response with a rejection reason. Status is unchanged."""
        response = self._load(response_id, actor_id)
        if response.status == ResponseStatus.PUBLISHED:
            raise InvalidTransitionError(response_id, response.status.value, "reject")
        annotated = self._write(response, {"rejection_reason": reason})
        logger.info("response_rejected", response_id=response_id)
        return annotated
