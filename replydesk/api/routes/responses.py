"""Response generation and lifecycle endpoints.

Errors raised by the services propagate to the application's exception
handlers, which map them to status codes and tenant-safe messages.
"""

import structlog
from fastapi import APIRouter, Depends, status

from replydesk.api.dependencies import get_container, get_current_user
from replydesk.api.models import EditResponseRequest, ErrorResponse, RejectResponseRequest
from replydesk.core.container import DependencyContainer
from replydesk.models.schemas import Response

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Responses"])

_ERRORS = {
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.post(
    "/reviews/{review_id}/responses",
    response_model=Response,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a response",
    description="Draft an AI reply to a review in the business's brand voice.",
    responses={**_ERRORS, 402: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def generate_response(
    review_id: str,
    user_id: str = Depends(get_current_user),
    container: DependencyContainer = Depends(get_container),
) -> Response:
    return await container.response_generator.generate_for_review(review_id, user_id)


@router.post(
    "/responses/{response_id}/approve",
    response_model=Response,
    summary="Approve a response",
    responses=_ERRORS,
)
async def approve_response(
    response_id: str,
    user_id: str = Depends(get_current_user),
    container: DependencyContainer = Depends(get_container),
) -> Response:
    return await container.lifecycle.approve(response_id, user_id)


@router.patch(
    "/responses/{response_id}",
    response_model=Response,
    summary="Edit a response",
    description="Replace the reply text. An approved response returns to generated.",
    responses=_ERRORS,
)
async def edit_response(
    response_id: str,
    body: EditResponseRequest,
    user_id: str = Depends(get_current_user),
    container: DependencyContainer = Depends(get_container),
) -> Response:
    return await container.lifecycle.edit_content(
        response_id,
        body.content,
        actor_id=user_id,
        expected_version=body.expected_version,
    )


@router.post(
    "/responses/{response_id}/publish",
    response_model=Response,
    summary="Publish a response",
    description="Post an approved reply to Google Business Profile.",
    responses={**_ERRORS, 502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def publish_response(
    response_id: str,
    user_id: str = Depends(get_current_user),
    container: DependencyContainer = Depends(get_container),
) -> Response:
    return await container.lifecycle.publish(response_id, user_id)


@router.post(
    "/responses/{response_id}/reject",
    response_model=Response,
    summary="Reject a response",
    responses=_ERRORS,
)
async def reject_response(
    response_id: str,
    body: RejectResponseRequest,
    user_id: str = Depends(get_current_user),
    container: DependencyContainer = Depends(get_container),
) -> Response:
    return await container.lifecycle.reject(response_id, body.reason, user_id)
