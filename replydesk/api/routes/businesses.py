"""Business endpoints: creation behind the location quota and on-demand sync."""

import structlog
from fastapi import APIRouter, Depends, status

from replydesk.api.dependencies import get_container, get_current_user
from replydesk.api.models import BusinessCreate, ErrorResponse
from replydesk.core.container import DependencyContainer
from replydesk.models.schemas import Business, BusinessSyncOutcome
from replydesk.monitoring.metrics import track_business_sync

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/businesses", tags=["Businesses"])


@router.post(
    "",
    response_model=Business,
    status_code=status.HTTP_201_CREATED,
    summary="Add a business",
    responses={401: {"model": ErrorResponse}, 402: {"model": ErrorResponse}},
)
async def create_business(
    body: BusinessCreate,
    user_id: str = Depends(get_current_user),
    container: DependencyContainer = Depends(get_container),
) -> Business:
    await container.quota.require_location_quota(user_id)

    business = container.store.create_business(
        {**body.model_dump(exclude_none=True), "user_id": user_id, "is_active": True}
    )
    logger.info("business_created", business_id=business.id, user_id=user_id)
    return business


@router.post(
    "/{business_id}/sync",
    response_model=BusinessSyncOutcome,
    summary="Sync one business now",
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def sync_business(
    business_id: str,
    user_id: str = Depends(get_current_user),
    container: DependencyContainer = Depends(get_container),
) -> BusinessSyncOutcome:
    business = container.store.get_owned_business(business_id, user_id)
    with track_business_sync():
        return await container.synchronizer.sync_business(business)
