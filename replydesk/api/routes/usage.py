"""Plan usage endpoint."""

from fastapi import APIRouter, Depends

from replydesk.api.dependencies import get_container, get_current_user
from replydesk.api.models import UsageResponse
from replydesk.core.container import DependencyContainer

router = APIRouter(tags=["Usage"])


@router.get(
    "/usage",
    response_model=UsageResponse,
    summary="Current plan usage",
    description="AI responses used this billing period and connected locations, against plan limits.",
)
async def get_usage(
    user_id: str = Depends(get_current_user),
    container: DependencyContainer = Depends(get_container),
) -> UsageResponse:
    return UsageResponse(
        responses=await container.quota.check_response_quota(user_id),
        locations=await container.quota.check_location_quota(user_id),
    )
