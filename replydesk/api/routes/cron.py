"""Cron-triggered job endpoints.

An external scheduler (Vercel cron, Cloud Scheduler, plain crontab with curl)
calls these with ``Authorization: Bearer <CRON_SECRET>``. Both verbs are
accepted because some schedulers can only issue GET requests. Per-business
and per-recipient failures are reported in the body; the status stays 200.
"""

import structlog
from fastapi import APIRouter, Depends

from replydesk.api.dependencies import get_container, verify_cron_secret
from replydesk.core.container import DependencyContainer
from replydesk.models.schemas import DigestSummary, SyncSummary

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/api/cron",
    tags=["Cron"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.api_route(
    "/reviews",
    methods=["GET", "POST"],
    response_model=SyncSummary,
    summary="Sync reviews for all businesses",
)
async def sync_reviews(
    container: DependencyContainer = Depends(get_container),
) -> SyncSummary:
    logger.info("cron_review_sync_triggered")
    return await container.jobs.run_review_sync()


@router.api_route(
    "/digest",
    methods=["GET", "POST"],
    response_model=DigestSummary,
    summary="Send daily and weekly digests",
)
async def send_digests(
    container: DependencyContainer = Depends(get_container),
) -> DigestSummary:
    logger.info("cron_digest_triggered")
    return await container.jobs.run_digest()
