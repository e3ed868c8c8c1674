"""Health check endpoints for the ReplyDesk API.

Reports database connectivity, the background work queue and, when enabled,
the in-process scheduler.
"""

import time
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request

from replydesk import __version__
from replydesk.api.dependencies import get_container
from replydesk.api.models import HealthCheckResponse, HealthStatus
from replydesk.core.container import DependencyContainer

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])

# Track server start time for uptime calculation
_server_start_time: Optional[float] = None


def set_server_start_time() -> None:
    """Set the server start time. Called on application startup."""
    global _server_start_time
    _server_start_time = time.time()


def get_uptime_seconds() -> Optional[float]:
    """Get server uptime in seconds."""
    if _server_start_time is None:
        return None
    return time.time() - _server_start_time


async def check_supabase_health(container: DependencyContainer) -> HealthStatus:
    """Check Supabase database connectivity."""
    start_time = time.time()
    try:
        container.supabase.table("businesses").select("id").limit(1).execute()
        latency = (time.time() - start_time) * 1000
        return HealthStatus(
            status="healthy",
            latency_ms=round(latency, 2),
            message="Connected to Supabase",
        )
    except Exception as e:
        latency = (time.time() - start_time) * 1000
        logger.error("supabase_health_check_failed", error=str(e))
        return HealthStatus(
            status="unhealthy",
            latency_ms=round(latency, 2),
            message=f"Supabase connection failed: {str(e)[:100]}",
        )


def check_work_queue_health(container: DependencyContainer) -> HealthStatus:
    queue = container.work_queue
    if queue.running:
        return HealthStatus(status="healthy", message=f"{queue.pending} job(s) pending")
    return HealthStatus(status="degraded", message="Background workers are not running")


def check_scheduler_health(request: Request) -> HealthStatus:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return HealthStatus(status="healthy", message="In-process scheduler disabled")
    if scheduler.is_running:
        return HealthStatus(status="healthy", message="Scheduler is running")
    return HealthStatus(status="degraded", message="Scheduler is not running")


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health Check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check(
    request: Request,
    container: DependencyContainer = Depends(get_container),
) -> HealthCheckResponse:
    services = {
        "supabase": await check_supabase_health(container),
        "work_queue": check_work_queue_health(container),
        "scheduler": check_scheduler_health(request),
    }

    statuses = [s.status for s in services.values()]
    if all(s == "healthy" for s in statuses):
        overall_status = "healthy"
    elif any(s == "unhealthy" for s in statuses):
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    return HealthCheckResponse(
        status=overall_status,
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        services=services,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Simple liveness check for container orchestration.",
)
async def liveness() -> dict:
    """Returns 200 if the process is serving requests."""
    return {"status": "alive"}
