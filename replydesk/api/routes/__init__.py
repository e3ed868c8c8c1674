"""API route modules."""

from replydesk.api.routes.businesses import router as businesses_router
from replydesk.api.routes.cron import router as cron_router
from replydesk.api.routes.health import router as health_router
from replydesk.api.routes.responses import router as responses_router
from replydesk.api.routes.usage import router as usage_router

__all__ = [
    "businesses_router",
    "cron_router",
    "health_router",
    "responses_router",
    "usage_router",
]
