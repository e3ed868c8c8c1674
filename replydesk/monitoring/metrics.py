"""
Prometheus metrics for ReplyDesk observability.

Usage:
    from replydesk.monitoring.metrics import track_business_sync

    with track_business_sync():
        await synchronizer.sync_business(business)

    # Or manually
    RESPONSES_GENERATED.labels(provider="openai").inc()
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route


# =============================================================================
# Metric Definitions
# =============================================================================

# Sync metrics
BUSINESS_SYNC_DURATION = Histogram(
    "replydesk_business_sync_duration_seconds",
    "Duration of a single business review sync in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

BUSINESS_SYNC_TOTAL = Counter(
    "replydesk_business_sync_total",
    "Total number of business syncs",
    ["status"],
)

REVIEWS_INSERTED = Counter(
    "replydesk_reviews_inserted_total",
    "Reviews seen for the first time",
)

# Upstream metrics
UPSTREAM_RETRIES = Counter(
    "replydesk_upstream_retries_total",
    "Retried Business Profile API calls",
    ["operation", "reason"],
)

# Response metrics
RESPONSES_GENERATED = Counter(
    "replydesk_responses_generated_total",
    "AI responses drafted",
    ["provider"],
)

RESPONSE_TRANSITIONS = Counter(
    "replydesk_response_transitions_total",
    "Response lifecycle transitions",
    ["to_status"],
)

# Background work
WORK_QUEUE_JOBS = Counter(
    "replydesk_work_queue_jobs_total",
    "Background jobs by outcome",
    ["job", "outcome"],
)


# =============================================================================
# Helpers
# =============================================================================


@contextmanager
def track_business_sync() -> Generator[None, None, None]:
    """Context manager to track business sync duration and status."""
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        BUSINESS_SYNC_DURATION.observe(time.perf_counter() - start_time)
        BUSINESS_SYNC_TOTAL.labels(status=status).inc()


# =============================================================================
# Metrics Endpoint
# =============================================================================


async def metrics_endpoint(request) -> Response:
    """Prometheus metrics endpoint handler."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def get_metrics_app() -> Starlette:
    """
    Get a Starlette app for serving metrics.

    Mount this at /metrics in your main app:
        app.mount("/metrics", get_metrics_app())
    """
    return Starlette(
        routes=[
            Route("/", metrics_endpoint),
        ]
    )
