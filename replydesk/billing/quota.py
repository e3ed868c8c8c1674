"""
Quota evaluation against the tenant's current plan.

Usage is never stored as a counter: it is re-derived from the usage ledger
(responses) or the businesses table (locations) on every check. The check is
advisory and reserves nothing, so callers run it immediately before the
action it guards.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from replydesk.billing.plans import UNLIMITED, PlanTier, get_plan_limits, resolve_tier
from replydesk.core.exceptions import QuotaExceededError
from replydesk.models.schemas import UsageAction
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)


class ResponseQuota(BaseModel):
    """AI response allowance for a tenant."""

    allowed: bool
    used: int = Field(..., ge=0)
    limit: int = Field(..., description="-1 means unlimited")
    remaining: int = Field(..., description="-1 means unlimited")
    plan: PlanTier
    reason: Optional[str] = None


class LocationQuota(BaseModel):
    """Connected location allowance for a tenant."""

    allowed: bool
    used: int = Field(..., ge=0)
    limit: int = Field(..., description="-1 means unlimited")
    plan: PlanTier
    reason: Optional[str] = None


@dataclass(frozen=True)
class ActivePlan:
    tier: PlanTier
    period_start: Optional[datetime]


def _parse_period_start(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class QuotaEvaluator:
    """Computes response and location allowances from plan and usage."""

    def __init__(self, store: SupabaseStore):
        self._store = store

    def get_active_plan(self, user_id: str) -> ActivePlan:
        subscription = self._store.get_active_subscription(user_id)
        if not subscription:
            return ActivePlan(PlanTier.FREE, None)
        return ActivePlan(
            tier=resolve_tier(subscription.get("plan_type")),
            period_start=_parse_period_start(subscription.get("current_period_start")),
        )

    async def check_response_quota(self, user_id: str) -> ResponseQuota:
        """AI responses used in the current billing window against the plan limit."""
        plan = self.get_active_plan(user_id)
        limit = get_plan_limits(plan.tier).response_limit
        used = self._store.count_usage(user_id, UsageAction.AI_RESPONSE, since=plan.period_start)

        unlimited = limit == UNLIMITED
        allowed = unlimited or used < limit
        reason = None
        if not allowed:
            reason = (
                f"You have reached your {plan.tier.value} plan limit of {limit} AI responses. "
                "Upgrade your plan to continue generating responses."
            )

        return ResponseQuota(
            allowed=allowed,
            used=used,
            limit=limit,
            remaining=UNLIMITED if unlimited else max(limit - used, 0),
            plan=plan.tier,
            reason=reason,
        )

    async def check_location_quota(self, user_id: str) -> LocationQuota:
        """Active businesses against the plan's location limit."""
        plan = self.get_active_plan(user_id)
        limit = get_plan_limits(plan.tier).location_limit
        used = self._store.count_active_businesses(user_id)

        allowed = limit == UNLIMITED or used < limit
        reason = None
        if not allowed:
            reason = (
                f"You have reached your {plan.tier.value} plan limit of {limit} location(s). "
                "Upgrade your plan to add more."
            )

        return LocationQuota(
            allowed=allowed, used=used, limit=limit, plan=plan.tier, reason=reason
        )

    async def require_response_quota(self, user_id: str) -> ResponseQuota:
        """Raise QuotaExceededError unless another response may be generated."""
        quota = await self.check_response_quota(user_id)
        if not quota.allowed:
            logger.info("response_quota_exceeded", user_id=user_id, used=quota.used, limit=quota.limit)
            raise QuotaExceededError(quota.reason, used=quota.used, limit=quota.limit)
        return quota

    async def require_location_quota(self, user_id: str) -> LocationQuota:
        """Raise QuotaExceededError unless another location may be added."""
        quota = await self.check_location_quota(user_id)
        if not quota.allowed:
            logger.info("location_quota_exceeded", user_id=user_id, used=quota.used, limit=quota.limit)
            raise QuotaExceededError(quota.reason, used=quota.used, limit=quota.limit)
        return quota
