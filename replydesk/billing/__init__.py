"""Plans and quota evaluation."""

from replydesk.billing.plans import PLAN_LIMITS, UNLIMITED, PlanLimits, PlanTier, resolve_tier
from replydesk.billing.quota import LocationQuota, QuotaEvaluator, ResponseQuota

__all__ = [
    "PLAN_LIMITS",
    "UNLIMITED",
    "LocationQuota",
    "PlanLimits",
    "PlanTier",
    "QuotaEvaluator",
    "ResponseQuota",
    "resolve_tier",
]
