"""Subscription plan tiers and their entitlements."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

UNLIMITED = -1


class PlanTier(str, Enum):
    """Subscription plans. FREE applies when no active subscription exists."""
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    BUSINESS = "business"
    AGENCY = "agency"


@dataclass(frozen=True)
class PlanLimits:
    display_name: str
    monthly_price: str
    response_limit: int
    location_limit: int


PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.FREE: PlanLimits("Free", "$0", 5, 1),
    PlanTier.STARTER: PlanLimits("Starter", "$49/mo", 50, 1),
    PlanTier.PROFESSIONAL: PlanLimits("Professional", "$99/mo", 200, 3),
    PlanTier.BUSINESS: PlanLimits("Business", "$199/mo", UNLIMITED, 10),
    PlanTier.AGENCY: PlanLimits("Agency", "$499/mo", UNLIMITED, UNLIMITED),
}

_missing = set(PlanTier) - set(PLAN_LIMITS)
if _missing:
    raise RuntimeError(f"PLAN_LIMITS has no entry for: {sorted(t.value for t in _missing)}")


def resolve_tier(plan_type: Optional[str]) -> PlanTier:
    """Map a stored plan_type to a tier. Unknown or missing plans get FREE."""
    try:
        return PlanTier((plan_type or "").lower())
    except ValueError:
        return PlanTier.FREE


def get_plan_limits(tier: PlanTier) -> PlanLimits:
    return PLAN_LIMITS[tier]
