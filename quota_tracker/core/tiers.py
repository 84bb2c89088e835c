"""Plan tiers: contractual ceiling/rate pairs of the protected API.

A record's effective limits are never more generous than its tier, no
matter what a caller synchronizes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from quota_tracker.core.errors import InvalidArgument


class Plan(str, Enum):
    STANDARD = "STANDARD"
    ADVANCED = "ADVANCED"
    PLUS = "PLUS"
    ENTERPRISE = "ENTERPRISE"


@dataclass(frozen=True)
class PlanTier:
    """Upper bounds a tenant's tracked limits are clamped to.

    Attributes:
        maximum_available: Bucket ceiling in points.
        restore_rate: Points restored per second.
    """

    maximum_available: float
    restore_rate: float


PLAN_TIERS: Mapping[Plan, PlanTier] = MappingProxyType(
    {
        Plan.STANDARD: PlanTier(maximum_available=1000, restore_rate=100),
        Plan.ADVANCED: PlanTier(maximum_available=2000, restore_rate=200),
        Plan.PLUS: PlanTier(maximum_available=10000, restore_rate=1000),
        Plan.ENTERPRISE: PlanTier(maximum_available=20000, restore_rate=2000),
    }
)


def resolve_tier(
    plan: Plan | str | None,
    tiers: Mapping[Plan, PlanTier] = PLAN_TIERS,
) -> PlanTier | None:
    """Look up the tier for a plan.

    Args:
        plan: Plan member, case-insensitive plan name, or None for no tier.
        tiers: Tier table to resolve against.

    Returns:
        The matching PlanTier, or None when no plan was given.

    Raises:
        InvalidArgument: If the plan name is unknown or has no tier.
    """

    if plan is None:
        return None

    if not isinstance(plan, Plan):
        try:
            plan = Plan(str(plan).strip().upper())
        except ValueError as exc:
            raise InvalidArgument(
                f"Unknown plan: '{plan}'",
                details={
                    "field": "tier",
                    "value": str(plan),
                    "hint": f"Supported plans: {', '.join(p.value for p in Plan)}",
                },
            ) from exc

    tier = tiers.get(plan)
    if tier is None:
        raise InvalidArgument(
            f"No tier configured for plan '{plan.value}'",
            details={"field": "tier", "value": plan.value},
        )
    return tier
