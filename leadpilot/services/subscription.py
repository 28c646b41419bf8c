"""Subscription plan lookup.

Billing lives outside this service; the API resolves a caller's plan
through a SubscriptionLookup so deployments can plug in their own source.
"""

import uuid
from typing import Dict, Optional, Protocol

from leadpilot.config import settings


class SubscriptionLookup(Protocol):
    """Resolves the subscription plan of a user."""

    async def get_plan(self, user_id: uuid.UUID) -> str:
        ...


class StaticSubscriptionLookup:
    """Plan lookup backed by a fixed mapping with a default plan.

    Args:
        default_plan: Plan for users missing from ``overrides``
        overrides: Per-user plans
    """

    def __init__(
        self,
        default_plan: Optional[str] = None,
        overrides: Optional[Dict[uuid.UUID, str]] = None,
    ):
        self.default_plan = default_plan or settings.DEFAULT_PLAN
        self.overrides = dict(overrides or {})

    async def get_plan(self, user_id: uuid.UUID) -> str:
        return self.overrides.get(user_id, self.default_plan)


def plan_allows_prospecting(plan: str) -> bool:
    return plan in settings.PROSPECTING_PLANS


def filter_limit_for(plan: str) -> int:
    """Maximum saved filters for a plan (falls back to the pro limit)."""
    return settings.PLAN_FILTER_LIMITS.get(plan, settings.PLAN_FILTER_LIMITS.get("pro", 10))


_subscription_lookup: Optional[SubscriptionLookup] = None


def get_subscription_lookup() -> SubscriptionLookup:
    """Get the global subscription lookup."""
    global _subscription_lookup

    if _subscription_lookup is None:
        _subscription_lookup = StaticSubscriptionLookup()

    return _subscription_lookup


def set_subscription_lookup(lookup: SubscriptionLookup) -> None:
    """Install a deployment-specific subscription lookup."""
    global _subscription_lookup
    _subscription_lookup = lookup
