"""Free-tier usage caps shown before the premium paywall."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from core.env import env_int
from services.entitlement_evaluator import EntitlementStatus


@dataclass(frozen=True)
class FreeTierLimits:
    max_expenses: int
    max_months: int
    max_subscriptions: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "maxExpenses": self.max_expenses,
            "maxMonths": self.max_months,
            "maxSubscriptions": self.max_subscriptions,
        }


def load_free_tier_limits() -> FreeTierLimits:
    return FreeTierLimits(
        max_expenses=env_int("FREE_TIER_MAX_EXPENSES", 8, minimum=0),
        max_months=env_int("FREE_TIER_MAX_MONTHS", 2, minimum=0),
        max_subscriptions=env_int("FREE_TIER_MAX_SUBSCRIPTIONS", 5, minimum=0),
    )


def exceeds_free_tier(
    status: EntitlementStatus,
    *,
    expense_count: int,
    month_count: int,
    subscription_count: int,
    limits: Optional[FreeTierLimits] = None,
) -> bool:
    """Return True when a non-premium user has gone past any free-tier cap."""
    if status.is_premium:
        return False
    resolved = limits or load_free_tier_limits()
    return (
        expense_count > resolved.max_expenses
        or month_count > resolved.max_months
        or subscription_count > resolved.max_subscriptions
    )


__all__ = ["FreeTierLimits", "exceeds_free_tier", "load_free_tier_limits"]
