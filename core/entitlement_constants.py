"""Shared enums for premium grants and entitlement sources."""

from __future__ import annotations

from enum import Enum


class EntitlementSource(str, Enum):
    ADMIN = "admin"
    LIFETIME_CODE = "lifetime-code"
    TRIAL = "trial"
    SUBSCRIPTION = "subscription"
    NONE = "none"

    def __str__(self) -> str:  # pragma: no cover - convenience
        return self.value


class GrantType(str, Enum):
    ONE_TIME = "one-time"
    RECURRING = "recurring"

    def __str__(self) -> str:  # pragma: no cover - convenience
        return self.value


class GrantProvider(str, Enum):
    STORE = "store"
    PROMO = "promo"
    STRIPE = "stripe"
    APPLE = "apple"

    def __str__(self) -> str:  # pragma: no cover - convenience
        return self.value


class GrantStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    def __str__(self) -> str:  # pragma: no cover - convenience
        return self.value


__all__ = [
    "EntitlementSource",
    "GrantProvider",
    "GrantStatus",
    "GrantType",
]
