"""Single authoritative merge of entitlement facts into a premium status.

Every caller (HTTP routes, background jobs, the device client's display layer)
goes through :func:`evaluate`; nothing else decides whether a user is premium.

Precedence:

1. admin accounts are lifetime premium;
2. an active grant without expiry is a lifetime grant;
3. the active grant with the *latest* expiry wins while it is still in the future;
4. an eligible trial with days left;
5. otherwise not premium.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Sequence

from core.entitlement_constants import EntitlementSource, GrantStatus
from core.time_utils import ensure_utc, isoformat_utc, parse_iso_datetime, utc_now
from services.trial_service import TrialStatus

_SECONDS_PER_DAY = 86400


def days_until(expires_at: datetime, now: datetime) -> int:
    """Whole days left until ``expires_at``, rounded up and never negative.

    A grant lapsing in 30 minutes still reports one day so the UI never shows
    an expired state while access is valid.
    """
    remaining = (ensure_utc(expires_at) - ensure_utc(now)).total_seconds()
    if remaining <= 0:
        return 0
    return int(math.ceil(remaining / _SECONDS_PER_DAY))


@dataclass(frozen=True)
class GrantSnapshot:
    """Read-only view of a premium grant row."""

    id: str
    grant_type: str
    provider: str
    status: str
    expires_at: Optional[datetime]

    @property
    def is_active(self) -> bool:
        return (self.status or "").strip().lower() == GrantStatus.ACTIVE.value


@dataclass(frozen=True)
class EntitlementFacts:
    is_admin: bool = False
    active_subscriptions: Sequence[GrantSnapshot] = field(default_factory=tuple)
    trial: Optional[TrialStatus] = None


@dataclass(frozen=True)
class EntitlementStatus:
    is_premium: bool
    is_lifetime: bool
    expires_at: Optional[datetime]
    days_remaining: Optional[int]
    source: EntitlementSource

    def to_payload(self) -> Dict[str, Any]:
        return {
            "isPremium": self.is_premium,
            "isLifetime": self.is_lifetime,
            "expiresAt": isoformat_utc(self.expires_at),
            "daysRemaining": self.days_remaining,
            "source": self.source.value,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "EntitlementStatus":
        raw_source = str(payload.get("source") or EntitlementSource.NONE.value)
        try:
            source = EntitlementSource(raw_source)
        except ValueError:
            source = EntitlementSource.NONE
        days = payload.get("daysRemaining")
        return cls(
            is_premium=bool(payload.get("isPremium")),
            is_lifetime=bool(payload.get("isLifetime")),
            expires_at=parse_iso_datetime(payload.get("expiresAt")),
            days_remaining=int(days) if days is not None else None,
            source=source,
        )


NOT_PREMIUM = EntitlementStatus(
    is_premium=False,
    is_lifetime=False,
    expires_at=None,
    days_remaining=None,
    source=EntitlementSource.NONE,
)


def _lifetime(source: EntitlementSource) -> EntitlementStatus:
    return EntitlementStatus(
        is_premium=True,
        is_lifetime=True,
        expires_at=None,
        days_remaining=None,
        source=source,
    )


def evaluate(facts: EntitlementFacts, now: Optional[datetime] = None) -> EntitlementStatus:
    """Merge admin flag, active grants and trial state into one status."""
    reference = ensure_utc(now) if now is not None else utc_now()

    if facts.is_admin:
        return _lifetime(EntitlementSource.ADMIN)

    active = [grant for grant in facts.active_subscriptions if grant.is_active]
    if any(grant.expires_at is None for grant in active):
        return _lifetime(EntitlementSource.LIFETIME_CODE)

    expiries = [ensure_utc(grant.expires_at) for grant in active if grant.expires_at is not None]
    if expiries:
        latest = max(expiries)
        if latest > reference:
            return EntitlementStatus(
                is_premium=True,
                is_lifetime=False,
                expires_at=latest,
                days_remaining=days_until(latest, reference),
                source=EntitlementSource.SUBSCRIPTION,
            )

    trial = facts.trial
    if trial is not None and trial.eligible and trial.days_remaining > 0:
        return EntitlementStatus(
            is_premium=True,
            is_lifetime=False,
            expires_at=reference + timedelta(days=trial.days_remaining),
            days_remaining=trial.days_remaining,
            source=EntitlementSource.TRIAL,
        )

    return NOT_PREMIUM


__all__ = [
    "EntitlementFacts",
    "EntitlementStatus",
    "GrantSnapshot",
    "NOT_PREMIUM",
    "days_until",
    "evaluate",
]
