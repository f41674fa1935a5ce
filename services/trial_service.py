"""One-time trial eligibility derived from account age and grant history."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from core.env import env_int
from core.time_utils import ensure_utc, utc_now

TRIAL_WINDOW_DAYS = env_int("PREMIUM_TRIAL_DAYS", 14, minimum=0)


@dataclass(frozen=True)
class TrialStatus:
    eligible: bool
    days_remaining: int
    ends_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "eligible": self.eligible,
            "daysRemaining": self.days_remaining,
            "endsAt": self.ends_at.isoformat() if self.ends_at else None,
        }


def trial_status(
    created_at: datetime,
    has_subscription_history: bool,
    *,
    now: Optional[datetime] = None,
    window_days: Optional[int] = None,
) -> TrialStatus:
    """Return trial eligibility for an account created at ``created_at``.

    The result depends only on immutable facts: account creation time and whether
    any redemption or subscription row exists. Clearing device storage therefore
    cannot restart a trial, and once any grant history exists the trial is gone
    for good.
    """
    reference = ensure_utc(now) if now is not None else utc_now()
    window = timedelta(days=TRIAL_WINDOW_DAYS if window_days is None else window_days)
    created = ensure_utc(created_at)
    ends_at = created + window

    remaining_seconds = (ends_at - reference).total_seconds()
    days_remaining = max(0, int(math.ceil(remaining_seconds / 86400))) if remaining_seconds > 0 else 0
    # created_at ahead of now (provider clock skew) must not stretch the window.
    days_remaining = min(days_remaining, window.days)

    eligible = (reference - created) <= window and not has_subscription_history
    return TrialStatus(eligible=eligible, days_remaining=days_remaining, ends_at=ends_at)


__all__ = ["TRIAL_WINDOW_DAYS", "TrialStatus", "trial_status"]
