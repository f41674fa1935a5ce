"""Server-side premium status assembly and account removal."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.entitlement_constants import GrantStatus
from core.env import env_csv
from core.time_utils import ensure_utc, isoformat_utc, utc_now
from models.premium import PremiumSubscription, PromoCodeRedemption
from models.user import User
from services.audit_log import audit_account_event
from services.entitlement_evaluator import (
    EntitlementFacts,
    EntitlementStatus,
    GrantSnapshot,
    days_until,
    evaluate,
)
from services.entitlement_metrics import record_evaluation
from services.trial_service import trial_status

logger = logging.getLogger(__name__)

PREMIUM_ADMIN_EMAILS = frozenset(env_csv("PREMIUM_ADMIN_EMAILS", lowercase=True))


@dataclass(frozen=True)
class SubscriptionSummary:
    id: str
    grant_type: str
    provider: str
    status: str
    expires_at: Optional[datetime]
    days_remaining: Optional[int]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.grant_type,
            "provider": self.provider,
            "expiresAt": isoformat_utc(self.expires_at),
            "daysRemaining": self.days_remaining,
            "status": self.status,
        }


@dataclass(frozen=True)
class PremiumStatusReport:
    status: EntitlementStatus
    active_subscriptions: Sequence[SubscriptionSummary] = field(default_factory=tuple)

    def to_payload(self) -> Dict[str, Any]:
        payload = self.status.to_payload()
        payload["activeSubscriptions"] = [item.to_payload() for item in self.active_subscriptions]
        return payload


def is_admin_user(user: User, *, admin_emails: Optional[frozenset[str]] = None) -> bool:
    if bool(getattr(user, "is_admin", False)):
        return True
    allowlist = PREMIUM_ADMIN_EMAILS if admin_emails is None else admin_emails
    email = (getattr(user, "email", "") or "").strip().lower()
    return bool(email) and email in allowlist


def has_subscription_history(session: Session, user_id: str) -> bool:
    """True once any redemption or grant row (in any status) exists for the user."""
    redeemed = exists().where(PromoCodeRedemption.user_id == user_id)
    granted = exists().where(PremiumSubscription.user_id == user_id)
    return bool(session.execute(select(or_(redeemed, granted))).scalar())


def _active_grants(session: Session, user_id: str, now: datetime) -> List[PremiumSubscription]:
    rows = session.execute(
        select(PremiumSubscription)
        .where(PremiumSubscription.user_id == user_id)
        .where(PremiumSubscription.status == GrantStatus.ACTIVE.value)
    ).scalars()
    # Expiry is compared in Python: SQLite hands back naive datetimes.
    return [
        row
        for row in rows
        if row.expires_at is None or ensure_utc(row.expires_at) > now
    ]


def _snapshot(row: PremiumSubscription) -> GrantSnapshot:
    return GrantSnapshot(
        id=row.id,
        grant_type=row.grant_type,
        provider=row.provider,
        status=row.status,
        expires_at=ensure_utc(row.expires_at),
    )


def _summaries(grants: Sequence[GrantSnapshot], now: datetime) -> List[SubscriptionSummary]:
    ordered = sorted(
        grants,
        key=lambda grant: (grant.expires_at is not None, -(grant.expires_at.timestamp() if grant.expires_at else 0)),
    )
    return [
        SubscriptionSummary(
            id=grant.id,
            grant_type=grant.grant_type,
            provider=grant.provider,
            status=grant.status,
            expires_at=grant.expires_at,
            days_remaining=None if grant.expires_at is None else days_until(grant.expires_at, now),
        )
        for grant in ordered
    ]


def load_entitlement_facts(session: Session, user: User, *, now: Optional[datetime] = None) -> EntitlementFacts:
    reference = ensure_utc(now) if now is not None else utc_now()
    grants = [_snapshot(row) for row in _active_grants(session, user.id, reference)]
    history = has_subscription_history(session, user.id)
    created_at = ensure_utc(user.created_at) or reference
    return EntitlementFacts(
        is_admin=is_admin_user(user),
        active_subscriptions=tuple(grants),
        trial=trial_status(created_at, history, now=reference),
    )


def resolve_premium_status(session: Session, user: User, *, now: Optional[datetime] = None) -> PremiumStatusReport:
    """Recompute the user's premium status from ledger, grants and trial facts."""
    reference = ensure_utc(now) if now is not None else utc_now()
    facts = load_entitlement_facts(session, user, now=reference)
    status = evaluate(facts, now=reference)
    record_evaluation(status.source.value)
    logger.info(
        "Premium status resolved user=%s premium=%s source=%s grants=%d",
        user.id,
        status.is_premium,
        status.source.value,
        len(facts.active_subscriptions),
    )
    return PremiumStatusReport(status=status, active_subscriptions=tuple(_summaries(facts.active_subscriptions, reference)))


def delete_account(session: Session, user_id: str) -> bool:
    """Remove the user with every redemption and grant row in one transaction."""
    user = session.get(User, user_id)
    if user is None:
        return False
    try:
        session.execute(delete(PromoCodeRedemption).where(PromoCodeRedemption.user_id == user_id))
        session.execute(delete(PremiumSubscription).where(PremiumSubscription.user_id == user_id))
        session.delete(user)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to delete account user=%s.", user_id)
        raise
    logger.info("Account deleted user=%s", user_id)
    audit_account_event(action="account.delete", user_id=user_id)
    return True


__all__ = [
    "PREMIUM_ADMIN_EMAILS",
    "PremiumStatusReport",
    "SubscriptionSummary",
    "delete_account",
    "has_subscription_history",
    "is_admin_user",
    "load_entitlement_facts",
    "resolve_premium_status",
]
