"""Promo code ledger: race-safe, exactly-once redemption bookkeeping.

Both race-sensitive rules are delegated to the database:

* per-user uniqueness is the ``uq_promo_code_redemptions_user_code`` constraint,
  so a duplicate attempt fails at insert time instead of being detected by an
  earlier read;
* the redemption cap is a single conditional ``UPDATE`` that only increments
  ``current_redemptions`` while it is below ``max_redemptions``.

The redemption row, the premium grant and the counter increment commit in one
transaction. Any rejection rolls back everything written so far.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.entitlement_constants import GrantProvider, GrantStatus, GrantType
from core.time_utils import ensure_utc, isoformat_utc, utc_now
from models.premium import PremiumSubscription, PromoCode, PromoCodeRedemption
from services.audit_log import audit_promo_event
from services.entitlement_evaluator import days_until
from services.entitlement_metrics import record_redemption

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 64


class PromoRedemptionError(RuntimeError):
    """Terminal, user-visible redemption failure. Never retried automatically."""

    code = "promo.redemption_failed"
    outcome = "failed"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


class PromoCodeInvalidError(PromoRedemptionError):
    code = "promo.invalid_code"
    outcome = "invalid"


class PromoCodeNotFoundError(PromoRedemptionError):
    code = "promo.not_found"
    outcome = "not_found"


class PromoCodeAlreadyRedeemedError(PromoRedemptionError):
    code = "promo.already_redeemed"
    outcome = "already_redeemed"


class PromoCodeLimitReachedError(PromoRedemptionError):
    code = "promo.limit_reached"
    outcome = "limit_reached"


@dataclass(frozen=True)
class RedemptionResult:
    redemption_id: str
    subscription_id: str
    code: str
    redeemed_at: datetime
    expires_at: Optional[datetime]
    days_remaining: Optional[int]

    @property
    def is_lifetime(self) -> bool:
        return self.expires_at is None

    @property
    def message(self) -> str:
        if self.is_lifetime:
            return "Lifetime premium access granted"
        return f"Premium access granted for {self.days_remaining} days"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "expiresAt": isoformat_utc(self.expires_at),
            "daysRemaining": self.days_remaining,
            "isLifetime": self.is_lifetime,
        }


def normalize_code(raw: Any) -> str:
    """Trim and upper-case a user supplied code."""
    if not isinstance(raw, str):
        raise PromoCodeInvalidError("Code is required")
    normalized = raw.strip().upper()
    if not normalized:
        raise PromoCodeInvalidError("Code is required")
    if len(normalized) > MAX_CODE_LENGTH:
        raise PromoCodeInvalidError("Code is too long")
    return normalized


def get_promo_code(session: Session, code: str) -> Optional[PromoCode]:
    normalized = normalize_code(code)
    return session.execute(select(PromoCode).where(PromoCode.code == normalized)).scalar_one_or_none()


def create_promo_code(
    session: Session,
    *,
    code: str,
    duration_days: Optional[int],
    max_redemptions: Optional[int] = None,
) -> PromoCode:
    """Seed a promo code; an existing code is returned untouched."""
    normalized = normalize_code(code)
    if duration_days is not None and duration_days < 1:
        raise ValueError("duration_days must be positive or None for lifetime codes")
    if max_redemptions is not None and max_redemptions < 1:
        raise ValueError("max_redemptions must be positive or None for unlimited codes")

    existing = session.execute(select(PromoCode).where(PromoCode.code == normalized)).scalar_one_or_none()
    if existing is not None:
        logger.info("Promo code %s already exists, skipping.", normalized)
        return existing

    promo = PromoCode(
        id=str(uuid.uuid4()),
        code=normalized,
        duration_days=duration_days,
        max_redemptions=max_redemptions,
        current_redemptions=0,
    )
    session.add(promo)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to seed promo code %s.", normalized)
        raise
    logger.info(
        "Seeded promo code %s (duration_days=%s, max_redemptions=%s).",
        normalized,
        duration_days,
        max_redemptions,
    )
    return promo


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "23505" or getattr(orig, "sqlstate", None) == "23505":
        return True
    message = str(orig or exc).lower()
    return "unique" in message or "duplicate" in message


def _reject(user_id: str, code: Optional[str], error: PromoRedemptionError) -> PromoRedemptionError:
    logger.warning("Promo redemption rejected user=%s code=%s outcome=%s", user_id, code, error.outcome)
    record_redemption(error.outcome)
    audit_promo_event(action="promo.redeem", user_id=user_id, code=code, outcome=error.outcome)
    return error


def redeem(
    session: Session,
    *,
    user_id: str,
    code: Any,
    now: Optional[datetime] = None,
) -> RedemptionResult:
    """Redeem ``code`` for ``user_id`` exactly once.

    The session must not carry pending work: the ledger commits or rolls back the
    whole transaction itself.
    """
    try:
        normalized = normalize_code(code)
    except PromoCodeInvalidError as exc:
        raise _reject(user_id, None, exc)

    reference = ensure_utc(now) if now is not None else utc_now()

    promo = session.execute(select(PromoCode).where(PromoCode.code == normalized)).scalar_one_or_none()
    if promo is None:
        raise _reject(user_id, normalized, PromoCodeNotFoundError("Promo code not found"))

    promo_id = promo.id
    expires_at = None if promo.duration_days is None else reference + timedelta(days=promo.duration_days)
    redemption_id = str(uuid.uuid4())
    subscription_id = str(uuid.uuid4())

    try:
        session.add(
            PromoCodeRedemption(
                id=redemption_id,
                user_id=user_id,
                promo_code_id=promo_id,
                redeemed_at=reference,
                expires_at=expires_at,
            )
        )
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        if not _is_unique_violation(exc):
            logger.exception("Redemption insert failed for user=%s code=%s.", user_id, normalized)
            raise
        raise _reject(
            user_id,
            normalized,
            PromoCodeAlreadyRedeemedError("You have already redeemed this promo code"),
        ) from exc

    try:
        claimed = session.execute(
            update(PromoCode)
            .where(PromoCode.id == promo_id)
            .where(
                or_(
                    PromoCode.max_redemptions.is_(None),
                    PromoCode.current_redemptions < PromoCode.max_redemptions,
                )
            )
            .values(current_redemptions=PromoCode.current_redemptions + 1, updated_at=reference)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            session.rollback()
            raise _reject(
                user_id,
                normalized,
                PromoCodeLimitReachedError("This promo code has reached its redemption limit"),
            )

        session.add(
            PremiumSubscription(
                id=subscription_id,
                user_id=user_id,
                grant_type=GrantType.ONE_TIME.value,
                provider=GrantProvider.PROMO.value,
                transaction_id=redemption_id,
                status=GrantStatus.ACTIVE.value,
                purchased_at=reference,
                expires_at=expires_at,
            )
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Promo redemption transaction failed for user=%s code=%s.", user_id, normalized)
        raise

    result = RedemptionResult(
        redemption_id=redemption_id,
        subscription_id=subscription_id,
        code=normalized,
        redeemed_at=reference,
        expires_at=expires_at,
        days_remaining=None if expires_at is None else days_until(expires_at, reference),
    )
    logger.info(
        "Promo code redeemed user=%s code=%s expires_at=%s",
        user_id,
        normalized,
        isoformat_utc(expires_at) or "lifetime",
    )
    record_redemption("success")
    audit_promo_event(
        action="promo.redeem",
        user_id=user_id,
        code=normalized,
        outcome="success",
        extra={"redemptionId": redemption_id, "expiresAt": isoformat_utc(expires_at)},
    )
    return result


__all__ = [
    "MAX_CODE_LENGTH",
    "PromoCodeAlreadyRedeemedError",
    "PromoCodeInvalidError",
    "PromoCodeLimitReachedError",
    "PromoCodeNotFoundError",
    "PromoRedemptionError",
    "RedemptionResult",
    "create_promo_code",
    "get_promo_code",
    "normalize_code",
    "redeem",
]
