"""Promo code ledger and premium grant tables."""

from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class PromoCode(Base):
    """Redeemable code seeded by operators; only the redemption path mutates it."""

    __tablename__ = "promo_codes"
    __table_args__ = (
        CheckConstraint("current_redemptions >= 0", name="ck_promo_codes_redemptions_non_negative"),
        CheckConstraint(
            "max_redemptions IS NULL OR current_redemptions <= max_redemptions",
            name="ck_promo_codes_redemptions_within_cap",
        ),
        {"extend_existing": True},
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    code = Column(String(64), nullable=False, unique=True, index=True)
    # NULL duration grants lifetime access.
    duration_days = Column(Integer, nullable=True)
    # NULL means unlimited redemptions.
    max_redemptions = Column(Integer, nullable=True)
    current_redemptions = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def is_lifetime(self) -> bool:
        return self.duration_days is None


class PromoCodeRedemption(Base):
    """Append-only fact that a user redeemed a code."""

    __tablename__ = "promo_code_redemptions"
    __table_args__ = (
        UniqueConstraint("user_id", "promo_code_id", name="uq_promo_code_redemptions_user_code"),
        {"extend_existing": True},
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    promo_code_id = Column(String(36), ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False, index=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)


class PremiumSubscription(Base):
    """Provider-confirmed premium grant (store purchase, recurring plan or promo redemption)."""

    __tablename__ = "premium_subscriptions"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    grant_type = Column("type", String(16), nullable=False)
    provider = Column(String(32), nullable=False)
    transaction_id = Column(String(128), nullable=True)
    status = Column(String(16), nullable=False, default="active", index=True)
    purchased_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    # NULL means lifetime.
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
