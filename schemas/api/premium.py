"""Pydantic schemas for premium status, promo redemption, profile and account routes."""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

EntitlementSourceLiteral = Literal["admin", "lifetime-code", "trial", "subscription", "none"]


class ActiveSubscriptionSchema(BaseModel):
    id: str = Field(..., description="Grant identifier.")
    type: str = Field(..., description="Grant type: one-time or recurring.")
    provider: str = Field(..., description="Origin of the grant (store, promo, ...).")
    expiresAt: Optional[str] = Field(default=None, description="ISO expiry. Null means lifetime.")
    daysRemaining: Optional[int] = Field(default=None, description="Days left, rounded up. Null for lifetime.")
    status: str = Field(..., description="Grant status.")


class PremiumStatusResponse(BaseModel):
    isPremium: bool = Field(..., description="Whether premium features are unlocked right now.")
    isLifetime: bool = Field(default=False, description="True for admin and lifetime grants.")
    expiresAt: Optional[str] = Field(default=None, description="ISO timestamp when premium lapses.")
    daysRemaining: Optional[int] = Field(default=None, description="Whole days left, rounded up.")
    source: EntitlementSourceLiteral = Field(default="none", description="Rule that granted premium.")
    activeSubscriptions: List[ActiveSubscriptionSchema] = Field(default_factory=list)


class RedeemCodeRequest(BaseModel):
    code: Optional[str] = Field(default=None, description="Promo code to redeem (case-insensitive).")


class RedeemCodeResponse(BaseModel):
    success: bool = True
    message: str
    expiresAt: Optional[str] = Field(default=None, description="Expiry of the new grant. Null for lifetime.")
    daysRemaining: Optional[int] = Field(default=None, description="Days granted. Null for lifetime.")
    isLifetime: bool = False


class FreeTierLimitsResponse(BaseModel):
    isPremium: bool
    limitsApply: bool = Field(..., description="False while premium is active.")
    maxExpenses: int
    maxMonths: int
    maxSubscriptions: int


class AccountDeletedResponse(BaseModel):
    message: str
    deletedUserId: str


class ErrorResponse(BaseModel):
    error: str
    code: Optional[str] = None


class UserProfileResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    premiumStatus: bool = Field(..., description="Result of the premium status evaluation.")
    createdAt: Optional[str] = Field(default=None, description="ISO account creation timestamp.")


class UpdateProfileRequest(BaseModel):
    # Any: the route rejects non-string names with its own message.
    name: Any = Field(default=None, description="New display name.")
