"""Premium status, promo code redemption and free-tier limit routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from models.user import User
from schemas.api.premium import (
    FreeTierLimitsResponse,
    PremiumStatusResponse,
    RedeemCodeRequest,
    RedeemCodeResponse,
)
from services import promo_ledger
from services.freemium_limits import load_free_tier_limits
from services.premium_service import resolve_premium_status
from web.deps import get_current_user

router = APIRouter(prefix="/premium", tags=["Premium"])

_REDEEM_ERROR_STATUS = {
    promo_ledger.PromoCodeInvalidError: status.HTTP_400_BAD_REQUEST,
    promo_ledger.PromoCodeNotFoundError: status.HTTP_404_NOT_FOUND,
    promo_ledger.PromoCodeAlreadyRedeemedError: status.HTTP_400_BAD_REQUEST,
    promo_ledger.PromoCodeLimitReachedError: status.HTTP_400_BAD_REQUEST,
}


@router.get("/status", response_model=PremiumStatusResponse, summary="Return the caller's premium status.")
def read_premium_status(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PremiumStatusResponse:
    report = resolve_premium_status(db, user)
    return PremiumStatusResponse(**report.to_payload())


@router.post("/redeem-code", response_model=RedeemCodeResponse, summary="Redeem a promo code for premium access.")
def redeem_promo_code(
    payload: RedeemCodeRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RedeemCodeResponse:
    user_id = user.id
    try:
        result = promo_ledger.redeem(db, user_id=user_id, code=payload.code)
    except promo_ledger.PromoRedemptionError as exc:
        status_code = _REDEEM_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
        raise HTTPException(status_code=status_code, detail=exc.to_detail()) from exc
    return RedeemCodeResponse(**result.to_payload())


@router.get("/limits", response_model=FreeTierLimitsResponse, summary="Return the free-tier caps for the caller.")
def read_free_tier_limits(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FreeTierLimitsResponse:
    report = resolve_premium_status(db, user)
    limits = load_free_tier_limits()
    return FreeTierLimitsResponse(
        isPremium=report.status.is_premium,
        limitsApply=not report.status.is_premium,
        **limits.to_dict(),
    )


__all__ = ["router"]
