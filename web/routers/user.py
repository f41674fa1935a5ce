"""Profile and account lifecycle routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.time_utils import isoformat_utc
from database import get_db
from models.user import User
from schemas.api.premium import AccountDeletedResponse, UpdateProfileRequest, UserProfileResponse
from services.premium_service import delete_account, resolve_premium_status
from services.user_service import ProfileUpdateError, update_user_name
from web.deps import get_current_user

router = APIRouter(prefix="/user", tags=["User"])


def _profile_payload(db: Session, user: User) -> UserProfileResponse:
    report = resolve_premium_status(db, user)
    return UserProfileResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        premiumStatus=report.status.is_premium,
        createdAt=isoformat_utc(user.created_at),
    )


def _user_not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"code": "account.not_found", "message": "User not found"},
    )


@router.get("/profile", response_model=UserProfileResponse, summary="Return the caller's profile.")
def read_profile(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserProfileResponse:
    return _profile_payload(db, user)


@router.patch("/profile", response_model=UserProfileResponse, summary="Update the caller's display name.")
def update_profile(
    payload: Optional[UpdateProfileRequest] = Body(default=None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserProfileResponse:
    if payload is None or "name" not in payload.model_fields_set:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "profile.no_fields", "message": "No fields to update"},
        )
    try:
        updated = update_user_name(db, user.id, payload.name)
    except ProfileUpdateError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_detail()) from exc
    if updated is None:
        raise _user_not_found()
    return _profile_payload(db, updated)


@router.delete("/account", response_model=AccountDeletedResponse, summary="Permanently delete the caller's account.")
def delete_user_account(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AccountDeletedResponse:
    user_id = user.id
    if not delete_account(db, user_id):
        raise _user_not_found()
    return AccountDeletedResponse(message="Account permanently deleted", deletedUserId=user_id)


__all__ = ["router"]
