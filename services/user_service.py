"""Profile reads and edits for the signed-in user."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.user import User
from services.audit_log import audit_account_event

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200


class ProfileUpdateError(ValueError):
    """Rejected profile edit; carries a stable ``code`` for the API."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


def validate_name(value: Any) -> str:
    if not isinstance(value, str):
        raise ProfileUpdateError("profile.invalid_name", "Name must be a string")
    if len(value) > MAX_NAME_LENGTH:
        raise ProfileUpdateError("profile.invalid_name", "Name is too long")
    return value


def update_user_name(session: Session, user_id: str, name: Any) -> Optional[User]:
    """Set the display name; ``None`` when the user no longer exists."""
    cleaned = validate_name(name)
    user = session.get(User, user_id)
    if user is None:
        return None
    user.name = cleaned
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to update profile for user=%s.", user_id)
        raise
    logger.info("Profile updated user=%s", user_id)
    audit_account_event(action="account.profile_update", user_id=user_id, extra={"fields": ["name"]})
    return user


__all__ = ["MAX_NAME_LENGTH", "ProfileUpdateError", "update_user_name", "validate_name"]
