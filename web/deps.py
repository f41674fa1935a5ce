"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from core.logging import get_logger
from database import get_db
from models.user import User
from services.auth_tokens import AuthTokenError, decode_token, extract_bearer

logger = get_logger(__name__)


def _unauthenticated(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Resolve the bearer token on the request to a stored user."""
    token = extract_bearer(request.headers.get("authorization"))
    if not token:
        raise _unauthenticated("auth.required", "Authentication required.")

    try:
        claims = decode_token(token, scope="access")
    except AuthTokenError as exc:
        raise _unauthenticated(exc.code, exc.message) from exc

    user = db.get(User, str(claims["sub"]))
    if user is None:
        logger.info("Bearer token refers to unknown user=%s", claims["sub"])
        raise _unauthenticated("auth.user_not_found", "User not found.")
    request.state.user = user
    return user
