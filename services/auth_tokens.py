"""Bearer access token issuing and verification."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt

from core.env import env_int, env_str


class AuthTokenError(RuntimeError):
    """Raised when a bearer token is missing, malformed or expired."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


_JWT_ALG = env_str("AUTH_JWT_ALG") or "HS256"
_JWT_ISSUER = env_str("AUTH_JWT_ISSUER") or "easy-budget-auth"
_JWT_AUDIENCE = env_str("AUTH_JWT_AUDIENCE") or "easy-budget-app"
_ACCESS_TOKEN_TTL = env_int("AUTH_ACCESS_TOKEN_TTL_SECONDS", 3600, minimum=60)


def _jwt_secret() -> str:
    secret = env_str("AUTH_JWT_SECRET") or env_str("AUTH_SECRET")
    if not secret:
        raise RuntimeError("AUTH_JWT_SECRET or AUTH_SECRET must be set.")
    return secret


def create_access_token(
    *,
    user_id: str,
    email: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
) -> Tuple[str, int]:
    """Issue a signed access token for ``user_id``."""

    ttl = ttl_seconds if ttl_seconds is not None else _ACCESS_TOKEN_TTL
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": user_id,
        "aud": _JWT_AUDIENCE,
        "iss": _JWT_ISSUER,
        "scope": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if email:
        payload["email"] = email
    token = jwt.encode(payload, _jwt_secret(), algorithm=_JWT_ALG)
    return token, ttl


def decode_token(token: str, *, scope: Optional[str] = "access") -> Dict[str, Any]:
    """Verify signature, issuer, audience and scope; return the claims."""

    try:
        payload = jwt.decode(
            token,
            _jwt_secret(),
            algorithms=[_JWT_ALG],
            audience=_JWT_AUDIENCE,
            issuer=_JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthTokenError("auth.token_expired", "Session expired. Please sign in again.") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthTokenError("auth.token_invalid", "Invalid session token.") from exc
    if scope and payload.get("scope") != scope:
        raise AuthTokenError("auth.token_invalid", "Token scope mismatch.")
    if not payload.get("sub"):
        raise AuthTokenError("auth.token_invalid", "Token subject missing.")
    return payload


def extract_bearer(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    value = header_value.strip()
    if value.lower().startswith("bearer "):
        token = value[7:].strip()
        return token or None
    return None


__all__ = [
    "AuthTokenError",
    "create_access_token",
    "decode_token",
    "extract_bearer",
]
