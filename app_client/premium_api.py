"""HTTP client for the premium endpoints, used by the device app."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import httpx

from core.env import env_float, env_str
from core.time_utils import parse_iso_datetime
from services.entitlement_evaluator import EntitlementStatus

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = env_str("PREMIUM_API_BASE_URL") or "http://localhost:8000"
DEFAULT_TIMEOUT_SECONDS = env_float("PREMIUM_API_TIMEOUT_SECONDS", 10.0, minimum=0.1)

TokenProvider = Callable[[], Optional[str]]


class PremiumApiError(RuntimeError):
    """Base error for premium API calls."""


class PremiumApiUnauthenticated(PremiumApiError):
    """No session token, or the server rejected it."""


class PremiumApiUnreachable(PremiumApiError):
    """Network failure, timeout or server-side error."""


class PremiumApiRejected(PremiumApiError):
    """The server refused the request with a client error."""

    def __init__(self, status_code: int, code: Optional[str], message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


@dataclass(frozen=True)
class RedeemOutcome:
    message: str
    expires_at: Optional[datetime]
    days_remaining: Optional[int]
    is_lifetime: bool

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RedeemOutcome":
        days = payload.get("daysRemaining")
        return cls(
            message=str(payload.get("message") or ""),
            expires_at=parse_iso_datetime(payload.get("expiresAt")),
            days_remaining=int(days) if days is not None else None,
            is_lifetime=bool(payload.get("isLifetime")),
        )


def _error_payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {"error": response.text}
    return payload if isinstance(payload, dict) else {"error": str(payload)}


class PremiumApiClient:
    """Thin synchronous wrapper around ``/api/premium`` routes."""

    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._token_provider = token_provider
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else DEFAULT_TIMEOUT_SECONDS
        self._transport = transport

    def _request(self, method: str, path: str, *, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        token = self._token_provider()
        if not token:
            raise PremiumApiUnauthenticated("Not signed in.")
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            with httpx.Client(base_url=self._base_url, timeout=self._timeout, transport=self._transport) as client:
                response = client.request(method, path, headers=headers, json=json)
        except httpx.HTTPError as exc:
            logger.warning("Premium API %s %s failed: %s", method, path, exc)
            raise PremiumApiUnreachable(str(exc) or "Premium API unreachable.") from exc

        if response.status_code == 401:
            payload = _error_payload(response)
            raise PremiumApiUnauthenticated(str(payload.get("error") or "Authentication required."))
        if response.status_code >= 500:
            logger.warning("Premium API %s %s returned %s", method, path, response.status_code)
            raise PremiumApiUnreachable(f"Premium API returned {response.status_code}.")
        if response.status_code >= 400:
            payload = _error_payload(response)
            message = str(payload.get("error") or payload.get("message") or "Request rejected.")
            logger.info("Premium API %s %s rejected %s: %s", method, path, response.status_code, message)
            raise PremiumApiRejected(response.status_code, payload.get("code"), message)
        try:
            body = response.json()
        except ValueError as exc:
            raise PremiumApiError("Malformed response from premium API.") from exc
        if not isinstance(body, dict):
            raise PremiumApiError("Malformed response from premium API.")
        return body

    def fetch_status(self) -> EntitlementStatus:
        return EntitlementStatus.from_payload(self._request("GET", "/api/premium/status"))

    def redeem_code(self, code: str) -> RedeemOutcome:
        return RedeemOutcome.from_payload(self._request("POST", "/api/premium/redeem-code", json={"code": code}))


__all__ = [
    "PremiumApiClient",
    "PremiumApiError",
    "PremiumApiRejected",
    "PremiumApiUnauthenticated",
    "PremiumApiUnreachable",
    "RedeemOutcome",
]
