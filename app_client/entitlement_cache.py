"""Device-side cache of the last server-confirmed entitlement status.

The cache only ever stores what the server returned. It never grants premium on
its own: a stale entry, or one whose expiry has passed, reads as not premium.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from app_client.kv_store import KeyValueStore
from core.env import env_int
from core.time_utils import ensure_utc, isoformat_utc, parse_iso_datetime, utc_now
from services.entitlement_evaluator import NOT_PREMIUM, EntitlementStatus, days_until

logger = logging.getLogger(__name__)

CACHE_KEY = "@easy_budget_premium_status"
DEFAULT_MAX_AGE = timedelta(hours=env_int("ENTITLEMENT_CACHE_MAX_AGE_HOURS", 24, minimum=1))


def is_stale(timestamp: datetime, now: datetime, max_age: timedelta = DEFAULT_MAX_AGE) -> bool:
    """True when ``timestamp`` is strictly older than ``max_age`` at ``now``."""
    return ensure_utc(now) - ensure_utc(timestamp) > max_age


def status_as_of(status: EntitlementStatus, now: datetime) -> EntitlementStatus:
    """Re-age a cached status: a lapsed grant reads as not premium, days are recounted."""
    if not status.is_premium or status.is_lifetime or status.expires_at is None:
        return status
    reference = ensure_utc(now)
    if status.expires_at <= reference:
        return NOT_PREMIUM
    return replace(status, days_remaining=days_until(status.expires_at, reference))


@dataclass(frozen=True)
class CachedEntitlement:
    status: EntitlementStatus
    computed_at: datetime

    def is_stale(self, now: datetime, max_age: timedelta = DEFAULT_MAX_AGE) -> bool:
        return is_stale(self.computed_at, now, max_age)


class LocalEntitlementCache:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        key: str = CACHE_KEY,
        max_age: Optional[timedelta] = None,
    ) -> None:
        self._store = store
        self._key = key
        self._max_age = max_age if max_age is not None else DEFAULT_MAX_AGE

    @property
    def max_age(self) -> timedelta:
        return self._max_age

    def read(self) -> Optional[CachedEntitlement]:
        raw = self._store.get(self._key)
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
            status = EntitlementStatus.from_payload(payload["status"])
            computed_at = parse_iso_datetime(payload["computedAt"])
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding corrupt entitlement cache entry: %s", exc)
            return None
        if computed_at is None:
            logger.warning("Discarding entitlement cache entry without a timestamp.")
            return None
        return CachedEntitlement(status=status, computed_at=computed_at)

    def write(self, status: EntitlementStatus, timestamp: Optional[datetime] = None) -> CachedEntitlement:
        """Overwrite the cache with a server-confirmed status (last write wins)."""
        computed_at = ensure_utc(timestamp) if timestamp is not None else utc_now()
        payload = {"status": status.to_payload(), "computedAt": isoformat_utc(computed_at)}
        self._store.set(self._key, json.dumps(payload))
        return CachedEntitlement(status=status, computed_at=computed_at)

    def clear(self) -> None:
        self._store.remove(self._key)

    def is_stale(self, timestamp: datetime, now: Optional[datetime] = None) -> bool:
        return is_stale(timestamp, now if now is not None else utc_now(), self._max_age)

    def effective_status(self, now: Optional[datetime] = None) -> EntitlementStatus:
        """Status that premium-gated features may rely on right now."""
        reference = ensure_utc(now) if now is not None else utc_now()
        cached = self.read()
        if cached is None or cached.is_stale(reference, self._max_age):
            return NOT_PREMIUM
        if not cached.status.is_premium:
            return NOT_PREMIUM
        return status_as_of(cached.status, reference)


__all__ = [
    "CACHE_KEY",
    "CachedEntitlement",
    "DEFAULT_MAX_AGE",
    "LocalEntitlementCache",
    "is_stale",
    "status_as_of",
]
