"""Keep the device's entitlement cache in step with the server.

Screens read :meth:`EntitlementSync.current` synchronously and subscribe for
updates; refreshes run on a worker thread so rendering never waits on the
network.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from app_client.entitlement_cache import LocalEntitlementCache, status_as_of
from app_client.premium_api import PremiumApiClient, PremiumApiError, PremiumApiUnreachable, RedeemOutcome
from core.time_utils import ensure_utc, utc_now
from services.entitlement_evaluator import NOT_PREMIUM, EntitlementStatus

logger = logging.getLogger(__name__)

EntitlementListener = Callable[[EntitlementStatus], None]


@dataclass(frozen=True)
class EntitlementSnapshot:
    status: EntitlementStatus
    computed_at: Optional[datetime]
    is_stale: bool


class EntitlementSync:
    def __init__(self, api: PremiumApiClient, cache: LocalEntitlementCache) -> None:
        self._api = api
        self._cache = cache
        self._listeners: List[EntitlementListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: EntitlementListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, status: EntitlementStatus) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(status)
            except Exception:
                logger.exception("Entitlement listener %r failed.", listener)

    def current(self, now: Optional[datetime] = None) -> EntitlementSnapshot:
        """Last known status without touching the network."""
        reference = ensure_utc(now) if now is not None else utc_now()
        cached = self._cache.read()
        if cached is None:
            return EntitlementSnapshot(status=NOT_PREMIUM, computed_at=None, is_stale=True)
        return EntitlementSnapshot(
            status=status_as_of(cached.status, reference),
            computed_at=cached.computed_at,
            is_stale=cached.is_stale(reference, self._cache.max_age),
        )

    def refresh(self, now: Optional[datetime] = None) -> Optional[EntitlementStatus]:
        """Fetch the server status and overwrite the cache.

        Returns ``None`` when the server cannot be reached; the previous cache
        entry is kept. Other API errors propagate.
        """
        try:
            status = self._api.fetch_status()
        except PremiumApiUnreachable as exc:
            logger.info("Premium status refresh skipped, server unreachable: %s", exc)
            return None
        with self._lock:
            self._cache.write(status, now)
        self._notify(status)
        return status

    def refresh_in_background(self, executor: Executor) -> "Future[Optional[EntitlementStatus]]":
        return executor.submit(self.refresh)

    def redeem_code(self, code: str) -> RedeemOutcome:
        """Redeem on the server, then pull the new status into the cache.

        Redemption errors propagate. Once the server has accepted the code the
        outcome is always returned; a failed follow-up refresh is only logged.
        """
        outcome = self._api.redeem_code(code)
        try:
            self.refresh()
        except PremiumApiError as exc:
            logger.warning("Status refresh after redemption failed: %s", exc)
        return outcome

    def require_fresh(self, now: Optional[datetime] = None) -> bool:
        """Whether a premium-gated action may proceed on cached data alone."""
        return self._cache.effective_status(now).is_premium

    def on_sign_out(self) -> None:
        with self._lock:
            self._cache.clear()
        self._notify(NOT_PREMIUM)


__all__ = ["EntitlementListener", "EntitlementSnapshot", "EntitlementSync"]
