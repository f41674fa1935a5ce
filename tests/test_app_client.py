import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import httpx
import pytest

from app_client.entitlement_cache import CACHE_KEY, LocalEntitlementCache, is_stale
from app_client.entitlement_sync import EntitlementSync
from app_client.kv_store import InMemoryKeyValueStore, JsonFileKeyValueStore
from app_client.premium_api import (
    PremiumApiClient,
    PremiumApiError,
    PremiumApiRejected,
    PremiumApiUnauthenticated,
    PremiumApiUnreachable,
)
from core.entitlement_constants import EntitlementSource
from services.entitlement_evaluator import EntitlementStatus

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

SUBSCRIPTION = EntitlementStatus(
    is_premium=True,
    is_lifetime=False,
    expires_at=NOW + timedelta(days=10),
    days_remaining=10,
    source=EntitlementSource.SUBSCRIPTION,
)
LIFETIME = EntitlementStatus(
    is_premium=True,
    is_lifetime=True,
    expires_at=None,
    days_remaining=None,
    source=EntitlementSource.LIFETIME_CODE,
)


def _client(handler, token="token-1") -> PremiumApiClient:
    return PremiumApiClient(lambda: token, base_url="https://api.test", transport=httpx.MockTransport(handler))


# key-value stores -----------------------------------------------------------


def test_json_file_store_persists_across_instances(tmp_path: Path):
    path = tmp_path / "state" / "kv.json"
    JsonFileKeyValueStore(path).set("a", "1")

    store = JsonFileKeyValueStore(path)
    assert store.get("a") == "1"
    store.remove("a")
    assert store.get("a") is None


def test_json_file_store_ignores_corrupt_file(tmp_path: Path):
    path = tmp_path / "kv.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileKeyValueStore(path)

    assert store.get("a") is None
    store.set("a", "2")
    assert json.loads(path.read_text(encoding="utf-8")) == {"a": "2"}


# cache -----------------------------------------------------------------------


def test_staleness_is_strictly_older_than_max_age():
    assert is_stale(NOW - timedelta(hours=24), NOW, timedelta(hours=24)) is False
    assert is_stale(NOW - timedelta(hours=24, seconds=1), NOW, timedelta(hours=24)) is True


def test_cache_write_read_and_clear():
    store = InMemoryKeyValueStore()
    cache = LocalEntitlementCache(store)

    cache.write(SUBSCRIPTION, NOW)
    cached = cache.read()

    assert cached is not None
    assert cached.status == SUBSCRIPTION
    assert cached.computed_at == NOW
    assert store.get(CACHE_KEY) is not None
    cache.clear()
    assert cache.read() is None


def test_corrupt_cache_entry_reads_as_empty():
    cache = LocalEntitlementCache(InMemoryKeyValueStore({CACHE_KEY: "garbage"}))

    assert cache.read() is None
    assert cache.effective_status(NOW).is_premium is False


def test_cache_overwrite_is_last_write_wins():
    cache = LocalEntitlementCache(InMemoryKeyValueStore())
    cache.write(LIFETIME, NOW)
    cache.write(SUBSCRIPTION, NOW + timedelta(minutes=1))

    assert cache.read().status == SUBSCRIPTION


def test_effective_status_distrusts_stale_or_lapsed_entries():
    cache = LocalEntitlementCache(InMemoryKeyValueStore(), max_age=timedelta(hours=24))
    cache.write(SUBSCRIPTION, NOW)

    assert cache.effective_status(NOW + timedelta(hours=1)).days_remaining == 10
    assert cache.effective_status(NOW + timedelta(hours=25)).is_premium is False

    lapsing = EntitlementStatus(
        is_premium=True,
        is_lifetime=False,
        expires_at=NOW + timedelta(hours=2),
        days_remaining=1,
        source=EntitlementSource.TRIAL,
    )
    cache.write(lapsing, NOW)
    assert cache.effective_status(NOW + timedelta(hours=1)).is_premium is True
    assert cache.effective_status(NOW + timedelta(hours=3)).is_premium is False


# API client -----------------------------------------------------------------


def test_fetch_status_sends_bearer_token():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=dict(SUBSCRIPTION.to_payload(), activeSubscriptions=[]))

    status = _client(handler).fetch_status()

    assert status == SUBSCRIPTION
    assert seen[0].url.path == "/api/premium/status"
    assert seen[0].headers["Authorization"] == "Bearer token-1"


def test_missing_token_never_calls_server():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(PremiumApiUnauthenticated):
        _client(handler, token=None).fetch_status()


def test_redeem_maps_client_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"code": "EASY2"}
        return httpx.Response(400, json={"error": "You have already redeemed this promo code", "code": "promo.already_redeemed"})

    with pytest.raises(PremiumApiRejected) as excinfo:
        _client(handler).redeem_code("EASY2")

    assert excinfo.value.status_code == 400
    assert excinfo.value.code == "promo.already_redeemed"
    assert excinfo.value.message == "You have already redeemed this promo code"


@pytest.mark.parametrize(
    "response, error",
    [
        (httpx.Response(401, json={"error": "Authentication required."}), PremiumApiUnauthenticated),
        (httpx.Response(503, text="unavailable"), PremiumApiUnreachable),
        (httpx.Response(200, text="<html>"), PremiumApiError),
    ],
)
def test_status_error_mapping(response, error):
    with pytest.raises(error):
        _client(lambda request: response).fetch_status()


def test_network_failure_is_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(PremiumApiUnreachable):
        _client(handler).fetch_status()


def test_redeem_success_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "success": True,
                "message": "Premium access granted for 30 days",
                "expiresAt": "2026-03-31T09:00:00Z",
                "daysRemaining": 30,
                "isLifetime": False,
            },
        )

    outcome = _client(handler).redeem_code("EASY2")

    assert outcome.days_remaining == 30
    assert outcome.expires_at == NOW + timedelta(days=30)
    assert outcome.is_lifetime is False


# sync -----------------------------------------------------------------------


class FakeApi:
    def __init__(self, status=SUBSCRIPTION):
        self.status = status
        self.error = None
        self.redeemed: List[str] = []

    def fetch_status(self):
        if self.error is not None:
            raise self.error
        return self.status

    def redeem_code(self, code):
        if self.error is not None:
            raise self.error
        self.redeemed.append(code)
        self.status = LIFETIME
        return "ok"


def _sync(api=None):
    cache = LocalEntitlementCache(InMemoryKeyValueStore())
    return EntitlementSync(api or FakeApi(), cache), cache


def test_current_without_cache_is_not_premium_and_stale():
    sync, _ = _sync()

    snapshot = sync.current(NOW)

    assert snapshot.status.is_premium is False
    assert snapshot.is_stale is True
    assert snapshot.computed_at is None


def test_refresh_writes_cache_and_notifies_listeners():
    sync, cache = _sync()
    received = []
    unsubscribe = sync.subscribe(received.append)

    assert sync.refresh(NOW) == SUBSCRIPTION
    assert cache.read().status == SUBSCRIPTION
    assert received == [SUBSCRIPTION]
    assert sync.current(NOW + timedelta(hours=1)).is_stale is False

    unsubscribe()
    sync.refresh(NOW)
    assert received == [SUBSCRIPTION]


def test_refresh_keeps_cache_when_server_unreachable():
    api = FakeApi()
    sync, cache = _sync(api)
    sync.refresh(NOW)
    api.error = PremiumApiUnreachable("offline")

    assert sync.refresh(NOW + timedelta(hours=2)) is None
    assert cache.read().computed_at == NOW


def test_refresh_surfaces_authentication_errors():
    api = FakeApi()
    api.error = PremiumApiUnauthenticated("signed out")
    sync, _ = _sync(api)

    with pytest.raises(PremiumApiUnauthenticated):
        sync.refresh(NOW)


def test_failing_listener_does_not_block_others():
    sync, _ = _sync()
    received = []

    def broken(_status):
        raise RuntimeError("boom")

    sync.subscribe(broken)
    sync.subscribe(received.append)
    sync.refresh(NOW)

    assert received == [SUBSCRIPTION]


def test_refresh_in_background():
    sync, cache = _sync()

    with ThreadPoolExecutor(max_workers=1) as executor:
        result = sync.refresh_in_background(executor).result(timeout=5)

    assert result == SUBSCRIPTION
    assert cache.read() is not None


def test_redeem_round_trips_and_refreshes():
    api = FakeApi()
    sync, cache = _sync(api)

    assert sync.redeem_code("EASY2") == "ok"

    assert api.redeemed == ["EASY2"]
    assert cache.read().status == LIFETIME


def test_redeem_errors_surface_and_cache_untouched():
    api = FakeApi()
    api.error = PremiumApiRejected(404, "promo.not_found", "Promo code not found")
    sync, cache = _sync(api)

    with pytest.raises(PremiumApiRejected):
        sync.redeem_code("NOPE")
    assert cache.read() is None


def test_require_fresh_needs_recent_premium_cache():
    sync, _ = _sync()
    assert sync.require_fresh(NOW) is False

    sync.refresh(NOW)

    assert sync.require_fresh(NOW + timedelta(hours=1)) is True
    assert sync.require_fresh(NOW + timedelta(hours=30)) is False


def test_sign_out_clears_cache():
    sync, cache = _sync()
    received = []
    sync.subscribe(received.append)
    sync.refresh(NOW)

    sync.on_sign_out()

    assert cache.read() is None
    assert received[-1].is_premium is False


def test_current_reports_lapsed_grant_as_not_premium():
    expiring = EntitlementStatus(
        is_premium=True,
        is_lifetime=False,
        expires_at=NOW + timedelta(minutes=30),
        days_remaining=1,
        source=EntitlementSource.SUBSCRIPTION,
    )
    sync, _ = _sync(FakeApi(status=expiring))
    sync.refresh(NOW)

    snapshot = sync.current(NOW + timedelta(hours=3))

    assert snapshot.is_stale is False
    assert snapshot.status.is_premium is False
    assert snapshot.status.source is EntitlementSource.NONE


def test_current_recounts_days_remaining():
    sync, _ = _sync()
    sync.refresh(NOW)

    snapshot = sync.current(NOW + timedelta(days=3, hours=1))

    assert snapshot.status.is_premium is True
    assert snapshot.status.days_remaining == 7


def test_current_keeps_lifetime_grant():
    sync, _ = _sync(FakeApi(status=LIFETIME))
    sync.refresh(NOW)

    assert sync.current(NOW + timedelta(hours=20)).status == LIFETIME


class StatusFailsAfterRedeemApi(FakeApi):
    def fetch_status(self):
        raise PremiumApiUnauthenticated("token expired")


def test_redeem_outcome_survives_failed_follow_up_refresh():
    api = StatusFailsAfterRedeemApi()
    sync, cache = _sync(api)

    outcome = sync.redeem_code("EASY2")

    assert outcome == "ok"
    assert api.redeemed == ["EASY2"]
    assert cache.read() is None
