from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from database import get_db
from services.auth_tokens import create_access_token
from web.errors import register_error_handlers
from web.routers.premium import router as premium_router
from web.routers.user import router as user_router


def _auth(user) -> Dict[str, str]:
    token, _ = create_access_token(user_id=user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def api_client(session_factory) -> Iterator[TestClient]:
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(premium_router, prefix="/api")
    app.include_router(user_router, prefix="/api")

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    client = TestClient(app)
    try:
        yield client
    finally:
        client.close()


def test_status_requires_authentication(api_client: TestClient):
    response = api_client.get("/api/premium/status")

    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required.", "code": "auth.required"}


def test_status_rejects_unknown_user(api_client: TestClient):
    token, _ = create_access_token(user_id="ghost")

    response = api_client.get("/api/premium/status", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["code"] == "auth.user_not_found"


def test_status_for_new_account_reports_trial(api_client: TestClient, make_user):
    user = make_user(created_at=datetime.now(timezone.utc) - timedelta(days=2))

    response = api_client.get("/api/premium/status", headers=_auth(user))

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["isPremium"] is True
    assert payload["source"] == "trial"
    assert payload["daysRemaining"] == 12
    assert payload["activeSubscriptions"] == []


def test_redeem_then_status(api_client: TestClient, make_user, make_promo):
    user = make_user(created_at=datetime.now(timezone.utc) - timedelta(days=40))
    make_promo("EASY2", duration_days=30)

    redeemed = api_client.post("/api/premium/redeem-code", json={"code": "easy2"}, headers=_auth(user))

    assert redeemed.status_code == 200, redeemed.text
    body = redeemed.json()
    assert body["success"] is True
    assert body["daysRemaining"] == 30
    assert body["message"] == "Premium access granted for 30 days"

    status = api_client.get("/api/premium/status", headers=_auth(user)).json()
    assert status["isPremium"] is True
    assert status["source"] == "subscription"
    assert status["daysRemaining"] == 30
    assert status["activeSubscriptions"][0]["provider"] == "promo"
    assert status["activeSubscriptions"][0]["type"] == "one-time"


@pytest.mark.parametrize("body", [{}, {"code": ""}, {"code": "   "}, {"code": ["EASY2"]}])
def test_redeem_rejects_missing_or_malformed_code(api_client: TestClient, make_user, body):
    user = make_user()

    response = api_client.post("/api/premium/redeem-code", json=body, headers=_auth(user))

    assert response.status_code == 400
    assert "error" in response.json()


def test_redeem_unknown_code_is_404(api_client: TestClient, make_user):
    user = make_user()

    response = api_client.post("/api/premium/redeem-code", json={"code": "NOPE"}, headers=_auth(user))

    assert response.status_code == 404
    assert response.json() == {"error": "Promo code not found", "code": "promo.not_found"}


def test_redeem_twice_is_400(api_client: TestClient, make_user, make_promo):
    user = make_user()
    make_promo("EASY2", duration_days=30)
    api_client.post("/api/premium/redeem-code", json={"code": "EASY2"}, headers=_auth(user))

    response = api_client.post("/api/premium/redeem-code", json={"code": "EASY2"}, headers=_auth(user))

    assert response.status_code == 400
    assert response.json()["code"] == "promo.already_redeemed"


def test_redeem_past_cap_is_400(api_client: TestClient, make_user, make_promo):
    first = make_user()
    second = make_user()
    make_promo("ONCE", duration_days=7, max_redemptions=1)
    api_client.post("/api/premium/redeem-code", json={"code": "ONCE"}, headers=_auth(first))

    response = api_client.post("/api/premium/redeem-code", json={"code": "ONCE"}, headers=_auth(second))

    assert response.status_code == 400
    assert response.json() == {
        "error": "This promo code has reached its redemption limit",
        "code": "promo.limit_reached",
    }


def test_limits_apply_only_without_premium(api_client: TestClient, make_user):
    free_user = make_user(created_at=datetime.now(timezone.utc) - timedelta(days=30))
    admin = make_user(is_admin=True)

    free_limits = api_client.get("/api/premium/limits", headers=_auth(free_user)).json()
    admin_limits = api_client.get("/api/premium/limits", headers=_auth(admin)).json()

    assert free_limits["limitsApply"] is True
    assert free_limits["maxExpenses"] == 8
    assert admin_limits["limitsApply"] is False
    assert admin_limits["isPremium"] is True


def test_delete_account(api_client: TestClient, make_user, make_promo):
    user = make_user()
    make_promo("EASY2", duration_days=30)
    headers = _auth(user)
    api_client.post("/api/premium/redeem-code", json={"code": "EASY2"}, headers=headers)

    response = api_client.delete("/api/user/account", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Account permanently deleted", "deletedUserId": user.id}
    again = api_client.delete("/api/user/account", headers=headers)
    assert again.status_code == 401
