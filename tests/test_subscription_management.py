"""
Tests for scheduling and withdrawing subscription cancellation
"""
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from tests.conftest import make_settings


@pytest.fixture
def settings():
    return make_settings(STRIPE_SECRET_KEY="sk_test_123")


@pytest.mark.asyncio
async def test_cancel_schedules_end_of_period(client, make_user, auth_headers):
    user = await make_user(tier="pro", stripe_subscription_id="sub_123")

    with patch("stripe.Subscription.modify", return_value=SimpleNamespace(cancel_at=1893456000)) as modify:
        response = await client.post("/api/payments/cancel-subscription", headers=auth_headers(user.id))

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Subscription will be cancelled at the end of the current period",
        "cancelAt": 1893456000,
    }
    modify.assert_called_once_with("sub_123", cancel_at_period_end=True)


@pytest.mark.asyncio
async def test_reactivate_withdraws_cancellation(client, make_user, auth_headers):
    user = await make_user(tier="pro", stripe_subscription_id="sub_123")

    with patch("stripe.Subscription.modify", return_value=SimpleNamespace(cancel_at=None)) as modify:
        response = await client.post("/api/payments/reactivate-subscription", headers=auth_headers(user.id))

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Subscription reactivated successfully"}
    modify.assert_called_once_with("sub_123", cancel_at_period_end=False)


@pytest.mark.asyncio
@pytest.mark.parametrize("path, message", [
    ("/api/payments/cancel-subscription", "No active subscription found"),
    ("/api/payments/reactivate-subscription", "No subscription found"),
])
async def test_without_stripe_subscription_returns_404(client, make_user, auth_headers, path, message):
    user = await make_user(tier="free")

    with patch("stripe.Subscription.modify") as modify:
        response = await client.post(path, headers=auth_headers(user.id))

    assert response.status_code == 404
    assert response.json()["message"] == message
    modify.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("path, message", [
    ("/api/payments/cancel-subscription", "Failed to cancel subscription"),
    ("/api/payments/reactivate-subscription", "Failed to reactivate subscription"),
])
async def test_stripe_failure_returns_500(client, make_user, auth_headers, path, message):
    user = await make_user(tier="pro", stripe_subscription_id="sub_123")

    with patch("stripe.Subscription.modify", side_effect=stripe.StripeError("card network down")):
        response = await client.post(path, headers=auth_headers(user.id))

    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error", "message": message}


@pytest.mark.asyncio
async def test_cancel_requires_authentication(client):
    response = await client.post("/api/payments/cancel-subscription")

    assert response.status_code == 401
