"""
Tests for subscription status refresh and the tier gate
"""
import json
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from crud.user import UserRepository
from middleware.pipeline import Pipeline, RequestContext
from middleware.subscription import check_subscription_status, require_subscription
from models.plans import Tier
from utils.errors import SubscriptionInactive, TierInsufficient


def context_for(test_db, settings, token_service, user=None):
    return RequestContext(
        db=test_db,
        token_service=token_service,
        settings=settings,
        user={"id": user.id} if user else None,
    )


def test_tier_order():
    assert Tier.FREE < Tier.PRO < Tier.ENTERPRISE
    assert Tier.ENTERPRISE >= Tier.PRO
    assert sorted([Tier.ENTERPRISE, Tier.FREE, Tier.PRO]) == [Tier.FREE, Tier.PRO, Tier.ENTERPRISE]


def test_unknown_tiers_fall_back():
    assert Tier.coerce("platinum", default=Tier.FREE) is Tier.FREE
    assert Tier.coerce(None, default=Tier.PRO) is Tier.PRO
    assert Tier.coerce("enterprise", default=Tier.FREE) is Tier.ENTERPRISE


@pytest.mark.asyncio
@pytest.mark.parametrize("user_tier", ["free", "pro", "enterprise"])
@pytest.mark.parametrize("required_tier", ["free", "pro", "enterprise"])
async def test_tier_gate_allows_iff_rank_is_enough(test_db, settings, token_service, make_user,
                                                   user_tier, required_tier):
    user = await make_user(tier=user_tier)
    ctx = context_for(test_db, settings, token_service, user)
    step = require_subscription(required_tier)

    if Tier(user_tier) >= Tier(required_tier):
        await step(ctx)
        assert ctx.subscription.tier == user_tier
    else:
        with pytest.raises(TierInsufficient) as excinfo:
            await step(ctx)
        assert excinfo.value.fields["requiredTier"] == required_tier
        assert excinfo.value.fields["currentTier"] == user_tier


@pytest.mark.asyncio
async def test_unknown_required_tier_ranks_as_pro(test_db, settings, token_service, make_user):
    free_user = await make_user(email="free@example.com", tier="free")
    pro_user = await make_user(email="pro@example.com", tier="pro")
    step = require_subscription("gold")

    with pytest.raises(TierInsufficient):
        await step(context_for(test_db, settings, token_service, free_user))
    await step(context_for(test_db, settings, token_service, pro_user))


@pytest.mark.asyncio
async def test_inactive_paid_subscription_is_rejected(test_db, settings, token_service, make_user):
    user = await make_user(tier="enterprise", status="past_due")

    with pytest.raises(SubscriptionInactive) as excinfo:
        await require_subscription("pro")(context_for(test_db, settings, token_service, user))

    assert excinfo.value.fields == {"status": "past_due", "manageUrl": "/subscription/manage"}

    response = excinfo.value.to_response()
    assert response.status_code == 403
    assert json.loads(response.body) == {
        "error": "Inactive Subscription",
        "message": "Your subscription is not active. Please update your payment method.",
        "status": "past_due",
        "manageUrl": "/subscription/manage",
    }


@pytest.mark.asyncio
async def test_inactive_subscription_rejected_by_pipeline(test_db, settings, token_service, make_user):
    user = await make_user(tier="pro", status="canceled")

    response = await Pipeline(require_subscription("pro")).run(context_for(test_db, settings, token_service, user))

    assert response.status_code == 403
    assert json.loads(response.body)["status"] == "canceled"


@pytest.mark.asyncio
async def test_free_tier_ignores_status(test_db, settings, token_service, make_user):
    user = await make_user(tier="free", status="canceled")
    ctx = context_for(test_db, settings, token_service, user)

    await require_subscription("free")(ctx)

    assert ctx.subscription.status == "canceled"


@pytest.mark.asyncio
async def test_status_check_requires_user(test_db, settings, token_service):
    response = await Pipeline(check_subscription_status).run(context_for(test_db, settings, token_service))

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_status_check_vanished_user_returns_404(test_db, settings, token_service):
    ctx = RequestContext(db=test_db, token_service=token_service, settings=settings, user={"id": "gone"})

    response = await Pipeline(check_subscription_status).run(ctx)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_status_check_store_failure_returns_500(test_db, settings, token_service, make_user):
    user = await make_user()
    ctx = context_for(test_db, settings, token_service, user)

    with patch.object(UserRepository, "get_subscription", side_effect=RuntimeError("store down")):
        response = await Pipeline(check_subscription_status).run(ctx)

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_expired_subscription_is_downgraded_once(test_db, settings, token_service, make_user, fetch_user):
    user = await make_user(tier="pro", status="active", expires_at=datetime.now() - timedelta(days=1))
    original = UserRepository.downgrade_expired_subscription

    with patch.object(UserRepository, "downgrade_expired_subscription", autospec=True,
                      side_effect=original) as downgrade:
        first = context_for(test_db, settings, token_service, user)
        await check_subscription_status(first)
        second = context_for(test_db, settings, token_service, user)
        await check_subscription_status(second)

    assert downgrade.call_count == 1
    assert (first.subscription.tier, first.subscription.status) == ("free", "expired")
    assert (second.subscription.tier, second.subscription.status) == ("free", "expired")

    stored = await fetch_user(user.id)
    assert (stored.subscription_tier, stored.subscription_status) == ("free", "expired")


@pytest.mark.asyncio
async def test_future_expiry_is_left_alone(test_db, settings, token_service, make_user):
    expires_at = datetime.now() + timedelta(days=10)
    user = await make_user(tier="pro", expires_at=expires_at)
    ctx = context_for(test_db, settings, token_service, user)

    await check_subscription_status(ctx)

    assert ctx.subscription.tier == "pro"
    assert ctx.subscription.status == "active"
    assert ctx.subscription.to_dict()["expiresAt"] == expires_at


@pytest.mark.asyncio
async def test_tier_gate_over_http(client, make_user, auth_headers):
    user = await make_user(tier="pro")

    response = await client.post(
        "/api/exports/bulk",
        json={"projectIds": ["6f1c1d2e-8b1a-4a8e-9a57-1f0b7c3d9e10"]},
        headers=auth_headers(user.id),
    )

    # Passed the gate; the project simply does not exist
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_insufficient_tier_body_over_http(client, make_user, auth_headers):
    user = await make_user(tier="free")

    response = await client.post(
        "/api/exports/bulk",
        json={"projectIds": ["6f1c1d2e-8b1a-4a8e-9a57-1f0b7c3d9e10"]},
        headers=auth_headers(user.id),
    )

    assert response.status_code == 403
    assert response.json() == {
        "error": "Subscription Required",
        "message": "This feature requires a pro subscription or higher",
        "currentTier": "free",
        "requiredTier": "pro",
        "upgradeUrl": "/subscription/upgrade",
    }


@pytest.mark.asyncio
async def test_expired_pro_user_loses_access_over_http(client, make_user, auth_headers):
    user = await make_user(tier="pro", expires_at=datetime.now() - timedelta(minutes=1))

    response = await client.post(
        "/api/exports/bulk",
        json={"projectIds": ["6f1c1d2e-8b1a-4a8e-9a57-1f0b7c3d9e10"]},
        headers=auth_headers(user.id),
    )
    subscription = await client.get("/api/payments/subscription", headers=auth_headers(user.id))

    assert response.status_code == 403
    assert response.json()["currentTier"] == "free"
    assert subscription.json()["subscription"]["plan"] == "free"
    assert subscription.json()["subscription"]["status"] == "expired"
