"""
Billing Router - subscription plans, Stripe checkout and webhook
Webhook is defined FIRST so it is matched before any authenticated route
"""

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import stripe

from crud.user import UserRepository
from middleware.auth import authenticate_token, optional_auth
from middleware.pipeline import RequestContext, guard
from middleware.subscription import (
    STRIPE_SIGNATURE_HEADER,
    check_subscription_status,
    validate_webhook_signature,
)
from middleware.validation import validate_request
from models.plans import SUBSCRIPTION_PLANS, Tier
from models.schemas import CreateCheckoutRequest
from services.billing_service import BillingError, BillingService
from utils.errors import BadRequest, InternalError, NotFound, WebhookSignatureMissing

logger = logging.getLogger(__name__)

# Create billing router
billing_router = APIRouter(prefix="/api/payments", tags=["payments"])


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST
@billing_router.post("/webhook")
async def stripe_webhook(ctx: RequestContext = Depends(guard(validate_webhook_signature))):
    """
    Handle Stripe webhook events with signature verification.

    Only verified events are applied; a bad signature is answered with 400 so
    Stripe surfaces the misconfiguration.
    """
    billing_service = BillingService(ctx.db, ctx.settings)

    try:
        event = billing_service.construct_event(ctx.raw_body, ctx.headers.get(STRIPE_SIGNATURE_HEADER))
    except stripe.SignatureVerificationError as e:
        logger.error(f"Stripe webhook signature verification failed: {e}")
        raise WebhookSignatureMissing("Invalid webhook signature")
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise WebhookSignatureMissing("Invalid payload format")

    try:
        await billing_service.process_webhook(event)
    except Exception as e:
        logger.error(f"Error handling webhook: {e}", exc_info=True)
        raise InternalError("Webhook handling failed")

    return {"received": True, "eventType": event.get("type")}


@billing_router.get("/plans")
async def get_plans(ctx: RequestContext = Depends(guard(optional_auth))):
    """Plan catalogue; marks the caller's plan when a valid token is supplied"""
    content = {"success": True, "plans": SUBSCRIPTION_PLANS}
    if ctx.user:
        content["currentPlan"] = Tier.coerce(ctx.user["subscription_tier"], default=Tier.FREE).value
    return content


@billing_router.post("/create-checkout-session")
async def create_checkout_session(
    ctx: RequestContext = Depends(guard(authenticate_token, validate_request(CreateCheckoutRequest)))
):
    """Create a Stripe Checkout session for the authenticated user"""
    user = await UserRepository(ctx.db).get_user_by_id(ctx.user["id"])
    if not user:
        raise NotFound("User not found")

    try:
        session = await BillingService(ctx.db, ctx.settings).create_checkout_session(
            user,
            price_id=ctx.body["priceId"],
            success_url=ctx.body["successUrl"],
            cancel_url=ctx.body["cancelUrl"],
            metadata=ctx.body.get("metadata"),
        )
    except BillingError as e:
        logger.error(str(e))
        raise BadRequest(str(e), error="Billing Unavailable")
    except stripe.StripeError as e:
        logger.error(f"Failed to create checkout session: {e}", exc_info=True)
        raise InternalError("Failed to create checkout session")

    return {"success": True, **session}


async def _change_cancellation(ctx: RequestContext, cancel: bool, not_found: str, failure: str):
    user = await UserRepository(ctx.db).get_user_by_id(ctx.user["id"])
    if not user or not user.stripe_subscription_id:
        raise NotFound(not_found)

    try:
        return BillingService(ctx.db, ctx.settings).set_cancel_at_period_end(user.stripe_subscription_id, cancel)
    except BillingError as e:
        logger.error(str(e))
        raise BadRequest(str(e), error="Billing Unavailable")
    except stripe.StripeError as e:
        logger.error(f"{failure}: {e}", exc_info=True)
        raise InternalError(failure)


@billing_router.post("/cancel-subscription")
async def cancel_subscription(ctx: RequestContext = Depends(guard(authenticate_token))):
    """Cancel at the end of the current period; access continues until then"""
    subscription = await _change_cancellation(
        ctx, True, "No active subscription found", "Failed to cancel subscription"
    )
    return {
        "success": True,
        "message": "Subscription will be cancelled at the end of the current period",
        "cancelAt": getattr(subscription, "cancel_at", None),
    }


@billing_router.post("/reactivate-subscription")
async def reactivate_subscription(ctx: RequestContext = Depends(guard(authenticate_token))):
    """Withdraw a scheduled cancellation"""
    await _change_cancellation(ctx, False, "No subscription found", "Failed to reactivate subscription")
    return {"success": True, "message": "Subscription reactivated successfully"}


@billing_router.get("/subscription")
async def get_subscription(ctx: RequestContext = Depends(guard(authenticate_token, check_subscription_status))):
    """Current subscription snapshot with the plan's feature list"""
    plan = Tier.coerce(ctx.subscription.tier, default=Tier.FREE).value
    return JSONResponse(content={
        "success": True,
        "subscription": {
            "plan": plan,
            "status": ctx.subscription.status,
            "expiresAt": ctx.subscription.expires_at.isoformat() if ctx.subscription.expires_at else None,
            "features": SUBSCRIPTION_PLANS[plan]["features"],
        },
    })
