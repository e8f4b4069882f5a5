"""
Billing Service - Stripe checkout and webhook handling
"""

import json
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import stripe

from config.settings import Settings
from crud.user import UserRepository
from database_models import User
from models.plans import Tier, SubscriptionStatus

logger = logging.getLogger(__name__)

RESERVED_METADATA_KEYS = ("userId", "planId")


class BillingError(Exception):
    pass


class BillingService:
    """
    Service class for handling billing-related business logic.
    Subscription state written here is what the gating steps read.
    """

    def __init__(self, db: AsyncSession, settings: Settings):
        """
        Initialize the billing service.

        Args:
            db: AsyncSession instance for database operations
            settings: Application settings (Stripe keys)
        """
        self.db = db
        self.settings = settings
        self.user_repo = UserRepository(db)

    def plan_for_price(self, price_id: str) -> Optional[str]:
        """Map a configured Stripe price id back to its plan"""
        prices = {
            self.settings.stripe_pro_price_id: Tier.PRO.value,
            self.settings.stripe_enterprise_price_id: Tier.ENTERPRISE.value,
        }
        prices.pop(None, None)
        return prices.get(price_id)

    async def create_checkout_session(self, user: User, price_id: str, success_url: str,
                                      cancel_url: str, metadata: Optional[dict] = None) -> dict:
        """
        Create a Stripe Checkout session for ``user``, creating the Stripe customer on first use.

        Returns:
            {"sessionId": ..., "url": ...}

        Raises:
            BillingError: If Stripe is not configured
        """
        if not self.settings.stripe_secret_key:
            raise BillingError("STRIPE_SECRET_KEY is not set. Cannot create checkout session.")
        stripe.api_key = self.settings.stripe_secret_key

        customer_id = user.stripe_customer_id
        if not customer_id:
            name = f"{user.first_name or ''} {user.last_name or ''}".strip() or user.username
            customer = stripe.Customer.create(
                email=user.email,
                name=name,
                metadata={"userId": user.id},
            )
            customer_id = customer.id
            await self.user_repo.update_user(user, {"stripe_customer_id": customer_id})

        # userId and planId come from the user and the charged price, never from the caller
        session_metadata = {k: v for k, v in (metadata or {}).items() if k not in RESERVED_METADATA_KEYS}
        session_metadata["userId"] = user.id
        plan = self.plan_for_price(price_id)
        if plan:
            session_metadata["planId"] = plan

        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            customer=customer_id,
            client_reference_id=user.id,
            metadata=session_metadata,
        )
        return {"sessionId": session.id, "url": session.url}

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool):
        """
        Schedule (or withdraw) cancellation of a Stripe subscription at the end of its period.

        Returns:
            The updated Stripe subscription

        Raises:
            BillingError: If Stripe is not configured
        """
        if not self.settings.stripe_secret_key:
            raise BillingError("STRIPE_SECRET_KEY is not set. Cannot update subscription.")
        stripe.api_key = self.settings.stripe_secret_key

        logger.info(f"Setting cancel_at_period_end={cancel} on subscription {subscription_id}")
        return stripe.Subscription.modify(subscription_id, cancel_at_period_end=cancel)

    def construct_event(self, payload: bytes, signature: str) -> dict:
        """
        Verify the Stripe signature over the raw payload and decode the event.

        Raises:
            stripe.SignatureVerificationError: If the signature does not match
            ValueError: If the payload is not JSON
        """
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"),
            signature,
            self.settings.stripe_webhook_secret,
            stripe.Webhook.DEFAULT_TOLERANCE,
        )
        return json.loads(payload)

    async def process_webhook(self, event: dict) -> bool:
        """
        Apply a verified Stripe event to the stored subscription.

        Returns:
            True if the event type was handled, False if it was only acknowledged
        """
        event_type = event.get("type")
        obj = event.get("data", {}).get("object", {})
        handler = self._handlers().get(event_type)
        if handler is None:
            logger.info(f"Unhandled Stripe event type {event_type}")
            return False

        logger.info(f"Processing Stripe webhook event: {event_type}")
        await handler(obj)
        return True

    def _handlers(self):
        return {
            "checkout.session.completed": self._checkout_completed,
            "customer.subscription.updated": self._subscription_updated,
            "customer.subscription.deleted": self._subscription_deleted,
            "invoice.payment_succeeded": self._payment_succeeded,
            "invoice.payment_failed": self._payment_failed,
        }

    async def _checkout_completed(self, session: dict) -> None:
        user_id = session.get("client_reference_id")
        plan = (session.get("metadata") or {}).get("planId")
        if not user_id or not plan:
            logger.warning("checkout.session.completed without client_reference_id or planId, ignoring")
            return
        await self.user_repo.update_subscription(
            {
                "subscription_tier": plan,
                "stripe_customer_id": session.get("customer"),
                "stripe_subscription_id": session.get("subscription"),
                "subscription_status": SubscriptionStatus.ACTIVE.value,
                # Cleared until customer.subscription.updated reports the period end
                "subscription_expires_at": None,
            },
            user_id=user_id,
        )

    async def _subscription_updated(self, subscription: dict) -> None:
        period_end = subscription.get("current_period_end")
        await self.user_repo.update_subscription(
            {
                "stripe_subscription_id": subscription.get("id"),
                "subscription_status": subscription.get("status"),
                "subscription_expires_at": datetime.fromtimestamp(period_end) if period_end else None,
            },
            stripe_customer_id=subscription.get("customer"),
        )

    async def _subscription_deleted(self, subscription: dict) -> None:
        await self.user_repo.update_subscription(
            {
                "subscription_tier": Tier.FREE.value,
                "subscription_status": SubscriptionStatus.CANCELED.value,
                "stripe_subscription_id": None,
                "subscription_expires_at": datetime.now(),
            },
            stripe_customer_id=subscription.get("customer"),
        )

    async def _payment_succeeded(self, invoice: dict) -> None:
        await self.user_repo.update_subscription(
            {"subscription_status": SubscriptionStatus.ACTIVE.value},
            stripe_customer_id=invoice.get("customer"),
        )

    async def _payment_failed(self, invoice: dict) -> None:
        await self.user_repo.update_subscription(
            {"subscription_status": SubscriptionStatus.PAST_DUE.value},
            stripe_customer_id=invoice.get("customer"),
        )
