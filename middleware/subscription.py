"""
Subscription steps: status refresh, tier gate, usage gate and webhook signature check
"""

import logging

from crud.usage import USAGE_SOURCES, UsageRepository
from crud.user import UserRepository
from middleware.pipeline import RequestContext, SubscriptionSnapshot, UsageInfo
from models.plans import Tier, SubscriptionStatus, UNLIMITED, usage_limit
from utils.dates import is_past, start_of_month, start_of_next_month
from utils.errors import (
    AppError,
    AuthMissing,
    InternalError,
    NotFound,
    SubscriptionInactive,
    TierInsufficient,
    UsageExceeded,
    WebhookSignatureMissing,
)

logger = logging.getLogger(__name__)

STRIPE_SIGNATURE_HEADER = "stripe-signature"


async def check_subscription_status(ctx: RequestContext) -> None:
    """
    Load the user's tier/status/expiry and attach a SubscriptionSnapshot.

    An expiry in the past downgrades the stored subscription to free/expired
    before the snapshot is taken.
    """
    if not ctx.user or not ctx.user.get("id"):
        raise AuthMissing(
            "User must be authenticated to check subscription status",
            error="Authentication Required",
        )

    try:
        user_repo = UserRepository(ctx.db)
        row = await user_repo.get_subscription(ctx.user["id"])
        if row is None:
            raise NotFound("User account not found", error="User Not Found")

        tier, status, expires_at = row.subscription_tier, row.subscription_status, row.subscription_expires_at

        if is_past(expires_at):
            if (tier, status) != (Tier.FREE.value, SubscriptionStatus.EXPIRED.value):
                logger.info(f"Subscription expired for user {ctx.user['id']}, downgrading to free")
                await user_repo.downgrade_expired_subscription(ctx.user["id"])
            tier, status = Tier.FREE.value, SubscriptionStatus.EXPIRED.value

        ctx.subscription = SubscriptionSnapshot(tier=tier, status=status, expires_at=expires_at)
    except AppError:
        raise
    except Exception as e:
        logger.error(f"Subscription check error: {e}", exc_info=True)
        raise InternalError("Failed to verify subscription status", error="Subscription Check Failed")


def require_subscription(required_tier: str = Tier.PRO.value):
    """
    Build a step that admits users whose tier ranks at least ``required_tier``.

    Paid tiers must also be actively billed; the free tier is usable whatever its status.
    """
    required = Tier.coerce(required_tier, default=Tier.PRO)

    async def require_subscription_step(ctx: RequestContext) -> None:
        await check_subscription_status(ctx)

        try:
            subscription = ctx.subscription
            current = Tier.coerce(subscription.tier, default=Tier.FREE)

            if current < required:
                raise TierInsufficient(current_tier=subscription.tier, required_tier=required_tier)

            if subscription.status != SubscriptionStatus.ACTIVE.value and subscription.tier != Tier.FREE.value:
                raise SubscriptionInactive(status=subscription.status)
        except AppError:
            raise
        except Exception as e:
            logger.error(f"Subscription requirement check error: {e}", exc_info=True)
            raise InternalError("Failed to verify subscription access", error="Access Control Failed")

    return require_subscription_step


def check_usage_limits(feature: str):
    """
    Build a step enforcing the per-tier quota for ``feature``.

    Monthly features count rows created since the start of the calendar month;
    "projects" counts every project the user owns. Unknown features are not limited.
    """

    async def check_usage_limits_step(ctx: RequestContext) -> None:
        await check_subscription_status(ctx)

        try:
            tier = ctx.subscription.tier
            limit = usage_limit(tier, feature)

            if limit == UNLIMITED:
                return

            source = USAGE_SOURCES.get(feature)
            if source is None or limit is None:
                logger.debug(f"No usage limit configured for feature {feature!r}")
                return

            since = start_of_month() if source.monthly else None
            current_usage = await UsageRepository(ctx.db).count(source.model, ctx.user["id"], since=since)

            if current_usage >= limit:
                raise UsageExceeded(
                    feature=feature,
                    current_usage=current_usage,
                    limit=limit,
                    tier=tier,
                    reset_date=start_of_next_month() if source.monthly else None,
                )

            ctx.usage = UsageInfo(current=current_usage, limit=limit, remaining=limit - current_usage)
        except AppError:
            raise
        except Exception as e:
            logger.error(f"Usage limit check error: {e}", exc_info=True)
            raise InternalError("Failed to verify usage limits", error="Usage Check Failed")

    return check_usage_limits_step


async def validate_webhook_signature(ctx: RequestContext) -> None:
    """Reject webhook calls that carry no Stripe signature, or arrive while no secret is configured."""
    signature = ctx.headers.get(STRIPE_SIGNATURE_HEADER)
    if not signature or not ctx.settings.stripe_webhook_secret:
        logger.warning("Webhook rejected: missing signature header or webhook secret")
        raise WebhookSignatureMissing()
