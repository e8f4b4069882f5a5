"""
Authentication steps: required bearer auth and optional auth
"""

import logging
from typing import Optional

from auth_utils import ACCESS_TOKEN
from crud.user import UserRepository
from database_models import User
from middleware.pipeline import RequestContext
from models.plans import SubscriptionStatus
from utils.errors import AppError, AuthMissing, AuthInvalid, UserNotFound, InternalError

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header, or None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def user_context(user: User) -> dict:
    """Request-scoped view of a user record"""
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "subscription_tier": user.subscription_tier,
        "subscription_status": user.subscription_status,
    }


async def authenticate_token(ctx: RequestContext) -> None:
    """
    Require a valid access token and attach the user to the context.

    Rejections:
    - 401 when no bearer token is present
    - 403 when the token is invalid, expired or not an access token
    - 403 when the user no longer exists
    - 500 on unexpected failures (store unavailable, ...)
    """
    try:
        token = extract_bearer_token(ctx.headers.get("authorization"))
        if not token:
            raise AuthMissing()

        payload = ctx.token_service.verify(token)
        if payload is None or payload.kind != ACCESS_TOKEN:
            raise AuthInvalid()

        user_repo = UserRepository(ctx.db)
        user = await user_repo.get_user_by_id(payload.user_id)
        if not user:
            logger.warning(f"Authentication failed: user not found: {payload.user_id}")
            raise UserNotFound()

        user_data = user_context(user)
        user_data["has_active_subscription"] = user.subscription_status == SubscriptionStatus.ACTIVE.value
        ctx.user = user_data

        # Best-effort: a failed last-login write is logged, never fatal
        try:
            await user_repo.touch_last_login(user.id)
        except Exception as e:
            logger.warning(f"Could not update last login for user {user.id}: {e}")
            await ctx.db.rollback()
    except AppError:
        raise
    except Exception as e:
        logger.error(f"Authentication error: {e}", exc_info=True)
        raise InternalError("Authentication failed")


async def optional_auth(ctx: RequestContext) -> None:
    """Attach the user when a valid access token is present; never rejects."""
    try:
        token = extract_bearer_token(ctx.headers.get("authorization"))
        if not token:
            return

        payload = ctx.token_service.verify(token)
        if payload is None or payload.kind != ACCESS_TOKEN:
            return

        user = await UserRepository(ctx.db).get_user_by_id(payload.user_id)
        if user:
            ctx.user = user_context(user)
    except Exception as e:
        logger.debug(f"Optional auth skipped: {e}")
        ctx.user = None
