"""
Authentication routes: register, login, token refresh, profile
"""

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from auth_utils import REFRESH_TOKEN, hash_password, verify_password
from crud.user import UserRepository
from middleware.auth import authenticate_token
from middleware.pipeline import RequestContext, guard
from middleware.validation import validate_request
from models.schemas import LoginRequest, RefreshRequest, RegisterRequest
from utils.errors import AuthInvalid, BadRequest, NotFound, UserNotFound

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


def public_user(user) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "subscriptionTier": user.subscription_tier,
        "subscriptionStatus": user.subscription_status,
        "subscriptionExpiresAt": user.subscription_expires_at,
        "createdAt": user.created_at,
        "lastLoginAt": user.last_login_at,
    }


@auth_router.post("/register", status_code=201)
async def register(ctx: RequestContext = Depends(guard(validate_request(RegisterRequest)))):
    """Create a new free-tier account and return a token pair"""
    data = ctx.body
    user_repo = UserRepository(ctx.db)

    if await user_repo.email_or_username_taken(data["email"], data.get("username")):
        raise BadRequest("User with this email or username already exists")

    user = await user_repo.create_user({
        "email": data["email"],
        "password_hash": hash_password(data["password"]),
        "username": data.get("username"),
        "first_name": data.get("firstName"),
        "last_name": data.get("lastName"),
    })
    await ctx.db.commit()
    logger.info(f"Registered user {user.id}")

    return {
        "message": "User registered successfully",
        "user": public_user(user),
        "tokens": ctx.token_service.issue_token_pair(user.id),
    }


@auth_router.post("/login")
async def login(ctx: RequestContext = Depends(guard(validate_request(LoginRequest)))):
    """Check credentials and return a token pair"""
    user_repo = UserRepository(ctx.db)

    user = await user_repo.get_user_by_email(ctx.body["email"])
    if not user or not verify_password(ctx.body["password"], user.password_hash):
        raise BadRequest("Invalid email or password", error="Invalid Credentials")

    await user_repo.touch_last_login(user.id)

    return {
        "message": "Login successful",
        "user": public_user(user),
        "tokens": ctx.token_service.issue_token_pair(user.id),
    }


@auth_router.post("/refresh")
async def refresh(ctx: RequestContext = Depends(guard(validate_request(RefreshRequest)))):
    """Exchange a refresh token for a new token pair"""
    payload = ctx.token_service.verify(ctx.body["refreshToken"])
    if payload is None or payload.kind != REFRESH_TOKEN:
        raise AuthInvalid("Invalid refresh token")

    user = await UserRepository(ctx.db).get_user_by_id(payload.user_id)
    if not user:
        raise UserNotFound()

    return {"tokens": ctx.token_service.issue_token_pair(user.id)}


@auth_router.get("/me")
async def me(ctx: RequestContext = Depends(guard(authenticate_token))):
    """Profile of the authenticated user"""
    user = await UserRepository(ctx.db).get_user_by_id(ctx.user["id"])
    if not user:
        raise NotFound("User not found")
    return {"user": public_user(user)}


@auth_router.post("/logout")
async def logout():
    """Tokens are stateless; the client discards them"""
    return JSONResponse(content={"message": "Logout successful"})
