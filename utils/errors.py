"""
Error taxonomy for the request pipeline.

Every recognised rejection is an AppError carrying its HTTP status, a
machine-readable error key, a human message and optional context fields.
Context fields are rendered with their public (camelCase) names.
"""
from typing import Any, Dict, List, Optional

from utils.responses import error_response
from models.plans import UPGRADE_URL, MANAGE_URL


class AppError(Exception):
    status_code = 500
    error = "Internal Server Error"
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None, *, error: Optional[str] = None,
                 status_code: Optional[int] = None, **fields: Any):
        self.message = message or self.default_message
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code
        self.fields: Dict[str, Any] = fields
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message, **self.fields}

    def to_response(self):
        return error_response(self.error, self.message, status_code=self.status_code, **self.fields)


class AuthMissing(AppError):
    status_code = 401
    error = "Unauthorized"
    default_message = "Access token is required"


class AuthInvalid(AppError):
    status_code = 403
    error = "Forbidden"
    default_message = "Invalid or expired token"


class UserNotFound(AppError):
    status_code = 403
    error = "Forbidden"
    default_message = "User not found"


class NotFound(AppError):
    status_code = 404
    error = "Not Found"
    default_message = "Resource not found"


class BadRequest(AppError):
    status_code = 400
    error = "Bad Request"
    default_message = "Bad request"


class TierInsufficient(AppError):
    status_code = 403
    error = "Subscription Required"

    def __init__(self, current_tier: Optional[str], required_tier: str):
        super().__init__(
            f"This feature requires a {required_tier} subscription or higher",
            currentTier=current_tier,
            requiredTier=required_tier,
            upgradeUrl=UPGRADE_URL,
        )


class SubscriptionInactive(AppError):
    status_code = 403
    error = "Inactive Subscription"

    def __init__(self, status: Optional[str]):
        super().__init__(
            "Your subscription is not active. Please update your payment method.",
            status=status,
            manageUrl=MANAGE_URL,
        )


class UsageExceeded(AppError):
    status_code = 429
    error = "Usage Limit Exceeded"

    def __init__(self, feature: str, current_usage: int, limit: int, tier: Optional[str], reset_date=None):
        super().__init__(
            f"You have reached your {feature} limit for the current period",
            currentUsage=current_usage,
            limit=limit,
            tier=tier,
            upgradeUrl=UPGRADE_URL,
            resetDate=reset_date,
        )


class ValidationFailed(AppError):
    status_code = 400
    error = "Validation Error"
    default_message = "Request validation failed"

    def __init__(self, details: List[Dict[str, Any]], message: Optional[str] = None):
        super().__init__(message, details=details)


class WebhookSignatureMissing(AppError):
    status_code = 400
    error = "Webhook Validation Failed"
    default_message = "Missing webhook signature or secret"


class InternalError(AppError):
    status_code = 500
    error = "Internal Server Error"


class ShortCircuit(Exception):
    """Raised by pipeline dependencies to hand a ready response back to the app."""

    def __init__(self, response):
        self.response = response
        super().__init__(response.status_code)
