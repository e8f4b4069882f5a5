"""
Request pipeline: an ordered list of steps run in front of a route handler.

A step is ``async def step(ctx: RequestContext) -> None``. Returning lets the
request continue with whatever the step attached to the context; raising an
AppError short-circuits with that error's response.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth_utils import TokenService
from config.settings import Settings
from database import get_db
from utils.errors import AppError, InternalError, ShortCircuit

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionSnapshot:
    tier: str
    status: str
    expires_at: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"tier": self.tier, "status": self.status, "expiresAt": self.expires_at}


@dataclass
class UsageInfo:
    current: int
    limit: int
    remaining: int

    def to_dict(self) -> Dict[str, int]:
        return {"current": self.current, "limit": self.limit, "remaining": self.remaining}


@dataclass
class RequestContext:
    """Per-request state threaded through the pipeline and handed to the route handler."""
    db: AsyncSession
    token_service: TokenService
    settings: Settings
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    raw_body: bytes = b""
    query: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    user: Optional[Dict[str, Any]] = None
    subscription: Optional[SubscriptionSnapshot] = None
    usage: Optional[UsageInfo] = None

    @classmethod
    async def from_request(cls, request: Request, db: AsyncSession) -> "RequestContext":
        raw_body = await request.body()
        body: Any = {}
        if raw_body:
            try:
                body = json.loads(raw_body)
            except ValueError:
                # Left for the validation step to report
                body = None
        return cls(
            db=db,
            token_service=request.app.state.token_service,
            settings=request.app.state.settings,
            headers=request.headers,
            body=body,
            raw_body=raw_body,
            query=dict(request.query_params),
            params=dict(request.path_params),
        )


Step = Callable[[RequestContext], Awaitable[None]]


class Pipeline:
    """Runs steps strictly in order; the first rejection wins."""

    def __init__(self, *steps: Step):
        self.steps = list(steps)

    async def run(self, ctx: RequestContext):
        """
        Returns:
            None to continue to the handler, or the JSONResponse to send instead
        """
        for step in self.steps:
            name = getattr(step, "__name__", repr(step))
            try:
                await step(ctx)
            except AppError as e:
                logger.info(f"Request rejected by {name}: {e.status_code} {e.error}")
                return e.to_response()
            except Exception as e:
                logger.error(f"Unhandled error in pipeline step {name}: {e}", exc_info=True)
                return InternalError("Request processing failed").to_response()
        return None


def guard(*steps: Step):
    """
    Build a FastAPI dependency that runs ``steps`` and yields the resulting context.

    Example:
        @router.post("/projects")
        async def create_project(ctx: RequestContext = Depends(guard(authenticate_token))):
            ...
    """
    pipeline = Pipeline(*steps)

    async def dependency(request: Request, db: AsyncSession = Depends(get_db)) -> RequestContext:
        ctx = await RequestContext.from_request(request, db)
        response = await pipeline.run(ctx)
        if response is not None:
            raise ShortCircuit(response)
        return ctx

    return dependency
