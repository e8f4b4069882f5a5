"""
ColorBook Engine backend
Authentication, subscription gating and usage limits in front of the content API
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from auth_utils import TokenConfig, TokenService
from config.settings import Settings, settings as default_settings
from database import init_db
from routers.auth_router import auth_router
from routers.billing_router import billing_router
from routers.content_router import router as content_router
from routers.projects_router import router as projects_router
from utils.errors import AppError, ShortCircuit
from utils.rate_limit import RateLimiterMiddleware
from utils.responses import error_response

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def configure_logging(settings: Settings) -> None:
    """Write events to stderr and, when LOG_FILE is set, to that file"""
    handlers = [logging.StreamHandler()]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception on {request.method} {request.url.path}: {e}\n{traceback.format_exc()}")
            return error_response("Internal Server Error", "Something went wrong", status_code=500)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses: HSTS (production), X-Frame-Options, X-Content-Type-Options"""

    def __init__(self, app, production: bool = False):
        super().__init__(app)
        self.production = production

    async def dispatch(self, request, call_next):
        response = await call_next(request)

        if self.production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"

        return response


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Raises:
        RuntimeError: If JWT_SECRET is not configured
    """
    settings = settings or default_settings
    token_service = TokenService(TokenConfig.from_settings(settings))

    app = FastAPI(title="ColorBook Engine API", version=VERSION)
    app.state.settings = settings
    app.state.token_service = token_service

    app.add_middleware(UncaughtExceptionMiddleware)
    app.add_middleware(
        RateLimiterMiddleware,
        points=settings.rate_limit_points,
        duration=settings.rate_limit_duration,
        redis_url=settings.redis_url,
        trust_forwarded=settings.trust_proxy,
    )
    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production)

    # CORS MUST be near the bottom
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(ShortCircuit)
    async def short_circuit_handler(request: Request, exc: ShortCircuit):
        return exc.response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}")
        return exc.to_response()

    @app.on_event("startup")
    async def initialize_database():
        """Create tables that do not exist yet"""
        try:
            await init_db()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": VERSION,
            "environment": settings.env or "development",
        }

    app.include_router(auth_router)
    app.include_router(billing_router)
    app.include_router(projects_router)
    app.include_router(content_router)

    return app


configure_logging(default_settings)
app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3001)
