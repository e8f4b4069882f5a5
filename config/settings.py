"""
Configuration settings for the application
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Normalized Plan IDs
PLAN_FREE = "free"
PLAN_PRO = "pro"
PLAN_ENTERPRISE = "enterprise"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # Token signing (checked when the app is built, see auth_utils.TokenConfig)
    jwt_secret: Optional[str] = Field(default=None, alias="JWT_SECRET")
    jwt_expires_in: str = Field(default="7d", alias="JWT_EXPIRES_IN")
    jwt_refresh_expires_in: str = Field(default="30d", alias="JWT_REFRESH_EXPIRES_IN")

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_pro_price_id: Optional[str] = Field(default=None, alias="STRIPE_PRO_PRICE_ID")
    stripe_enterprise_price_id: Optional[str] = Field(default=None, alias="STRIPE_ENTERPRISE_PRICE_ID")

    # Infrastructure configuration
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./colorbook.db", alias="DATABASE_URL")

    # Rate limiting: points per duration (seconds) per client IP
    rate_limit_points: int = Field(default=100, alias="RATE_LIMIT_POINTS")
    rate_limit_duration: int = Field(default=60, alias="RATE_LIMIT_DURATION")
    # Only enable behind a reverse proxy that sets X-Forwarded-For
    trust_proxy: bool = Field(default=False, alias="TRUST_PROXY")

    # Frontend configuration
    frontend_url: str = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")

    @property
    def is_production(self) -> bool:
        return bool(self.env and self.env.lower() == "production")


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = settings.is_production
