"""
Authentication utilities: Password hashing and JWT token management
"""

import re
import jwt
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from typing import Optional

from config.settings import Settings

# Password hashing context
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto"
)

# JWT configuration
ALGORITHM = "HS256"

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$")
_DURATION_UNITS = {
    "": "seconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def hash_password(password: str) -> str:
    """Hash a password using argon2"""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    if not password or not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def parse_duration(value: str) -> timedelta:
    """
    Parse a lifetime such as "7d", "12h", "30m" or "3600" (seconds).

    Raises:
        ValueError: If the value is not a recognised duration
    """
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


@dataclass(frozen=True)
class TokenConfig:
    """Signing material and lifetimes for the token service."""
    secret: str
    access_ttl: timedelta = timedelta(days=7)
    refresh_ttl: timedelta = timedelta(days=30)
    algorithm: str = ALGORITHM

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        """
        Build the token configuration from application settings.

        Raises:
            RuntimeError: If JWT_SECRET is not set
        """
        if not settings.jwt_secret:
            raise RuntimeError("JWT_SECRET environment variable is required")
        return cls(
            secret=settings.jwt_secret,
            access_ttl=parse_duration(settings.jwt_expires_in),
            refresh_ttl=parse_duration(settings.jwt_refresh_expires_in),
        )


@dataclass(frozen=True)
class TokenPayload:
    user_id: str
    kind: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """
    Issues and verifies signed bearer tokens.

    Tokens carry ``sub`` (user id) and ``type`` (access or refresh) claims.
    """

    def __init__(self, config: TokenConfig):
        if not config.secret:
            raise ValueError("Token signing secret must not be empty")
        self.config = config

    def _issue(self, user_id: str, kind: str, ttl: timedelta, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "type": kind,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self.config.secret, algorithm=self.config.algorithm)

    def issue_access_token(self, user_id: str, now: Optional[datetime] = None) -> str:
        return self._issue(user_id, ACCESS_TOKEN, self.config.access_ttl, now)

    def issue_refresh_token(self, user_id: str, now: Optional[datetime] = None) -> str:
        return self._issue(user_id, REFRESH_TOKEN, self.config.refresh_ttl, now)

    def issue_token_pair(self, user_id: str) -> dict:
        return {
            "accessToken": self.issue_access_token(user_id),
            "refreshToken": self.issue_refresh_token(user_id),
        }

    def verify(self, token: str) -> Optional[TokenPayload]:
        """Decode a token. Returns None if it is expired, malformed, forged or missing claims."""
        if not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self.config.secret,
                algorithms=[self.config.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError:
            return None

        kind = claims.get("type")
        if kind not in (ACCESS_TOKEN, REFRESH_TOKEN):
            return None

        return TokenPayload(
            user_id=claims["sub"],
            kind=kind,
            issued_at=datetime.fromtimestamp(claims.get("iat", 0), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )
