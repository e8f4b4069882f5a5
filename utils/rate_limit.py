import json
from time import time
from typing import Dict, Optional, Tuple
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import logging
import redis

from utils.responses import error_response

logger = logging.getLogger(__name__)


def connect_redis(redis_url: Optional[str]):
    """Return a connected Redis client, or None to use in-memory buckets."""
    if not redis_url:
        logger.info("REDIS_URL not set. Using in-memory rate limiting.")
        return None
    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
        logger.info("Redis connected successfully for rate limiting")
        return client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Falling back to in-memory rate limiting.")
        return None


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Per-IP token bucket: ``points`` requests per ``duration`` seconds.
    Buckets live in Redis when available, in process memory otherwise.
    """

    def __init__(self, app, points: int = 100, duration: int = 60, redis_url: Optional[str] = None,
                 trust_forwarded: bool = False):
        super().__init__(app)
        self.capacity = float(points)
        self.refill_time_window = float(duration)
        self.trust_forwarded = trust_forwarded
        # Fallback: in-memory storage (ip -> (tokens, last_refill_ts))
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._last_prune = time()
        self._redis = connect_redis(redis_url)

    def _get_client_ip(self, request: Request) -> str:
        xff = request.headers.get("x-forwarded-for") if self.trust_forwarded else None
        if xff:
            # Take first IP in the list
            return xff.split(",")[0].strip()
        client = request.client
        return client.host if client else "unknown"

    def _get_redis_key(self, ip: str) -> str:
        return f"rate_limit:{ip}"

    def _refill(self, tokens: float, last_refill: float, now: float) -> float:
        elapsed = max(0.0, now - last_refill)
        return min(self.capacity, tokens + (elapsed / self.refill_time_window) * self.capacity)

    def _consume_redis(self, ip: str) -> Optional[bool]:
        """
        Returns True if allowed, False if limited, None if Redis failed.
        """
        try:
            key = self._get_redis_key(ip)
            now = time()

            bucket_data = self._redis.get(key)
            if bucket_data:
                data = json.loads(bucket_data)
                tokens = self._refill(float(data.get("tokens", 0)), float(data.get("last_refill", now)), now)
            else:
                tokens = self.capacity

            if tokens < 1.0:
                return False

            bucket_data = json.dumps({"tokens": tokens - 1.0, "last_refill": now})
            self._redis.setex(key, int(self.refill_time_window) + 10, bucket_data)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    def _prune(self, now: float) -> None:
        """Drop buckets idle for a full window, at most once per window."""
        if now - self._last_prune < self.refill_time_window:
            return
        self._last_prune = now
        idle = [ip for ip, (_, last_refill) in self._buckets.items() if now - last_refill >= self.refill_time_window]
        for ip in idle:
            del self._buckets[ip]

    def _consume_memory(self, ip: str) -> bool:
        now = time()
        self._prune(now)
        tokens, last_refill = self._buckets.get(ip, (self.capacity, now))
        tokens = self._refill(tokens, last_refill, now)

        if tokens < 1.0:
            return False

        self._buckets[ip] = (tokens - 1.0, now)
        return True

    async def dispatch(self, request: Request, call_next) -> Response:
        ip = self._get_client_ip(request)

        allowed = self._consume_redis(ip) if self._redis is not None else None
        if allowed is None:
            allowed = self._consume_memory(ip)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {ip}")
            response = error_response(
                "Too many requests",
                "Rate limit exceeded. Please try again later.",
                status_code=429,
            )
            response.headers["Retry-After"] = str(int(self.refill_time_window / self.capacity) or 1)
            return response

        return await call_next(request)
