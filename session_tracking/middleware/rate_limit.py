from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
import time
from uuid import uuid4
import redis
import structlog
from session_tracking.core.config import settings

logger = structlog.get_logger()

KEY_PREFIX = "session_tracking:rate_limit"
EXEMPT_PATHS = ("/health", "/")


class RedisTokenBucket:
    """Redis-backed rate limiter with an in-memory token bucket fallback"""

    def __init__(self, rate: int, period: int, redis_client: Optional[redis.Redis] = None):
        """
        Args:
            rate: Number of requests allowed
            period: Time period in seconds
            redis_client: Client to use instead of connecting to settings.redis_url
        """
        self.rate = rate
        self.period = period
        self.buckets = {}
        try:
            self.redis_client = redis_client or redis.from_url(
                settings.redis_url,
                decode_responses=False,
                socket_connect_timeout=1
            )
            self.redis_client.ping()
            self.use_redis = True
            logger.info("rate_limiter_using_redis")
        except redis.RedisError as e:
            logger.warning("rate_limiter_redis_failed_using_memory", error=str(e))
            self.redis_client = None
            self.use_redis = False

    def is_allowed(self, key: str) -> bool:
        """
        Check if request is allowed for given key

        Args:
            key: Identifier (e.g., IP address or API key)

        Returns:
            True if allowed, False if rate limit exceeded
        """
        if self.use_redis:
            return self._is_allowed_redis(key)
        return self._is_allowed_memory(key)

    def _is_allowed_redis(self, key: str) -> bool:
        """Sliding window over a sorted set of request times"""
        redis_key = f"{KEY_PREFIX}:{key}"
        now = time.time()

        pipe = self.redis_client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - self.period)
        pipe.zcard(redis_key)
        # Unique member so requests within the same clock tick all count
        pipe.zadd(redis_key, {f"{now}:{uuid4().hex}": now})
        pipe.expire(redis_key, self.period)
        results = pipe.execute()

        # results[1] is the count before adding current request
        return results[1] < self.rate

    def _is_allowed_memory(self, key: str) -> bool:
        """Fallback: in-memory token bucket"""
        now = time.time()
        bucket = self.buckets.setdefault(key, {"tokens": self.rate, "last_update": now})

        # Refill tokens based on time passed
        time_passed = now - bucket["last_update"]
        bucket["last_update"] = now
        bucket["tokens"] = min(self.rate, bucket["tokens"] + (time_passed / self.period) * self.rate)

        if bucket["tokens"] >= 1:
            bucket["tokens"] -= 1
            return True

        return False

    def get_remaining(self, key: str) -> int:
        """Get remaining requests for a key"""
        if self.use_redis:
            now = time.time()
            count = self.redis_client.zcount(f"{KEY_PREFIX}:{key}", now - self.period, now)
            return max(0, self.rate - count)

        bucket = self.buckets.get(key)
        if not bucket:
            return self.rate
        return int(bucket["tokens"])


# Global rate limiter instance
rate_limiter = RedisTokenBucket(
    rate=settings.rate_limit_requests,
    period=settings.rate_limit_period
)


def rate_limit_key(request: Request) -> str:
    """API key when a valid one is sent, otherwise the client IP"""
    api_key = request.headers.get("X-API-Key")
    if api_key and settings.api_key and api_key == settings.api_key:
        return f"api_key:{api_key}"

    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


async def rate_limit_middleware(request: Request, call_next):
    """
    Rate limiting middleware

    Limits requests per IP address or API key
    """
    if not settings.rate_limit_enabled or request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    key = rate_limit_key(request)

    if not rate_limiter.is_allowed(key):
        remaining = rate_limiter.get_remaining(key)

        logger.warning(
            "rate_limit_exceeded",
            key=key,
            path=request.url.path,
            remaining=remaining
        )

        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "detail": "Rate limit exceeded. Please try again later.",
                "retry_after": settings.rate_limit_period
            },
            headers={
                "X-RateLimit-Limit": str(settings.rate_limit_requests),
                "X-RateLimit-Remaining": str(max(0, remaining)),
                "X-RateLimit-Reset": str(settings.rate_limit_period),
                "Retry-After": str(settings.rate_limit_period)
            }
        )

    response = await call_next(request)

    remaining = rate_limiter.get_remaining(key)
    response.headers["X-RateLimit-Limit"] = str(settings.rate_limit_requests)
    response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))
    response.headers["X-RateLimit-Reset"] = str(settings.rate_limit_period)

    return response
