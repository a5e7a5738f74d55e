# backend/app/middleware/rate_limit.py
"""
Fixed window rate limiting with Redis

Each identifier gets one counter per window under ``rate_limit:{identifier}``,
created by the first INCR and expiring with the window. When Redis is
unreachable the limiter fails open and says so in the security log.
"""
import logging
import time
from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.exceptions import ValidationError
from app.core.logging import security_logger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: float  # epoch seconds at which the window closes


class RateLimiter:
    """Fixed window rate limiting service"""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def check_rate_limit(
        self,
        identifier: str,
        limit: int,
        window_seconds: int = 60,
    ) -> RateLimitResult:
        """
        Count one request for ``identifier`` and decide whether it may proceed.

        Args:
            identifier: User ID, tenant ID or IP address
            limit: Max requests allowed per window
            window_seconds: Window length in seconds
        """
        if not identifier:
            raise ValidationError("Rate limit identifier is required")
        if limit < 1 or window_seconds < 1:
            raise ValidationError("Rate limit and window must be positive")

        key = f"rate_limit:{identifier}"

        try:
            count = await self.redis.incr(key)
            if count == 1:
                await self.redis.expire(key, window_seconds)
            ttl = await self.redis.ttl(key)
            if ttl < 0:
                # Counter survived without an expiry (crash between INCR and EXPIRE)
                await self.redis.expire(key, window_seconds)
                ttl = window_seconds
        except RedisError as exc:
            # Fail open for healthcare applications
            security_logger.warning(
                "Rate limiter store unavailable, request allowed",
                extra={
                    "event": "rate_limit.store_unavailable",
                    "identifier": identifier,
                    "error": str(exc),
                },
            )
            return RateLimitResult(
                allowed=True,
                remaining=limit - 1,
                reset_time=time.time() + window_seconds,
            )

        reset_time = time.time() + ttl
        if count > limit:
            return RateLimitResult(allowed=False, remaining=0, reset_time=reset_time)

        return RateLimitResult(allowed=True, remaining=limit - count, reset_time=reset_time)


def rate_limit_middleware(limit: int, window_seconds: int, path_prefix: str):
    """
    Build an HTTP middleware applying the application's limiter
    (``app.state.services.rate_limiter``) to ``path_prefix`` routes
    """

    async def middleware(request: Request, call_next):
        if not request.url.path.startswith(path_prefix):
            return await call_next(request)
        limiter: RateLimiter = request.app.state.services.rate_limiter

        # Get identifier (tenant + user, or IP)
        tenant_id = request.headers.get("x-tenant-id")
        user_id = request.headers.get("x-user-id")
        if tenant_id and user_id:
            identifier = f"{tenant_id}:{user_id}"
        else:
            identifier = request.client.host if request.client else "anonymous"

        result = await limiter.check_rate_limit(identifier, limit=limit, window_seconds=window_seconds)

        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(int(result.reset_time)),
        }

        if not result.allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "RATE_LIMITED",
                    "message": "Rate limit exceeded",
                    "retry_after": max(0, int(result.reset_time - time.time())),
                },
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response

    return middleware
