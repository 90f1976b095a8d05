# app/core/ratelimit.py
"""Per-user rate limiting for the sync and migration endpoints.

Requests are counted in fixed windows on the Redis server behind the cache.
Limiting is off unless ``RATE_LIMIT_ENABLED`` is set and Redis is configured,
so development and test setups run without it. A failing Redis lets the
request through.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request

from app.cache import CacheKeys, RedisCache
from app.core.config import settings
from app.core.dependencies import get_cache, get_current_user_id
from app.exceptions.chat import RateLimitExceededError

logger = logging.getLogger(__name__)

SYNC_BUCKET = "sync"
MIGRATION_BUCKET = "migrate"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_in: int


class RateLimiter:
    """Fixed-window request counter for one bucket."""

    def __init__(self, cache: RedisCache, bucket: str, requests: int, window_seconds: int):
        self.cache = cache
        self.bucket = bucket
        self.requests = requests
        self.window_seconds = window_seconds

    async def limit(self, identifier: str) -> RateLimitResult:
        """Count one request for ``identifier`` and report whether it is allowed.

        Redis errors propagate to the caller.
        """
        client = self.cache.client
        key = CacheKeys.rate_limit(self.bucket, identifier)

        count = await client.incr(key)
        if count == 1:
            await client.expire(key, self.window_seconds)
        ttl = await client.ttl(key)
        if ttl < 0:
            # A counter left without expiry would block the user forever
            await client.expire(key, self.window_seconds)
            ttl = self.window_seconds

        return RateLimitResult(
            allowed=count <= self.requests,
            limit=self.requests,
            remaining=max(0, self.requests - count),
            reset_in=max(1, ttl),
        )


def get_rate_limiter(cache: RedisCache, bucket: str, requests: int) -> RateLimiter | None:
    """Return a limiter for ``bucket``, or None when rate limiting is off."""
    if not settings.rate_limit_enabled or not cache.enabled:
        return None
    return RateLimiter(cache, bucket, requests, settings.rate_limit_window_seconds)


def rate_limit_identifier(user_id: str) -> str:
    return f"user:{user_id}"


async def _enforce(request: Request, limiter: RateLimiter | None, user_id: str) -> None:
    if limiter is None:
        return

    identifier = rate_limit_identifier(user_id)
    try:
        result = await limiter.limit(identifier)
    except Exception as e:
        logger.error(f"Rate limit check failed for {identifier}: {str(e)}")
        return

    if not result.allowed:
        logger.warning(
            "Rate limit exceeded for %s on %s %s. Reset in %d seconds.",
            identifier,
            request.method,
            request.url.path,
            result.reset_in,
        )
        raise RateLimitExceededError(limit=result.limit, retry_after=result.reset_in)


async def check_rate_limit(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    cache: RedisCache = Depends(get_cache),
) -> None:
    """FastAPI dependency limiting sync pulls, pushes and migration status checks.

    Usage:
        @router.get("", dependencies=[Depends(check_rate_limit)])

    Raises:
        RateLimitExceededError: If the user has used up the window's budget
    """
    limiter = get_rate_limiter(cache, SYNC_BUCKET, settings.sync_rate_limit_requests)
    await _enforce(request, limiter, user_id)


async def check_migration_rate_limit(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    cache: RedisCache = Depends(get_cache),
) -> None:
    """FastAPI dependency limiting migration runs, one per window by default."""
    limiter = get_rate_limiter(cache, MIGRATION_BUCKET, settings.migration_rate_limit_requests)
    await _enforce(request, limiter, user_id)
