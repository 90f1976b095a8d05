"""Redis cache client with fail-closed semantics.

Every operation degrades to a miss or a no-op when Redis is not configured,
unreachable, slow or returns something undecodable. Callers never see a cache
exception; the cache only ever costs latency.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from redis.asyncio import Redis

from app.core.config import Settings, settings as app_settings

from .keys import CacheKeys, CacheTTL

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisCache:
    """Thin JSON cache over ``redis.asyncio``."""

    def __init__(self, client: Redis | None):
        """Initialize the cache.

        Args:
            client: Redis client, or None to run with caching disabled.
        """
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings = app_settings) -> "RedisCache":
        """Build the cache from settings, disabled when Redis is not configured."""
        if not settings.has_cache:
            logger.warning("Redis not configured - caching disabled")
            return cls(None)

        try:
            client = Redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_timeout=settings.cache_socket_timeout,
                socket_connect_timeout=settings.cache_socket_timeout,
            )
        except Exception as e:
            logger.error(f"Failed to create Redis client, caching disabled: {str(e)}")
            return cls(None)

        logger.info("Redis cache enabled")
        return cls(client)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def get(self, key: str) -> Any | None:
        """Return the decoded value for ``key`` or None on miss or failure."""
        if not self.client:
            return None

        try:
            raw = await self.client.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {str(e)}")
            return None

    async def set(self, key: str, value: Any, ttl: int = CacheTTL.MEDIUM) -> bool:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        if not self.client:
            return False

        try:
            await self.client.setex(key, int(ttl), json.dumps(value, default=str))
            return True
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {str(e)}")
            return False

    async def delete(self, *keys: str) -> bool:
        """Remove one or more keys."""
        if not self.client or not keys:
            return False

        try:
            await self.client.delete(*keys)
            return True
        except Exception as e:
            logger.warning(f"Cache delete error for {keys}: {str(e)}")
            return False

    async def delete_pattern(self, pattern: str) -> bool:
        """Remove every key matching a glob pattern using SCAN."""
        if not self.client:
            return False

        try:
            keys = [key async for key in self.client.scan_iter(match=pattern, count=100)]
            if keys:
                await self.client.delete(*keys)
            return True
        except Exception as e:
            logger.warning(f"Cache delete pattern error for {pattern}: {str(e)}")
            return False

    async def get_or_set(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        ttl: int = CacheTTL.MEDIUM,
    ) -> T:
        """Return the cached value or fetch, cache and return a fresh one.

        Errors raised by ``fetch`` propagate; cache errors never do.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await fetch()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def invalidate_user_cache(self, user_id: str) -> None:
        for prefix in (
            CacheKeys.USER,
            CacheKeys.CHATS_LIST,
            CacheKeys.SUBSCRIPTION,
            CacheKeys.CONTACTS,
        ):
            await self.delete_pattern(f"{prefix}{user_id}*")

    async def invalidate_chat_cache(self, user_id: str, chat_id: str | None = None) -> None:
        keys = [CacheKeys.chats_list(user_id), CacheKeys.chats_list(user_id, with_messages=True)]
        if chat_id:
            keys.append(CacheKeys.chat(chat_id))
        await self.delete(*keys)

    async def invalidate_subscription_cache(self, user_id: str) -> None:
        await self.delete(CacheKeys.subscription(user_id), CacheKeys.usage(user_id))

    async def ping(self) -> bool:
        if not self.client:
            return False

        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning(f"Cache ping failed: {str(e)}")
            return False

    async def close(self) -> None:
        if not self.client:
            return

        try:
            await self.client.aclose()
        except Exception as e:
            logger.warning(f"Error closing Redis client: {str(e)}")
