"""Read-through cache backed by Redis."""

from .client import RedisCache
from .keys import CacheKeys, CacheTTL

__all__ = ["RedisCache", "CacheKeys", "CacheTTL"]
