"""
Cache Manager
Redis-backed cache for event detail views; every call degrades to a no-op without Redis
"""
import json
from typing import Any, Optional, Dict
from . import core
import logging

logger = logging.getLogger(__name__)

EVENT_DETAIL_TTL = 300


class CacheManager:
    """Thin JSON cache over the shared Redis connection"""

    def __init__(self):
        self.default_ttl = 3600  # 1 hour default TTL

    def _make_key(self, key: str, prefix: str = "") -> str:
        """Generate cache key with prefix"""
        if prefix:
            return f"{prefix}:{key}"
        return key

    async def set(self, key: str, value: Any, ttl: int = None, prefix: str = "") -> bool:
        """Set cache value with TTL"""
        if not core.REDIS:
            return False

        cache_key = self._make_key(key, prefix)
        ttl = ttl or self.default_ttl

        try:
            if isinstance(value, (dict, list)):
                value = json.dumps(value, default=str)
            await core.REDIS.setex(cache_key, ttl, value)
            return True
        except Exception as e:
            logger.error(f"Cache set failed for key {cache_key}: {str(e)}")
            return False

    async def get(self, key: str, prefix: str = "") -> Optional[Any]:
        """Get cache value"""
        if not core.REDIS:
            return None

        cache_key = self._make_key(key, prefix)

        try:
            value = await core.REDIS.get(cache_key)
            if value is None:
                return None
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value.decode() if isinstance(value, bytes) else value
        except Exception as e:
            logger.error(f"Cache get failed for key {cache_key}: {str(e)}")
            return None

    async def delete(self, key: str, prefix: str = "") -> bool:
        """Delete cache key"""
        if not core.REDIS:
            return False

        cache_key = self._make_key(key, prefix)

        try:
            result = await core.REDIS.delete(cache_key)
            return result > 0
        except Exception as e:
            logger.error(f"Cache delete failed for key {cache_key}: {str(e)}")
            return False

    async def increment(self, key: str, amount: int = 1, prefix: str = "") -> Optional[int]:
        """Increment cache value atomically"""
        if not core.REDIS:
            return None

        cache_key = self._make_key(key, prefix)

        try:
            return await core.REDIS.incrby(cache_key, amount)
        except Exception as e:
            logger.error(f"Cache increment failed for key {cache_key}: {str(e)}")
            return None

# Global cache manager instance
cache = CacheManager()

# Event detail view
def _event_key(user_id: str, event_id: int) -> str:
    return f"{user_id}:{event_id}"

async def cache_event_detail(user_id: str, event_id: int, detail: Dict, ttl: int = EVENT_DETAIL_TTL):
    return await cache.set(_event_key(user_id, event_id), detail, ttl, "event")

async def get_cached_event_detail(user_id: str, event_id: int) -> Optional[Dict]:
    return await cache.get(_event_key(user_id, event_id), "event")

async def invalidate_event(user_id: str, event_id: int):
    """Drop the cached detail view so the next read re-fetches moments"""
    await cache.delete(_event_key(user_id, event_id), "event")

# Rate limiting
async def check_rate_limit(user_id: str, action: str, limit: int = 100, window: int = 3600, amount: int = 1) -> bool:
    """Check if user is within rate limit; an allowed call consumes `amount` units of the window"""
    key = f"{user_id}:{action}"

    current = await cache.get(key, "rate")
    used = int(current) if current is not None else 0
    if used + amount > limit:
        return False

    if current is None:
        await cache.set(key, amount, window, "rate")
    else:
        await cache.increment(key, amount, "rate")
    return True
