"""
Cache manager for catalog lookups that rarely change (artist genres).
Redis-backed with TTL support, falling back to an in-process cache.
"""

import json
import logging
from typing import Any, Optional, Dict, List, Iterable, Tuple
from datetime import datetime, timedelta
import redis.asyncio as redis

logger = logging.getLogger(__name__)

class CacheManager:
    """Cache with a Redis backend and in-memory fallback."""

    def __init__(self, redis_url: Optional[str] = None, namespace: str = "tunesmith",
                 default_ttl: int = 3600, max_memory_items: int = 5000):
        """
        Initialize cache manager.

        Args:
            redis_url: Redis connection URL (optional)
            namespace: Prefix for every key
            default_ttl: TTL in seconds when ``set`` is called without one
            max_memory_items: Size bound for the in-memory fallback
        """
        self.redis_url = redis_url
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.max_memory_items = max_memory_items
        self.redis: Optional[redis.Redis] = None
        self.memory_cache: Dict[str, Tuple[Any, datetime]] = {}  # key -> (value, expires_at)

    @property
    def backend(self) -> str:
        return "redis" if self.redis else "memory"

    async def connect(self):
        """Connect to Redis if a URL is configured."""
        if not self.redis_url:
            return

        try:
            self.redis = redis.from_url(self.redis_url)
            await self.redis.ping()
            logger.info("Connected to Redis cache")
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Failed to connect to Redis: {e}, using memory cache")
            self.redis = None

    async def close(self):
        """Close Redis connection."""
        if self.redis:
            await self.redis.close()
            self.redis = None

    def get_cache_key(self, prefix: str, *args) -> str:
        """Generate a namespaced key from prefix and arguments."""
        return ":".join([self.namespace, prefix] + [str(arg) for arg in args])

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache, or None on a miss."""
        if self.redis:
            try:
                value = await self.redis.get(key)
                if value is not None:
                    return json.loads(value)
            except redis.RedisError as e:
                logger.warning(f"Redis get error: {e}")

        entry = self.memory_cache.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if datetime.now() >= expires_at:
            del self.memory_cache[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """Set value in cache with TTL in seconds."""
        ttl = ttl or self.default_ttl

        if self.redis:
            try:
                await self.redis.setex(key, ttl, json.dumps(value, default=str))
                return
            except redis.RedisError as e:
                logger.warning(f"Redis set error: {e}")

        self.memory_cache[key] = (value, datetime.now() + timedelta(seconds=ttl))
        if len(self.memory_cache) > self.max_memory_items:
            self._cleanup_memory_cache()

    async def delete(self, key: str):
        """Delete value from cache."""
        if self.redis:
            try:
                await self.redis.delete(key)
            except redis.RedisError as e:
                logger.warning(f"Redis delete error: {e}")

        self.memory_cache.pop(key, None)

    async def get_many(self, prefix: str, ids: Iterable[str]) -> Tuple[Dict[str, Any], List[str]]:
        """
        Look up several ids under one prefix.

        Returns:
            Tuple of (hits by id, ids that missed), misses in input order
        """
        hits: Dict[str, Any] = {}
        misses: List[str] = []
        for item_id in ids:
            value = await self.get(self.get_cache_key(prefix, item_id))
            if value is None:
                misses.append(item_id)
            else:
                hits[item_id] = value
        return hits, misses

    async def set_many(self, prefix: str, values: Dict[str, Any], ttl: Optional[int] = None):
        """Store several ids under one prefix."""
        for item_id, value in values.items():
            await self.set(self.get_cache_key(prefix, item_id), value, ttl)

    def _cleanup_memory_cache(self):
        """Drop expired entries, then the oldest ones if still over the bound."""
        now = datetime.now()
        expired_keys = [
            key for key, (_, expires_at) in self.memory_cache.items()
            if now >= expires_at
        ]
        for key in expired_keys:
            del self.memory_cache[key]

        overflow = len(self.memory_cache) - self.max_memory_items
        if overflow > 0:
            for key in list(self.memory_cache.keys())[:overflow]:
                del self.memory_cache[key]
