"""
Redis caching layer for hot tour data
Every helper fails soft: a Redis outage means a DB read, never an error page
"""
import os, json, asyncio, inspect
import logging
from typing import Any, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL")
_redis = None
_lock = asyncio.Lock()


async def get_redis():
    """Get Redis connection (singleton per instance); None when REDIS_URL is unset"""
    global _redis
    if _redis is None and REDIS_URL:
        async with _lock:
            if _redis is None:
                logger.info("Connecting to Redis")
                client = aioredis.from_url(
                    REDIS_URL,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_keepalive=True,
                    retry_on_timeout=True
                )
                await client.ping()
                _redis = client
                logger.info("✅ Redis connection established")
    return _redis


class JsonCache:
    """JSON get/set/cached-call helpers over a redis.asyncio client"""

    def __init__(self, redis):
        self.redis = redis

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            s = await self.redis.get(key)
            if s:
                logger.debug(f"Cache hit: {key}")
                return json.loads(s)
            logger.debug(f"Cache miss: {key}")
        except Exception as e:
            logger.error(f"Cache get error for {key}: {e}")
        return None

    async def set_json(self, key: str, obj: Any, ttl: int = 300) -> bool:
        try:
            await self.redis.set(key, json.dumps(obj, default=str), ex=ttl)
            logger.debug(f"Cached {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error for {key}: {e}")
            return False

    async def cached_call(self, key: str, loader_func, ttl: int = 300):
        """Get from cache or call loader function and cache a non-None result"""
        cached = await self.get_json(key)
        if cached is not None:
            return cached

        result = loader_func()
        if inspect.isawaitable(result):
            result = await result
        if result is not None:
            await self.set_json(key, result, ttl)
        return result


async def get_cache_stats():
    """Get Redis cache statistics for monitoring"""
    if _redis is None:
        return {"status": "disabled"}
    try:
        info = await _redis.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "hits": hits,
            "misses": misses,
            "hit_ratio": hits / max(1, hits + misses),
            "evictions": info.get("evicted_keys", 0),
        }
    except Exception as e:
        logger.error(f"Failed to get cache stats: {e}")
        return {"error": str(e)}


async def close_redis():
    """Close Redis connection gracefully"""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None
        logger.info("Redis connection closed")
