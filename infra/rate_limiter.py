# infra/rate_limiter.py
"""
Fixed-window rate limiting keyed by client identifier
In-process by default; Redis-backed when instances must share counters
"""

import asyncio
import logging
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Protocol, Tuple

from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

MAX_TRACKED_KEYS = 10_000


class RateLimiter(Protocol):
    max_requests: int
    window_seconds: int

    async def check_and_increment(self, key: str) -> bool:
        ...

    async def retry_after(self, key: str) -> int:
        ...


class FixedWindowRateLimiter:
    """Process-local counter table guarded by an asyncio lock"""

    backend = "memory"

    def __init__(self, max_requests: int, window_seconds: int = 60,
                 clock: Callable[[], float] = time.monotonic):
        if max_requests < 1 or window_seconds < 1:
            raise ValueError("max_requests and window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = asyncio.Lock()

    async def check_and_increment(self, key: str) -> bool:
        async with self._lock:
            now = self._clock()
            if len(self._windows) > MAX_TRACKED_KEYS:
                self._prune(now)

            count, started = self._windows.get(key, (0, now))
            if now - started >= self.window_seconds:
                count, started = 0, now

            if count >= self.max_requests:
                self._windows[key] = (count, started)
                return False

            self._windows[key] = (count + 1, started)
            return True

    async def retry_after(self, key: str) -> int:
        async with self._lock:
            entry = self._windows.get(key)
            if entry is None:
                return 1
            remaining = entry[1] + self.window_seconds - self._clock()
            return max(1, math.ceil(remaining))

    def _prune(self, now: float):
        expired = [k for k, (_, started) in self._windows.items()
                   if now - started >= self.window_seconds]
        for k in expired:
            del self._windows[k]


class RedisRateLimiter:
    """Shared counters via INCR + EXPIRE; fails open when Redis is unhappy"""

    backend = "redis"

    def __init__(self, redis, max_requests: int, window_seconds: int = 60,
                 prefix: str = "ratelimit"):
        self.redis = redis
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def check_and_increment(self, key: str) -> bool:
        try:
            pipe = self.redis.pipeline()
            pipe.incr(self._key(key))
            pipe.ttl(self._key(key))
            count, ttl = await pipe.execute()
            # a fresh key has no TTL yet; the window starts now
            if ttl is None or ttl < 0:
                await self.redis.expire(self._key(key), self.window_seconds)
            return int(count) <= self.max_requests
        except Exception as e:
            logger.error(f"Rate limit check failed for {key}: {e}")
            return True

    async def retry_after(self, key: str) -> int:
        try:
            ttl = await self.redis.ttl(self._key(key))
        except Exception as e:
            logger.error(f"Rate limit TTL lookup failed for {key}: {e}")
            return self.window_seconds
        return ttl if ttl and ttl > 0 else self.window_seconds


async def limit_exceeded_response(limiter: RateLimiter, key: str,
                                  message: str = "Rate limit exceeded. Please try again later.") -> JSONResponse:
    """429 with Retry-After and X-RateLimit-* hints"""
    retry_after = await limiter.retry_after(key)
    reset_at = datetime.now(timezone.utc) + timedelta(seconds=retry_after)
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests", "message": message, "retryAfter": retry_after},
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(limiter.max_requests),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": reset_at.isoformat(),
        },
    )
