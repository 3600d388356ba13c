"""
Database connection pooling for the redirect service
Small pools: the hot path is one indexed SELECT plus one background INSERT
"""
import os, asyncpg, asyncio
import logging

logger = logging.getLogger(__name__)

POOL_MIN = int(os.getenv("POOL_MIN", "1"))
POOL_MAX = int(os.getenv("POOL_MAX", "5"))
POOL_MAX_LIFETIME = int(os.getenv("POOL_MAX_LIFETIME_SEC", "120"))
DSN = os.getenv("DATABASE_URL")

CLICKS_SCHEMA = """
CREATE TABLE IF NOT EXISTS affiliate_clicks (
  id UUID DEFAULT gen_random_uuid() PRIMARY KEY,
  click_id TEXT NOT NULL,
  tour_id TEXT NOT NULL,
  tour_slug TEXT NOT NULL,
  tracking_id TEXT,
  context TEXT,
  redirect_url TEXT,
  referrer TEXT,
  ip_address_anonymized TEXT,
  user_agent_hash TEXT,
  utm_source TEXT,
  utm_medium TEXT,
  utm_campaign TEXT,
  utm_content TEXT,
  utm_term TEXT,
  clicked_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
  created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_affiliate_clicks_tour_slug ON affiliate_clicks(tour_slug);
CREATE INDEX IF NOT EXISTS idx_affiliate_clicks_clicked_at ON affiliate_clicks(clicked_at DESC);
CREATE INDEX IF NOT EXISTS idx_affiliate_clicks_tracking_id ON affiliate_clicks(tracking_id);
"""

_pool = None
_pool_lock = asyncio.Lock()


async def get_pool():
    """Get connection pool (singleton per instance); None when DATABASE_URL is unset"""
    global _pool
    if _pool is None and DSN:
        async with _pool_lock:
            if _pool is None:
                logger.info(f"Creating DB pool: min={POOL_MIN}, max={POOL_MAX}, lifetime={POOL_MAX_LIFETIME}s")
                _pool = await asyncpg.create_pool(
                    dsn=DSN,
                    min_size=POOL_MIN,
                    max_size=POOL_MAX,
                    max_inactive_connection_lifetime=POOL_MAX_LIFETIME,
                    command_timeout=10
                )
                logger.info("✅ DB pool created successfully")
    return _pool


async def ensure_schema(pool):
    """Create the click log table if this database has never seen it"""
    async with pool.acquire() as con:
        await con.execute(CLICKS_SCHEMA)
    logger.info("affiliate_clicks schema verified")


async def get_pool_stats():
    """Get pool statistics for monitoring"""
    if _pool is None:
        return {"status": "not_initialized"}

    return {
        "size": _pool.get_size(),
        "idle": _pool.get_idle_size(),
        "min_size": _pool.get_min_size(),
        "max_size": _pool.get_max_size(),
        "utilization": (_pool.get_size() - _pool.get_idle_size()) / _pool.get_max_size()
    }


async def close_pool():
    """Close pool gracefully"""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("DB pool closed")
