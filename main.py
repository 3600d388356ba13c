"""
Tour Affiliate Redirect Service
===============================

Outbound "Book now" links for the tours storefront:
- /out/{slug} 302s to the partner (BNAdventure) with affiliate tracking
- allow-listed destinations only; everything else lands on partner search
- signed httpOnly attribution cookie
- best-effort click analytics that never delay the redirect
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from api.redirect import router as redirect_router
from api.reports import router as reports_router
from api.track_click import router as track_click_router
from config.affiliate_config import AffiliateConfig, get_config
from infra.middleware import SecurityHeadersMiddleware, TimingMiddleware
from infra.rate_limiter import FixedWindowRateLimiter, RedisRateLimiter
from infra.security_filters import PiiMaskFilter
from services.attribution_cookie import AttributionCookies
from services.click_logger import ClickLogger, PostgresClickSink
from services.redirect_flow import RedirectService
from services.tour_repository import TourRepository

logger = logging.getLogger(__name__)


def configure_logging(level: str = None):
    """Configure root logging with PII masking on every handler"""
    logging.basicConfig(
        level=level or os.getenv("LOG_LEVEL", "INFO"),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, PiiMaskFilter) for f in handler.filters):
            handler.addFilter(PiiMaskFilter())


def _build_limiter(config: AffiliateConfig, limit_type: str, redis=None):
    limits = config.get_rate_limit(limit_type)
    if redis is not None and config.rate_limit_backend == "redis":
        return RedisRateLimiter(redis, prefix=f"ratelimit:{limit_type}", **limits)
    return FixedWindowRateLimiter(**limits)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire DB pool, Redis and pool-backed components for anything not injected."""
    from services.db_pool import get_pool, ensure_schema, close_pool
    from services.cache import get_redis, close_redis, JsonCache

    config: AffiliateConfig = app.state.config
    pool = None
    redis = None

    if isinstance(app.state.tours, _NoTours) or app.state.click_sink is None:
        try:
            pool = await get_pool()
            if pool is not None:
                await ensure_schema(pool)
                logger.info("✅ DB pool initialized")
            else:
                logger.warning("DATABASE_URL not set - tour lookup and click logging disabled")
        except Exception as e:
            logger.error(f"DB pool initialization failed: {e}")
            pool = None

    try:
        redis = await get_redis()
        if redis is not None:
            logger.info("✅ Redis cache connected for tour lookups")
    except Exception as e:
        logger.error(f"Redis initialization failed: {e}")
        redis = None

    if pool is not None:
        if isinstance(app.state.tours, _NoTours):
            cache = JsonCache(redis) if redis is not None else None
            app.state.tours = TourRepository(pool, cache=cache, ttl=config.tour_cache_ttl)
            app.state.redirects.tours = app.state.tours
        if app.state.click_sink is None:
            app.state.click_sink = PostgresClickSink(pool)
            app.state.click_logger.sink = app.state.click_sink

    if redis is not None and config.rate_limit_backend == "redis":
        app.state.redirect_limiter = _build_limiter(config, "redirect", redis)
        app.state.track_limiter = _build_limiter(config, "track_click", redis)
        logger.info("✅ Redis-backed rate limiting enabled")

    yield

    await app.state.click_logger.drain()
    await close_redis()
    await close_pool()


class _NoTours:
    """Stand-in until a database is configured: every slug is unknown."""

    async def get_tour_by_slug(self, slug):
        return None


class _DroppingSink:
    async def insert(self, event):
        logger.debug(f"No click store configured - dropping click {event.click_id}")


def create_app(
    config: Optional[AffiliateConfig] = None,
    *,
    tours=None,
    click_sink=None,
    redirect_limiter=None,
    track_limiter=None,
    cookie_secret: Optional[str] = None,
    admin_token: Optional[str] = None,
) -> FastAPI:
    """Build the app; collaborators passed in here are used as-is."""
    config = config or get_config()

    app = FastAPI(
        title="Tour Affiliate Redirect Service",
        description="Affiliate redirects and click tracking for the tours storefront",
        version="1.0.0",
        lifespan=lifespan
    )

    app.state.config = config
    app.state.tours = tours if tours is not None else _NoTours()
    app.state.click_sink = click_sink
    app.state.admin_token = admin_token if admin_token is not None else config.admin_token
    app.state.cookies = AttributionCookies(
        cookie_secret or config.cookie_secret,
        name=config.cookie_name,
        max_age=config.cookie_max_age,
    )
    app.state.click_logger = ClickLogger(click_sink if click_sink is not None else _DroppingSink(), timeout=config.click_log_timeout)
    app.state.redirects = RedirectService(
        app.state.tours,
        allowed_domains=config.allowed_domains,
        partner_id=config.partner_id,
        tracking_id=config.tracking_id,
        search_url=config.search_url,
        default_source=config.utm_source,
        default_medium=config.utm_medium,
    )
    app.state.redirect_limiter = redirect_limiter or _build_limiter(config, "redirect")
    app.state.track_limiter = track_limiter or _build_limiter(config, "track_click")

    for issue in config.validate_config():
        logger.warning(f"Config issue: {issue}")

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(TimingMiddleware)

    app.include_router(redirect_router)
    app.include_router(track_click_router)
    app.include_router(reports_router)

    @app.get("/healthz")
    async def health_check():
        """Health check with pool, cache and click-log state."""
        from services.db_pool import get_pool_stats
        from services.cache import get_cache_stats

        try:
            pool_stats = await get_pool_stats()
        except Exception as e:
            pool_stats = {"error": str(e)}

        return {
            "status": "healthy",
            "service": "tour-affiliate-redirect",
            "db_pool": pool_stats,
            "cache": await get_cache_stats(),
            "rate_limiter": getattr(app.state.redirect_limiter, "backend", "custom"),
            "pending_click_writes": app.state.click_logger.pending,
        }

    return app


if __name__ == "__main__":
    configure_logging()
    uvicorn.run(
        create_app(),
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        proxy_headers=True,
    )
