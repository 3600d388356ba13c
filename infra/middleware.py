# infra/middleware.py
"""
Response hardening and request timing for the redirect service
"""

import time
import logging
from typing import Dict, Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000

DEFAULT_SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "interest-cohort=()",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Baseline security headers; anything a route already set is left alone"""

    def __init__(self, app, headers: Optional[Dict[str, str]] = None):
        super().__init__(app)
        self.headers = dict(DEFAULT_SECURITY_HEADERS if headers is None else headers)

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for header, value in self.headers.items():
            # /out sends no-referrer so partner sites never see our page URLs
            response.headers.setdefault(header, value)
        return response


class TimingMiddleware(BaseHTTPMiddleware):
    """Server-Timing header plus one log line per request"""

    def __init__(self, app, quiet_paths: Iterable[str] = ("/healthz",)):
        super().__init__(app)
        self.quiet_paths = set(quiet_paths)

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            logger.error(f"Request failed: {request.method} {path} - {elapsed:.1f}ms - {e}")
            raise

        elapsed = (time.perf_counter() - start) * 1000
        response.headers["Server-Timing"] = f"app;dur={elapsed:.1f}"

        if elapsed > SLOW_REQUEST_MS:
            logger.warning(f"Slow request: {request.method} {path} took {elapsed:.1f}ms")
        elif path in self.quiet_paths:
            logger.debug(f"Request: {request.method} {path} {response.status_code} - {elapsed:.1f}ms")
        else:
            logger.info(f"Request: {request.method} {path} {response.status_code} - {elapsed:.1f}ms")

        return response
