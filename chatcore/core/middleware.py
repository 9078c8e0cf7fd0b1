from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from chatcore.core.redis import get_redis

logger = logging.getLogger(__name__)

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        # attachments are rendered from data: URLs
        response.headers["Content-Security-Policy"] = "default-src 'self'; img-src 'self' data:"
        return response

LATENCY_KEY = "metrics:latency_ms:last500"

class MetricsMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, redis_url: str | None = None) -> None:
        super().__init__(app)
        self.redis = get_redis(redis_url) if redis_url else None

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000.0
        if self.redis is not None:
            try:
                async with self.redis.pipeline(transaction=False) as pipe:
                    pipe.lpush(LATENCY_KEY, f"{ms:.3f}")
                    pipe.ltrim(LATENCY_KEY, 0, 499)
                    pipe.hincrby("metrics:counts", "requests", 1)
                    pipe.hincrby("metrics:status", str(response.status_code), 1)
                    await pipe.execute()
            except Exception as exc:
                # metrics must never break the API
                logger.debug("metrics write skipped: %s", exc)
        response.headers["Server-Timing"] = f"app;dur={ms:.2f}"
        return response
