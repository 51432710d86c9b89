"""Rate limiting middleware — Redis fixed-window counter.

Learn: Each client IP gets one counter per hour, stored under a key like
"natours:rl:{ip}:{hour}". INCR is atomic, so concurrent requests from
the same IP can't both slip under the limit. Only /api paths are
limited; the first INCR of a window sets the key's TTL.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from natours.redis_client import get_redis

logger = structlog.get_logger()

WINDOW_SECONDS = 60 * 60
LIMITED_PREFIX = "/api"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per hour."""

    def __init__(self, app, per_hour: int = 100):
        super().__init__(app)
        self.per_hour = per_hour

    async def dispatch(self, request: Request, call_next) -> Response:
        if not request.url.path.startswith(LIMITED_PREFIX):
            return await call_next(request)

        redis = get_redis()
        if redis is None:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        window = int(time.time() // WINDOW_SECONDS)
        key = f"natours:rl:{client_ip}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, WINDOW_SECONDS)
        except Exception as e:
            # Redis error: let the request through
            logger.warning("rate_limit.redis_error", error=str(e))
            return await call_next(request)

        if count > self.per_hour:
            logger.info("rate_limit.exceeded", client_ip=client_ip)
            return JSONResponse(
                status_code=429,
                content={
                    "status": "fail",
                    "message": "Too many requests from this IP, please try again in an hour",
                },
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.per_hour)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.per_hour - count))
        return response
