"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, database engine).
Middleware, exception handlers and routers are all registered here;
each concern lives in its own module.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from natours import __version__
from natours.api import api_router
from natours.config import settings
from natours.errors import register_exception_handlers
from natours.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs
    at shutdown.
    """
    logger.info(
        "natours.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from natours.redis_client import close_redis, init_redis
    try:
        await init_redis()
        logger.info("natours.redis_connected", url=settings.redis_url)
    except Exception as e:
        # Redis is optional; without it requests are not rate limited
        logger.warning("natours.redis_unavailable", error=str(e))

    yield

    logger.info("natours.shutdown")
    await close_redis()

    from natours.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging(settings)

    app = FastAPI(
        title="Natours",
        description="Tour booking API — tours, reviews and user accounts",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → RateLimit → BodyLimit → CORS → handler

    from natours.middleware.body_limit import BodySizeLimitMiddleware
    from natours.middleware.rate_limit import RateLimitMiddleware
    from natours.middleware.request_id import RequestIdMiddleware
    from natours.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(RateLimitMiddleware, per_hour=settings.rate_limit_per_hour)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: natours.main:app)
app = create_app()
