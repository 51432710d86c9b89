"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and the
database is reachable. Redis only backs rate limiting, so a Redis outage
marks the service degraded rather than down.
"""

from fastapi import APIRouter
from sqlalchemy import text

from natours import __version__
from natours.db.engine import engine
from natours.redis_client import get_redis

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    redis = get_redis()
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    if checks["database"] != "ok":
        status = "unhealthy"
    elif checks["redis"] not in ("ok", "disabled"):
        status = "degraded"
    else:
        status = "healthy"

    return {"status": status, **checks}
