"""Health check endpoints.

- /health: liveness, always 200 while the process serves requests
- /healthz: checks the configured database and Redis, 503 if either fails
"""

import logging
from typing import Annotated, Any

import redis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from salvebot.api.deps import get_container
from salvebot.container import ServiceContainer

router = APIRouter()
logger = logging.getLogger(__name__)


async def check_db(container: ServiceContainer) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    engine = container.repositories.engine
    if engine is None:
        return (True, "in_memory")

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return (True, "ok")
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database health check failed: {e}")
        return (False, f"error: {type(e).__name__}")


async def check_redis(container: ServiceContainer) -> tuple[bool, str]:
    """Check Redis connectivity.

    Returns:
        (is_ok, status_message)
    """
    redis_url = container.settings.redis_url
    if not redis_url:
        return (True, "not_configured")

    try:
        client = redis.from_url(redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        client.ping()
        return (True, "ok")
    except redis.RedisError as e:
        logger.warning(f"Redis health check failed: {e}")
        return (False, f"error: {type(e).__name__}")


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple liveness check for Docker/k8s."""
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> dict[str, Any] | JSONResponse:
    """Readiness check with component status.

    Returns:
        200 with component status if core systems are ok
        503 if the database or Redis is unreachable
    """
    db_ok, db_status = await check_db(container)
    redis_ok, redis_status = await check_redis(container)

    response_body = {
        "status": "ok" if db_ok and redis_ok else "degraded",
        "components": {
            "db": db_status,
            "redis": redis_status,
            "analytics_queue": container.recorder.pending,
        },
    }

    if not (db_ok and redis_ok):
        return JSONResponse(content=response_body, status_code=503)

    return response_body
