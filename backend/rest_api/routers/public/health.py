"""
Health endpoints for the REST API.

``/api/health`` is a liveness probe with no I/O. ``/api/health/detailed``
checks the database and the Redis store/bus, answering 503 when either
one is unreachable.
"""

import asyncio

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from rest_api.core.dependencies import get_redis
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.db import get_db

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

DEPENDENCY_TIMEOUT = 3.0


@router.get("/health")
def health_check():
    return {
        "status": "healthy",
        "service": "rest-api",
        "environment": settings.environment,
    }


async def _probe(name: str, check) -> dict[str, str]:
    try:
        await asyncio.wait_for(check(), timeout=DEPENDENCY_TIMEOUT)
        return {"status": "healthy"}
    except Exception as e:
        logger.warning("Health probe failed", dependency=name, error=str(e))
        return {"status": "unhealthy", "error": str(e) or type(e).__name__}


@router.get("/health/detailed")
async def detailed_health_check(
    db: Session = Depends(get_db),
    redis_client: aioredis.Redis = Depends(get_redis),
):
    dependencies = {
        "database": await _probe(
            "database", lambda: asyncio.to_thread(db.execute, text("SELECT 1"))
        ),
        "redis": await _probe("redis", redis_client.ping),
    }

    healthy = all(dep["status"] == "healthy" for dep in dependencies.values())
    body = {
        "service": "rest-api",
        "environment": settings.environment,
        "status": "healthy" if healthy else "degraded",
        "dependencies": dependencies,
    }
    if not healthy:
        return JSONResponse(content=body, status_code=503)
    return body
