"""
Health check API router for PharmAuth.

Aggregated health endpoint returning the status of PostgreSQL and Redis.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from pa_common.db import check_database_health

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    services: dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    services: dict[str, str] = {}

    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        services["database"] = "not_configured"
    else:
        services["database"] = "healthy" if await check_database_health(engine) else "unhealthy"

    redis_client = getattr(request.app.state, "redis_client", None)
    if redis_client is None:
        services["redis"] = "not_configured"
    else:
        services["redis"] = "healthy" if await redis_client.health_check() else "unhealthy"

    overall = "healthy" if all(
        v in ("healthy", "not_configured") for v in services.values()
    ) else "degraded"

    return HealthResponse(status=overall, services=services)
