"""
FastAPI application entry point for PharmAuth API gateway.

Creates and configures the FastAPI app, registers routers, middleware,
exception handlers and the startup/shutdown lifecycle, and exposes the
ASGI application.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app
from sqlalchemy.ext.asyncio import AsyncSession

from api.errors import register_exception_handlers
from api.middleware.auth import AuthMiddleware
from api.middleware.cors import add_cors
from api.middleware.logging import LoggingMiddleware
from api.middleware.rate_limit import RateLimitMiddleware
from api.routers import batches, codes, health, verify

from pa_common.config import Settings, get_settings
from pa_common.db import build_engine, build_session_factory
from pa_common.logging import configure_logging
from pa_common.messaging.redis_client import RedisClient
from verification import (
    AnomalyDetector,
    AuditLogger,
    BatchService,
    CodeGenerator,
    CodeStore,
    RateLimiter,
    VerificationCache,
    VerificationPipeline,
)

logger = structlog.get_logger(__name__)


def build_components(
    app: FastAPI,
    settings: Settings,
    session_factory: Callable[[], AsyncSession],
    redis_client: RedisClient,
) -> None:
    """Wire the engine components onto ``app.state``."""
    timeout_s = settings.dependency_timeout_s
    redis = redis_client.redis

    store = CodeStore(session_factory, timeout_s=timeout_s)
    cache = VerificationCache(redis, ttl_s=settings.cache_ttl_s, timeout_s=timeout_s)
    rate_limiter = RateLimiter(
        redis,
        request_limit=settings.rate_limit_requests,
        request_window_s=settings.rate_limit_window_s,
        verify_limit=settings.verify_rate_limit,
        verify_window_s=settings.verify_rate_window_s,
        timeout_s=timeout_s,
    )
    anomaly_detector = AnomalyDetector(
        redis,
        store,
        window_s=settings.anomaly_window_s,
        repeat_threshold=settings.rapid_repeat_threshold,
        max_distance_km=settings.geo_velocity_km,
        timeout_s=timeout_s,
    )
    audit_logger = AuditLogger(
        session_factory,
        redis_client,
        channel=settings.events_channel,
        timeout_s=timeout_s,
    )

    app.state.store = store
    app.state.rate_limiter = rate_limiter
    app.state.pipeline = VerificationPipeline(
        store, cache, rate_limiter, anomaly_detector, audit_logger,
    )
    app.state.batch_service = BatchService(store, cache, CodeGenerator(settings.code_secret))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    settings = get_settings()
    configure_logging("api", settings.log_level)
    logger.info("api_starting")

    engine = build_engine(settings=settings)
    redis_client = RedisClient(settings.redis_url, settings.dependency_timeout_s)
    await redis_client.connect()

    app.state.engine = engine
    app.state.redis_client = redis_client
    build_components(app, settings, build_session_factory(engine), redis_client)

    yield

    logger.info("api_stopping")
    await redis_client.close()
    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return the fully-configured FastAPI application."""
    settings = settings or get_settings()
    app = FastAPI(
        title="PharmAuth API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Routers (under /api prefix) ──
    api_prefix = "/api"
    app.include_router(verify.router, prefix=api_prefix)
    app.include_router(batches.router, prefix=api_prefix)
    app.include_router(codes.router, prefix=api_prefix)

    # Health is mounted at root.
    app.include_router(health.router)

    # Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app())

    register_exception_handlers(app)

    # ── Middleware (last added runs first) ──
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(AuthMiddleware)
    app.add_middleware(LoggingMiddleware)
    add_cors(app, settings.cors_origins)

    return app


app = create_app()

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )
