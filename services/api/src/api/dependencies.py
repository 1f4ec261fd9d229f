"""
FastAPI dependency injection providers for PharmAuth API.

Defines reusable Depends() callables for the caller identity resolved by
the auth middleware and for the engine components built at startup.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from pa_common.models import ApiKeyIdentity
from verification import BatchService, VerificationPipeline


async def get_identity(request: Request) -> ApiKeyIdentity:
    """Return the caller identity set by ``AuthMiddleware``."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise HTTPException(status_code=401, detail="API key required")
    return identity


async def get_pipeline(request: Request) -> VerificationPipeline:
    """Return the shared verification pipeline from app state."""
    return request.app.state.pipeline


async def get_batch_service(request: Request) -> BatchService:
    """Return the shared batch service from app state."""
    return request.app.state.batch_service
