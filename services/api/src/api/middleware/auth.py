"""
Authentication middleware for PharmAuth API.

Resolves the ``X-API-Key`` header to an :class:`ApiKeyIdentity` and stores
it on ``request.state.identity``.  Keys are looked up by their salted hash;
the plain key is never logged or stored.
"""

from __future__ import annotations

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from pa_common.config import get_settings
from pa_common.models import hash_api_key
from verification.errors import DependencyUnavailable

logger = structlog.get_logger(__name__)

API_KEY_HEADER = "X-API-Key"

# Paths that skip auth checks.
_PUBLIC_PATHS: set[str] = {"/health", "/docs", "/openapi.json", "/redoc"}


def is_public(path: str) -> bool:
    return path in _PUBLIC_PATHS or path.startswith("/metrics")


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticate requests by ``X-API-Key`` against the key store."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        if is_public(request.url.path):
            return await call_next(request)

        api_key = request.headers.get(API_KEY_HEADER, "")
        if not api_key:
            return JSONResponse(status_code=401, content={"detail": "API key required"})

        store = request.app.state.store
        key_hash = hash_api_key(api_key, get_settings().api_key_hash_secret)
        try:
            identity = await store.resolve_api_key(key_hash)
        except DependencyUnavailable as exc:
            return JSONResponse(
                status_code=503,
                content={"detail": str(exc), "retryable": True},
            )

        if identity is None:
            logger.warning("api_key_rejected", path=request.url.path)
            return JSONResponse(status_code=401, content={"detail": "Invalid API key"})

        request.state.identity = identity
        structlog.contextvars.bind_contextvars(
            api_key_id=identity.api_key_id, manufacturer_id=identity.manufacturer_id,
        )
        try:
            return await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("api_key_id", "manufacturer_id")
