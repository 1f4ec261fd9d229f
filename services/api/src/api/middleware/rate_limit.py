"""
Rate limiting middleware for PharmAuth API.

Counts every authenticated request against the caller's request window
(default 100 requests per 15 minutes per API key).  Verification calls are
additionally counted by the pipeline against the verification window.
"""

from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from api.middleware.auth import is_public
from verification.errors import RateLimitExceeded


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests once the API key's request window is exhausted."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        identity = getattr(request.state, "identity", None)
        if is_public(request.url.path) or identity is None:
            return await call_next(request)

        limiter = request.app.state.rate_limiter
        try:
            remaining = await limiter.check_request(identity.api_key_id)
        except RateLimitExceeded as exc:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded", "retry_after": exc.retry_after_s},
                headers={"Retry-After": str(exc.retry_after_s)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limiter.request_limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
