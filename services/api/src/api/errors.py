"""
Exception handlers for PharmAuth API.

Maps engine errors to HTTP responses.  Retryable errors carry
``"retryable": true`` in the body; rate-limit rejections also carry a
``Retry-After`` header.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from verification.errors import (
    CodeValidationError,
    ConflictError,
    DependencyUnavailable,
    NotFoundError,
    RateLimitExceeded,
    VerificationError,
)

logger = structlog.get_logger(__name__)

_STATUS_CODES: dict[type[VerificationError], int] = {
    CodeValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    RateLimitExceeded: 429,
    DependencyUnavailable: 503,
}


def _status_for(exc: VerificationError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_CODES:
            return _STATUS_CODES[cls]
    return 500


async def verification_error_handler(request: Request, exc: VerificationError) -> JSONResponse:
    status_code = _status_for(exc)
    content = {"detail": str(exc), "retryable": exc.retryable}
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitExceeded):
        content["retry_after"] = exc.retry_after_s
        headers["Retry-After"] = str(exc.retry_after_s)
    if status_code >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
        )
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the engine error handlers to *app*."""
    app.add_exception_handler(VerificationError, verification_error_handler)
