"""
CORS middleware configuration for PharmAuth API.

Browser clients (the manufacturer portal and web scanners) call the API
cross-origin.  Rate-limit and request-id headers are exposed so clients
can back off and correlate failures.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware.auth import API_KEY_HEADER
from api.middleware.logging import REQUEST_ID_HEADER

_EXPOSED_HEADERS = [
    "Retry-After",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    REQUEST_ID_HEADER,
]


def add_cors(app: FastAPI, origins: list[str]) -> None:
    """Attach CORS middleware for *origins* (``["*"]`` allows any)."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", API_KEY_HEADER, REQUEST_ID_HEADER],
        expose_headers=_EXPOSED_HEADERS,
    )
