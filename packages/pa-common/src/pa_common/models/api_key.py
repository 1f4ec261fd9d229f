"""
API key identity model for PharmAuth.

Keys themselves are never stored; the gateway hashes the presented key and
resolves it to an ``ApiKeyIdentity`` before any engine call.
"""

from __future__ import annotations

import hashlib

from pydantic import BaseModel, Field


def hash_api_key(api_key: str, secret: str) -> str:
    """Return the SHA-256 hex digest stored for *api_key*."""
    return hashlib.sha256((api_key + secret).encode()).hexdigest()


class ApiKeyIdentity(BaseModel):
    """The authenticated caller of an engine operation.

    Attributes:
        api_key_id: Primary key of the API key row.
        manufacturer_id: Manufacturer the key belongs to.
        name: Human-readable key label.
    """

    model_config = {"from_attributes": True, "frozen": True}

    api_key_id: str = Field(..., min_length=1)
    manufacturer_id: str = Field(..., min_length=1)
    name: str | None = None
