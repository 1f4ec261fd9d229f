"""
Verification API schemas for PharmAuth.

Pydantic request/response models for single scans and offline sync.
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

from pa_common.models import Location


class VerifyRequest(BaseModel):
    authentication_code: str = Field(..., min_length=1, max_length=64)
    location: Location | None = None


class VerifyResponse(BaseModel):
    status: Literal["authentic", "duplicate", "suspicious", "invalid", "revoked", "expired"]
    confidence: float = Field(..., ge=0.0, le=1.0)
    manufacturer_id: str | None = None
    manufacturer_name: str | None = None
    batch_id: str | None = None
    product_name: str | None = None
    serial_number: str | None = None
    manufacturing_date: date | None = None
    expiry_date: date | None = None
    is_duplicate: bool
    is_offline: bool
    message: str


class SyncRequest(BaseModel):
    verifications: list[VerifyRequest] = Field(..., max_length=1000)


class SyncItem(BaseModel):
    code: str
    status: Literal["success", "error"]
    result: VerifyResponse | None = None
    error: str | None = None


class SyncResponse(BaseModel):
    total: int
    successful: int
    failed: int
    results: list[SyncItem]
