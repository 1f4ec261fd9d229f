"""
Batch API schemas for PharmAuth.

Pydantic request/response models for batch creation, listing, statistics,
revocation and code generation.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from pa_common.models import BatchStats, BatchSummary


class BatchCreateRequest(BaseModel):
    batch_id: str = Field(..., min_length=1, max_length=100)
    product_name: str = Field(..., min_length=1, max_length=255)
    product_code: Optional[str] = Field(default=None, max_length=100)
    strength: Optional[str] = Field(default=None, max_length=100)
    form: Optional[str] = Field(default=None, max_length=100)
    packaging: Optional[str] = Field(default=None, max_length=255)
    manufacturing_date: date
    expiry_date: date
    total_units: int = Field(..., ge=1, le=1_000_000)

    @model_validator(mode="after")
    def _check_dates(self) -> BatchCreateRequest:
        if self.expiry_date <= self.manufacturing_date:
            raise ValueError("expiry_date must be after manufacturing_date")
        return self


class BatchResponse(BaseModel):
    batch_id: str
    product_name: str
    product_code: Optional[str] = None
    strength: Optional[str] = None
    form: Optional[str] = None
    packaging: Optional[str] = None
    manufacturing_date: Optional[date] = None
    expiry_date: Optional[date] = None
    total_units: int
    status: str
    created_at: Optional[datetime] = None
    code_count: int = 0
    verified_count: int = 0
    revoked_count: int = 0
    verification_rate: float = 0.0

    @classmethod
    def from_summary(cls, batch: BatchSummary, today: date) -> BatchResponse:
        return cls(
            batch_id=batch.batch_id,
            product_name=batch.product_name,
            product_code=batch.product_code,
            strength=batch.strength,
            form=batch.form,
            packaging=batch.packaging,
            manufacturing_date=batch.manufacturing_date,
            expiry_date=batch.expiry_date,
            total_units=batch.total_units,
            status=batch.effective_status(today).value,
            created_at=batch.created_at,
            code_count=batch.code_count,
            verified_count=batch.verified_count,
            revoked_count=batch.revoked_count,
            verification_rate=round(batch.verification_rate, 2),
        )


class BatchListResponse(BaseModel):
    batches: list[BatchResponse]
    count: int = Field(..., description="Number of batches on this page.")
    limit: int
    offset: int


class BatchStatsResponse(BaseModel):
    batch_id: str
    product_name: str
    total_codes: int
    active_codes: int
    verified_codes: int
    revoked_codes: int
    total_verifications: int
    average_confidence: float
    last_verification: Optional[datetime] = None
    verification_rate: float

    @classmethod
    def from_stats(cls, stats: BatchStats) -> BatchStatsResponse:
        return cls(
            **stats.model_dump(),
            verification_rate=round(stats.verification_rate, 2),
        )


class RevokeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class RevokeResponse(BaseModel):
    batch_id: str
    status: str
    affected_codes: int
    reason: str
    revoked_at: datetime


class GenerateCodesRequest(BaseModel):
    batch_id: str = Field(..., min_length=1, max_length=100)
    count: int = Field(..., ge=1, le=100_000)


class GenerateCodesResponse(BaseModel):
    batch_id: str
    requested_count: int
    generated_count: int
    sample_codes: list[str]
