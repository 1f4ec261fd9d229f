"""
Batch data models for PharmAuth.

Defines the Pydantic models for a manufacturing batch, its aggregate
statistics, and the results of the two batch-level write operations:
code generation and revocation.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone

from pydantic import BaseModel, Field, model_validator


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class BatchStatus(str, enum.Enum):
    """Lifecycle status of a batch.

    ``EXPIRED`` is never stored; it is derived from the expiry date.
    """

    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class Batch(BaseModel):
    """A manufacturing batch owned by one manufacturer.

    Attributes:
        id: Surrogate primary key (assigned by the database).
        manufacturer_id: Public identifier of the owning manufacturer.
        batch_id: Manufacturer-assigned batch identifier.
        product_name: Product name printed on the pack.
        product_code: Optional product/SKU code.
        strength: Optional dosage strength (e.g. ``500mg``).
        form: Optional dosage form (tablet, syrup, …).
        packaging: Optional packaging description.
        manufacturing_date: Date of manufacture.
        expiry_date: Date after which units classify as expired.
        total_units: Number of units the batch was declared with.
        status: Stored status (active or revoked).
        created_at: Creation timestamp (UTC).
    """

    model_config = {"from_attributes": True}

    id: int | None = Field(default=None, description="Surrogate primary key.")
    manufacturer_id: str = Field(..., max_length=100, description="Owning manufacturer.")
    batch_id: str = Field(..., min_length=1, max_length=100, description="Batch identifier.")
    product_name: str = Field(..., min_length=1, max_length=255, description="Product name.")
    product_code: str | None = Field(default=None, max_length=100)
    strength: str | None = Field(default=None, max_length=100)
    form: str | None = Field(default=None, max_length=100)
    packaging: str | None = Field(default=None, max_length=255)
    manufacturing_date: date | None = Field(default=None, description="Date of manufacture.")
    expiry_date: date | None = Field(default=None, description="Expiry date.")
    total_units: int = Field(..., ge=1, description="Declared unit count.")
    status: BatchStatus = Field(default=BatchStatus.ACTIVE, description="Stored status.")
    created_at: datetime = Field(default_factory=_utc_now, description="Creation timestamp.")

    @model_validator(mode="after")
    def _check_dates(self) -> Batch:
        if (
            self.manufacturing_date is not None
            and self.expiry_date is not None
            and self.expiry_date <= self.manufacturing_date
        ):
            raise ValueError("expiry_date must be after manufacturing_date")
        return self

    def effective_status(self, today: date) -> BatchStatus:
        """Return the status with expiry taken into account."""
        if self.status == BatchStatus.REVOKED:
            return BatchStatus.REVOKED
        if self.expiry_date is not None and self.expiry_date < today:
            return BatchStatus.EXPIRED
        return self.status


class BatchSummary(Batch):
    """A batch together with its code counters."""

    code_count: int = Field(default=0, ge=0)
    verified_count: int = Field(default=0, ge=0)
    revoked_count: int = Field(default=0, ge=0)

    @property
    def verification_rate(self) -> float:
        """Percentage of codes that have been verified at least once."""
        if self.code_count == 0:
            return 0.0
        return self.verified_count / self.code_count * 100.0


class BatchStats(BaseModel):
    """Code and verification statistics for one batch."""

    batch_id: str
    product_name: str
    total_codes: int = 0
    active_codes: int = 0
    verified_codes: int = 0
    revoked_codes: int = 0
    total_verifications: int = 0
    average_confidence: float = 0.0
    last_verification: datetime | None = None

    @property
    def verification_rate(self) -> float:
        if self.total_codes == 0:
            return 0.0
        return self.verified_codes / self.total_codes * 100.0


class CodeGenerationResult(BaseModel):
    """Outcome of generating codes for a batch.

    ``generated_count`` can be lower than ``requested_count`` when some codes
    already existed; those are skipped rather than treated as failures.
    """

    batch_id: str
    requested_count: int = Field(..., ge=0)
    generated_count: int = Field(..., ge=0)
    sample_codes: list[str] = Field(default_factory=list)


class RevocationResult(BaseModel):
    """Outcome of revoking a batch."""

    batch_id: str
    status: BatchStatus = BatchStatus.REVOKED
    affected_codes: int = Field(..., ge=0)
    reason: str
    revoked_at: datetime = Field(default_factory=_utc_now)
