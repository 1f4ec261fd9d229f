"""
Authentication code data models for PharmAuth.

``AuthenticationCode`` mirrors a stored code row.  ``CodeRecord`` is the
denormalized code + batch + manufacturer join that the verification
pipeline needs for its lookup, ownership, status and expiry checks; it is
also the value kept in the verification cache.
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from pydantic import BaseModel, Field


class CodeStatus(str, enum.Enum):
    """Lifecycle status of an authentication code (active → revoked only)."""

    ACTIVE = "active"
    REVOKED = "revoked"


class AuthenticationCode(BaseModel):
    """A single unit's authentication code.

    Attributes:
        id: Surrogate primary key.
        batch_pk: Primary key of the owning batch row.
        serial_number: Serial within the batch (``<batch_id>-000001``).
        authentication_code: The 32-character code printed on the unit.
        status: Active or revoked.
        first_verified_at: Set once, by the first successful verification.
        revoked_at: Set when the owning batch is revoked.
    """

    model_config = {"from_attributes": True}

    id: int | None = None
    batch_pk: int
    serial_number: str = Field(..., max_length=120)
    authentication_code: str = Field(..., min_length=32, max_length=32)
    status: CodeStatus = CodeStatus.ACTIVE
    first_verified_at: datetime | None = None
    revoked_at: datetime | None = None


class CodeRecord(BaseModel):
    """Everything the pipeline needs to decide on a scanned code."""

    model_config = {"from_attributes": True}

    code_id: int
    authentication_code: str
    serial_number: str
    status: CodeStatus
    first_verified_at: datetime | None = None
    revoked_at: datetime | None = None
    batch_id: str
    product_name: str
    manufacturing_date: date | None = None
    expiry_date: date | None = None
    manufacturer_id: str
    manufacturer_name: str | None = None

    def is_expired(self, today: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < today
