"""
Verification data models for PharmAuth.

Defines scan locations, the append-only ``VerificationEvent`` audit record,
and the closed set of verification results.  Each result variant carries
only the fields that make sense for it: an ``Invalid`` result never carries
product details, so a cross-tenant lookup cannot leak that a code exists.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Annotated, Any, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class VerificationStatus(str, enum.Enum):
    """Classification of a single verification attempt."""

    AUTHENTIC = "authentic"
    DUPLICATE = "duplicate"
    SUSPICIOUS = "suspicious"
    INVALID = "invalid"
    REVOKED = "revoked"
    EXPIRED = "expired"


class Location(BaseModel):
    """A WGS-84 scan location.

    Attributes:
        latitude: Degrees north, -90 to 90.
        longitude: Degrees east, -180 to 180.
    """

    model_config = {"frozen": True}

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    def rounded(self, precision: int = 3) -> tuple[float, float]:
        """Return the coordinates rounded to *precision* decimal places."""
        return round(self.latitude, precision), round(self.longitude, precision)


class LocatedScan(BaseModel):
    """A prior located verification of a code, used for geo-velocity."""

    latitude: float
    longitude: float
    verified_at: datetime


class VerificationEvent(BaseModel):
    """Immutable record of one verification attempt.

    Attributes:
        event_id: Unique identifier.
        code_id: Stored code primary key, ``None`` when the code was not found.
        scanned_code: The normalized code that was submitted.
        api_key_id: API key that made the request.
        location: Optional scan location.
        status: Result classification.
        confidence: Confidence score (0.0–1.0).
        is_duplicate: Whether the code had been verified before.
        is_offline: Whether the scan was replayed from an offline device.
        verified_at: Decision timestamp (UTC).
    """

    model_config = {"from_attributes": True, "frozen": True}

    event_id: UUID = Field(default_factory=uuid4)
    code_id: int | None = None
    scanned_code: str = Field(..., max_length=64)
    api_key_id: str
    location: Location | None = None
    status: VerificationStatus
    confidence: float = Field(..., ge=0.0, le=1.0)
    is_duplicate: bool = False
    is_offline: bool = False
    verified_at: datetime = Field(default_factory=_utc_now)


# ── Results ──


class _ResultBase(BaseModel):
    model_config = {"frozen": True}

    message: str
    is_offline: bool = False
    is_duplicate: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    def to_response(self) -> dict[str, Any]:
        """Render the result as the public verification response body."""
        payload: dict[str, Any] = {
            "status": getattr(self, "status"),
            "confidence": self.confidence,
            "manufacturer_id": None,
            "batch_id": None,
            "product_name": None,
            "is_duplicate": self.is_duplicate,
            "is_offline": self.is_offline,
            "message": self.message,
        }
        for name in (
            "manufacturer_id",
            "manufacturer_name",
            "batch_id",
            "product_name",
            "serial_number",
            "manufacturing_date",
            "expiry_date",
        ):
            if name in type(self).model_fields:
                value = getattr(self, name)
                payload[name] = value.isoformat() if isinstance(value, date) else value
        return payload


class _ProductResult(_ResultBase):
    manufacturer_id: str
    manufacturer_name: str | None = None
    batch_id: str
    product_name: str
    serial_number: str
    manufacturing_date: date | None = None
    expiry_date: date | None = None


class Authentic(_ProductResult):
    status: Literal["authentic"] = "authentic"
    message: str = "Product verified as authentic"
    is_duplicate: Literal[False] = False


class Duplicate(_ProductResult):
    status: Literal["duplicate"] = "duplicate"
    message: str = "This code has been verified before"
    is_duplicate: Literal[True] = True


class Suspicious(_ProductResult):
    status: Literal["suspicious"] = "suspicious"
    message: str = "Suspicious activity detected"
    # Names of the anomaly heuristics that fired; not part of the response.
    reasons: tuple[str, ...] = ()


class Invalid(_ResultBase):
    status: Literal["invalid"] = "invalid"
    message: str = "Authentication code not found"
    confidence: float = Field(default=0.0, ge=0.0, le=0.0)


class Revoked(_ProductResult):
    status: Literal["revoked"] = "revoked"
    message: str = "This batch has been revoked"
    confidence: float = Field(default=0.0, ge=0.0, le=0.0)


class Expired(_ProductResult):
    status: Literal["expired"] = "expired"
    message: str = "This product has expired"
    confidence: float = Field(default=0.0, ge=0.0, le=0.0)


VerificationResult = Annotated[
    Union[Authentic, Duplicate, Suspicious, Invalid, Revoked, Expired],
    Field(discriminator="status"),
]
