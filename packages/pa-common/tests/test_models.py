"""
Tests for pa-common data models.

Validates batch status derivation, location bounds, verification result
variants and their response rendering, and API key hashing.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from pa_common.models import (
    ApiKeyIdentity,
    Authentic,
    Batch,
    BatchStats,
    BatchStatus,
    BatchSummary,
    CodeRecord,
    CodeStatus,
    Duplicate,
    Invalid,
    Location,
    Revoked,
    Suspicious,
    VerificationEvent,
    VerificationResult,
    VerificationStatus,
    hash_api_key,
)


def _batch(**overrides) -> Batch:
    defaults = dict(
        manufacturer_id="M1",
        batch_id="B1",
        product_name="Paracetamol 500mg",
        manufacturing_date=date(2026, 1, 1),
        expiry_date=date(2028, 1, 1),
        total_units=100,
    )
    defaults.update(overrides)
    return Batch(**defaults)


def _product_fields() -> dict:
    return dict(
        manufacturer_id="M1",
        batch_id="B1",
        product_name="Paracetamol 500mg",
        serial_number="B1-000001",
        expiry_date=date(2028, 1, 1),
    )


# ── Batch ──


class TestBatch:
    def test_effective_status_active(self) -> None:
        assert _batch().effective_status(date(2027, 1, 1)) == BatchStatus.ACTIVE

    def test_effective_status_expired(self) -> None:
        assert _batch().effective_status(date(2028, 1, 2)) == BatchStatus.EXPIRED

    def test_revoked_wins_over_expired(self) -> None:
        batch = _batch(status=BatchStatus.REVOKED)
        assert batch.effective_status(date(2030, 1, 1)) == BatchStatus.REVOKED

    def test_expiry_before_manufacture_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _batch(expiry_date=date(2025, 1, 1))

    def test_total_units_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            _batch(total_units=0)

    def test_summary_verification_rate(self) -> None:
        summary = BatchSummary(**_batch().model_dump(), code_count=200, verified_count=50)
        assert summary.verification_rate == 25.0

    def test_stats_rate_with_no_codes(self) -> None:
        assert BatchStats(batch_id="B1", product_name="P").verification_rate == 0.0


# ── Code records ──


class TestCodeRecord:
    def test_is_expired(self) -> None:
        record = CodeRecord(
            code_id=1,
            authentication_code="A" * 32,
            serial_number="B1-000001",
            status=CodeStatus.ACTIVE,
            batch_id="B1",
            product_name="P",
            expiry_date=date(2026, 6, 1),
            manufacturer_id="M1",
        )
        assert record.is_expired(date(2026, 6, 2)) is True
        assert record.is_expired(date(2026, 6, 1)) is False

    def test_json_round_trip_keeps_timestamps(self) -> None:
        ts = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        record = CodeRecord(
            code_id=7,
            authentication_code="B" * 32,
            serial_number="B1-000007",
            status=CodeStatus.ACTIVE,
            first_verified_at=ts,
            batch_id="B1",
            product_name="P",
            manufacturer_id="M1",
        )
        assert CodeRecord.model_validate_json(record.model_dump_json()).first_verified_at == ts


# ── Locations and events ──


class TestLocation:
    def test_rounding(self) -> None:
        assert Location(latitude=6.52437, longitude=3.37921).rounded() == (6.524, 3.379)

    @pytest.mark.parametrize("lat,lng", [(91.0, 0.0), (-91.0, 0.0), (0.0, 181.0)])
    def test_out_of_range_rejected(self, lat: float, lng: float) -> None:
        with pytest.raises(ValidationError):
            Location(latitude=lat, longitude=lng)


class TestVerificationEvent:
    def test_confidence_bounds(self) -> None:
        with pytest.raises(ValidationError):
            VerificationEvent(
                scanned_code="A" * 32,
                api_key_id="k1",
                status=VerificationStatus.AUTHENTIC,
                confidence=1.2,
            )

    def test_event_is_immutable(self) -> None:
        event = VerificationEvent(
            scanned_code="A" * 32,
            api_key_id="k1",
            status=VerificationStatus.INVALID,
            confidence=0.0,
        )
        with pytest.raises(ValidationError):
            event.confidence = 0.5


# ── Results ──


class TestResults:
    def test_invalid_response_has_no_product_details(self) -> None:
        body = Invalid().to_response()
        assert body["status"] == "invalid"
        assert body["confidence"] == 0.0
        assert body["manufacturer_id"] is None
        assert body["batch_id"] is None
        assert body["product_name"] is None
        assert body["message"] == "Authentication code not found"

    def test_invalid_confidence_pinned_to_zero(self) -> None:
        with pytest.raises(ValidationError):
            Invalid(confidence=0.5)

    def test_revoked_confidence_pinned_to_zero(self) -> None:
        with pytest.raises(ValidationError):
            Revoked(confidence=0.3, **_product_fields())

    def test_authentic_response_shape(self) -> None:
        body = Authentic(confidence=1.0, **_product_fields()).to_response()
        assert body["status"] == "authentic"
        assert body["is_duplicate"] is False
        assert body["batch_id"] == "B1"
        assert body["expiry_date"] == "2028-01-01"

    def test_duplicate_always_flags_duplicate(self) -> None:
        assert Duplicate(confidence=0.7, **_product_fields()).is_duplicate is True

    def test_suspicious_reasons_not_in_response(self) -> None:
        body = Suspicious(confidence=0.3, reasons=("geo_velocity",), **_product_fields())
        assert "reasons" not in body.to_response()

    def test_discriminated_union_parses_by_status(self) -> None:
        adapter = TypeAdapter(VerificationResult)
        parsed = adapter.validate_python({"status": "duplicate", "confidence": 0.7, **_product_fields()})
        assert isinstance(parsed, Duplicate)


# ── API keys ──


class TestApiKeys:
    def test_hash_is_deterministic(self) -> None:
        assert hash_api_key("key", "salt") == hash_api_key("key", "salt")

    def test_hash_depends_on_secret(self) -> None:
        assert hash_api_key("key", "a") != hash_api_key("key", "b")

    def test_identity_requires_manufacturer(self) -> None:
        with pytest.raises(ValidationError):
            ApiKeyIdentity(api_key_id="k1", manufacturer_id="")
