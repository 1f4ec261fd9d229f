"""
Tests for the verification API router.

Validates request validation, the response body of each classification,
error mapping, and the offline sync report shape.
"""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from pa_common.models import Authentic, Duplicate, Invalid, Location, Revoked
from verification.errors import CodeValidationError, DependencyUnavailable, RateLimitExceeded
from verification.pipeline import SyncItemResult, SyncReport

CODE = "ABCDEF0123456789ABCDEF0123456789"

PRODUCT = dict(
    manufacturer_id="M1",
    manufacturer_name="Acme Pharma",
    batch_id="B1",
    product_name="Paracetamol 500mg",
    serial_number="B1-000001",
    manufacturing_date=date(2026, 1, 1),
    expiry_date=date(2028, 1, 1),
)


def make_authentic() -> Authentic:
    return Authentic(confidence=1.0, **PRODUCT)


class TestVerify:
    def test_authentic(self, client: TestClient, mock_pipeline, identity):
        resp = client.post("/api/verify", json={"authentication_code": CODE})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "authentic"
        assert data["confidence"] == 1.0
        assert data["batch_id"] == "B1"
        assert data["manufacturing_date"] == "2026-01-01"
        assert data["is_duplicate"] is False
        mock_pipeline.verify.assert_awaited_once_with(CODE, identity, None)

    def test_location_is_forwarded(self, client: TestClient, mock_pipeline, identity):
        client.post(
            "/api/verify",
            json={"authentication_code": CODE, "location": {"latitude": 6.5, "longitude": 3.3}},
        )
        mock_pipeline.verify.assert_awaited_once_with(
            CODE, identity, Location(latitude=6.5, longitude=3.3),
        )

    def test_duplicate(self, client: TestClient, mock_pipeline):
        mock_pipeline.verify = AsyncMock(return_value=Duplicate(confidence=0.7, **PRODUCT))
        data = client.post("/api/verify", json={"authentication_code": CODE}).json()
        assert data["status"] == "duplicate"
        assert data["is_duplicate"] is True
        assert data["confidence"] == 0.7

    def test_invalid_has_no_product_fields(self, client: TestClient, mock_pipeline):
        mock_pipeline.verify = AsyncMock(return_value=Invalid())
        data = client.post("/api/verify", json={"authentication_code": CODE}).json()
        assert data["status"] == "invalid"
        assert data["confidence"] == 0.0
        assert data["batch_id"] is None

    def test_revoked(self, client: TestClient, mock_pipeline):
        mock_pipeline.verify = AsyncMock(return_value=Revoked(**PRODUCT))
        data = client.post("/api/verify", json={"authentication_code": CODE}).json()
        assert data["status"] == "revoked"
        assert data["message"] == "This batch has been revoked"

    def test_missing_code_is_422(self, client: TestClient):
        assert client.post("/api/verify", json={}).status_code == 422

    def test_bad_location_is_422(self, client: TestClient):
        resp = client.post(
            "/api/verify",
            json={"authentication_code": CODE, "location": {"latitude": 91, "longitude": 0}},
        )
        assert resp.status_code == 422

    def test_malformed_code_is_400(self, client: TestClient, mock_pipeline):
        mock_pipeline.verify = AsyncMock(side_effect=CodeValidationError("bad code"))
        resp = client.post("/api/verify", json={"authentication_code": "xyz"})
        assert resp.status_code == 400
        assert resp.json()["retryable"] is False

    def test_rate_limited_is_429(self, client: TestClient, mock_pipeline):
        mock_pipeline.verify = AsyncMock(side_effect=RateLimitExceeded("verification", 1000, 120))
        resp = client.post("/api/verify", json={"authentication_code": CODE})
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "120"
        assert resp.json()["retry_after"] == 120

    def test_store_outage_is_503(self, client: TestClient, mock_pipeline):
        mock_pipeline.verify = AsyncMock(side_effect=DependencyUnavailable("store down"))
        resp = client.post("/api/verify", json={"authentication_code": CODE})
        assert resp.status_code == 503
        assert resp.json()["retryable"] is True


class TestSync:
    def test_report_shape(self, client: TestClient, mock_pipeline):
        mock_pipeline.verify_many = AsyncMock(
            return_value=SyncReport(
                results=[
                    SyncItemResult(index=0, authentication_code=CODE, result=make_authentic()),
                    SyncItemResult(index=1, authentication_code="BAD", error="malformed code"),
                ],
            ),
        )
        resp = client.post(
            "/api/verify/sync",
            json={"verifications": [{"authentication_code": CODE}, {"authentication_code": "BAD"}]},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert (data["total"], data["successful"], data["failed"]) == (2, 1, 1)
        assert data["results"][0]["status"] == "success"
        assert data["results"][0]["result"]["status"] == "authentic"
        assert data["results"][1] == {
            "code": "BAD", "status": "error", "result": None, "error": "malformed code",
        }

    def test_scans_forwarded_in_order(self, client: TestClient, mock_pipeline, identity):
        mock_pipeline.verify_many = AsyncMock(return_value=SyncReport())
        client.post(
            "/api/verify/sync",
            json={
                "verifications": [
                    {"authentication_code": "A" * 32},
                    {"authentication_code": "B" * 32, "location": {"latitude": 1, "longitude": 2}},
                ],
            },
        )
        scans, called_identity = mock_pipeline.verify_many.await_args.args
        assert [s.authentication_code for s in scans] == ["A" * 32, "B" * 32]
        assert scans[1].location == Location(latitude=1, longitude=2)
        assert called_identity == identity

    def test_too_many_items_is_422(self, client: TestClient):
        body = {"verifications": [{"authentication_code": CODE}] * 1001}
        assert client.post("/api/verify/sync", json=body).status_code == 422
