"""Shared fixtures for API gateway tests."""

from __future__ import annotations

import os
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_batch_service, get_identity, get_pipeline
from api.errors import register_exception_handlers
from api.routers import batches, codes, health, verify

from pa_common.models import ApiKeyIdentity, Authentic

# Secrets have no defaults; set them before any settings are loaded.
os.environ.setdefault("PA_CODE_SECRET", "test-code-secret")
os.environ.setdefault("PA_API_KEY_HASH_SECRET", "test-hash-secret")


# ─── Sample objects ───────────────────────────────────────────────

def _make_authentic(**overrides) -> Authentic:
    defaults = dict(
        confidence=1.0,
        manufacturer_id="M1",
        manufacturer_name="Acme Pharma",
        batch_id="B1",
        product_name="Paracetamol 500mg",
        serial_number="B1-000001",
        manufacturing_date=date(2026, 1, 1),
        expiry_date=date(2028, 1, 1),
    )
    defaults.update(overrides)
    return Authentic(**defaults)


# ─── Core fixtures ────────────────────────────────────────────────


@pytest.fixture()
def identity() -> ApiKeyIdentity:
    return ApiKeyIdentity(api_key_id="key-1", manufacturer_id="M1", name="field app")


@pytest.fixture()
def mock_pipeline() -> AsyncMock:
    pipeline = AsyncMock()
    pipeline.verify = AsyncMock(return_value=_make_authentic())
    return pipeline


@pytest.fixture()
def mock_batch_service() -> AsyncMock:
    service = AsyncMock()
    service.today = MagicMock(return_value=date(2026, 5, 1))
    return service


@pytest.fixture()
def mock_redis_client() -> AsyncMock:
    redis = AsyncMock()
    redis.health_check = AsyncMock(return_value=True)
    return redis


def _build_app(
    identity: ApiKeyIdentity,
    mock_pipeline: AsyncMock,
    mock_batch_service: AsyncMock,
) -> FastAPI:
    """Build a minimal FastAPI app with dependency overrides for testing."""
    app = FastAPI()

    # Override DI
    app.dependency_overrides[get_identity] = lambda: identity
    app.dependency_overrides[get_pipeline] = lambda: mock_pipeline
    app.dependency_overrides[get_batch_service] = lambda: mock_batch_service

    # Register routers
    prefix = "/api"
    app.include_router(verify.router, prefix=prefix)
    app.include_router(batches.router, prefix=prefix)
    app.include_router(codes.router, prefix=prefix)
    app.include_router(health.router)

    register_exception_handlers(app)
    return app


@pytest.fixture()
def app(identity, mock_pipeline, mock_batch_service) -> FastAPI:
    return _build_app(identity, mock_pipeline, mock_batch_service)


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
