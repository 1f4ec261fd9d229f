"""
Batch management API router for PharmAuth.

Create, list and inspect a manufacturer's batches, read per-batch
statistics, and revoke a batch together with all of its codes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_batch_service, get_identity
from api.schemas.batch_schemas import (
    BatchCreateRequest,
    BatchListResponse,
    BatchResponse,
    BatchStatsResponse,
    RevokeRequest,
    RevokeResponse,
)

from pa_common.models import ApiKeyIdentity, Batch, BatchStatus, BatchSummary
from verification import BatchService

router = APIRouter(prefix="/batches", tags=["batches"])


@router.post("", status_code=201, response_model=BatchResponse)
async def create_batch(
    body: BatchCreateRequest,
    identity: ApiKeyIdentity = Depends(get_identity),
    service: BatchService = Depends(get_batch_service),
) -> BatchResponse:
    batch = await service.create_batch(
        identity,
        Batch(manufacturer_id=identity.manufacturer_id, **body.model_dump()),
    )
    return BatchResponse.from_summary(BatchSummary(**batch.model_dump()), service.today())


@router.get("", response_model=BatchListResponse)
async def list_batches(
    status: BatchStatus | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    identity: ApiKeyIdentity = Depends(get_identity),
    service: BatchService = Depends(get_batch_service),
) -> BatchListResponse:
    batches = await service.list_batches(identity, status=status, limit=limit, offset=offset)
    today = service.today()
    return BatchListResponse(
        batches=[BatchResponse.from_summary(b, today) for b in batches],
        count=len(batches),
        limit=limit,
        offset=offset,
    )


@router.get("/{batch_id}", response_model=BatchResponse)
async def get_batch(
    batch_id: str,
    identity: ApiKeyIdentity = Depends(get_identity),
    service: BatchService = Depends(get_batch_service),
) -> BatchResponse:
    batch = await service.get_batch(identity, batch_id)
    return BatchResponse.from_summary(batch, service.today())


@router.get("/{batch_id}/stats", response_model=BatchStatsResponse)
async def get_batch_stats(
    batch_id: str,
    identity: ApiKeyIdentity = Depends(get_identity),
    service: BatchService = Depends(get_batch_service),
) -> BatchStatsResponse:
    stats = await service.batch_stats(identity, batch_id)
    return BatchStatsResponse.from_stats(stats)


@router.post("/{batch_id}/revoke", response_model=RevokeResponse)
async def revoke_batch(
    batch_id: str,
    body: RevokeRequest,
    identity: ApiKeyIdentity = Depends(get_identity),
    service: BatchService = Depends(get_batch_service),
) -> RevokeResponse:
    result = await service.revoke_batch(identity, batch_id, body.reason)
    return RevokeResponse(
        batch_id=result.batch_id,
        status=result.status.value,
        affected_codes=result.affected_codes,
        reason=result.reason,
        revoked_at=result.revoked_at,
    )
