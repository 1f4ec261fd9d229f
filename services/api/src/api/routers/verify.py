"""
Verification API router for PharmAuth.

Single-scan verification and replay of scans captured offline.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_identity, get_pipeline
from api.schemas.verify_schemas import (
    SyncItem,
    SyncRequest,
    SyncResponse,
    VerifyRequest,
    VerifyResponse,
)

from pa_common.models import ApiKeyIdentity
from verification import OfflineScan, VerificationPipeline

router = APIRouter(prefix="/verify", tags=["verify"])


@router.post("", response_model=VerifyResponse)
async def verify_code(
    body: VerifyRequest,
    identity: ApiKeyIdentity = Depends(get_identity),
    pipeline: VerificationPipeline = Depends(get_pipeline),
) -> VerifyResponse:
    result = await pipeline.verify(body.authentication_code, identity, body.location)
    return VerifyResponse(**result.to_response())


@router.post("/sync", response_model=SyncResponse)
async def sync_offline(
    body: SyncRequest,
    identity: ApiKeyIdentity = Depends(get_identity),
    pipeline: VerificationPipeline = Depends(get_pipeline),
) -> SyncResponse:
    scans = [
        OfflineScan(authentication_code=v.authentication_code, location=v.location)
        for v in body.verifications
    ]
    report = await pipeline.verify_many(scans, identity)
    return SyncResponse(
        total=report.total,
        successful=report.successful,
        failed=report.failed,
        results=[SyncItem(**item.to_response()) for item in report.results],
    )
