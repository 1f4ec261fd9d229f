"""
Code generation API router for PharmAuth.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_batch_service, get_identity
from api.schemas.batch_schemas import GenerateCodesRequest, GenerateCodesResponse

from pa_common.models import ApiKeyIdentity
from verification import BatchService

router = APIRouter(prefix="/codes", tags=["codes"])


@router.post("/generate", status_code=201, response_model=GenerateCodesResponse)
async def generate_codes(
    body: GenerateCodesRequest,
    identity: ApiKeyIdentity = Depends(get_identity),
    service: BatchService = Depends(get_batch_service),
) -> GenerateCodesResponse:
    result = await service.generate_codes(identity, body.batch_id, body.count)
    return GenerateCodesResponse(**result.model_dump())
