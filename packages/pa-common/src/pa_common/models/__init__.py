"""
Shared Pydantic data models for PharmAuth.

This package contains the cross-service data models: batches, authentication
codes, verification events and results, and API key identities.
"""

from pa_common.models.api_key import ApiKeyIdentity, hash_api_key
from pa_common.models.batch import (
    Batch,
    BatchStats,
    BatchStatus,
    BatchSummary,
    CodeGenerationResult,
    RevocationResult,
)
from pa_common.models.code import AuthenticationCode, CodeRecord, CodeStatus
from pa_common.models.verification import (
    Authentic,
    Duplicate,
    Expired,
    Invalid,
    LocatedScan,
    Location,
    Revoked,
    Suspicious,
    VerificationEvent,
    VerificationResult,
    VerificationStatus,
)

__all__ = [
    "ApiKeyIdentity",
    "Authentic",
    "AuthenticationCode",
    "Batch",
    "BatchStats",
    "BatchStatus",
    "BatchSummary",
    "CodeGenerationResult",
    "CodeRecord",
    "CodeStatus",
    "Duplicate",
    "Expired",
    "Invalid",
    "LocatedScan",
    "Location",
    "RevocationResult",
    "Revoked",
    "Suspicious",
    "VerificationEvent",
    "VerificationResult",
    "VerificationStatus",
    "hash_api_key",
]
