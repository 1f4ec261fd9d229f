"""
PharmAuth Verification Engine.

Code generation, the verification decision pipeline, rate limiting,
the code cache, anomaly heuristics, and the batch lifecycle including the
revocation cascade.
"""

from verification.anomaly import AnomalyDetector, AnomalyReport
from verification.audit import AuditLogger
from verification.batches import BatchService
from verification.cache import VerificationCache
from verification.code_generator import CodeGenerator, normalize_code
from verification.errors import (
    CodeValidationError,
    ConflictError,
    DependencyUnavailable,
    NotFoundError,
    RateLimitExceeded,
    VerificationError,
)
from verification.pipeline import OfflineScan, SyncReport, VerificationPipeline
from verification.rate_limiter import RateLimiter
from verification.store import CodeStore

__all__ = [
    "AnomalyDetector",
    "AnomalyReport",
    "AuditLogger",
    "BatchService",
    "CodeGenerator",
    "CodeStore",
    "CodeValidationError",
    "ConflictError",
    "DependencyUnavailable",
    "NotFoundError",
    "OfflineScan",
    "RateLimitExceeded",
    "RateLimiter",
    "SyncReport",
    "VerificationCache",
    "VerificationError",
    "VerificationPipeline",
    "normalize_code",
]
