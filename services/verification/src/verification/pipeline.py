"""
Verification pipeline for PharmAuth.

Turns one scanned code into exactly one classification:

    rate gate → lookup (cache, then store) → ownership → status → expiry
    → duplicate → anomaly heuristics → confidence score → classification
    → first-verification claim → audit event

Unknown codes and codes owned by another manufacturer both classify as
``invalid`` with the same message.  Revoked and expired codes short-circuit
with confidence 0.  Otherwise confidence starts at 1.0 and loses 0.3 for a
duplicate, 0.2 for an offline replay and 0.4 for a detected anomaly.  Any
score below 0.5 is ``suspicious``; above that a previously verified code is
``duplicate`` and a fresh one ``authentic``.

"First verified" is decided by the store's conditional update, not by the
order requests arrived in.  An attempt that loses the claim to a concurrent
scan is re-scored as a duplicate before it is returned, and one whose code
was revoked after the lookup is reported as revoked.  Only a won claim
writes the record back to the cache; every other outcome drops the cached
entry.  The claim, the cache update and the audit write run shielded from
caller cancellation.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from pa_common.metrics import pipeline_duration_seconds, verifications_total
from pa_common.models import (
    ApiKeyIdentity,
    Authentic,
    CodeRecord,
    CodeStatus,
    Duplicate,
    Expired,
    Invalid,
    Location,
    Revoked,
    Suspicious,
    VerificationEvent,
    VerificationResult,
    VerificationStatus,
)

from verification.anomaly import AnomalyDetector
from verification.audit import AuditLogger
from verification.cache import VerificationCache
from verification.code_generator import is_well_formed, normalize_code
from verification.errors import CodeValidationError, VerificationError
from verification.rate_limiter import RateLimiter
from verification.store import CodeStore

logger = structlog.get_logger(__name__)

DUPLICATE_PENALTY = 0.3
OFFLINE_PENALTY = 0.2
ANOMALY_PENALTY = 0.4
SUSPICIOUS_BELOW = 0.5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def score(*, duplicate: bool, offline: bool, anomalous: bool) -> float:
    """Return the confidence for a scan, clamped to ``[0, 1]``."""
    confidence = 1.0
    if duplicate:
        confidence -= DUPLICATE_PENALTY
    if offline:
        confidence -= OFFLINE_PENALTY
    if anomalous:
        confidence -= ANOMALY_PENALTY
    return round(min(1.0, max(0.0, confidence)), 4)


def _product_fields(record: CodeRecord) -> dict[str, Any]:
    return {
        "manufacturer_id": record.manufacturer_id,
        "manufacturer_name": record.manufacturer_name,
        "batch_id": record.batch_id,
        "product_name": record.product_name,
        "serial_number": record.serial_number,
        "manufacturing_date": record.manufacturing_date,
        "expiry_date": record.expiry_date,
    }


def classify(
    record: CodeRecord,
    *,
    duplicate: bool,
    offline: bool,
    reasons: tuple[str, ...] = (),
) -> Authentic | Duplicate | Suspicious:
    """Classify an active, unexpired, owned code."""
    confidence = score(duplicate=duplicate, offline=offline, anomalous=bool(reasons))
    fields = _product_fields(record)
    if confidence < SUSPICIOUS_BELOW:
        return Suspicious(
            confidence=confidence,
            is_duplicate=duplicate,
            is_offline=offline,
            reasons=reasons,
            **fields,
        )
    if duplicate:
        return Duplicate(confidence=confidence, is_offline=offline, **fields)
    return Authentic(confidence=confidence, is_offline=offline, **fields)


# ── offline sync ──


@dataclass(frozen=True)
class OfflineScan:
    """One scan captured by a device while it had no connectivity."""

    authentication_code: str
    location: Location | None = None


@dataclass(frozen=True)
class SyncItemResult:
    """Outcome of replaying one offline scan."""

    index: int
    authentication_code: str
    result: VerificationResult | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.result is not None

    def to_response(self) -> dict[str, Any]:
        if self.result is not None:
            return {
                "code": self.authentication_code,
                "status": "success",
                "result": self.result.to_response(),
            }
        return {"code": self.authentication_code, "status": "error", "error": self.error}


@dataclass
class SyncReport:
    """Aggregate outcome of an offline sync."""

    results: list[SyncItemResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful


class VerificationPipeline:
    """Orchestrates a single verification decision.

    Args:
        store: Authoritative code store.
        cache: Lookaside cache of code records.
        rate_limiter: Per-key limiter; only the verification scope is used here.
        anomaly_detector: Rapid-repeat and geo-velocity heuristics.
        audit_logger: Append-only event sink.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        store: CodeStore,
        cache: VerificationCache,
        rate_limiter: RateLimiter,
        anomaly_detector: AnomalyDetector,
        audit_logger: AuditLogger,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._anomaly = anomaly_detector
        self._audit = audit_logger
        self._clock = clock or _utc_now

    async def verify(
        self,
        raw_code: str,
        identity: ApiKeyIdentity,
        location: Location | None = None,
        *,
        is_offline: bool = False,
    ) -> VerificationResult:
        """Classify one scan of *raw_code* on behalf of *identity*.

        Raises:
            CodeValidationError: The code is not 32 hex characters.
            RateLimitExceeded: The key exhausted its verification window.
            DependencyUnavailable: The store or audit log failed.
        """
        code = normalize_code(raw_code)
        if not is_well_formed(code):
            raise CodeValidationError("Authentication code must be 32 hexadecimal characters")

        await self._rate_limiter.check_verification(identity.api_key_id)

        started = time.perf_counter()
        now = self._clock()
        record = await self._lookup(code)

        if record is None or record.manufacturer_id != identity.manufacturer_id:
            if record is not None:
                logger.warning(
                    "cross_tenant_scan",
                    api_key_id=identity.api_key_id,
                    manufacturer_id=identity.manufacturer_id,
                )
            result: VerificationResult = Invalid(is_offline=is_offline)
            await self._finish(code, record, result, identity, location, now, claim=False)
        elif record.status == CodeStatus.REVOKED:
            result = Revoked(is_offline=is_offline, **_product_fields(record))
            await self._finish(code, record, result, identity, location, now, claim=False)
        elif record.is_expired(now.date()):
            result = Expired(is_offline=is_offline, **_product_fields(record))
            await self._finish(code, record, result, identity, location, now, claim=False)
        else:
            duplicate = record.first_verified_at is not None
            report = await self._anomaly.evaluate(code, record.code_id, location, now)
            result = classify(
                record, duplicate=duplicate, offline=is_offline, reasons=report.reasons,
            )
            result = await self._finish(
                code, record, result, identity, location, now,
                claim=not duplicate, reasons=report.reasons,
            )

        verifications_total.labels(
            status=result.status, offline=str(is_offline).lower(),
        ).inc()
        pipeline_duration_seconds.observe(time.perf_counter() - started)
        logger.info(
            "verification_decided",
            status=result.status,
            confidence=result.confidence,
            is_duplicate=result.is_duplicate,
            is_offline=is_offline,
            api_key_id=identity.api_key_id,
        )
        return result

    async def verify_many(
        self,
        scans: Sequence[OfflineScan],
        identity: ApiKeyIdentity,
    ) -> SyncReport:
        """Replay offline *scans* in order; per-item errors do not stop the run."""
        report = SyncReport()
        for index, scan in enumerate(scans):
            try:
                result = await self.verify(
                    scan.authentication_code, identity, scan.location, is_offline=True,
                )
            except VerificationError as exc:
                logger.warning(
                    "offline_scan_failed",
                    index=index,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                report.results.append(
                    SyncItemResult(index, scan.authentication_code, error=str(exc)),
                )
            else:
                report.results.append(
                    SyncItemResult(index, scan.authentication_code, result=result),
                )
        logger.info(
            "offline_sync_completed",
            total=report.total,
            successful=report.successful,
            failed=report.failed,
        )
        return report

    # ── stages ──

    async def _lookup(self, code: str) -> CodeRecord | None:
        record = await self._cache.get(code)
        if record is not None:
            return record
        record = await self._store.get_code_record(code)
        if record is not None:
            await self._cache.put(record)
        return record

    async def _finish(
        self,
        code: str,
        record: CodeRecord | None,
        result: VerificationResult,
        identity: ApiKeyIdentity,
        location: Location | None,
        now: datetime,
        *,
        claim: bool,
        reasons: tuple[str, ...] = (),
    ) -> VerificationResult:
        """Apply side effects, shielded from cancellation of the caller."""
        task = asyncio.ensure_future(
            self._commit(code, record, result, identity, location, now, claim, reasons),
        )
        return await asyncio.shield(task)

    async def _commit(
        self,
        code: str,
        record: CodeRecord | None,
        result: VerificationResult,
        identity: ApiKeyIdentity,
        location: Location | None,
        now: datetime,
        claim: bool,
        reasons: tuple[str, ...],
    ) -> VerificationResult:
        if claim and record is not None:
            outcome = await self._store.claim_first_verification(record.code_id, now)
            if outcome.status != CodeStatus.ACTIVE:
                logger.warning(
                    "code_revoked_during_verification",
                    code_id=record.code_id,
                    status=outcome.status,
                )
                await self._cache.invalidate([code])
                if outcome.status == CodeStatus.REVOKED:
                    result = Revoked(is_offline=result.is_offline, **_product_fields(record))
                else:
                    result = Invalid(is_offline=result.is_offline)
            elif not outcome.won:
                logger.info("first_verification_lost", code_id=record.code_id)
                result = classify(
                    record, duplicate=True, offline=result.is_offline, reasons=reasons,
                )
                await self._cache.invalidate([code])
            else:
                await self._cache.put(
                    record.model_copy(
                        update={
                            "first_verified_at": outcome.first_verified_at,
                            "status": outcome.status,
                        },
                    ),
                )

        event = VerificationEvent(
            code_id=record.code_id if record is not None else None,
            scanned_code=code,
            api_key_id=identity.api_key_id,
            location=location,
            status=VerificationStatus(result.status),
            confidence=result.confidence,
            is_duplicate=result.is_duplicate,
            is_offline=result.is_offline,
            verified_at=now,
        )
        await self._audit.record(event)
        return result
