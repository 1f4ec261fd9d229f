"""
Batch lifecycle for PharmAuth.

Creation, listing and statistics for a manufacturer's batches, code
generation for an active batch, and the revocation cascade.

Revocation commits the batch and every code as revoked in one store
transaction, then deletes the cached records of the revoked codes.  If that
deletion fails, the cache TTL is the bound on how long a revoked code can
still be served from cache.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timezone

import structlog

from pa_common.models import (
    ApiKeyIdentity,
    Batch,
    BatchStats,
    BatchStatus,
    BatchSummary,
    CodeGenerationResult,
    RevocationResult,
)

from verification.cache import VerificationCache
from verification.code_generator import CodeGenerator
from verification.errors import ConflictError, NotFoundError
from verification.store import CodeStore

logger = structlog.get_logger(__name__)

SAMPLE_SIZE = 10
MAX_GENERATE = 100_000


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BatchService:
    """Manufacturer-scoped batch operations.

    Args:
        store: Authoritative code store.
        cache: Verification cache, invalidated on revocation.
        generator: Code generator holding the code secret.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        store: CodeStore,
        cache: VerificationCache,
        generator: CodeGenerator,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._generator = generator
        self._clock = clock or _utc_now

    def today(self) -> date:
        """Return the current date by the service clock."""
        return self._clock().date()

    async def create_batch(self, identity: ApiKeyIdentity, batch: Batch) -> Batch:
        """Create *batch* for the caller's manufacturer.

        Raises:
            ConflictError: The batch id is already used by this manufacturer.
        """
        owned = batch.model_copy(update={"manufacturer_id": identity.manufacturer_id})
        return await self._store.create_batch(owned)

    async def list_batches(
        self,
        identity: ApiKeyIdentity,
        *,
        status: BatchStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BatchSummary]:
        return await self._store.list_batches(
            identity.manufacturer_id,
            status=status,
            limit=limit,
            offset=offset,
            today=self.today(),
        )

    async def get_batch(self, identity: ApiKeyIdentity, batch_id: str) -> BatchSummary:
        batch = await self._store.get_batch(identity.manufacturer_id, batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return batch

    async def batch_stats(self, identity: ApiKeyIdentity, batch_id: str) -> BatchStats:
        stats = await self._store.batch_stats(identity.manufacturer_id, batch_id)
        if stats is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return stats

    async def generate_codes(
        self,
        identity: ApiKeyIdentity,
        batch_id: str,
        count: int,
    ) -> CodeGenerationResult:
        """Generate and store *count* codes for an active batch.

        Codes that already exist are skipped, so repeating a request for the
        same batch and count inserts nothing the second time.

        Raises:
            NotFoundError: The batch does not exist for this manufacturer.
            ConflictError: The batch is revoked or expired.
        """
        if not 1 <= count <= MAX_GENERATE:
            raise ValueError(f"count must be between 1 and {MAX_GENERATE}")

        batch = await self.get_batch(identity, batch_id)
        status = batch.effective_status(self.today())
        if status != BatchStatus.ACTIVE:
            raise ConflictError(f"Batch {batch_id} is {status.value}")

        pairs = list(
            self._generator.generate_batch(identity.manufacturer_id, batch_id, count),
        )
        inserted = await self._store.insert_codes(batch.id, pairs)

        logger.info(
            "codes_generated",
            manufacturer_id=identity.manufacturer_id,
            batch_id=batch_id,
            requested=count,
            generated=len(inserted),
        )
        return CodeGenerationResult(
            batch_id=batch_id,
            requested_count=count,
            generated_count=len(inserted),
            sample_codes=inserted[:SAMPLE_SIZE],
        )

    async def revoke_batch(
        self,
        identity: ApiKeyIdentity,
        batch_id: str,
        reason: str,
    ) -> RevocationResult:
        """Revoke a batch and every code in it.

        Raises:
            NotFoundError: No active batch with this id for the manufacturer.
        """
        revoked_at = self._clock()
        codes = await self._store.revoke_batch(
            identity.manufacturer_id, batch_id, reason, revoked_at,
        )
        removed = await self._cache.invalidate(codes)

        logger.warning(
            "batch_revoked",
            manufacturer_id=identity.manufacturer_id,
            batch_id=batch_id,
            affected_codes=len(codes),
            cache_entries_removed=removed,
            reason=reason,
        )
        return RevocationResult(
            batch_id=batch_id,
            affected_codes=len(codes),
            reason=reason,
            revoked_at=revoked_at,
        )
