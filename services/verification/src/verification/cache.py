"""
Verification cache for PharmAuth.

Read-through/write-through lookaside cache of :class:`CodeRecord` entries
keyed by normalized code (``auth_code:{code}``).

Entries are hints, not truth.  They expire after ``ttl_s`` regardless of
mutations, and batch revocation deletes them explicitly.  If an explicit
invalidation is lost, the TTL is the upper bound on how long a revoked code
can still read as active, so it is a security-relevant setting.

Every Redis failure degrades to a miss (reads) or a no-op (writes); the
pipeline then falls back to the authoritative store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

import structlog
from pydantic import ValidationError
from redis.exceptions import RedisError

from pa_common.metrics import cache_lookups_total
from pa_common.models import CodeRecord

logger = structlog.get_logger(__name__)

_DEFAULT_TTL_S = 3600
_DEFAULT_TIMEOUT_S = 2.0
_INVALIDATE_CHUNK = 500

_CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def cache_key(code: str) -> str:
    return f"auth_code:{code}"


class VerificationCache:
    """Redis-backed cache of code records.

    Args:
        redis: An async Redis connection (the raw ``redis.asyncio.Redis``
               instance, **not** the ``RedisClient`` wrapper).
        ttl_s: Entry lifetime in seconds.
        timeout_s: Per-call timeout; a slow cache is treated as a miss.
    """

    def __init__(
        self,
        redis: Any,
        *,
        ttl_s: int = _DEFAULT_TTL_S,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._redis = redis
        self.ttl_s = ttl_s
        self._timeout_s = timeout_s

    async def get(self, code: str) -> CodeRecord | None:
        """Return the cached record for *code*, or ``None`` on miss or error."""
        try:
            raw = await asyncio.wait_for(self._redis.get(cache_key(code)), self._timeout_s)
        except _CACHE_ERRORS as exc:
            cache_lookups_total.labels(outcome="error").inc()
            logger.warning("cache_get_failed", code=code, error=str(exc))
            return None

        if raw is None:
            cache_lookups_total.labels(outcome="miss").inc()
            return None

        try:
            record = CodeRecord.model_validate_json(raw)
        except ValidationError:
            cache_lookups_total.labels(outcome="corrupt").inc()
            logger.warning("cache_entry_corrupt", code=code)
            return None

        cache_lookups_total.labels(outcome="hit").inc()
        return record

    async def put(self, record: CodeRecord) -> bool:
        """Store *record* with the configured TTL.

        Returns:
            ``True`` if the entry was written.
        """
        try:
            await asyncio.wait_for(
                self._redis.set(
                    cache_key(record.authentication_code),
                    record.model_dump_json(),
                    ex=self.ttl_s,
                ),
                self._timeout_s,
            )
        except _CACHE_ERRORS as exc:
            logger.warning(
                "cache_put_failed", code=record.authentication_code, error=str(exc),
            )
            return False
        return True

    async def invalidate(self, codes: Iterable[str]) -> int:
        """Delete the entries for *codes*.

        Returns:
            Number of entries that were present and removed.  A failure part
            way through is logged and the count so far is returned; the
            remaining entries age out within ``ttl_s``.
        """
        keys = [cache_key(code) for code in codes]
        removed = 0
        for start in range(0, len(keys), _INVALIDATE_CHUNK):
            chunk = keys[start:start + _INVALIDATE_CHUNK]
            try:
                removed += int(
                    await asyncio.wait_for(self._redis.delete(*chunk), self._timeout_s),
                )
            except _CACHE_ERRORS as exc:
                logger.error(
                    "cache_invalidate_failed",
                    pending=len(keys) - start,
                    max_staleness_s=self.ttl_s,
                    error=str(exc),
                )
                break
        return removed
