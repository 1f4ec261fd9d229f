"""
Per-API-key rate limiting for PharmAuth.

Two independent fixed-window scopes, each keyed by API key:

* **request**: every authenticated API call (``rate_limit:{key}``),
  default 100 per 15 minutes.
* **verification**: verification calls only (``verify_rate:{key}``),
  default 1000 per hour.

Implementation
--------------
Each hit runs ``INCR`` + ``EXPIRE … NX`` + ``TTL`` in one MULTI/EXEC
transaction.  The increment is atomic, so concurrent requests from one key
never undercount.  ``NX`` starts the window on the first hit and never
extends it.  The post-increment count is compared with the limit, so the
``limit + 1``-th call in a window is the first one rejected.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from redis.exceptions import RedisError

from pa_common.metrics import rate_limited_total

from verification.errors import RateLimitExceeded

logger = structlog.get_logger(__name__)

# Tunables, overridable via constructor kwargs.
_DEFAULT_REQUEST_LIMIT = 100
_DEFAULT_REQUEST_WINDOW_S = 900
_DEFAULT_VERIFY_LIMIT = 1000
_DEFAULT_VERIFY_WINDOW_S = 3600
_DEFAULT_TIMEOUT_S = 2.0


class RateLimiter:
    """Fixed-window request and verification limiter backed by Redis.

    Args:
        redis: An async Redis connection (the raw ``redis.asyncio.Redis``
               instance, **not** the ``RedisClient`` wrapper).
        request_limit: Requests allowed per API key per request window.
        request_window_s: Length of the request window in seconds.
        verify_limit: Verifications allowed per API key per verify window.
        verify_window_s: Length of the verification window in seconds.
        timeout_s: Per-call timeout for the counter transaction.
    """

    def __init__(
        self,
        redis: Any,
        *,
        request_limit: int = _DEFAULT_REQUEST_LIMIT,
        request_window_s: int = _DEFAULT_REQUEST_WINDOW_S,
        verify_limit: int = _DEFAULT_VERIFY_LIMIT,
        verify_window_s: int = _DEFAULT_VERIFY_WINDOW_S,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._redis = redis
        self.request_limit = request_limit
        self.request_window_s = request_window_s
        self.verify_limit = verify_limit
        self.verify_window_s = verify_window_s
        self._timeout_s = timeout_s

    async def check_request(self, api_key_id: str) -> int:
        """Count one API request for *api_key_id*.

        Returns:
            Requests remaining in the current window.

        Raises:
            RateLimitExceeded: If the request window is exhausted.
        """
        return await self._hit(
            "request", f"rate_limit:{api_key_id}", self.request_limit, self.request_window_s,
        )

    async def check_verification(self, api_key_id: str) -> int:
        """Count one verification for *api_key_id*.

        Returns:
            Verifications remaining in the current window.

        Raises:
            RateLimitExceeded: If the verification window is exhausted.
        """
        return await self._hit(
            "verification", f"verify_rate:{api_key_id}", self.verify_limit, self.verify_window_s,
        )

    async def _hit(self, scope: str, key: str, limit: int, window_s: int) -> int:
        pipe = self._redis.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, window_s, nx=True)
        pipe.ttl(key)
        try:
            count, _, ttl = await asyncio.wait_for(pipe.execute(), self._timeout_s)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            # Fail open: counters are not authoritative state.
            logger.error("rate_limit_check_failed", scope=scope, error=str(exc))
            return limit

        count = int(count)
        if count > limit:
            retry_after = int(ttl) if ttl and int(ttl) > 0 else window_s
            rate_limited_total.labels(scope=scope).inc()
            logger.warning(
                "rate_limit_exceeded",
                scope=scope,
                key=key,
                count=count,
                max=limit,
                retry_after_s=retry_after,
            )
            raise RateLimitExceeded(scope, limit, retry_after)
        return limit - count
