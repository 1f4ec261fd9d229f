"""
Redis client wrapper for PharmAuth.

Provides an async Redis client owning the connection pool, with pub/sub
publishing for verification decisions and a health check.  Components that
need raw commands (cache, counters) take the underlying
``redis.asyncio.Redis`` instance from :attr:`RedisClient.redis`.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis

from pa_common.config import get_settings


class RedisClient:
    """Async Redis wrapper with connection lifecycle, publish and ping.

    Args:
        url: Redis connection URL.  Falls back to ``Settings.redis_url``.
        socket_timeout: Per-command timeout in seconds.  Falls back to
            ``Settings.dependency_timeout_s``.
    """

    def __init__(self, url: str | None = None, socket_timeout: float | None = None) -> None:
        settings = get_settings()
        self._url = url or settings.redis_url
        self._socket_timeout = socket_timeout or settings.dependency_timeout_s
        self._redis: aioredis.Redis | None = None

    # ── lifecycle ──

    async def connect(self) -> None:
        """Establish the Redis connection (idempotent)."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )

    async def close(self) -> None:
        """Close the Redis connection, if open."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    @property
    def redis(self) -> aioredis.Redis:
        """Return the underlying ``aioredis.Redis`` instance.

        Raises:
            RuntimeError: If ``connect()`` has not been called.
        """
        if self._redis is None:
            raise RuntimeError("RedisClient is not connected. Call connect() first.")
        return self._redis

    # ── pub/sub ──

    async def publish(self, channel: str, message: dict[str, Any] | str) -> int:
        """Publish a message to a Redis pub/sub *channel*.

        Args:
            channel: Channel name.
            message: Message payload (dict is JSON-serialised automatically).

        Returns:
            Number of subscribers that received the message.
        """
        payload = json.dumps(message, default=str) if isinstance(message, dict) else message
        result: int = await self.redis.publish(channel, payload)
        return result

    # ── health check ──

    async def health_check(self) -> bool:
        """Verify connectivity by issuing a ``PING``.

        Returns:
            ``True`` if Redis responds, ``False`` otherwise.
        """
        try:
            return bool(await self.redis.ping())
        except Exception:  # noqa: BLE001
            return False
