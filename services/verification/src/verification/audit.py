"""
Audit logger for PharmAuth.

Appends one ``verification_logs`` row per verification attempt, including
``invalid`` attempts on unknown codes.  Rows are never updated or deleted.

After a row commits, the decision is also published on the Redis events
channel for live consumers.  Publishing is best-effort; persistence is not.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pa_common.db.orm_models import VerificationLogORM
from pa_common.messaging.redis_client import RedisClient
from pa_common.models import VerificationEvent

from verification.errors import DependencyUnavailable

logger = structlog.get_logger(__name__)

_DEFAULT_CHANNEL = "verification_events"
_DEFAULT_TIMEOUT_S = 5.0


class AuditLogger:
    """Persists verification events to PostgreSQL.

    Parameters
    ----------
    session_factory:
        Callable returning an ``AsyncSession``.
    redis_client:
        Optional :class:`RedisClient` used to publish committed events.
    channel:
        Pub/sub channel for committed events.
    timeout_s:
        Upper bound for the database write.
    """

    def __init__(
        self,
        session_factory: Callable[..., Any],
        redis_client: RedisClient | None = None,
        *,
        channel: str = _DEFAULT_CHANNEL,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._session_factory = session_factory
        self._redis_client = redis_client
        self._channel = channel
        self._timeout_s = timeout_s

    async def record(
        self,
        event: VerificationEvent,
        *,
        db_session: AsyncSession | None = None,
    ) -> VerificationLogORM:
        """Persist *event* and publish it.

        If *db_session* is ``None`` the logger creates one via its factory.

        Raises:
            DependencyUnavailable: The row could not be written.
        """
        orm_obj = VerificationLogORM(
            id=event.event_id,
            authentication_code_id=event.code_id,
            scanned_code=event.scanned_code,
            api_key_id=event.api_key_id,
            location_lat=event.location.latitude if event.location else None,
            location_lng=event.location.longitude if event.location else None,
            result=event.status.value,
            confidence_score=event.confidence,
            is_duplicate=event.is_duplicate,
            is_offline=event.is_offline,
            verified_at=event.verified_at,
        )

        own_session = db_session is None
        session: AsyncSession = db_session or self._session_factory()
        try:
            session.add(orm_obj)
            await asyncio.wait_for(session.commit(), self._timeout_s)
            logger.info(
                "verification_event_written",
                event_id=str(event.event_id),
                status=event.status.value,
                confidence=event.confidence,
            )
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.exception("verification_event_write_failed", event_id=str(event.event_id))
            try:
                await session.rollback()
            except (SQLAlchemyError, OSError) as rollback_exc:
                logger.warning(
                    "verification_event_rollback_failed",
                    event_id=str(event.event_id),
                    error=str(rollback_exc),
                )
            raise DependencyUnavailable("Audit log unavailable") from exc
        finally:
            if own_session:
                await session.close()

        await self._publish(event)
        return orm_obj

    async def _publish(self, event: VerificationEvent) -> None:
        if self._redis_client is None:
            return
        try:
            await self._redis_client.publish(self._channel, event.model_dump(mode="json"))
        except Exception:  # noqa: BLE001
            logger.warning("verification_event_publish_failed", event_id=str(event.event_id))
