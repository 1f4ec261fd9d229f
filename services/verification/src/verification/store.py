"""
Authoritative code and batch store for PharmAuth.

Wraps the PostgreSQL tables behind the operations the engine needs: the
denormalized code lookup, the atomic "first verified" claim, bounded scan
history for geo-velocity, API key resolution, batch lifecycle queries,
conflict-skipping code insertion, and the transactional revocation cascade.

Every call runs in its own session and is bounded by ``timeout_s``.  Driver
errors and timeouts surface as :class:`DependencyUnavailable`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, TypeVar

import structlog
from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pa_common.db.orm_models import (
    ApiKeyORM,
    AuthenticationCodeORM,
    BatchORM,
    ManufacturerORM,
    VerificationLogORM,
)
from pa_common.models import (
    ApiKeyIdentity,
    Batch,
    BatchStats,
    BatchStatus,
    BatchSummary,
    CodeRecord,
    CodeStatus,
    LocatedScan,
)

from verification.errors import ConflictError, DependencyUnavailable, NotFoundError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_DEFAULT_TIMEOUT_S = 5.0
_INSERT_CHUNK = 1000


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FirstVerificationClaim:
    """Result of the conditional ``first_verified_at`` update.

    Attributes:
        won: ``True`` if this call set the timestamp.
        first_verified_at: The stored timestamp after the update.
        status: The code's status as read in the same transaction;
            ``None`` if the row no longer exists.
    """

    won: bool
    first_verified_at: datetime | None
    status: CodeStatus | None = None


def _batch_from_orm(row: BatchORM, manufacturer_id: str) -> dict[str, Any]:
    return {
        "id": row.id,
        "manufacturer_id": manufacturer_id,
        "batch_id": row.batch_id,
        "product_name": row.product_name,
        "product_code": row.product_code,
        "strength": row.strength,
        "form": row.form,
        "packaging": row.packaging,
        "manufacturing_date": row.manufacturing_date,
        "expiry_date": row.expiry_date,
        "total_units": row.total_units,
        "status": BatchStatus(row.status),
        "created_at": row.created_at,
    }


class CodeStore:
    """SQLAlchemy-backed store for codes, batches, keys and scan history.

    Parameters
    ----------
    session_factory:
        Callable returning an ``AsyncSession`` (an ``async_sessionmaker``).
    timeout_s:
        Upper bound for a single store operation.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        *,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._session_factory = session_factory
        self._timeout_s = timeout_s

    async def _execute(
        self,
        operation: str,
        fn: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        async def _with_session() -> T:
            async with self._session_factory() as session:
                return await fn(session)

        try:
            return await asyncio.wait_for(_with_session(), self._timeout_s)
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.error(
                "store_operation_failed",
                operation=operation,
                error=str(exc) or type(exc).__name__,
            )
            raise DependencyUnavailable(f"Code store unavailable ({operation})") from exc

    # ------------------------------------------------------------------
    # Verification path
    # ------------------------------------------------------------------

    async def get_code_record(self, code: str) -> CodeRecord | None:
        """Return the joined code/batch/manufacturer record for *code*."""
        stmt = (
            select(
                AuthenticationCodeORM.id.label("code_id"),
                AuthenticationCodeORM.authentication_code,
                AuthenticationCodeORM.serial_number,
                AuthenticationCodeORM.status,
                AuthenticationCodeORM.first_verified_at,
                AuthenticationCodeORM.revoked_at,
                BatchORM.batch_id,
                BatchORM.product_name,
                BatchORM.manufacturing_date,
                BatchORM.expiry_date,
                ManufacturerORM.manufacturer_id,
                ManufacturerORM.name.label("manufacturer_name"),
            )
            .join(BatchORM, AuthenticationCodeORM.batch_pk == BatchORM.id)
            .join(ManufacturerORM, BatchORM.manufacturer_pk == ManufacturerORM.id)
            .where(AuthenticationCodeORM.authentication_code == code)
        )

        async def _op(session: AsyncSession) -> CodeRecord | None:
            row = (await session.execute(stmt)).one_or_none()
            return CodeRecord(**row._asdict()) if row is not None else None

        return await self._execute("get_code_record", _op)

    async def claim_first_verification(
        self, code_id: int, at: datetime,
    ) -> FirstVerificationClaim:
        """Set ``first_verified_at`` only if it is still null and the code active.

        The conditional ``UPDATE … WHERE first_verified_at IS NULL`` is the
        single compare-and-set of the system: of any number of concurrent
        callers exactly one wins.  A code revoked since it was looked up is
        never claimed, and the returned status reflects the revocation.
        """

        async def _op(session: AsyncSession) -> FirstVerificationClaim:
            async with session.begin():
                result = await session.execute(
                    update(AuthenticationCodeORM)
                    .where(
                        AuthenticationCodeORM.id == code_id,
                        AuthenticationCodeORM.first_verified_at.is_(None),
                        AuthenticationCodeORM.status == CodeStatus.ACTIVE.value,
                    )
                    .values(first_verified_at=at)
                    .returning(
                        AuthenticationCodeORM.first_verified_at,
                        AuthenticationCodeORM.status,
                    ),
                )
                claimed = result.one_or_none()
                if claimed is not None:
                    return FirstVerificationClaim(
                        won=True,
                        first_verified_at=claimed.first_verified_at,
                        status=CodeStatus(claimed.status),
                    )
                existing = (
                    await session.execute(
                        select(
                            AuthenticationCodeORM.first_verified_at,
                            AuthenticationCodeORM.status,
                        ).where(AuthenticationCodeORM.id == code_id),
                    )
                ).one_or_none()
                if existing is None:
                    return FirstVerificationClaim(won=False, first_verified_at=None)
                return FirstVerificationClaim(
                    won=False,
                    first_verified_at=existing.first_verified_at,
                    status=CodeStatus(existing.status),
                )

        return await self._execute("claim_first_verification", _op)

    async def recent_locations(
        self, code_id: int, since: datetime, limit: int,
    ) -> list[LocatedScan]:
        """Return up to *limit* located scans of *code_id* newer than *since*."""
        stmt = (
            select(
                VerificationLogORM.location_lat,
                VerificationLogORM.location_lng,
                VerificationLogORM.verified_at,
            )
            .where(
                VerificationLogORM.authentication_code_id == code_id,
                VerificationLogORM.verified_at > since,
                VerificationLogORM.location_lat.is_not(None),
                VerificationLogORM.location_lng.is_not(None),
            )
            .order_by(VerificationLogORM.verified_at.desc())
            .limit(limit)
        )

        async def _op(session: AsyncSession) -> list[LocatedScan]:
            rows = (await session.execute(stmt)).all()
            return [
                LocatedScan(
                    latitude=r.location_lat,
                    longitude=r.location_lng,
                    verified_at=r.verified_at,
                )
                for r in rows
            ]

        return await self._execute("recent_locations", _op)

    async def resolve_api_key(self, key_hash: str) -> ApiKeyIdentity | None:
        """Return the identity for an active, unexpired API key hash."""
        now = _utc_now()
        stmt = (
            select(ApiKeyORM.id, ApiKeyORM.name, ManufacturerORM.manufacturer_id)
            .join(ManufacturerORM, ApiKeyORM.manufacturer_pk == ManufacturerORM.id)
            .where(
                ApiKeyORM.key_hash == key_hash,
                ApiKeyORM.is_active.is_(True),
                ManufacturerORM.is_active.is_(True),
                or_(ApiKeyORM.expires_at.is_(None), ApiKeyORM.expires_at > now),
            )
        )

        async def _op(session: AsyncSession) -> ApiKeyIdentity | None:
            row = (await session.execute(stmt)).one_or_none()
            if row is None:
                return None
            return ApiKeyIdentity(
                api_key_id=str(row.id),
                manufacturer_id=row.manufacturer_id,
                name=row.name,
            )

        return await self._execute("resolve_api_key", _op)

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    async def create_batch(self, batch: Batch) -> Batch:
        """Insert a new batch.

        Raises:
            NotFoundError: The manufacturer does not exist.
            ConflictError: The manufacturer already has this batch id.
        """

        async def _op(session: AsyncSession) -> Batch:
            async with session.begin():
                manufacturer_pk = (
                    await session.execute(
                        select(ManufacturerORM.id).where(
                            ManufacturerORM.manufacturer_id == batch.manufacturer_id,
                        ),
                    )
                ).scalar_one_or_none()
                if manufacturer_pk is None:
                    raise NotFoundError(f"Manufacturer {batch.manufacturer_id} not found")

                orm_obj = BatchORM(
                    manufacturer_pk=manufacturer_pk,
                    batch_id=batch.batch_id,
                    product_name=batch.product_name,
                    product_code=batch.product_code,
                    strength=batch.strength,
                    form=batch.form,
                    packaging=batch.packaging,
                    manufacturing_date=batch.manufacturing_date,
                    expiry_date=batch.expiry_date,
                    total_units=batch.total_units,
                    status=BatchStatus.ACTIVE.value,
                    created_at=batch.created_at,
                )
                session.add(orm_obj)
                try:
                    await session.flush()
                except IntegrityError as exc:
                    raise ConflictError(
                        f"Batch {batch.batch_id} already exists",
                    ) from exc
            return batch.model_copy(update={"id": orm_obj.id, "status": BatchStatus.ACTIVE})

        created = await self._execute("create_batch", _op)
        logger.info(
            "batch_created", manufacturer_id=batch.manufacturer_id, batch_id=batch.batch_id,
        )
        return created

    def _summary_stmt(self, manufacturer_id: str) -> Any:
        return (
            select(
                BatchORM,
                func.count(AuthenticationCodeORM.id).label("code_count"),
                func.count(AuthenticationCodeORM.first_verified_at).label("verified_count"),
                func.count(
                    case((AuthenticationCodeORM.status == "revoked", 1)),
                ).label("revoked_count"),
            )
            .join(ManufacturerORM, BatchORM.manufacturer_pk == ManufacturerORM.id)
            .outerjoin(AuthenticationCodeORM, AuthenticationCodeORM.batch_pk == BatchORM.id)
            .where(ManufacturerORM.manufacturer_id == manufacturer_id)
            .group_by(BatchORM.id)
        )

    @staticmethod
    def _summary_from_row(row: Any, manufacturer_id: str) -> BatchSummary:
        return BatchSummary(
            **_batch_from_orm(row.BatchORM, manufacturer_id),
            code_count=row.code_count,
            verified_count=row.verified_count,
            revoked_count=row.revoked_count,
        )

    async def list_batches(
        self,
        manufacturer_id: str,
        *,
        status: BatchStatus | None = None,
        limit: int = 50,
        offset: int = 0,
        today: date | None = None,
    ) -> list[BatchSummary]:
        """List a manufacturer's batches, newest first, with code counters.

        ``status=EXPIRED`` selects active batches whose expiry date passed.
        """
        today = today or _utc_now().date()
        stmt = self._summary_stmt(manufacturer_id)
        if status == BatchStatus.EXPIRED:
            stmt = stmt.where(
                BatchORM.status == BatchStatus.ACTIVE.value, BatchORM.expiry_date < today,
            )
        elif status == BatchStatus.ACTIVE:
            stmt = stmt.where(
                BatchORM.status == BatchStatus.ACTIVE.value,
                or_(BatchORM.expiry_date.is_(None), BatchORM.expiry_date >= today),
            )
        elif status == BatchStatus.REVOKED:
            stmt = stmt.where(BatchORM.status == BatchStatus.REVOKED.value)
        stmt = stmt.order_by(BatchORM.created_at.desc()).offset(offset).limit(limit)

        async def _op(session: AsyncSession) -> list[BatchSummary]:
            rows = (await session.execute(stmt)).all()
            return [self._summary_from_row(r, manufacturer_id) for r in rows]

        return await self._execute("list_batches", _op)

    async def get_batch(self, manufacturer_id: str, batch_id: str) -> BatchSummary | None:
        """Return one batch with its code counters, or ``None``."""
        stmt = self._summary_stmt(manufacturer_id).where(BatchORM.batch_id == batch_id)

        async def _op(session: AsyncSession) -> BatchSummary | None:
            row = (await session.execute(stmt)).one_or_none()
            return self._summary_from_row(row, manufacturer_id) if row is not None else None

        return await self._execute("get_batch", _op)

    async def batch_stats(self, manufacturer_id: str, batch_id: str) -> BatchStats | None:
        """Return code-state counts and verification aggregates for a batch."""
        batch_stmt = (
            select(BatchORM.id, BatchORM.batch_id, BatchORM.product_name)
            .join(ManufacturerORM, BatchORM.manufacturer_pk == ManufacturerORM.id)
            .where(
                ManufacturerORM.manufacturer_id == manufacturer_id,
                BatchORM.batch_id == batch_id,
            )
        )

        async def _op(session: AsyncSession) -> BatchStats | None:
            batch_row = (await session.execute(batch_stmt)).one_or_none()
            if batch_row is None:
                return None

            codes = (
                await session.execute(
                    select(
                        func.count(AuthenticationCodeORM.id).label("total"),
                        func.count(case((AuthenticationCodeORM.status == "active", 1))).label(
                            "active",
                        ),
                        func.count(case((AuthenticationCodeORM.status == "revoked", 1))).label(
                            "revoked",
                        ),
                        func.count(AuthenticationCodeORM.first_verified_at).label("verified"),
                    ).where(AuthenticationCodeORM.batch_pk == batch_row.id),
                )
            ).one()

            verifications = (
                await session.execute(
                    select(
                        func.count(VerificationLogORM.id).label("total"),
                        func.avg(VerificationLogORM.confidence_score).label("avg_confidence"),
                        func.max(VerificationLogORM.verified_at).label("last"),
                    )
                    .join(
                        AuthenticationCodeORM,
                        VerificationLogORM.authentication_code_id == AuthenticationCodeORM.id,
                    )
                    .where(AuthenticationCodeORM.batch_pk == batch_row.id),
                )
            ).one()

            return BatchStats(
                batch_id=batch_row.batch_id,
                product_name=batch_row.product_name,
                total_codes=codes.total,
                active_codes=codes.active,
                verified_codes=codes.verified,
                revoked_codes=codes.revoked,
                total_verifications=verifications.total,
                average_confidence=float(verifications.avg_confidence or 0.0),
                last_verification=verifications.last,
            )

        return await self._execute("batch_stats", _op)

    async def insert_codes(
        self, batch_pk: int, codes: Sequence[tuple[str, str]],
    ) -> list[str]:
        """Insert ``(serial, code)`` pairs, skipping codes that already exist.

        Returns:
            The codes that were actually inserted, in submission order.
        """
        if not codes:
            return []

        async def _op(session: AsyncSession) -> list[str]:
            inserted: list[str] = []
            async with session.begin():
                for start in range(0, len(codes), _INSERT_CHUNK):
                    chunk = codes[start:start + _INSERT_CHUNK]
                    stmt = (
                        pg_insert(AuthenticationCodeORM)
                        .values(
                            [
                                {
                                    "batch_pk": batch_pk,
                                    "serial_number": serial,
                                    "authentication_code": code,
                                    "status": "active",
                                }
                                for serial, code in chunk
                            ],
                        )
                        .on_conflict_do_nothing(index_elements=["authentication_code"])
                        .returning(AuthenticationCodeORM.authentication_code)
                    )
                    inserted.extend((await session.execute(stmt)).scalars().all())
            return inserted

        inserted = await self._execute("insert_codes", _op)
        skipped = len(codes) - len(inserted)
        if skipped:
            logger.warning("code_collisions_skipped", batch_pk=batch_pk, skipped=skipped)
        return inserted

    async def revoke_batch(
        self,
        manufacturer_id: str,
        batch_id: str,
        reason: str,
        at: datetime,
    ) -> list[str]:
        """Revoke a batch and all of its codes in one transaction.

        The batch row is locked first, so concurrent revocations serialize.
        Either both the batch and its codes commit as revoked, or nothing does.

        Returns:
            The codes that transitioned to revoked.

        Raises:
            NotFoundError: No active batch with this id for the manufacturer.
        """

        async def _op(session: AsyncSession) -> list[str]:
            async with session.begin():
                batch_pk = (
                    await session.execute(
                        select(BatchORM.id)
                        .join(ManufacturerORM, BatchORM.manufacturer_pk == ManufacturerORM.id)
                        .where(
                            and_(
                                ManufacturerORM.manufacturer_id == manufacturer_id,
                                BatchORM.batch_id == batch_id,
                                BatchORM.status == BatchStatus.ACTIVE.value,
                            ),
                        )
                        .with_for_update(of=BatchORM),
                    )
                ).scalar_one_or_none()
                if batch_pk is None:
                    raise NotFoundError(f"Active batch {batch_id} not found")

                await session.execute(
                    update(BatchORM)
                    .where(BatchORM.id == batch_pk)
                    .values(
                        status=BatchStatus.REVOKED.value,
                        revocation_reason=reason,
                        updated_at=at,
                    ),
                )
                result = await session.execute(
                    update(AuthenticationCodeORM)
                    .where(
                        AuthenticationCodeORM.batch_pk == batch_pk,
                        AuthenticationCodeORM.status == "active",
                    )
                    .values(status="revoked", revoked_at=at)
                    .returning(AuthenticationCodeORM.authentication_code),
                )
                return list(result.scalars().all())

        return await self._execute("revoke_batch", _op)
