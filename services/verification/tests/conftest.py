"""Shared fixtures for verification engine tests."""

from __future__ import annotations

import asyncio
import os
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pa_common.models import (
    ApiKeyIdentity,
    CodeRecord,
    CodeStatus,
    LocatedScan,
    VerificationEvent,
)

from verification.anomaly import AnomalyDetector
from verification.cache import VerificationCache
from verification.code_generator import CodeGenerator, serial_number
from verification.errors import DependencyUnavailable, NotFoundError
from verification.pipeline import VerificationPipeline
from verification.rate_limiter import RateLimiter
from verification.store import FirstVerificationClaim

os.environ.setdefault("PA_CODE_SECRET", "test-code-secret")
os.environ.setdefault("PA_API_KEY_HASH_SECRET", "test-hash-secret")

CODE_SECRET = "test-secret"
START = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

LAGOS = (6.5244, 3.3792)
ABUJA = (9.0765, 7.3986)  # ~530 km from Lagos


# ─── In-memory doubles ───────────────────────────────────────────


class FakeRedis:
    """Minimal ``redis.asyncio.Redis`` stand-in for string keys and counters.

    Pipelines run their queued commands back to back with no suspension
    point in between, which matches MULTI/EXEC atomicity under asyncio.
    """

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}
        self.published: list[tuple[str, str]] = []
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("redis unavailable")

    def _incr(self, key: str) -> int:
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    def _expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        if key not in self.data or (nx and key in self.ttls):
            return False
        self.ttls[key] = seconds
        return True

    def _ttl(self, key: str) -> int:
        if key not in self.data:
            return -2
        return self.ttls.get(key, -1)

    async def get(self, key: str) -> Any:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self._check()
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def incr(self, key: str) -> int:
        self._check()
        return self._incr(key)

    async def publish(self, channel: str, message: str) -> int:
        self._check()
        self.published.append((channel, message))
        return 1

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._ops: list[Callable[[], Any]] = []

    def incr(self, key: str) -> FakePipeline:
        self._ops.append(lambda: self._redis._incr(key))
        return self

    def expire(self, key: str, seconds: int, nx: bool = False) -> FakePipeline:
        self._ops.append(lambda: self._redis._expire(key, seconds, nx))
        return self

    def ttl(self, key: str) -> FakePipeline:
        self._ops.append(lambda: self._redis._ttl(key))
        return self

    async def execute(self) -> list[Any]:
        self._redis._check()
        return [op() for op in self._ops]


class FakeStore:
    """In-memory code store with an atomic first-verification claim."""

    def __init__(self) -> None:
        self.records: dict[str, CodeRecord] = {}
        self.events: list[VerificationEvent] = []
        self.lookups = 0
        self.fail_lookup = False

    def add(self, record: CodeRecord) -> CodeRecord:
        self.records[record.authentication_code] = record
        return record

    def by_id(self, code_id: int) -> CodeRecord:
        return next(r for r in self.records.values() if r.code_id == code_id)

    async def get_code_record(self, code: str) -> CodeRecord | None:
        self.lookups += 1
        await asyncio.sleep(0)
        if self.fail_lookup:
            raise DependencyUnavailable("Code store unavailable (get_code_record)")
        return self.records.get(code)

    async def claim_first_verification(self, code_id: int, at: datetime) -> FirstVerificationClaim:
        await asyncio.sleep(0)
        record = self.by_id(code_id)
        if record.first_verified_at is None and record.status == CodeStatus.ACTIVE:
            self.add(record.model_copy(update={"first_verified_at": at}))
            return FirstVerificationClaim(won=True, first_verified_at=at, status=record.status)
        return FirstVerificationClaim(
            won=False, first_verified_at=record.first_verified_at, status=record.status,
        )

    async def recent_locations(self, code_id: int, since: datetime, limit: int) -> list[LocatedScan]:
        scans = [
            LocatedScan(
                latitude=e.location.latitude,
                longitude=e.location.longitude,
                verified_at=e.verified_at,
            )
            for e in reversed(self.events)
            if e.code_id == code_id and e.location is not None and e.verified_at > since
        ]
        return scans[:limit]

    async def revoke_batch(
        self, manufacturer_id: str, batch_id: str, reason: str, at: datetime,
    ) -> list[str]:
        revoked = []
        for code, record in list(self.records.items()):
            if (
                record.manufacturer_id == manufacturer_id
                and record.batch_id == batch_id
                and record.status == CodeStatus.ACTIVE
            ):
                self.add(record.model_copy(update={"status": CodeStatus.REVOKED, "revoked_at": at}))
                revoked.append(code)
        if not revoked:
            raise NotFoundError(f"Active batch {batch_id} not found")
        return revoked


class FakeAuditLogger:
    """Appends events to the fake store so geo-velocity sees them."""

    def __init__(self, store: FakeStore) -> None:
        self._store = store
        self.fail = False

    @property
    def events(self) -> list[VerificationEvent]:
        return self._store.events

    async def record(self, event: VerificationEvent) -> VerificationEvent:
        if self.fail:
            raise DependencyUnavailable("Audit log unavailable")
        self._store.events.append(event)
        return event


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ─── Fixtures ────────────────────────────────────────────────────


@pytest.fixture()
def generator() -> CodeGenerator:
    return CodeGenerator(CODE_SECRET)


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def mock_redis() -> AsyncMock:
    """Async mock standing in for a ``redis.asyncio.Redis`` instance."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=0)
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, True, 3600])
    redis.pipeline = MagicMock(return_value=pipe)
    return redis


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def audit(store: FakeStore) -> FakeAuditLogger:
    return FakeAuditLogger(store)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def identity() -> ApiKeyIdentity:
    return ApiKeyIdentity(api_key_id="key-1", manufacturer_id="M1", name="field app")


@pytest.fixture()
def other_identity() -> ApiKeyIdentity:
    return ApiKeyIdentity(api_key_id="key-2", manufacturer_id="M2", name="competitor")


@pytest.fixture()
def make_record(store: FakeStore, generator: CodeGenerator) -> Callable[..., CodeRecord]:
    """Create and store a code record for unit *index* of batch B1 of M1."""

    def _make(index: int = 1, **overrides: Any) -> CodeRecord:
        manufacturer_id = overrides.pop("manufacturer_id", "M1")
        batch_id = overrides.pop("batch_id", "B1")
        serial = serial_number(batch_id, index)
        fields = dict(
            code_id=index,
            authentication_code=generator.generate(manufacturer_id, batch_id, serial),
            serial_number=serial,
            status=CodeStatus.ACTIVE,
            batch_id=batch_id,
            product_name="Paracetamol 500mg",
            manufacturing_date=date(2026, 1, 1),
            expiry_date=date(2028, 1, 1),
            manufacturer_id=manufacturer_id,
            manufacturer_name="Acme Pharma",
        )
        fields.update(overrides)
        return store.add(CodeRecord(**fields))

    return _make


@pytest.fixture()
def cache(fake_redis: FakeRedis) -> VerificationCache:
    return VerificationCache(fake_redis, ttl_s=3600)


@pytest.fixture()
def rate_limiter(fake_redis: FakeRedis) -> RateLimiter:
    return RateLimiter(fake_redis)


@pytest.fixture()
def anomaly_detector(fake_redis: FakeRedis, store: FakeStore) -> AnomalyDetector:
    return AnomalyDetector(fake_redis, store)


@pytest.fixture()
def pipeline(
    store: FakeStore,
    cache: VerificationCache,
    rate_limiter: RateLimiter,
    anomaly_detector: AnomalyDetector,
    audit: FakeAuditLogger,
    clock: FakeClock,
) -> VerificationPipeline:
    return VerificationPipeline(
        store, cache, rate_limiter, anomaly_detector, audit, clock=clock,
    )


@pytest.fixture()
def mock_db_session() -> AsyncMock:
    """Async mock for ``AsyncSession`` usable as ``async with`` and ``begin()``."""
    session = AsyncMock()
    session.add = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.__aenter__.return_value = session
    session.__aexit__.return_value = False
    tx = AsyncMock()
    tx.__aenter__.return_value = tx
    tx.__aexit__.return_value = False
    session.begin = MagicMock(return_value=tx)
    return session


@pytest.fixture()
def mock_db_session_factory(mock_db_session: AsyncMock) -> MagicMock:
    return MagicMock(return_value=mock_db_session)
