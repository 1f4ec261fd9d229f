"""
Scan anomaly heuristics for PharmAuth.

Two independent heuristics; either one marks a verification suspicious:

* **Rapid repeat**: a Redis counter keyed
  ``rapid_verify:{code}:{lat}:{lng}`` (coordinates rounded to
  ``location_precision`` decimals) counts scans from one spot.  The counter
  expires ``window_s`` after the first scan.  More than
  ``repeat_threshold`` scans inside the window is suspicious.
* **Geo-velocity**: the most recent prior located scan of the same code
  inside the window is compared with the current one.  A great-circle
  distance above ``max_distance_km`` in less than ``window_s`` implies
  impossible travel.

Both are best-effort.  A missing location skips the check, and a backend
failure counts as "not detected".  History queries are bounded by the
window and by ``history_limit``.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

import structlog
from redis.exceptions import RedisError

from pa_common.metrics import anomalies_total
from pa_common.models import LocatedScan, Location

from verification.errors import VerificationError

logger = structlog.get_logger(__name__)

EARTH_RADIUS_KM = 6371.0

_DEFAULT_WINDOW_S = 3600
_DEFAULT_REPEAT_THRESHOLD = 5
_DEFAULT_MAX_DISTANCE_KM = 100.0
_DEFAULT_HISTORY_LIMIT = 10
_DEFAULT_TIMEOUT_S = 2.0

_BACKEND_ERRORS = (VerificationError, RedisError, OSError, asyncio.TimeoutError)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS-84 points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class ScanHistory(Protocol):
    """Source of prior located scans for a code (implemented by the store)."""

    async def recent_locations(
        self, code_id: int, since: datetime, limit: int,
    ) -> list[LocatedScan]: ...


@dataclass(frozen=True)
class AnomalyReport:
    """Outcome of running the heuristics for one scan."""

    reasons: tuple[str, ...] = ()

    @property
    def suspicious(self) -> bool:
        return bool(self.reasons)


class AnomalyDetector:
    """Runs the rapid-repeat and geo-velocity heuristics.

    Args:
        redis: Raw ``redis.asyncio.Redis`` instance for the repeat counters.
        history: Provider of recent located scans.
        window_s: Look-back window for both heuristics.
        repeat_threshold: Scans from one location tolerated per window.
        max_distance_km: Distance considered implausible within the window.
        history_limit: Maximum prior scans fetched per check.
        location_precision: Decimal places kept when bucketing locations.
        timeout_s: Per-call timeout for Redis and history queries.
    """

    def __init__(
        self,
        redis: Any,
        history: ScanHistory,
        *,
        window_s: int = _DEFAULT_WINDOW_S,
        repeat_threshold: int = _DEFAULT_REPEAT_THRESHOLD,
        max_distance_km: float = _DEFAULT_MAX_DISTANCE_KM,
        history_limit: int = _DEFAULT_HISTORY_LIMIT,
        location_precision: int = 3,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._redis = redis
        self._history = history
        self.window_s = window_s
        self.repeat_threshold = repeat_threshold
        self.max_distance_km = max_distance_km
        self.history_limit = history_limit
        self.location_precision = location_precision
        self._timeout_s = timeout_s

    async def evaluate(
        self,
        code: str,
        code_id: int,
        location: Location | None,
        now: datetime,
    ) -> AnomalyReport:
        """Run both heuristics for a scan of *code* at *location*."""
        if location is None:
            return AnomalyReport()

        reasons: list[str] = []
        if await self._rapid_repeat(code, location):
            reasons.append("rapid_repeat")
        if await self._geo_velocity(code_id, location, now):
            reasons.append("geo_velocity")

        for reason in reasons:
            anomalies_total.labels(heuristic=reason).inc()
        if reasons:
            logger.info("scan_anomaly_detected", code=code, reasons=reasons)
        return AnomalyReport(tuple(reasons))

    # ── rapid repeat ──

    async def _rapid_repeat(self, code: str, location: Location) -> bool:
        lat, lng = location.rounded(self.location_precision)
        key = f"rapid_verify:{code}:{lat}:{lng}"
        pipe = self._redis.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, self.window_s, nx=True)
        try:
            count, _ = await asyncio.wait_for(pipe.execute(), self._timeout_s)
        except _BACKEND_ERRORS as exc:
            logger.warning("rapid_repeat_check_failed", code=code, error=str(exc))
            return False
        return int(count) > self.repeat_threshold

    # ── geo-velocity ──

    async def _geo_velocity(self, code_id: int, location: Location, now: datetime) -> bool:
        window = timedelta(seconds=self.window_s)
        try:
            scans = await asyncio.wait_for(
                self._history.recent_locations(code_id, now - window, self.history_limit),
                self._timeout_s,
            )
        except _BACKEND_ERRORS as exc:
            logger.warning("geo_velocity_check_failed", code_id=code_id, error=str(exc))
            return False

        if not scans:
            return False

        previous = max(scans, key=lambda s: s.verified_at)
        elapsed = now - previous.verified_at
        if elapsed >= window:
            return False

        distance = haversine_km(
            previous.latitude, previous.longitude, location.latitude, location.longitude,
        )
        if distance > self.max_distance_km:
            logger.info(
                "geo_velocity_exceeded",
                code_id=code_id,
                distance_km=round(distance, 1),
                elapsed_s=int(elapsed.total_seconds()),
            )
            return True
        return False
