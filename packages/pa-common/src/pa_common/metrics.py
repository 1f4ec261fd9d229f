"""
Prometheus metrics for PharmAuth.

Shared metric definitions for the verification engine: decision counters,
rate-limit rejections, cache effectiveness, and pipeline latency.  The API
gateway exposes them at ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

verifications_total = Counter(
    "pa_verifications_total",
    "Verification decisions by classification",
    ["status", "offline"],
)
rate_limited_total = Counter(
    "pa_rate_limited_total",
    "Requests rejected by the rate limiter",
    ["scope"],
)
cache_lookups_total = Counter(
    "pa_cache_lookups_total",
    "Code cache lookups by outcome",
    ["outcome"],
)
anomalies_total = Counter(
    "pa_anomalies_total",
    "Anomaly heuristics that fired",
    ["heuristic"],
)
pipeline_duration_seconds = Histogram(
    "pa_pipeline_duration_seconds",
    "Time spent deciding a single verification",
)
