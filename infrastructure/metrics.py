"""Prometheus metrics for the analysis and mastering engine.

Labels carry the analysis method and mastering mode, so dashboards show how
often the ensemble falls back and which target mastering runs against, not
just request counts.

Metrics:
    sb_analyze_requests_total        Counter by method (ensemble/novelty/default/cached) and status
    sb_analyze_latency_seconds       Histogram of analyze() latency by method
    sb_master_requests_total         Counter by mode (reference/intelligent) and status
    sb_master_latency_seconds        Histogram of master() latency by mode
    sb_analysis_cache_hits_total     Counter of analysis cache hits
    sb_analysis_cache_misses_total   Counter of analysis cache misses
    sb_estimator_failures_total      Counter of guarded analysis tasks that fell back, by task

Usage::

    from infrastructure.metrics import (
        LatencyTimer,
        record_analyze,
        record_cache_hit,
    )
"""

from __future__ import annotations

import logging
import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

_REGISTRY = CollectorRegistry()

analyze_requests_total = Counter(
    "sb_analyze_requests_total",
    "Total analyze requests by analysis method and status",
    ["method", "status"],
    registry=_REGISTRY,
)

analyze_latency_seconds = Histogram(
    "sb_analyze_latency_seconds",
    "Analyze latency in seconds",
    ["method"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=_REGISTRY,
)

master_requests_total = Counter(
    "sb_master_requests_total",
    "Total master requests by mode and status",
    ["mode", "status"],
    registry=_REGISTRY,
)

master_latency_seconds = Histogram(
    "sb_master_latency_seconds",
    "Master latency in seconds",
    ["mode"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=_REGISTRY,
)

analysis_cache_hits_total = Counter(
    "sb_analysis_cache_hits_total",
    "Analysis result cache hits (in-memory)",
    registry=_REGISTRY,
)

analysis_cache_misses_total = Counter(
    "sb_analysis_cache_misses_total",
    "Analysis result cache misses (in-memory)",
    registry=_REGISTRY,
)

estimator_failures_total = Counter(
    "sb_estimator_failures_total",
    "Analysis tasks that raised and were replaced by their fallback",
    ["estimator"],
    registry=_REGISTRY,
)

logger.debug("Prometheus metrics registry initialized")


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def record_analyze(*, method: str, status: str, latency_seconds: float) -> None:
    """Record a completed analyze request.

    Args:
        method: analysis_method of the result ("ensemble", "novelty",
            "default") or "cached" for a cache hit.
        status: One of "success", "fallback", "error".
        latency_seconds: Wall-clock time in seconds.
    """
    analyze_requests_total.labels(method=method, status=status).inc()
    analyze_latency_seconds.labels(method=method).observe(latency_seconds)


def record_master(*, mode: str, status: str, latency_seconds: float) -> None:
    """Record a completed master request.

    Args:
        mode: "reference" or "intelligent".
        status: "success" or "error".
        latency_seconds: Wall-clock time in seconds.
    """
    master_requests_total.labels(mode=mode, status=status).inc()
    master_latency_seconds.labels(mode=mode).observe(latency_seconds)


def record_cache_hit() -> None:
    """Increment analysis cache hit counter."""
    analysis_cache_hits_total.inc()


def record_cache_miss() -> None:
    """Increment analysis cache miss counter."""
    analysis_cache_misses_total.inc()


def record_estimator_failure(estimator: str) -> None:
    """Increment the fallback counter for one analysis task.

    Args:
        estimator: Task name, e.g. "tempo.comb" or "mood.valence".
    """
    estimator_failures_total.labels(estimator=estimator).inc()


def get_metrics_response() -> tuple[bytes, str]:
    """Generate Prometheus text exposition format.

    Returns:
        Tuple of (body_bytes, content_type_string).
    """
    return generate_latest(_REGISTRY), CONTENT_TYPE_LATEST


class LatencyTimer:
    """Context manager for measuring latency.

    Usage::

        with LatencyTimer() as t:
            result = analyze(buffer)
        record_analyze(method=result.analysis_method, status="success", latency_seconds=t.elapsed)
    """

    def __init__(self) -> None:
        """Initialize timer."""
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> LatencyTimer:
        """Start timing."""
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: object) -> None:
        """Stop timing and record elapsed."""
        self.elapsed = time.perf_counter() - self._start
