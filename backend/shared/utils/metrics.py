"""
Prometheus metrics for the SaveState core.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
PROVIDER_REQUESTS = Counter(
    "ss_provider_requests_total",
    "Total provider HTTP requests",
    ["provider", "status"],
)
MATCH_RESULTS = Counter(
    "ss_match_results_total",
    "Catalog match attempts by outcome",
    ["source", "outcome"],
)
MERGE_WRITES = Counter(
    "ss_merge_writes_total",
    "Progress rows written by the merger",
    ["source", "op"],
)
DETAIL_CACHE_LOOKUPS = Counter(
    "ss_detail_cache_lookups_total",
    "Detail cache lookups by result",
    ["source", "result"],
)
BEST_EFFORT_FAILURES = Counter(
    "ss_best_effort_failures_total",
    "Failed best-effort writes (cache snapshots, sync stamps)",
    ["target"],
)

# ── Histograms ──────────────────────────────────────────────────────────
PROVIDER_LATENCY = Histogram(
    "ss_provider_latency_seconds",
    "Provider request latency in seconds",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
SCORE_COMPUTE = Histogram(
    "ss_score_compute_seconds",
    "Time to load progress rows and compute a score",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
