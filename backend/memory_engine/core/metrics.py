"""Prometheus metrics instrumentation."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

REGISTRY = CollectorRegistry()

INDEX_SIZE = Gauge(
    "memx_index_chunks",
    "Number of chunks stored in index",
    registry=REGISTRY,
)

INDEX_DURATION = Histogram(
    "memx_index_duration_seconds",
    "Time spent indexing a single file",
    labelnames=("status",),
    registry=REGISTRY,
)

CACHE_EVENTS = Counter(
    "memx_query_cache_events_total",
    "Query cache lookups and evictions",
    labelnames=("event",),
    registry=REGISTRY,
)

SEARCH_LATENCY = Histogram(
    "memx_search_latency_seconds",
    "Latency of hybrid searches",
    registry=REGISTRY,
)

FTS_FALLBACKS = Counter(
    "memx_fts_fallbacks_total",
    "Full-text searches that degraded to substring search",
    registry=REGISTRY,
)

POOL_WAIT = Histogram(
    "memx_pool_wait_seconds",
    "Time spent waiting for a pooled connection",
    registry=REGISTRY,
)


def render_metrics() -> bytes:
    """Return the registry in Prometheus exposition format."""
    return generate_latest(REGISTRY)


__all__ = [
    "REGISTRY",
    "INDEX_SIZE",
    "INDEX_DURATION",
    "CACHE_EVENTS",
    "SEARCH_LATENCY",
    "FTS_FALLBACKS",
    "POOL_WAIT",
    "render_metrics",
]
