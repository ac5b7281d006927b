from __future__ import annotations

from prometheus_client import Counter, Histogram

vegetation_upstream_requests_total = Counter(
    "vegetation_upstream_requests_total",
    "Count of upstream vegetation provider requests",
    labelnames=["provider", "endpoint", "outcome"],
)

vegetation_upstream_latency_seconds = Histogram(
    "vegetation_upstream_latency_seconds",
    "Latency of upstream vegetation provider requests",
    labelnames=["provider", "endpoint"],
    buckets=(0.1, 0.3, 0.5, 1, 2, 5, 10, 20, 30),
)

vegetation_cache_hit_total = Counter(
    "vegetation_cache_hit_total",
    "Cache hits by vegetation layer",
    labelnames=["layer"],
)

vegetation_cache_miss_total = Counter(
    "vegetation_cache_miss_total",
    "Cache misses by vegetation layer",
    labelnames=["layer"],
)

vegetation_previews_total = Counter(
    "vegetation_previews_total",
    "NDVI previews rendered by source",
    labelnames=["source"],
)
