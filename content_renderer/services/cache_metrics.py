"""
Cache Metrics Module

Prometheus metrics for the typeset-math cache.

Usage:
    from content_renderer.services.cache_metrics import get_metrics

    metrics = get_metrics("math_typeset", "content-renderer")
    metrics.hit()
    metrics.miss()

    with metrics.timed_operation("typeset"):
        ...
"""

import time
from typing import Dict, List, Optional

from prometheus_client import Counter, Gauge, Histogram


CACHE_HITS = Counter(
    'content_renderer_cache_hits_total',
    'Total number of cache hits',
    ['cache_type', 'service']
)

CACHE_MISSES = Counter(
    'content_renderer_cache_misses_total',
    'Total number of cache misses',
    ['cache_type', 'service']
)

CACHE_COALESCED = Counter(
    'content_renderer_cache_coalesced_total',
    'Misses that joined an in-flight computation for the same key',
    ['cache_type', 'service']
)

CACHE_ERRORS = Counter(
    'content_renderer_cache_errors_total',
    'Computations that failed and were not cached',
    ['cache_type', 'service']
)

CACHE_SIZE = Gauge(
    'content_renderer_cache_size',
    'Current size of cache (entries)',
    ['cache_type', 'service']
)

CACHE_LATENCY = Histogram(
    'content_renderer_cache_operation_seconds',
    'Cache operation latency in seconds',
    ['cache_type', 'service', 'operation'],
    buckets=[.001, .005, .01, .025, .05, .1, .25, .5, 1.0, 2.5]
)


class CacheMetrics:
    """
    Hit/miss bookkeeping for one cache.

    Keeps local counters next to the Prometheus series so stats can be
    reported without scraping.
    """

    def __init__(self, cache_type: str, service: str):
        """
        Args:
            cache_type: Type of cache (e.g., "math_typeset")
            service: Service name (e.g., "content-renderer")
        """
        self.cache_type = cache_type
        self.service = service
        self._hits = 0
        self._misses = 0
        self._coalesced = 0
        self._errors = 0

    def hit(self):
        """Record a cache hit."""
        self._hits += 1
        CACHE_HITS.labels(cache_type=self.cache_type, service=self.service).inc()

    def miss(self):
        """Record a cache miss."""
        self._misses += 1
        CACHE_MISSES.labels(cache_type=self.cache_type, service=self.service).inc()

    def coalesced(self):
        """Record a miss served by an already running computation."""
        self._coalesced += 1
        CACHE_COALESCED.labels(cache_type=self.cache_type, service=self.service).inc()

    def error(self):
        """Record a failed computation."""
        self._errors += 1
        CACHE_ERRORS.labels(cache_type=self.cache_type, service=self.service).inc()

    def set_size(self, size: int):
        """Set the current cache size."""
        CACHE_SIZE.labels(cache_type=self.cache_type, service=self.service).set(size)

    def observe_latency(self, operation: str, seconds: float):
        """Record operation latency."""
        CACHE_LATENCY.labels(
            cache_type=self.cache_type,
            service=self.service,
            operation=operation
        ).observe(seconds)

    def timed_operation(self, operation: str):
        """Context manager for timing cache operations."""
        return _TimedOperation(self, operation)

    def get_hit_rate(self) -> float:
        """
        Calculate hit rate (hits / total).

        Returns:
            Float between 0.0 and 1.0, or 0.0 if no operations recorded.
        """
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    def get_stats(self) -> dict:
        """Get current statistics."""
        total = self._hits + self._misses
        return {
            "cache_type": self.cache_type,
            "service": self.service,
            "hits": self._hits,
            "misses": self._misses,
            "coalesced": self._coalesced,
            "errors": self._errors,
            "total": total,
            "hit_rate": f"{self.get_hit_rate() * 100:.1f}%",
        }


class _TimedOperation:
    """Context manager for timing cache operations."""

    def __init__(self, metrics: CacheMetrics, operation: str):
        self.metrics = metrics
        self.operation = operation
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            elapsed = time.perf_counter() - self.start_time
            self.metrics.observe_latency(self.operation, elapsed)
        return False


_instances: Dict[str, CacheMetrics] = {}


def get_metrics(cache_type: str, service: str) -> CacheMetrics:
    """Get or create the CacheMetrics instance for a cache_type+service pair."""
    key = f"{cache_type}:{service}"
    if key not in _instances:
        _instances[key] = CacheMetrics(cache_type, service)
    return _instances[key]


def get_all_stats() -> List[dict]:
    """Get statistics for all registered cache metrics."""
    return [m.get_stats() for m in _instances.values()]
