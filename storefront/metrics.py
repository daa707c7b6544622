"""
Observability metrics for the dynamic data service.

Tracks:
- Latency percentiles (p50, p95, p99) per endpoint
- Aggregation cache hit rate
- Batch sizes served
- Request and error counts
"""

from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Deque, Dict, Optional
import statistics


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricsCollector:
    """
    In-memory metrics collector.

    Keeps a sliding window of recent samples per endpoint; counters are
    process-lifetime totals until reset().
    """

    def __init__(self, window_size: int = 1000):
        self.window_size = window_size

        # Latency tracking (sliding window)
        self.latencies: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=window_size))
        self.batch_sizes: Deque[int] = deque(maxlen=window_size)

        # Cache metrics
        self.cache_hits = 0
        self.cache_misses = 0

        # Request counters
        self.request_counts: Dict[str, int] = defaultdict(int)
        self.error_counts: Dict[str, int] = defaultdict(int)

        self.start_time = _utcnow()
        self.last_reset = self.start_time

    def record_latency(self, endpoint: str, latency_ms: float):
        """Record a latency sample for an endpoint."""
        self.latencies[endpoint].append(latency_ms)
        self.request_counts[endpoint] += 1

    def record_cache_hit(self):
        self.cache_hits += 1

    def record_cache_miss(self):
        self.cache_misses += 1

    def record_batch_size(self, size: int):
        self.batch_sizes.append(size)

    def record_error(self, endpoint: str):
        self.error_counts[endpoint] += 1

    def get_percentile(self, endpoint: str, percentile: float) -> Optional[float]:
        """
        Get a latency percentile for an endpoint.

        Args:
            endpoint: Endpoint name
            percentile: Percentile (0-100)

        Returns:
            Latency in ms, or None if insufficient data
        """
        values = sorted(self.latencies.get(endpoint, ()))
        if len(values) < 10:  # Need at least 10 samples for meaningful percentiles
            return None
        index = min(int(len(values) * (percentile / 100.0)), len(values) - 1)
        return values[index]

    def get_cache_hit_rate(self) -> float:
        """Get the cache hit rate as a percentage."""
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return (self.cache_hits / total) * 100.0

    def get_error_rate(self, endpoint: str) -> float:
        total_requests = self.request_counts[endpoint]
        if total_requests == 0:
            return 0.0
        return (self.error_counts[endpoint] / total_requests) * 100.0

    def get_summary(self) -> Dict:
        """Summary of all metrics, as served by /metrics."""
        summary = {
            "uptime_seconds": (_utcnow() - self.start_time).total_seconds(),
            "cache": {
                "hit_rate_pct": round(self.get_cache_hit_rate(), 2),
                "total_hits": self.cache_hits,
                "total_misses": self.cache_misses,
            },
            "batches": {
                "count": len(self.batch_sizes),
                "avg_size": round(statistics.mean(self.batch_sizes), 2) if self.batch_sizes else 0,
                "max_size": max(self.batch_sizes) if self.batch_sizes else 0,
            },
            "endpoints": {},
        }

        for endpoint in list(self.request_counts.keys()):
            endpoint_metrics = {
                "total_requests": self.request_counts[endpoint],
                "total_errors": self.error_counts[endpoint],
                "error_rate_pct": round(self.get_error_rate(endpoint), 2),
            }
            for label, pct in (("p50", 50), ("p95", 95), ("p99", 99)):
                value = self.get_percentile(endpoint, pct)
                if value is not None:
                    endpoint_metrics[f"latency_{label}_ms"] = round(value, 2)
            if self.latencies[endpoint]:
                endpoint_metrics["latency_avg_ms"] = round(statistics.mean(self.latencies[endpoint]), 2)
            summary["endpoints"][endpoint] = endpoint_metrics

        return summary

    def reset(self):
        """Reset all metrics (useful for testing)."""
        self.latencies.clear()
        self.batch_sizes.clear()
        self.cache_hits = 0
        self.cache_misses = 0
        self.request_counts.clear()
        self.error_counts.clear()
        self.last_reset = _utcnow()


# Global metrics collector instance
metrics_collector = MetricsCollector()


def record_request_metrics(endpoint: str, latency_ms: float, is_error: bool = False):
    """
    Record latency and error status for one HTTP request.

    Args:
        endpoint: Request path (e.g. "/api/availability")
        latency_ms: Total request latency in milliseconds
        is_error: Whether this request resulted in a 5xx response
    """
    metrics_collector.record_latency(endpoint, latency_ms)
    if is_error:
        metrics_collector.record_error(endpoint)
