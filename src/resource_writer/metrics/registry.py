"""
Prometheus metrics for bulk writes, registered in the global REGISTRY on import.
Observational only: nothing in the engine reads these back.
"""

from prometheus_client import Counter, Histogram

REQUEST_LATENCY = Histogram(
    "resource_writer_requests_seconds",
    "Duration of requests to the remote store",
    ["resource", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

ITEMS_SKIPPED_TOTAL = Counter(
    "resource_writer_items_skipped_total",
    "Number of items skipped due to errors",
    ["resource"],
)

DATAPOINTS_WRITTEN_TOTAL = Counter(
    "resource_writer_datapoints_total",
    "Number of datapoints written to the remote store",
)

RETRIES_TOTAL = Counter(
    "resource_writer_retries_total",
    "Number of retried requests",
    ["resource", "reason"],
)


class MetricsRegistry:
    """Centralized access to the writer metrics."""

    request_latency = REQUEST_LATENCY
    items_skipped_total = ITEMS_SKIPPED_TOTAL
    datapoints_written_total = DATAPOINTS_WRITTEN_TOTAL
    retries_total = RETRIES_TOTAL

    def timer(self, resource: str, endpoint: str):
        """Context manager timing one request."""
        return self.request_latency.labels(resource=resource, endpoint=endpoint).time()

    def skipped(self, resource: str, n: int = 1) -> None:
        if n:
            self.items_skipped_total.labels(resource=resource).inc(n)


# Singleton instance
metrics_registry = MetricsRegistry()
