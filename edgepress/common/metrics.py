"""Metrics collection for EdgePress services.

Provides a thin convenience wrapper around ``prometheus_client`` so services
can consistently record HTTP, search, cache, invalidation, and vector store
metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per service (can be injected if needed)
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for EdgePress services.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)

    Exposes typed helpers for common events to keep label sets consistent.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.search_requests = Counter(
            'ep_search_requests_total',
            'Total search requests',
            ['engine', 'outcome'],
            registry=self.registry
        )

        self.search_duration = Histogram(
            'ep_search_duration_seconds',
            'Search duration',
            ['engine'],
            registry=self.registry
        )

        self.cache_hits = Counter(
            'ep_cache_hits_total',
            'Total cache hits',
            ['cache_type'],
            registry=self.registry
        )

        self.cache_misses = Counter(
            'ep_cache_misses_total',
            'Total cache misses',
            ['cache_type'],
            registry=self.registry
        )

        self.invalidations = Counter(
            'ep_cache_invalidations_total',
            'Invalidation runs partitioned by content event',
            ['event'],
            registry=self.registry
        )

        self.vector_store_operations = Counter(
            'ep_vector_store_operations_total',
            'Total vector store operations',
            ['operation', 'outcome'],
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_search(self, engine: str, duration: float, outcome: str = "ok") -> None:
        """Record search metrics for one engine call."""
        self.search_requests.labels(engine=engine, outcome=outcome).inc()
        self.search_duration.labels(engine=engine).observe(duration)

    def record_cache_hit(self, cache_type: str) -> None:
        """Record cache hit."""
        self.cache_hits.labels(cache_type=cache_type).inc()

    def record_cache_miss(self, cache_type: str) -> None:
        """Record cache miss."""
        self.cache_misses.labels(cache_type=cache_type).inc()

    def record_invalidation(self, event: str) -> None:
        self.invalidations.labels(event=event).inc()

    def record_vector_store_operation(self, operation: str, outcome: str) -> None:
        self.vector_store_operations.labels(operation=operation, outcome=outcome).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create metrics collector for a service.

    Returns a process-wide singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector
