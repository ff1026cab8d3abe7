"""
Prometheus metrics for the storefront services.

Each collector owns its own ``CollectorRegistry`` unless one is passed in,
so several app instances (as in tests) can coexist in one interpreter.
"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest


class MetricsCollector:

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()

        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})

        # HTTP surface
        self.http_requests = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code", "cache_status"],
            registry=self.registry,
        )
        self.http_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry,
        )
        self.health_checks = Counter(
            "health_check_total", "Health check requests", ["status"], registry=self.registry
        )
        self.errors = Counter(
            "errors_total", "Errors returned to callers", ["code"], registry=self.registry
        )
        self.storefront_events = Counter(
            "storefront_events_total",
            "Completed order and payment events",
            ["event"],
            registry=self.registry,
        )

        # Cache layer
        self.cache_lookups = Counter(
            "cache_lookups_total",
            "Read-through lookups by cache status",
            ["resource", "status"],
            registry=self.registry,
        )
        self.cache_errors = Counter(
            "cache_errors_total",
            "Cache operations that failed and were absorbed",
            ["operation"],
            registry=self.registry,
        )
        self.cache_invalidations = Counter(
            "cache_invalidations_total",
            "Write-path cache invalidations",
            ["resource", "outcome"],
            registry=self.registry,
        )
        self.background_tasks = Counter(
            "background_tasks_total",
            "Background cache tasks by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.source_load_duration = Histogram(
            "source_of_record_duration_seconds",
            "Source-of-record load duration in seconds",
            ["resource"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self.registry,
        )

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(
        self, method: str, endpoint: str, status_code: int, duration: float, cache_status: Optional[str] = None
    ):
        self.http_requests.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code),
            cache_status=cache_status or "NONE",
        ).inc()
        self.http_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_health_check(self, status: str):
        self.health_checks.labels(status=status).inc()

    def record_error(self, code: str):
        self.errors.labels(code=code).inc()

    def record_event(self, event: str):
        self.storefront_events.labels(event=event).inc()

    def record_cache_lookup(self, resource: str, status: str):
        self.cache_lookups.labels(resource=resource, status=status).inc()

    def record_cache_error(self, operation: str):
        self.cache_errors.labels(operation=operation).inc()

    def record_invalidation(self, resource: str, outcome: str):
        self.cache_invalidations.labels(resource=resource, outcome=outcome).inc()

    def record_background_task(self, outcome: str):
        self.background_tasks.labels(outcome=outcome).inc()

    @contextmanager
    def time_source_load(self, resource: str) -> Iterator[None]:
        """Time one load from the source of record, failures included."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.source_load_duration.labels(resource=resource).observe(time.perf_counter() - start)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    return MetricsCollector(service_name, registry)
