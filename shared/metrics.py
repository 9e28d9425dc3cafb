"""
Shared metrics configuration for the Premium service.
"""

from typing import Any, Dict, Optional
import threading

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, start_http_server


class MetricsCollector:
    """Centralized metrics collector for the premium engine."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # A private registry keeps several engines in one process from colliding
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up premium metrics."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # Cache metrics
        self._metrics["premium_cache_hits_total"] = Counter(
            "premium_cache_hits_total",
            "Total premium cache hits",
            ["category"],
            registry=self.registry
        )

        self._metrics["premium_cache_misses_total"] = Counter(
            "premium_cache_misses_total",
            "Total premium cache misses",
            ["category"],
            registry=self.registry
        )

        self._metrics["premium_cache_entries"] = Gauge(
            "premium_cache_entries",
            "Entries currently held in the premium cache",
            registry=self.registry
        )

        # Business metrics
        self._metrics["premium_events_total"] = Counter(
            "premium_events_total",
            "Total premium events published",
            ["event_type"],
            registry=self.registry
        )

        self._metrics["premium_listener_errors_total"] = Counter(
            "premium_listener_errors_total",
            "Total failures raised by event listeners",
            ["event_type"],
            registry=self.registry
        )

        self._metrics["premium_redemptions_total"] = Counter(
            "premium_redemptions_total",
            "Total code redemption attempts",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["premium_expired_total"] = Counter(
            "premium_expired_total",
            "Total entitlements removed by expiry",
            registry=self.registry
        )

        # Storage metrics
        self._metrics["premium_storage_errors_total"] = Counter(
            "premium_storage_errors_total",
            "Total storage failures",
            ["operation"],
            registry=self.registry
        )

        self._metrics["premium_preload_duration_seconds"] = Histogram(
            "premium_preload_duration_seconds",
            "Cache preload duration in seconds",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def start_metrics_server(self, port: int = 9090):
        """Start Prometheus metrics server."""
        start_http_server(port, registry=self.registry)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        with self._lock:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        with self._lock:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        with self._lock:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).observe(value)

    def sample(self, metric_name: str, **labels) -> float:
        """Read the current value of a counter or gauge sample."""
        value = self.registry.get_sample_value(metric_name, labels or None)
        return value or 0.0


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
