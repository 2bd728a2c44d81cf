"""Prometheus metrics for the cache and rate limiter."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

_CACHE_READ_OUTCOMES = {"hit", "miss", "stale", "unknown", "error"}
_CACHE_WRITE_OUTCOMES = {"ok", "error"}


class MetricsCollector:
    """Collects and exposes crux service metrics."""

    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.cache_requests_total = Counter(
            "crux_cache_requests_total",
            "Tiered cache lookups grouped by data type and outcome.",
            ("data_type", "outcome"),
            registry=self.registry,
        )
        self.cache_writes_total = Counter(
            "crux_cache_writes_total",
            "Tiered cache writes grouped by data type and outcome.",
            ("data_type", "outcome"),
            registry=self.registry,
        )
        self.rate_limit_decisions_total = Counter(
            "crux_rate_limit_decisions_total",
            "Rate limiter admission decisions.",
            ("decision",),
            registry=self.registry,
        )
        self.rate_limit_visitors = Gauge(
            "crux_rate_limit_visitors",
            "Visitors currently tracked by the rate limiter.",
            registry=self.registry,
        )
        self.rate_limit_swept_total = Counter(
            "crux_rate_limit_swept_total",
            "Idle visitors purged by the rate limiter sweep.",
            registry=self.registry,
        )

    def record_cache_read(self, data_type: str, outcome: str) -> None:
        label = outcome if outcome in _CACHE_READ_OUTCOMES else "__other__"
        self.cache_requests_total.labels(data_type=data_type, outcome=label).inc()

    def record_cache_write(self, data_type: str, *, success: bool) -> None:
        self.cache_writes_total.labels(data_type=data_type, outcome="ok" if success else "error").inc()

    def record_admission(self, admitted: bool) -> None:
        self.rate_limit_decisions_total.labels(decision="admitted" if admitted else "rejected").inc()

    def record_sweep(self, removed: int, remaining: int) -> None:
        if removed:
            self.rate_limit_swept_total.inc(removed)
        self.rate_limit_visitors.set(remaining)

    def render(self) -> bytes:
        """Render metrics in Prometheus exposition format."""

        return generate_latest(self.registry)


_DEFAULT_COLLECTOR: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Return the global metrics collector instance."""

    global _DEFAULT_COLLECTOR
    if _DEFAULT_COLLECTOR is None:
        _DEFAULT_COLLECTOR = MetricsCollector()
    return _DEFAULT_COLLECTOR


def configure_metrics_collector(collector: MetricsCollector | None) -> None:
    """Override the global metrics collector for application wiring or tests."""

    global _DEFAULT_COLLECTOR
    _DEFAULT_COLLECTOR = collector
