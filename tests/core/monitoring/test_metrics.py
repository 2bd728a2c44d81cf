"""Tests for the Prometheus metrics collector."""

from crux.core.monitoring import MetricsCollector, configure_metrics_collector, get_metrics_collector


def test_cache_read_outcomes() -> None:
    metrics = MetricsCollector()

    metrics.record_cache_read("snapshot", "hit")
    metrics.record_cache_read("snapshot", "hit")
    metrics.record_cache_read("snapshot", "weird")

    sample = metrics.registry.get_sample_value
    assert sample("crux_cache_requests_total", {"data_type": "snapshot", "outcome": "hit"}) == 2.0
    assert sample("crux_cache_requests_total", {"data_type": "snapshot", "outcome": "__other__"}) == 1.0


def test_render_exposition() -> None:
    metrics = MetricsCollector()
    metrics.record_admission(True)
    metrics.record_admission(False)
    metrics.record_sweep(3, 7)

    text = metrics.render().decode()

    assert 'crux_rate_limit_decisions_total{decision="admitted"} 1.0' in text
    assert 'crux_rate_limit_decisions_total{decision="rejected"} 1.0' in text
    assert "crux_rate_limit_swept_total 3.0" in text
    assert "crux_rate_limit_visitors 7.0" in text


def test_collectors_are_isolated() -> None:
    first = MetricsCollector()
    second = MetricsCollector()

    first.record_cache_write("profile", success=True)

    assert second.registry.get_sample_value(
        "crux_cache_writes_total", {"data_type": "profile", "outcome": "ok"}
    ) is None


def test_global_collector_override() -> None:
    custom = MetricsCollector()
    configure_metrics_collector(custom)
    try:
        assert get_metrics_collector() is custom
    finally:
        configure_metrics_collector(None)

    assert get_metrics_collector() is not custom
