# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Tests for the metrics adapter."""

import pytest
from prometheus_client import CollectorRegistry

from roundtable_metrics import MetricsCollector, NoOpMetricsCollector, create_metrics_collector
from roundtable_metrics.prometheus_metrics import PrometheusMetricsCollector


class TestMetricsFactory:
    """Tests for create_metrics_collector factory function."""

    def test_create_noop_collector(self):
        collector = create_metrics_collector(backend="noop")

        assert isinstance(collector, NoOpMetricsCollector)
        assert isinstance(collector, MetricsCollector)

    def test_create_prometheus_collector(self):
        collector = create_metrics_collector(backend="prometheus", registry=CollectorRegistry())

        assert isinstance(collector, PrometheusMetricsCollector)

    def test_create_unknown_backend_type(self):
        """Test that unknown backend raises ValueError."""
        with pytest.raises(ValueError, match="Unknown metrics backend"):
            create_metrics_collector(backend="statsd")

    def test_create_with_env_default(self, monkeypatch):
        """Test that METRICS_BACKEND selects the backend."""
        monkeypatch.setenv("METRICS_BACKEND", "NOOP")

        assert isinstance(create_metrics_collector(), NoOpMetricsCollector)

    def test_default_is_noop(self, monkeypatch):
        monkeypatch.delenv("METRICS_BACKEND", raising=False)

        assert isinstance(create_metrics_collector(), NoOpMetricsCollector)


class TestNoOpMetricsCollector:
    """Tests for NoOpMetricsCollector."""

    def test_increment_counter_with_tags(self):
        collector = NoOpMetricsCollector()

        collector.increment("round_triggers_total", tags={"phase": "moderator"})
        collector.increment("round_triggers_total", tags={"phase": "moderator"})
        collector.increment("round_triggers_total", tags={"phase": "analysis"})

        assert collector.get_counter_total("round_triggers_total") == 3.0
        assert collector.get_counter_total("round_triggers_total", tags={"phase": "moderator"}) == 2.0

    def test_observe_histogram(self):
        collector = NoOpMetricsCollector()

        collector.observe("round_duration_seconds", 1.5)
        collector.observe("round_duration_seconds", 2.5)

        assert collector.get_observations("round_duration_seconds") == [1.5, 2.5]

    def test_gauge_keeps_latest_value(self):
        collector = NoOpMetricsCollector()

        collector.gauge("active_rounds", 1)
        collector.gauge("active_rounds", 0)

        assert collector.get_gauge_value("active_rounds") == 0
        assert collector.get_gauge_value("missing") is None

    def test_clear_metrics(self):
        collector = NoOpMetricsCollector()
        collector.increment("a")
        collector.observe("b", 1.0)
        collector.gauge("c", 1.0)

        collector.clear_metrics()

        assert collector.counters == []
        assert collector.observations == []
        assert collector.gauges == []


class TestPrometheusMetricsCollector:
    """Tests for PrometheusMetricsCollector."""

    def test_increment_counter(self):
        registry = CollectorRegistry()
        collector = PrometheusMetricsCollector(registry=registry, namespace="test")

        collector.increment("rounds_stopped_total")
        collector.increment("rounds_stopped_total", value=2.0)

        assert registry.get_sample_value("test_rounds_stopped_total") == 3.0

    def test_counter_with_labels(self):
        registry = CollectorRegistry()
        collector = PrometheusMetricsCollector(registry=registry, namespace="test")

        collector.increment("round_triggers_total", tags={"phase": "analysis"})

        assert ("round_triggers_total", ("phase",)) in collector._counters
        assert registry.get_sample_value("test_round_triggers_total", {"phase": "analysis"}) == 1.0

    def test_observe_histogram(self):
        registry = CollectorRegistry()
        collector = PrometheusMetricsCollector(registry=registry, namespace="test")

        collector.observe("round_duration_seconds", 0.25)

        assert registry.get_sample_value("test_round_duration_seconds_count") == 1.0
        assert registry.get_sample_value("test_round_duration_seconds_sum") == 0.25

    def test_set_gauge(self):
        registry = CollectorRegistry()
        collector = PrometheusMetricsCollector(registry=registry, namespace="test")

        collector.gauge("pending_animations", 4)

        assert registry.get_sample_value("test_pending_animations") == 4.0

    def test_negative_increment_is_recorded_as_error(self):
        """Test that a rejected metric update is counted instead of raised."""
        collector = PrometheusMetricsCollector(registry=CollectorRegistry(), namespace="test")

        collector.increment("rounds_stopped_total", value=-1.0)

        assert collector.get_errors_count() == 1

    def test_raise_on_error(self):
        collector = PrometheusMetricsCollector(registry=CollectorRegistry(), namespace="test", raise_on_error=True)

        with pytest.raises(ValueError):
            collector.increment("rounds_stopped_total", value=-1.0)
