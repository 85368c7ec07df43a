# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Prometheus metrics collector implementation."""

import logging
from typing import Dict, Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

from .base import MetricsCollector

logger = logging.getLogger(__name__)

_MetricKey = Tuple[str, Tuple[str, ...]]


class PrometheusMetricsCollector(MetricsCollector):
    """Prometheus metrics collector.

    All calls for one metric name must use the same label keys; Prometheus
    rejects a metric whose label set changes between calls.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        namespace: str = "roundtable",
        raise_on_error: bool = False,
    ):
        """Initialize Prometheus metrics collector.

        Args:
            registry: Optional Prometheus registry (uses the default if None)
            namespace: Namespace prefix for all metrics
            raise_on_error: Re-raise metric errors instead of logging them
        """
        self.registry = registry
        self.namespace = namespace
        self.raise_on_error = raise_on_error
        self._counters: Dict[_MetricKey, Counter] = {}
        self._histograms: Dict[_MetricKey, Histogram] = {}
        self._gauges: Dict[_MetricKey, Gauge] = {}
        self._metrics_errors_count = 0

    @staticmethod
    def _cache_key(name: str, tags: Optional[Dict[str, str]]) -> _MetricKey:
        return name, tuple(sorted(tags.keys())) if tags else ()

    def _get_or_create(self, cache: dict, metric_type, kind: str, name: str, tags: Optional[Dict[str, str]]):
        cache_key = self._cache_key(name, tags)
        if cache_key not in cache:
            cache[cache_key] = metric_type(
                name=name,
                documentation=f"{kind} metric: {name}",
                labelnames=cache_key[1],
                namespace=self.namespace,
                registry=self.registry,
            )
        metric = cache[cache_key]
        return metric.labels(**tags) if tags else metric

    def _record_error(self, action: str, name: str, error: Exception) -> None:
        self._metrics_errors_count += 1
        logger.error(f"Failed to {action} {name}: {error}")
        if self.raise_on_error:
            raise error

    def increment(self, name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None) -> None:
        try:
            self._get_or_create(self._counters, Counter, "Counter", name, tags).inc(value)
        except ValueError as e:
            self._record_error("increment counter", name, e)

    def observe(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        try:
            self._get_or_create(self._histograms, Histogram, "Histogram", name, tags).observe(value)
        except ValueError as e:
            self._record_error("observe histogram", name, e)

    def gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        try:
            self._get_or_create(self._gauges, Gauge, "Gauge", name, tags).set(value)
        except ValueError as e:
            self._record_error("set gauge", name, e)

    def get_errors_count(self) -> int:
        """Number of errors that occurred during metrics collection."""
        return self._metrics_errors_count
