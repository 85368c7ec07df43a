# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Factory functions for creating metrics collectors."""

import os

from .base import MetricsCollector


def create_metrics_collector(backend: str | None = None, **kwargs) -> MetricsCollector:
    """Create a metrics collector for the given backend.

    Supported backends:
    - "prometheus": Prometheus registry-based collection
    - "noop": in-memory collector for tests and local runs

    Args:
        backend: Backend name. Defaults to METRICS_BACKEND env or "noop".
        **kwargs: Passed to the collector constructor

    Returns:
        MetricsCollector instance

    Raises:
        ValueError: If backend is unknown
    """
    backend = (backend or os.getenv("METRICS_BACKEND") or "noop").lower()

    if backend == "prometheus":
        from .prometheus_metrics import PrometheusMetricsCollector

        return PrometheusMetricsCollector(**kwargs)
    elif backend == "noop":
        from .noop_metrics import NoOpMetricsCollector

        return NoOpMetricsCollector(**kwargs)
    else:
        raise ValueError(
            f"Unknown metrics backend: {backend}. "
            f"Must be one of: prometheus, noop"
        )
