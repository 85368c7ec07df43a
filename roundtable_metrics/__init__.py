# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Roundtable Metrics Adapter.

Pluggable metrics collection for the round orchestration engine.

Example:
    >>> from roundtable_metrics import create_metrics_collector
    >>> metrics = create_metrics_collector("noop")
    >>> metrics.increment("round_triggers_total", tags={"phase": "moderator"})
"""

__version__ = "0.1.0"

from .base import MetricsCollector
from .factory import create_metrics_collector
from .noop_metrics import NoOpMetricsCollector

__all__ = [
    "__version__",
    "MetricsCollector",
    "NoOpMetricsCollector",
    "create_metrics_collector",
]
