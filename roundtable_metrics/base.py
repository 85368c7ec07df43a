# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Base abstraction for metrics collection."""

from abc import ABC, abstractmethod


class MetricsCollector(ABC):
    """Abstract base class for metrics collectors.

    Provides a pluggable interface so the engine can report phase
    transitions and trigger counts to any observability backend.
    """

    @abstractmethod
    def increment(self, name: str, value: float = 1.0, tags: dict[str, str] | None = None) -> None:
        """Increment a counter metric.

        Args:
            name: Name of the counter metric
            value: Amount to increment by (default: 1.0)
            tags: Optional dictionary of tags/labels for the metric
        """
        pass

    @abstractmethod
    def observe(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        """Observe a value for histogram metrics such as durations.

        Args:
            name: Name of the histogram metric
            value: Value to observe
            tags: Optional dictionary of tags/labels for the metric
        """
        pass

    @abstractmethod
    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        """Set a gauge metric to a specific value.

        Args:
            name: Name of the gauge metric
            value: Value to set the gauge to
            tags: Optional dictionary of tags/labels for the metric
        """
        pass
