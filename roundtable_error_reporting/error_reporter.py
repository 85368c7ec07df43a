# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Abstract error reporter interface."""

from abc import ABC, abstractmethod
from typing import Any


class ErrorReporter(ABC):
    """Abstract base class for error reporters."""

    @abstractmethod
    def report(self, error: Exception, context: dict[str, Any] | None = None) -> None:
        """Report an exception with optional context.

        Args:
            error: The exception to report
            context: Optional dictionary with additional context
        """
        pass

    @abstractmethod
    def capture_message(
        self,
        message: str,
        level: str = "error",
        context: dict[str, Any] | None = None
    ) -> None:
        """Capture a message without an exception.

        Args:
            message: The message to capture
            level: Severity level (debug, info, warning, error, critical)
            context: Optional dictionary with additional context
        """
        pass
