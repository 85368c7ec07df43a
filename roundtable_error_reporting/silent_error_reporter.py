# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Silent error reporter implementation for testing."""

from typing import Any

from .error_reporter import ErrorReporter


class SilentErrorReporter(ErrorReporter):
    """Error reporter that stores reports in memory for assertions."""

    def __init__(self):
        self.reported_errors: list[dict[str, Any]] = []
        self.captured_messages: list[dict[str, Any]] = []

    def report(self, error: Exception, context: dict[str, Any] | None = None) -> None:
        self.reported_errors.append({
            "error": error,
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context or {},
        })

    def capture_message(
        self,
        message: str,
        level: str = "error",
        context: dict[str, Any] | None = None
    ) -> None:
        self.captured_messages.append({
            "message": message,
            "level": level,
            "context": context or {},
        })

    def get_errors(self, error_type: str | None = None) -> list[dict[str, Any]]:
        """Get reported errors, optionally filtered by exception type name."""
        if error_type:
            return [e for e in self.reported_errors if e["error_type"] == error_type]
        return self.reported_errors

    def get_messages(self, level: str | None = None) -> list[dict[str, Any]]:
        """Get captured messages, optionally filtered by level."""
        if level:
            return [m for m in self.captured_messages if m["level"] == level]
        return self.captured_messages

    def clear(self) -> None:
        """Clear all stored errors and messages."""
        self.reported_errors.clear()
        self.captured_messages.clear()

    def has_errors(self) -> bool:
        return len(self.reported_errors) > 0
