# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Console-based error reporter implementation."""

import logging
import traceback
from typing import Any

from .error_reporter import ErrorReporter

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _format_context(context: dict[str, Any] | None) -> str:
    if not context:
        return ""
    return " | Context: " + ", ".join(f"{k}={v}" for k, v in context.items())


class ConsoleErrorReporter(ErrorReporter):
    """Error reporter that writes through Python's logging system."""

    def __init__(self, logger_name: str | None = None):
        """Initialize console error reporter.

        Args:
            logger_name: Optional logger name to use (defaults to module logger)
        """
        self.logger = logging.getLogger(logger_name) if logger_name else logger

    def report(self, error: Exception, context: dict[str, Any] | None = None) -> None:
        stack_trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        self.logger.error(f"Exception occurred: {type(error).__name__}: {error}{_format_context(context)}")
        self.logger.debug(f"Stack trace:\n{stack_trace}")

    def capture_message(
        self,
        message: str,
        level: str = "error",
        context: dict[str, Any] | None = None
    ) -> None:
        log_level = _LEVELS.get(level.lower(), logging.ERROR)
        self.logger.log(log_level, message + _format_context(context))
