# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Roundtable Error Reporting Adapter.

Error reporting for phase-local failures of the round orchestration engine.
"""

import os

from .console_error_reporter import ConsoleErrorReporter
from .error_reporter import ErrorReporter
from .silent_error_reporter import SilentErrorReporter

__version__ = "0.1.0"


def create_error_reporter(reporter_type: str | None = None, **kwargs) -> ErrorReporter:
    """Create an error reporter.

    Args:
        reporter_type: "console" or "silent". Defaults to ERROR_REPORTER_TYPE
            env or "console".
        **kwargs: Passed to the reporter constructor

    Returns:
        ErrorReporter instance

    Raises:
        ValueError: If reporter_type is not recognized
    """
    reporter_type = (reporter_type or os.getenv("ERROR_REPORTER_TYPE") or "console").lower()

    if reporter_type == "console":
        return ConsoleErrorReporter(**kwargs)
    elif reporter_type == "silent":
        return SilentErrorReporter()
    else:
        raise ValueError(
            f"Unknown error_reporter_type: {reporter_type}. "
            f"Must be one of: console, silent"
        )


__all__ = [
    "__version__",
    "ConsoleErrorReporter",
    "ErrorReporter",
    "SilentErrorReporter",
    "create_error_reporter",
]
