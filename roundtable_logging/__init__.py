# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Roundtable Logging Adapter.

Structured, configurable logging for the round orchestration engine.

Example:
    >>> from roundtable_logging import create_logger
    >>> logger = create_logger(logger_type="stdout", level="INFO", name="rounds")
    >>> logger.info("Round started", thread_id="t1", round_number=0)
    >>>
    >>> # Silent logger for tests
    >>> test_logger = create_logger(logger_type="silent")
    >>> test_logger.info("Test message")
"""

__version__ = "0.1.0"

from .factory import create_logger
from .logger import Logger
from .silent_logger import SilentLogger
from .stdout_logger import StdoutLogger

__all__ = [
    "__version__",
    "Logger",
    "SilentLogger",
    "StdoutLogger",
    "create_logger",
]
