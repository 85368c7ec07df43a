# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Tests for the logging adapter."""

import json
import os
from io import StringIO
from unittest.mock import patch

import pytest

from roundtable_logging import Logger, SilentLogger, StdoutLogger, create_logger


class TestLoggerFactory:
    """Tests for create_logger factory function."""

    def test_create_stdout_logger(self):
        """Test creating a stdout logger."""
        logger = create_logger(logger_type="stdout", level="INFO")

        assert isinstance(logger, StdoutLogger)
        assert isinstance(logger, Logger)
        assert logger.level == "INFO"

    def test_create_silent_logger(self):
        """Test creating a silent logger."""
        logger = create_logger(logger_type="silent")

        assert isinstance(logger, SilentLogger)

    def test_create_unknown_logger_type(self):
        """Test that unknown logger type raises ValueError."""
        with pytest.raises(ValueError, match="Unknown logger_type"):
            create_logger(logger_type="invalid")

    def test_create_logger_from_env(self):
        """Test creating logger from environment variables."""
        with patch.dict(os.environ, {"LOG_TYPE": "silent", "LOG_LEVEL": "warning", "LOG_NAME": "rounds"}):
            logger = create_logger()

            assert isinstance(logger, SilentLogger)
            assert logger.level == "WARNING"
            assert logger.name == "rounds"

    def test_create_logger_defaults(self):
        """Test the defaults when neither arguments nor env are set."""
        with patch.dict(os.environ, {}, clear=True):
            logger = create_logger()

            assert isinstance(logger, StdoutLogger)
            assert logger.level == "INFO"
            assert logger.name == "roundtable"


class TestSilentLogger:
    """Tests for SilentLogger."""

    def test_logs_are_kept_in_memory(self):
        logger = SilentLogger()

        logger.info("Round submitted", round_number=0)
        logger.warning("Pre-search timed out")
        logger.debug("Guard blocked")

        assert len(logger.logs) == 3
        assert logger.logs[0] == {"level": "INFO", "message": "Round submitted", "extra": {"round_number": 0}}

    def test_exception_logs_at_error_level(self):
        """Test that exception() records an ERROR entry without exc_info."""
        logger = SilentLogger()

        logger.exception("Listener failed", exc_info=True)

        assert logger.get_logs("ERROR") == [{"level": "ERROR", "message": "Listener failed"}]

    def test_filtering_and_has_log(self):
        logger = SilentLogger()
        logger.info("Round stopped")
        logger.error("Submitting message failed")

        assert logger.has_log("stopped")
        assert logger.has_log("failed", level="ERROR")
        assert not logger.has_log("stopped", level="ERROR")

    def test_clear_logs(self):
        logger = SilentLogger()
        logger.info("one")

        logger.clear_logs()

        assert logger.logs == []


class TestStdoutLogger:
    """Tests for StdoutLogger."""

    def test_invalid_log_level(self):
        """Test that invalid log level raises ValueError."""
        with pytest.raises(ValueError, match="Invalid log level"):
            StdoutLogger(level="VERBOSE")

    @patch("sys.stdout", new_callable=StringIO)
    def test_info_logging_output(self, mock_stdout):
        """Test that info logging produces one JSON object per line."""
        logger = StdoutLogger(level="INFO", name="rounds")

        logger.info("Round submitted", round_number=2, participants=3)

        log_entry = json.loads(mock_stdout.getvalue().strip())
        assert log_entry["level"] == "INFO"
        assert log_entry["logger"] == "rounds"
        assert log_entry["message"] == "Round submitted"
        assert log_entry["extra"] == {"round_number": 2, "participants": 3}
        assert log_entry["timestamp"].endswith("Z")

    @patch("sys.stdout", new_callable=StringIO)
    def test_log_level_filtering(self, mock_stdout):
        """Test that messages below the configured level are dropped."""
        logger = StdoutLogger(level="WARNING", name="rounds")

        logger.debug("hidden")
        logger.info("hidden")
        logger.warning("shown")

        lines = mock_stdout.getvalue().strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "shown"

    @patch("sys.stdout", new_callable=StringIO)
    def test_non_serializable_extra_uses_str(self, mock_stdout):
        logger = StdoutLogger(name="rounds")

        logger.info("With object", value=object())

        log_entry = json.loads(mock_stdout.getvalue().strip())
        assert log_entry["extra"]["value"].startswith("<object object")

    @patch("sys.stdout", new_callable=StringIO)
    def test_records_reach_stdlib_logging(self, mock_stdout, caplog):
        """Test that records are forwarded to the stdlib logger of the same name."""
        logger = StdoutLogger(level="INFO", name="roundtable.test")

        with caplog.at_level("INFO", logger="roundtable.test"):
            logger.warning("Phase failed", phase="analysis")

        assert any(r.getMessage() == "Phase failed" for r in caplog.records)
