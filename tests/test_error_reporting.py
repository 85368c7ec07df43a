# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Tests for the error reporting adapter."""

import logging

import pytest

from roundtable_error_reporting import (
    ConsoleErrorReporter,
    ErrorReporter,
    SilentErrorReporter,
    create_error_reporter,
)
from roundtable_rounds import TransportError


class TestErrorReporterFactory:
    """Tests for create_error_reporter factory function."""

    def test_create_console_reporter(self):
        reporter = create_error_reporter(reporter_type="console")

        assert isinstance(reporter, ConsoleErrorReporter)
        assert isinstance(reporter, ErrorReporter)

    def test_create_silent_reporter(self):
        assert isinstance(create_error_reporter(reporter_type="silent"), SilentErrorReporter)

    def test_create_from_env(self, monkeypatch):
        monkeypatch.setenv("ERROR_REPORTER_TYPE", "silent")

        assert isinstance(create_error_reporter(), SilentErrorReporter)

    def test_default_is_console(self, monkeypatch):
        monkeypatch.delenv("ERROR_REPORTER_TYPE", raising=False)

        assert isinstance(create_error_reporter(), ConsoleErrorReporter)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown error_reporter_type"):
            create_error_reporter(reporter_type="sentry")


class TestSilentErrorReporter:
    """Tests for SilentErrorReporter."""

    def test_report_stores_error_and_context(self):
        reporter = SilentErrorReporter()
        error = TransportError("connection reset", retryable=True)

        reporter.report(error, {"round_number": 1})

        assert reporter.has_errors()
        stored = reporter.get_errors("TransportError")[0]
        assert stored["error"] is error
        assert stored["error_message"] == "connection reset"
        assert stored["context"] == {"round_number": 1}

    def test_capture_message_filters_by_level(self):
        reporter = SilentErrorReporter()

        reporter.capture_message("analysis failed", level="warning")
        reporter.capture_message("fatal", level="critical")

        assert [m["message"] for m in reporter.get_messages("warning")] == ["analysis failed"]
        assert len(reporter.get_messages()) == 2

    def test_clear(self):
        reporter = SilentErrorReporter()
        reporter.report(ValueError("x"))
        reporter.capture_message("y")

        reporter.clear()

        assert not reporter.has_errors()
        assert reporter.get_messages() == []


class TestConsoleErrorReporter:
    """Tests for ConsoleErrorReporter."""

    def test_report_logs_error_with_context(self, caplog):
        reporter = ConsoleErrorReporter(logger_name="roundtable.errors")

        with caplog.at_level(logging.DEBUG, logger="roundtable.errors"):
            reporter.report(TransportError("stream closed"), {"round_number": 0, "participant_index": 2})

        error_records = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(error_records) == 1
        assert "TransportError: stream closed" in error_records[0].getMessage()
        assert "participant_index=2" in error_records[0].getMessage()

    def test_capture_message_uses_level(self, caplog):
        reporter = ConsoleErrorReporter(logger_name="roundtable.errors")

        with caplog.at_level(logging.DEBUG, logger="roundtable.errors"):
            reporter.capture_message("moderator failed", level="warning")

        assert caplog.records[-1].levelno == logging.WARNING
