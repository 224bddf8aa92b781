"""Tests for logging processors and helpers."""

import pytest

from rapprochement.utils.logging import (
    LogPerformance,
    add_correlation_id,
    clear_correlation_id,
    filter_sensitive_data,
    get_correlation_id,
    set_correlation_id,
)

pytestmark = pytest.mark.unit


class RecordingLogger:
    """Collects (level, event, fields) tuples."""

    def __init__(self):
        self.records = []

    def __getattr__(self, level):
        def _log(event, **fields):
            self.records.append((level, event, fields))

        return _log


class TestProcessors:
    """Tests for structlog processors."""

    def test_sensitive_keys_redacted(self):
        event = {"event": "supplier_history_updated", "iban": "FR76...", "supplier": "edf"}

        result = filter_sensitive_data(None, "info", event)

        assert result["iban"] == "***REDACTED***"
        assert result["supplier"] == "edf"

    def test_correlation_id(self):
        correlation_id = set_correlation_id()
        try:
            assert get_correlation_id() == correlation_id
            assert add_correlation_id(None, "info", {})["correlation_id"] == correlation_id
            assert set_correlation_id("run-42") == "run-42"
        finally:
            clear_correlation_id()
        assert get_correlation_id() is None


class TestLogPerformance:
    """Tests for LogPerformance."""

    def test_logs_completion(self):
        logger = RecordingLogger()

        with LogPerformance("match_invoices", logger):
            pass

        level, event, fields = logger.records[-1]
        assert (level, event) == ("info", "match_invoices_completed")
        assert fields["duration_ms"] >= 0

    def test_logs_failure_and_propagates(self):
        logger = RecordingLogger()

        with pytest.raises(RuntimeError):
            with LogPerformance("run_matching", logger):
                raise RuntimeError("boom")

        level, event, fields = logger.records[-1]
        assert (level, event) == ("error", "run_matching_failed")
        assert fields["error_type"] == "RuntimeError"
