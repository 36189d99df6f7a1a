"""Tests for structured logging helpers."""

import json
import logging

from helpdesk_ai.shared.infrastructure.logging import (
    REDACTED,
    CustomJsonFormatter,
    get_context_logger,
    log_latency,
)


def format_record(**extra):
    formatter = CustomJsonFormatter(fmt="%(name)s %(levelname)s %(message)s", environment="staging")
    record = logging.LogRecord("helpdesk_ai.test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


class TestCustomJsonFormatter:
    """Tests for CustomJsonFormatter."""

    def test_adds_standard_fields(self):
        """Test timestamp, environment and correlation_id are present."""
        payload = format_record(correlation_id="abc-123")

        assert payload["message"] == "hello"
        assert payload["environment"] == "staging"
        assert payload["correlation_id"] == "abc-123"
        assert payload["timestamp"]

    def test_redacts_credentials(self):
        """Test secret-looking string fields are masked."""
        payload = format_record(api_key="sk-live", claim_token="abc", prompt_tokens=12)

        assert payload["api_key"] == REDACTED
        assert payload["claim_token"] == REDACTED
        assert payload["prompt_tokens"] == 12


class TestContextLogger:
    """Tests for get_context_logger."""

    def test_merges_bound_and_call_extra(self, caplog):
        """Test per-call extra does not drop the correlation id."""
        logger = get_context_logger("helpdesk_ai.test.context", "corr-1")

        with caplog.at_level(logging.INFO, logger="helpdesk_ai.test.context"):
            logger.info("event handled", extra={"ticket_id": "t-1"})

        record = caplog.records[-1]
        assert record.correlation_id == "corr-1"
        assert record.ticket_id == "t-1"

    def test_without_correlation_id_returns_plain_logger(self):
        """Test no adapter is used when there is nothing to bind."""
        assert isinstance(get_context_logger("helpdesk_ai.test.plain"), logging.Logger)


class TestLogLatency:
    """Tests for log_latency."""

    def test_logs_operation_and_latency(self, caplog):
        """Test the wrapped block's duration is logged with context."""
        logger = logging.getLogger("helpdesk_ai.test.latency")

        with caplog.at_level(logging.INFO, logger="helpdesk_ai.test.latency"):
            with log_latency(logger, "kb_retrieval", organization_id="org-acme"):
                pass

        record = caplog.records[-1]
        assert record.getMessage() == "kb_retrieval completed"
        assert record.operation == "kb_retrieval"
        assert record.organization_id == "org-acme"
        assert record.latency_ms >= 0
