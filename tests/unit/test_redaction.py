"""Tests for PII redaction in log output."""

import logging

import pytest

from app.safety import PIIRedactingFilter, redact_pii
from app.safety.redaction import PIIRedactor, mask_phone_match


class TestRedactPII:
    """Test redact_pii."""

    def test_email_and_phone(self):
        """Test both kinds of PII are masked."""
        text = "call +44 7700 900123 or jo@example.com"
        assert redact_pii(text) == "call ***0123 or [EMAIL]"

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("+447700900123", "***0123"),
            ("whatsapp:+447700900123", "***0123"),
            ("07700 900123", "***0123"),
            ("sarah_jones@hotmail.co.uk", "[EMAIL]"),
        ],
    )
    def test_forms(self, text, expected):
        assert redact_pii(text) == expected

    @pytest.mark.parametrize(
        "text",
        [
            "event evt-12345 created",
            "start 2026-10-20T15:00:00+01:00",
            "already masked ***0123",
            "",
        ],
    )
    def test_leaves_other_text(self, text):
        """Test ids, timestamps and masked numbers are untouched."""
        assert redact_pii(text) == text


class TestPIIRedactor:
    """Test the Presidio recognizers behind redact_pii."""

    def test_entity_types(self):
        """Test emails and phones are reported as Presidio entities."""
        text = "call +447700900123 or jo@example.com"
        results = PIIRedactor().analyze(text)

        found = {(r.entity_type, text[r.start:r.end]) for r in results}
        assert found == {
            ("PHONE_NUMBER", "+447700900123"),
            ("EMAIL_ADDRESS", "jo@example.com"),
        }

    def test_nothing_found(self):
        assert PIIRedactor().analyze("Turn handled: phase=confirmed") == []

    def test_mask_phone_match(self):
        assert mask_phone_match("07700-900-123") == "***0123"


class TestPIIRedactingFilter:
    """Test the logging filter."""

    def test_formats_then_redacts(self):
        """Test %-style arguments are redacted after formatting."""
        record = logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Booking for %s (%s)",
            args=("+447700900123", "sarah@example.com"),
            exc_info=None,
        )

        assert PIIRedactingFilter().filter(record) is True
        assert record.getMessage() == "Booking for ***0123 ([EMAIL])"

    def test_clean_record_untouched(self):
        record = logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Turn handled: phase=%s",
            args=("confirmed",),
            exc_info=None,
        )

        PIIRedactingFilter().filter(record)

        assert record.args == ("confirmed",)
        assert record.getMessage() == "Turn handled: phase=confirmed"
