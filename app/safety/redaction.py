"""
PII Redaction for log output.

Uses Microsoft Presidio to find email addresses and phone numbers in
text before it reaches a log handler. Phones keep their last four
digits so support staff can still match a log line to a caller.

Only pattern recognizers run here: log lines never need spaCy NER, so
the recognizers are called directly instead of through an
AnalyzerEngine (which would load a spaCy model).

Usage:
    redact_pii("call +44 7700 900123 or jo@example.com")
    # "call ***0123 or [EMAIL]"

    handler.addFilter(PIIRedactingFilter())
"""

import logging
import re
from typing import Optional

from presidio_analyzer import Pattern, PatternRecognizer, RecognizerResult
from presidio_anonymizer import AnonymizerEngine
from presidio_anonymizer.entities import OperatorConfig

EMAIL_PLACEHOLDER = "[EMAIL]"


# ==================================
# Recognizers
# ==================================

class EmailAddressRecognizer(PatternRecognizer):
    """Email addresses, matched on shape only (no TLD lookup)."""

    def __init__(self):
        patterns = [
            Pattern(
                name="email_address",
                regex=r"[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}",
                score=0.9,
            ),
        ]

        super().__init__(
            supported_entity="EMAIL_ADDRESS",
            patterns=patterns,
            supported_language="en",
        )


class CallerPhoneRecognizer(PatternRecognizer):
    """
    Caller phone numbers as they appear in this service.

    Common patterns:
    - +447700900123
    - whatsapp:+447700900123
    - 07700 900123, 07700-900-123
    """

    def __init__(self):
        patterns = [
            # At least 10 digits; masked numbers (***0123) are left alone
            Pattern(
                name="caller_phone",
                regex=r"(?<![\w*])(?:whatsapp:)?\+?\d(?:[\s\-()]*\d){9,14}(?!\w)",
                score=0.7,
            ),
        ]

        super().__init__(
            supported_entity="PHONE_NUMBER",
            patterns=patterns,
            supported_language="en",
        )


def mask_phone_match(text: str) -> str:
    """Keep only the last four digits of a matched phone number."""
    digits = re.sub(r"\D", "", text)
    return f"***{digits[-4:]}"


# ==================================
# Redactor
# ==================================

class PIIRedactor:
    """
    Presidio-backed redactor for log text.

    Engines are built on first use.
    """

    def __init__(self):
        self._recognizers: Optional[list[PatternRecognizer]] = None
        self._anonymizer: Optional[AnonymizerEngine] = None
        self._operators = {
            "EMAIL_ADDRESS": OperatorConfig("replace", {"new_value": EMAIL_PLACEHOLDER}),
            "PHONE_NUMBER": OperatorConfig("custom", {"lambda": mask_phone_match}),
        }

    def _initialize(self) -> None:
        if self._recognizers is None:
            self._recognizers = [EmailAddressRecognizer(), CallerPhoneRecognizer()]
            self._anonymizer = AnonymizerEngine()

    def analyze(self, text: str) -> list[RecognizerResult]:
        """Find email and phone spans in text."""
        self._initialize()
        results: list[RecognizerResult] = []
        for recognizer in self._recognizers:
            results.extend(
                recognizer.analyze(
                    text=text,
                    entities=recognizer.supported_entities,
                    nlp_artifacts=None,
                )
            )
        return results

    def redact(self, text: str) -> str:
        """Replace emails with a placeholder and phones with their last four digits."""
        if not text:
            return text

        results = self.analyze(text)
        if not results:
            return text

        anonymized = self._anonymizer.anonymize(
            text=text,
            analyzer_results=results,
            operators=self._operators,
        )
        return anonymized.text


_redactor: Optional[PIIRedactor] = None


def get_pii_redactor() -> PIIRedactor:
    """Get the singleton PIIRedactor."""
    global _redactor
    if _redactor is None:
        _redactor = PIIRedactor()
    return _redactor


def redact_pii(text: str) -> str:
    """Convenience function to redact PII from text."""
    return get_pii_redactor().redact(text)


class PIIRedactingFilter(logging.Filter):
    """Logging filter that redacts the fully formatted message."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Presidio logs while redacting; its own records must not re-enter
        if record.name.startswith("presidio"):
            return True
        message = record.getMessage()
        redacted = redact_pii(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True
