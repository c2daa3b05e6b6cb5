"""
Fact extraction.

Turns a caller utterance into ExtractedFacts for the booking engine.
The backend is chosen by settings.extraction_backend: "rules" (default)
or "claude" (Claude with the rules as fallback).
"""

from typing import Optional

from app.config import settings
from .types import ContactFacts, ExtractedFacts, FactExtractor, TimeFacts
from .rules import (
    RuleBasedExtractor,
    detects_booking_intent,
    detects_earliest_request,
    detects_extra_request,
    detects_keep_request,
    detects_move_request,
    detects_name_override,
    extract_contact,
    extract_email,
    extract_name,
    extract_time,
    get_rule_extractor,
    is_affirmative,
    is_negative,
    parse_uk_phone,
)

_extractor: Optional[FactExtractor] = None


def get_fact_extractor() -> FactExtractor:
    """Get the configured extractor singleton."""
    global _extractor
    if _extractor is None:
        if settings.extraction_backend == "claude":
            from .llm import ClaudeFactExtractor

            _extractor = ClaudeFactExtractor()
        else:
            _extractor = get_rule_extractor()
    return _extractor


__all__ = [
    "ContactFacts",
    "ExtractedFacts",
    "FactExtractor",
    "TimeFacts",
    "RuleBasedExtractor",
    "get_rule_extractor",
    "get_fact_extractor",
    "extract_contact",
    "extract_email",
    "extract_name",
    "extract_time",
    "parse_uk_phone",
    "detects_booking_intent",
    "detects_earliest_request",
    "detects_extra_request",
    "detects_keep_request",
    "detects_move_request",
    "detects_name_override",
    "is_affirmative",
    "is_negative",
]
