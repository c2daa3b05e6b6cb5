"""
LLM-based fact extraction using Claude.

Runs the rule-based extractor first, then asks Claude for the same facts
and merges Claude's answer over the rules. When Claude is unavailable the
rule-based facts are returned unchanged.
"""

import logging
import time as time_module
from datetime import date, datetime, time
from typing import Any, Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.timefmt import format_spoken_datetime
from app.infra.claude import ClaudeClient, ClaudeClientError, get_claude_client
from .normalize import is_usable_name, normalize_uk_phone
from .rules import RuleBasedExtractor, get_rule_extractor
from .types import ExtractedFacts, TimeFacts

logger = logging.getLogger(__name__)


EXTRACTION_PROMPT = """Extract booking facts from this caller utterance.

Today is {today} ({weekday}), current time {now} in {timezone}.

## What to Extract

- name: Caller's own name if they state it (null otherwise)
- phone: Phone number if spoken, digits only with country code if given
- email: Email address if spoken (rebuild "john dot smith at gmail dot com")
- date: Day mentioned (YYYY-MM-DD), resolved relative to today, never in the past
- time: Clock time mentioned (HH:MM, 24-hour)
- booking_intent: true if they want to book/schedule/arrange a call or meeting
- earliest_request: true if they ask for the earliest/soonest/next available time
- affirmative: true if the utterance says yes/agrees
- negative: true if the utterance says no/declines
- move_request: true if they want to move/change/cancel an existing booking
- keep_request: true if they want to keep their existing booking as it is
- extra_request: true if they want an additional booking alongside the existing one
- name_override: true if they ask to put the booking under a different name
- correction: true if they say something previously captured is wrong

## Utterance

"{utterance}"

## Response

Respond with ONLY valid JSON (use null or false for anything not mentioned):
{{
    "name": "<name or null>",
    "phone": "<phone or null>",
    "email": "<email or null>",
    "date": "<YYYY-MM-DD or null>",
    "time": "<HH:MM or null>",
    "booking_intent": <true/false>,
    "earliest_request": <true/false>,
    "affirmative": <true/false>,
    "negative": <true/false>,
    "move_request": <true/false>,
    "keep_request": <true/false>,
    "extra_request": <true/false>,
    "name_override": <true/false>,
    "correction": <true/false>
}}"""


class ClaudeFactExtractor:
    """Claude-backed fact extraction with rule-based fallback."""

    def __init__(
        self,
        claude_client: Optional[ClaudeClient] = None,
        rules: Optional[RuleBasedExtractor] = None,
        tz: Optional[ZoneInfo] = None,
    ):
        """Initialize extractor.

        Args:
            claude_client: Optional Claude client (for testing)
            rules: Rule-based extractor used as the base layer
            tz: Business timezone
        """
        self._client = claude_client
        self._rules = rules or get_rule_extractor()
        self._tz = tz

    async def _get_client(self) -> ClaudeClient:
        """Get or create Claude client."""
        if self._client is None:
            self._client = await get_claude_client()
        return self._client

    async def extract(
        self,
        utterance: str,
        now: Optional[datetime] = None,
    ) -> ExtractedFacts:
        """
        Extract facts from a caller utterance.

        Args:
            utterance: Caller's words
            now: Reference time for relative dates

        Returns:
            ExtractedFacts (rules merged with Claude's answer when available)
        """
        tz = self._tz or settings.tz
        now = (now or datetime.now(tz)).astimezone(tz)
        base = await self._rules.extract(utterance, now)

        if not base.raw_text:
            return base

        start_time = time_module.time()
        try:
            client = await self._get_client()
            data = await client.generate_json(
                prompt=EXTRACTION_PROMPT.format(
                    today=now.date().isoformat(),
                    weekday=now.strftime("%A"),
                    now=now.strftime("%H:%M"),
                    timezone=tz.key,
                    utterance=base.raw_text,
                ),
                max_tokens=300,
            )
        except (ClaudeClientError, ValueError) as e:
            logger.warning(f"Claude extraction unavailable, using rules only: {e}")
            return base

        llm_facts = self._parse(data, tz, base.raw_text)
        logger.debug(
            f"Claude extraction took {(time_module.time() - start_time) * 1000:.0f}ms"
        )
        return base.merge(llm_facts)

    def _parse(self, data: dict[str, Any], tz: ZoneInfo, raw_text: str) -> ExtractedFacts:
        """Convert Claude's JSON into ExtractedFacts, dropping invalid values."""
        name = data.get("name")
        email = data.get("email")

        return ExtractedFacts(
            name=name if isinstance(name, str) and is_usable_name(name) else None,
            phone=normalize_uk_phone(data.get("phone")),
            email=email.lower() if isinstance(email, str) and "@" in email else None,
            time=self._parse_time(data.get("date"), data.get("time"), tz),
            booking_intent=data.get("booking_intent") is True,
            earliest_request=data.get("earliest_request") is True,
            affirmative=data.get("affirmative") is True,
            negative=data.get("negative") is True,
            move_request=data.get("move_request") is True,
            keep_request=data.get("keep_request") is True,
            extra_request=data.get("extra_request") is True,
            name_override=data.get("name_override") is True,
            correction=data.get("correction") is True,
            raw_text=raw_text,
            source="claude",
        )

    def _parse_time(
        self,
        raw_date: Optional[str],
        raw_time: Optional[str],
        tz: ZoneInfo,
    ) -> Optional[TimeFacts]:
        if not raw_date:
            return None

        try:
            day = date.fromisoformat(raw_date)
        except (TypeError, ValueError):
            logger.warning(f"Invalid date format: {raw_date}")
            return None

        clock = None
        if raw_time:
            try:
                clock = time.fromisoformat(raw_time)
            except (TypeError, ValueError):
                logger.warning(f"Invalid time format: {raw_time}")

        partial = clock is None
        instant = datetime.combine(
            day, clock or time(settings.business_open_hour, 0), tzinfo=tz
        )
        return TimeFacts(
            instant=instant,
            spoken=format_spoken_datetime(instant, tz),
            partial=partial,
        )
