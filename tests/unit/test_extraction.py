"""Tests for rule-based and Claude fact extraction."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from app.core.intelligence.extraction.llm import ClaudeFactExtractor
from app.core.intelligence.extraction.normalize import (
    is_usable_name,
    looks_like_phone,
    normalize_phone_key,
    normalize_uk_phone,
    safe_caller_name,
)
from app.core.intelligence.extraction.rules import (
    RuleBasedExtractor,
    detects_booking_intent,
    detects_earliest_request,
    detects_extra_request,
    detects_keep_request,
    detects_move_request,
    extract_email,
    extract_name,
    extract_time,
    is_affirmative,
    is_negative,
    parse_date,
    parse_time_of_day,
    parse_uk_phone,
)
from app.infra.claude import ClaudeClientError

TZ = ZoneInfo("Europe/London")
FRIDAY_10AM = datetime(2026, 10, 16, 10, 0, tzinfo=TZ)


class TestNormalize:
    """Test contact normalisation."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("07700 900123", "+447700900123"),
            ("+44 7700 900123", "+447700900123"),
            ("447700900123", "+447700900123"),
            ("0044 7700 900123", "+447700900123"),
            ("7700900123", "+447700900123"),
            ("12345", None),
            ("", None),
        ],
    )
    def test_normalize_uk_phone(self, raw, expected):
        """Test UK numbers become E.164."""
        assert normalize_uk_phone(raw) == expected

    def test_phone_key(self):
        assert normalize_phone_key("whatsapp:+447700900123") == "+447700900123"
        assert normalize_phone_key(None) == ""

    def test_looks_like_phone(self):
        assert looks_like_phone("+447700900123")
        assert not looks_like_phone("session-42")

    def test_caller_name_safety(self):
        """Test filler words and fragments are not names."""
        assert safe_caller_name("Sarah") == "Sarah"
        assert safe_caller_name("yes") == "New caller"
        assert safe_caller_name("Al") == "New caller"
        assert safe_caller_name(None) == "New caller"
        assert is_usable_name("Thomas")
        assert not is_usable_name("okay")


class TestSignals:
    """Test keyword signals."""

    def test_booking_intent(self):
        assert detects_booking_intent("Can I book a consultation?")
        assert detects_booking_intent("I'd like to schedule something")
        assert not detects_booking_intent("What are your prices?")

    def test_earliest(self):
        assert detects_earliest_request("What's the earliest you have?")
        assert detects_earliest_request("as soon as possible please")
        assert not detects_earliest_request("Tuesday at 3")

    def test_affirmative(self):
        assert is_affirmative("Yeah that works")
        assert is_affirmative("mhm")
        assert not is_affirmative("Tuesday please")

    def test_negative(self):
        assert is_negative("No, sorry")
        assert is_negative("nope")
        assert not is_negative("my number is 07700 900123")

    def test_resolution_signals(self):
        """Test move / keep / extra phrasing."""
        assert detects_move_request("Can we move it?")
        assert detects_move_request("please reschedule")
        assert detects_keep_request("Just keep it")
        assert detects_extra_request("Add another one")
        assert detects_extra_request("keep both please")
        assert not detects_extra_request("Just keep it")


class TestNames:
    """Test name extraction."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("My name is Sarah Jones", "Sarah Jones"),
            ("Hi, I'm Sarah", "Sarah"),
            ("this is sarah and I'd like to book", "Sarah"),
            ("Put it under Thomas please", "Thomas"),
            ("I'm looking for a booking", None),
            ("I'm just wondering", None),
            ("yes", None),
        ],
    )
    def test_extract_name(self, text, expected):
        assert extract_name(text) == expected


class TestPhone:
    """Test spoken and typed phone numbers."""

    @pytest.mark.parametrize(
        "text",
        [
            "my number is 07700 900123",
            "+44 7700 900123",
            "oh seven seven oh oh nine oh oh one two three",
            "oh seven seven double oh nine double oh one two three",
            "plus four four seven seven oh oh nine oh oh one two three",
            "at 3 07700 900123",
        ],
    )
    def test_parse_uk_phone(self, text):
        assert parse_uk_phone(text) == "+447700900123"

    def test_not_a_phone(self):
        assert parse_uk_phone("room 123") is None
        assert parse_uk_phone("") is None


class TestEmail:
    """Test typed and spoken emails."""

    def test_typed(self):
        assert extract_email("it's Sarah@Example.com thanks") == "sarah@example.com"

    def test_spoken(self):
        assert extract_email("john dot smith at gmail dot com") == "john.smith@gmail.com"

    def test_spoken_with_underscore_and_uk_domain(self):
        assert (
            extract_email("sarah underscore jones at hotmail dot co dot uk")
            == "sarah_jones@hotmail.co.uk"
        )

    def test_provider_typos_fixed(self):
        assert extract_email("sarah@gmail.con") == "sarah@gmail.com"
        assert extract_email("sarah@gmai.com") == "sarah@gmail.com"

    def test_no_email(self):
        assert extract_email("my email is sarah at example") is None
        assert extract_email("") is None


class TestDatesAndTimes:
    """Test natural date and time parsing (today is Friday 16 October 2026)."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("tomorrow", date(2026, 10, 17)),
            ("day after tomorrow", date(2026, 10, 18)),
            ("tuesday", date(2026, 10, 20)),
            ("next tuesday", date(2026, 10, 20)),
            ("25th of december", date(2026, 12, 25)),
            ("3rd march", date(2027, 3, 3)),
            ("20/10", date(2026, 10, 20)),
            ("nothing here", None),
        ],
    )
    def test_parse_date(self, text, expected):
        assert parse_date(text, date(2026, 10, 16)) == expected

    def test_next_weekday_from_monday(self):
        """Test 'next Friday' said on a Monday means the following week."""
        assert parse_date("next friday", date(2026, 10, 19)) == date(2026, 10, 30)

    def test_same_weekday_means_next_week(self):
        """Test 'Tuesday' said on a Tuesday is a week away."""
        assert parse_date("tuesday", date(2026, 10, 20)) == date(2026, 10, 27)

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("october the 20th", date(2026, 10, 20)),
            ("tonight", date(2026, 10, 16)),
            ("thurs", date(2026, 10, 22)),
            ("1/3", date(2027, 3, 1)),
        ],
    )
    def test_more_day_phrases(self, text, expected):
        assert parse_date(text, date(2026, 10, 16)) == expected

    def test_invalid_clock_rejected(self):
        assert parse_time_of_day("25:00") is None

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("3pm", time(15, 0)),
            ("15:30", time(15, 30)),
            ("half past two", time(14, 30)),
            ("quarter to ten", time(9, 45)),
            ("at 4", time(16, 0)),
            ("ten o'clock in the morning", time(10, 0)),
            ("11am", time(11, 0)),
            ("noon", time(12, 0)),
            ("sometime", None),
        ],
    )
    def test_parse_time_of_day(self, text, expected):
        assert parse_time_of_day(text) == expected

    def test_full_time(self):
        """Test day plus clock time is a full time."""
        facts = extract_time("3pm Tuesday", TZ, FRIDAY_10AM)

        assert facts.instant == datetime(2026, 10, 20, 15, 0, tzinfo=TZ)
        assert facts.partial is False
        assert facts.spoken == "Tuesday 20 October at 3 o'clock P M"

    def test_day_only_is_partial(self):
        """Test a day alone anchors at opening time."""
        facts = extract_time("Wednesday", TZ, FRIDAY_10AM)

        assert facts.partial is True
        assert facts.instant == datetime(2026, 10, 21, 9, 0, tzinfo=TZ)

    def test_part_of_day_is_partial(self):
        facts = extract_time("tomorrow afternoon", TZ, FRIDAY_10AM)

        assert facts.partial is True
        assert facts.instant == datetime(2026, 10, 17, 12, 0, tzinfo=TZ)

    def test_clock_only_means_next_occurrence(self):
        """Test a bare time rolls to tomorrow once it has passed today."""
        assert extract_time("3pm", TZ, FRIDAY_10AM).instant == datetime(
            2026, 10, 16, 15, 0, tzinfo=TZ
        )
        late = datetime(2026, 10, 16, 16, 0, tzinfo=TZ)
        assert extract_time("3pm", TZ, late).instant == datetime(
            2026, 10, 17, 15, 0, tzinfo=TZ
        )

    def test_greetings_are_not_times(self):
        assert extract_time("Good morning!", TZ, FRIDAY_10AM) is None
        assert extract_time("hello there", TZ, FRIDAY_10AM) is None


class TestRuleBasedExtractor:
    """Test the combined extractor."""

    @pytest.mark.asyncio
    async def test_full_utterance(self):
        """Test name, phone, time and intent from one sentence."""
        extractor = RuleBasedExtractor(tz=TZ)

        facts = await extractor.extract(
            "Hi, I'm Sarah, can I book in for 3pm Tuesday? My number is 07700 900123",
            now=FRIDAY_10AM,
        )

        assert facts.name == "Sarah"
        assert facts.phone == "+447700900123"
        assert facts.email is None
        assert facts.booking_intent is True
        assert facts.time.instant == datetime(2026, 10, 20, 15, 0, tzinfo=TZ)
        assert facts.source == "rules"

    @pytest.mark.asyncio
    async def test_empty(self):
        facts = await RuleBasedExtractor(tz=TZ).extract("   ")
        assert facts.raw_text == ""
        assert facts.time is None


class TestClaudeFactExtractor:
    """Test the Claude-backed extractor."""

    @pytest.fixture
    def claude(self):
        client = MagicMock()
        client.generate_json = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_merges_claude_answer(self, claude):
        """Test Claude's fields are merged over the rules."""
        claude.generate_json.return_value = {
            "name": "Sarah",
            "phone": None,
            "email": "Sarah@Example.com",
            "date": "2026-10-20",
            "time": "15:00",
            "booking_intent": True,
            "affirmative": False,
        }
        extractor = ClaudeFactExtractor(claude_client=claude, tz=TZ)

        facts = await extractor.extract("uh, sarah here, tuesday at three", now=FRIDAY_10AM)

        assert facts.source == "claude"
        assert facts.name == "Sarah"
        assert facts.email == "sarah@example.com"
        assert facts.booking_intent is True
        assert facts.time.instant == datetime(2026, 10, 20, 15, 0, tzinfo=TZ)
        assert facts.time.partial is False

    @pytest.mark.asyncio
    async def test_date_without_time_is_partial(self, claude):
        claude.generate_json.return_value = {"date": "2026-10-21", "time": None}
        extractor = ClaudeFactExtractor(claude_client=claude, tz=TZ)

        facts = await extractor.extract("sometime wednesday", now=FRIDAY_10AM)

        assert facts.time.partial is True
        assert facts.time.instant == datetime(2026, 10, 21, 9, 0, tzinfo=TZ)

    @pytest.mark.asyncio
    async def test_invalid_values_dropped(self, claude):
        """Test junk names and dates from the model are ignored."""
        claude.generate_json.return_value = {"name": "yes", "date": "next week"}
        extractor = ClaudeFactExtractor(claude_client=claude, tz=TZ)

        facts = await extractor.extract("yes", now=FRIDAY_10AM)

        assert facts.name is None
        assert facts.time is None
        assert facts.affirmative is True

    @pytest.mark.asyncio
    async def test_falls_back_to_rules(self, claude):
        """Test Claude failures fall back to the rules."""
        claude.generate_json.side_effect = ClaudeClientError("overloaded")
        extractor = ClaudeFactExtractor(claude_client=claude, tz=TZ)

        facts = await extractor.extract("book me in for 3pm Tuesday", now=FRIDAY_10AM)

        assert facts.source == "rules"
        assert facts.booking_intent is True
        assert facts.time.instant == datetime(2026, 10, 20, 15, 0, tzinfo=TZ)
