"""
Rule-based fact extraction.

Regex and keyword rules for names, UK phone numbers, spoken emails,
natural dates and times, and the yes/no and booking signals the engine
reacts to. Day and clock phrases are resolved with dateparser. Tuned for speech-to-text output ("oh seven seven...",
"john dot smith at gmail dot com").
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import dateparser

from app.config import settings
from app.core.timefmt import format_spoken_datetime
from .normalize import NAME_STOPWORDS, normalize_uk_phone
from .types import ContactFacts, ExtractedFacts, TimeFacts

logger = logging.getLogger(__name__)


# ==================================
# Signals
# ==================================

BOOKING_INTENT_PATTERN = re.compile(
    r"\b(book|booking|schedule|set up|arrange|appointment|consultation|call|meeting|demo)\b"
)
EARLIEST_PATTERN = re.compile(
    r"earliest available|earliest|soonest|asap|as soon as possible|first available|next available"
)
AFFIRMATIVE_PATTERN = re.compile(
    r"\b(yes|yeah|yep|yup|sure|ok|okay|si|sí|sim|oui|perfect|great|sounds good|that works|go ahead)\b"
)
AFFIRMATIVE_SOUNDS = re.compile(r"^(mm+|mhm+|uh-?huh|uhu|ah['’]?a|uhhu)$")
NEGATIVE_PATTERN = re.compile(r"\b(no|nope|nah|não|nao)\b|pas maintenant")
NEGATIVE_SOUNDS = re.compile(r"^nn$")
NAME_OVERRIDE_PATTERN = re.compile(
    r"put it under|book it under|make it under|put the booking under|"
    r"put the appointment under|in the name of"
)
CORRECTION_PATTERN = re.compile(
    r"\b(not\s+(correct|right)|isn'?t\s+(correct|right)|wrong|incorrect|"
    r"doesn'?t\s+look\s+right|not\s+quite\s+right)\b"
)
MOVE_PATTERN = re.compile(r"\b(move|moving|cancel|change|reschedul\w*|swap|switch)\b")
KEEP_PATTERN = re.compile(r"\b(keep|leave it|leave that|stick with|stay with)\b")
EXTRA_PATTERN = re.compile(
    r"\b(another|extra|additional|second)\s+(one|booking|appointment|slot|session|consultation)\b|"
    r"\b(keep both|both of them|as well)\b"
)


def detects_booking_intent(text: str) -> bool:
    """True when the utterance contains scheduling language."""
    return bool(BOOKING_INTENT_PATTERN.search((text or "").lower()))


def detects_earliest_request(text: str) -> bool:
    """True when the caller asks for the soonest opening."""
    return bool(EARLIEST_PATTERN.search((text or "").lower()))


def is_affirmative(text: str) -> bool:
    t = (text or "").lower().strip()
    return bool(AFFIRMATIVE_PATTERN.search(t) or AFFIRMATIVE_SOUNDS.match(t))


def is_negative(text: str) -> bool:
    t = (text or "").lower().strip()
    return bool(NEGATIVE_PATTERN.search(t) or NEGATIVE_SOUNDS.match(t))


def detects_name_override(text: str) -> bool:
    return bool(NAME_OVERRIDE_PATTERN.search((text or "").lower()))


def detects_correction(text: str) -> bool:
    return bool(CORRECTION_PATTERN.search((text or "").lower()))


def detects_move_request(text: str) -> bool:
    return bool(MOVE_PATTERN.search((text or "").lower()))


def detects_keep_request(text: str) -> bool:
    return bool(KEEP_PATTERN.search((text or "").lower()))


def detects_extra_request(text: str) -> bool:
    return bool(EXTRA_PATTERN.search((text or "").lower()))


# ==================================
# Names
# ==================================

# Words after "I'm" / "this is" that describe a mood or situation, not a person
NON_NAMES = NAME_STOPWORDS | frozenset({
    "thankyou", "good", "morning", "afternoon", "evening", "excellent",
    "alright", "cool", "busy", "tired", "happy", "sad", "stressed",
    "relaxed", "great", "free", "available", "looking", "calling",
    "interested", "just", "not", "sorry", "here", "trying", "wondering",
    "ready", "keen", "afraid", "after", "back", "new", "well", "fine",
    "it", "me", "about", "going", "still", "really",
})

_NAME_PATTERNS = [
    # (pattern, max words)
    (re.compile(r"\bmy name is\s+([a-z][a-z\s]*)"), 2),
    (re.compile(r"\bthis is\s+([a-z][a-z\s]*)"), 2),
    (re.compile(r"\bi am\s+([a-z]+)\b"), 1),
    (re.compile(r"\bi'm\s+([a-z]+)\b"), 1),
]
_OVERRIDE_NAME_PATTERN = re.compile(
    r"(?:under|in the name of)\s+([a-z][a-z\s]*)"
)
_NAME_TERMINATORS = {"and", "please", "thanks", "for", "at", "on", "my", "i", "but", "from"}


def _looks_like_name(candidate: str) -> bool:
    t = candidate.strip()
    if len(t) < 2 or len(t) > 40:
        return False
    if t.lower() in NON_NAMES:
        return False
    parts = t.split()
    if len(parts) > 2:
        return False
    return all(part.isalpha() and part.lower() not in NON_NAMES for part in parts)


def _take_name_words(raw: str, max_words: int) -> str:
    words = []
    for word in raw.split():
        if word in _NAME_TERMINATORS or len(words) == max_words:
            break
        words.append(word)
    return " ".join(words)


def extract_name(text: str) -> Optional[str]:
    """
    Extract a caller name from explicit phrasing.

    Handles "my name is X", "this is X", "I'm X", "I am X" and the
    override phrases ("put it under X", "in the name of X").
    """
    if not text:
        return None
    lower = re.sub(r"\s+", " ", text.strip().lower())
    lower = re.sub(r"[^\w\s']", " ", lower)

    patterns = list(_NAME_PATTERNS)
    if detects_name_override(lower):
        patterns.insert(0, (_OVERRIDE_NAME_PATTERN, 2))

    for pattern, max_words in patterns:
        match = pattern.search(lower)
        if not match:
            continue
        candidate = _take_name_words(match.group(1), max_words)
        if _looks_like_name(candidate):
            return candidate.title()

    return None


# ==================================
# Phone
# ==================================

_FILLER_SOUNDS = re.compile(r"\b(uh|uhh|uhm|um|umm|erm)\b")
_PHONE_DIGIT_WORDS = {
    "oh": "0", "o": "0", "zero": "0", "naught": "0",
    "one": "1", "two": "2", "three": "3", "four": "4", "five": "5",
    "six": "6", "seven": "7", "eight": "8", "nine": "9",
}
_PHONE_CANDIDATE = re.compile(r"\+?\d[\d\s\-()]{8,}\d")


def parse_uk_phone(spoken: str) -> Optional[str]:
    """
    Parse a spoken or typed UK phone number to E.164.

    "oh seven seven double..." style digits, "plus four four" and
    "oh"/"o" as zero are understood.
    """
    if not spoken:
        return None

    s = f" {spoken.lower()} "
    s = _FILLER_SOUNDS.sub(" ", s)
    s = re.sub(r"\bplus\s*four\s*four\b", " +44 ", s)
    s = re.sub(r"\bplus\b", " +", s)
    s = re.sub(
        r"\b(double|triple)\s+(\d|oh|o|zero|one|two|three|four|five|six|seven|eight|nine)\b",
        lambda m: " ".join([m.group(2)] * (2 if m.group(1) == "double" else 3)),
        s,
    )
    s = re.sub(
        r"\b(" + "|".join(_PHONE_DIGIT_WORDS) + r")\b",
        lambda m: _PHONE_DIGIT_WORDS[m.group(1)],
        s,
    )

    for candidate in _PHONE_CANDIDATE.findall(s):
        # Leading digits may belong to something else ("at 3 07700...")
        groups = candidate.split()
        for i in range(len(groups)):
            phone = normalize_uk_phone(" ".join(groups[i:]))
            if phone:
                return phone
    return None


# ==================================
# Email
# ==================================

_EMAIL_DIGIT_WORDS = {
    "zero": "0", "oh": "0", "one": "1", "two": "2", "three": "3",
    "four": "4", "five": "5", "six": "6", "seven": "7", "eight": "8",
    "nine": "9",
}
_EMAIL_FILLERS = {
    "so", "ok", "okay", "um", "uh", "eh", "ah", "right", "like", "well",
    "yeah", "you", "know", "just", "please", "the", "address", "email",
    "account", "yes", "yep", "sure", "my", "mail", "is", "it's", "its",
}
_PROVIDER_DOMAINS = ("gmail", "hotmail", "outlook", "yahoo", "googlemail", "icloud")
_EMAIL_SHAPE = re.compile(r"[a-z0-9._%+_-]+@[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}")


def extract_email(raw: str) -> Optional[str]:
    """
    Extract an email address from typed or spoken text.

    Spoken forms are rebuilt: "john dot smith at gmail dot com" becomes
    "john.smith@gmail.com". Common provider mishearings are repaired.
    """
    if not raw:
        return None

    typed = _EMAIL_SHAPE.search(raw.lower())
    if typed:
        return _fix_domain(typed.group(0))

    text = raw.lower()
    # Spoken addresses always say "dot"
    if not re.search(r"\bdot\b", text):
        return None

    text = re.sub(r"[^\w\s@.'-]", " ", text).replace("_", " underscore ")
    text = re.sub(r"\bg\s+(mail|male)\b", "gmail", text)
    text = re.sub(r"\s+", " ", text).strip()

    tokens = [t for t in text.split(" ") if t not in _EMAIL_FILLERS]
    tokens = [_EMAIL_DIGIT_WORDS.get(t, t) for t in tokens]

    compact_tokens = []
    skip = False
    for i, word in enumerate(tokens):
        if skip:
            skip = False
            continue
        nxt = tokens[i + 1] if i + 1 < len(tokens) else None
        if word in _PROVIDER_DOMAINS and nxt == "mail":
            skip = True
        compact_tokens.append(word)
    text = " ".join(compact_tokens)

    text = re.sub(r"\bat (sign|symbol)\b", "@", text)
    text = re.sub(r"\b(at|arroba)\b", "@", text)
    text = re.sub(r"\bdot co dot uk\b", ".co.uk", text)
    text = re.sub(r"\bdot\b", ".", text)
    text = re.sub(r"\bunderscore\b", "_", text)
    text = re.sub(r"\b(dash|hyphen)\b", "-", text)

    # "j o h n" -> "john"
    previous = None
    while previous != text:
        previous = text
        text = re.sub(r"\b([a-z0-9])\s+([a-z0-9])\b", r"\1\2", text)

    text = re.sub(r"\s*([@._-])\s*", r"\1", text)

    match = _EMAIL_SHAPE.search(text)
    if not match:
        return None
    return _fix_domain(match.group(0))


_DOMAIN_FIXES = {
    "g.com": "gmail.com",
    "gmai.com": "gmail.com",
    "gmaill.com": "gmail.com",
    "hotmai.com": "hotmail.com",
    "hotmaill.com": "hotmail.com",
    "outllok.com": "outlook.com",
    "yahoomail.com": "yahoo.com",
}


def _fix_domain(email: str) -> str:
    local, _, domain = email.partition("@")
    domain = _DOMAIN_FIXES.get(domain, domain)
    for provider in _PROVIDER_DOMAINS:
        if domain.startswith(provider) and not domain.startswith(f"{provider}.co."):
            # gmailmail.com, gmail.con ...
            domain = f"{provider}.com"
            break
    return f"{local}@{domain}"


def extract_contact(text: str) -> ContactFacts:
    """Extract name, phone and email from one utterance."""
    return ContactFacts(
        name=extract_name(text),
        phone=parse_uk_phone(text),
        email=extract_email(text),
    )


# ==================================
# Dates and times
# ==================================

# Spotting which words are a day or a clock time is ours; resolving them
# against today is dateparser's.
DATEPARSER_SETTINGS = {
    "PREFER_DATES_FROM": "future",
    "DATE_ORDER": "DMY",
}

WEEKDAY_NAMES = {
    "monday": "monday", "tuesday": "tuesday", "tues": "tuesday",
    "wednesday": "wednesday", "weds": "wednesday", "thursday": "thursday",
    "thurs": "thursday", "friday": "friday", "saturday": "saturday", "sunday": "sunday",
}
HOUR_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
}
# Part of day -> hour the search should start from
PARTS_OF_DAY = {
    "morning": 9,
    "afternoon": 12,
    "evening": 17,
    "tonight": 17,
}
# Spoken day phrases dateparser does not know
DAY_REWRITES = {
    "day after tomorrow": "in 2 days",
    "tonight": "today",
}

_MONTH_RE = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|"
    r"aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
_ORDINAL = r"(?:st|nd|rd|th)?"
_RELATIVE_DAY = re.compile(r"\b(day after tomorrow|tomorrow|today|tonight)\b")
_DAY_MONTH = re.compile(rf"\b(\d{{1,2}}){_ORDINAL}(?:\s+of)?\s+{_MONTH_RE}\b")
_MONTH_DAY = re.compile(rf"\b{_MONTH_RE}\s+(?:the\s+)?(\d{{1,2}}){_ORDINAL}(?!\d|\s*(?:am|pm|:))\b")
_NUMERIC_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")
_WEEKDAY = re.compile(r"\b(next\s+|this\s+)?(" + "|".join(WEEKDAY_NAMES) + r")\b")

_HOUR_TOKEN = r"(\d{1,2}|" + "|".join(HOUR_WORDS) + r")"
_CLOCK = re.compile(r"\b(\d{1,2})[:.](\d{2})(?!\d)\s*(a\.?\s?m\.?|p\.?\s?m\.?)?")
_HOUR_MERIDIEM = re.compile(rf"\b{_HOUR_TOKEN}\s*(a\.?\s?m\b\.?|p\.?\s?m\b\.?)")
_HALF_QUARTER = re.compile(rf"\b(half|quarter)\s+(past|to)\s+{_HOUR_TOKEN}\b")
_OCLOCK = re.compile(rf"\b{_HOUR_TOKEN}\s*o'?\s?clock\b")
_AT_HOUR = re.compile(r"\bat\s+(\d{1,2})\b(?![:./\d])")
_GREETINGS = re.compile(r"\bgood\s+(morning|afternoon|evening)\b")
_NOON = re.compile(r"\b(noon|midday|12 noon)\b")


def _dateparse(phrase: str, relative_base: Optional[datetime] = None) -> Optional[datetime]:
    settings_ = dict(DATEPARSER_SETTINGS)
    if relative_base is not None:
        settings_["RELATIVE_BASE"] = relative_base
    return dateparser.parse(phrase, languages=["en"], settings=settings_)


def _hour_value(token: str) -> int:
    return HOUR_WORDS[token] if token in HOUR_WORDS else int(token)


def _meridiem(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    return "pm" if raw.replace(".", "").replace(" ", "").startswith("p") else "am"


def _default_hour(hour: int, text: str) -> int:
    """24-hour value for an hour said without am/pm."""
    if hour > 12:
        return hour
    if "morning" in text:
        return 0 if hour == 12 else hour
    if any(part in text for part in ("afternoon", "evening", "tonight")):
        return hour if hour == 12 else hour + 12
    # Bare "at 3" inside business hours means the afternoon
    if 1 <= hour <= 8:
        return hour + 12
    return hour


def _resolve_clock(hour: int, minute: int, meridiem: Optional[str], text: str) -> Optional[time]:
    if minute > 59 or hour > 23 or (meridiem and hour > 12):
        return None
    if meridiem:
        phrase = f"{hour}:{minute:02d} {meridiem}"
    else:
        phrase = f"{_default_hour(hour, text)}:{minute:02d}"
    parsed = _dateparse(phrase)
    if parsed is None:
        return None
    return parsed.time().replace(second=0, microsecond=0)


def parse_time_of_day(text: str) -> Optional[time]:
    """Parse a clock time ("3pm", "15:30", "half past two", "at 4")."""
    t = text.lower()

    match = _CLOCK.search(t)
    if match:
        return _resolve_clock(
            int(match.group(1)), int(match.group(2)), _meridiem(match.group(3)), t
        )

    match = _HOUR_MERIDIEM.search(t)
    if match:
        return _resolve_clock(_hour_value(match.group(1)), 0, _meridiem(match.group(2)), t)

    match = _HALF_QUARTER.search(t)
    if match:
        base = _hour_value(match.group(3))
        if match.group(2) == "past":
            minute = 30 if match.group(1) == "half" else 15
        else:
            base -= 1
            minute = 30 if match.group(1) == "half" else 45
        return _resolve_clock(base or 12, minute, None, t)

    if _NOON.search(t):
        return time(12, 0)

    for pattern in (_OCLOCK, _AT_HOUR):
        match = pattern.search(t)
        if match:
            return _resolve_clock(_hour_value(match.group(1)), 0, None, t)

    return None


def _resolve_day(phrase: str, today: date) -> Optional[date]:
    parsed = _dateparse(phrase, relative_base=datetime.combine(today, time(12, 0)))
    return parsed.date() if parsed else None


def _not_before(day: Optional[date], today: date) -> Optional[date]:
    """Roll a yearless day that has already gone to next year."""
    if day is None or day >= today:
        return day
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        return None


def _same_week(a: date, b: date) -> bool:
    return a - timedelta(days=a.weekday()) == b - timedelta(days=b.weekday())


def parse_date(text: str, today: date) -> Optional[date]:
    """Parse a calendar day relative to today. Dates never resolve to the past."""
    t = text.lower()

    match = _RELATIVE_DAY.search(t)
    if match:
        phrase = match.group(1)
        return _resolve_day(DAY_REWRITES.get(phrase, phrase), today)

    for pattern in (_DAY_MONTH, _MONTH_DAY):
        match = pattern.search(t)
        if match:
            phrase = match.group(0).replace(" the ", " ")
            return _not_before(_resolve_day(phrase, today), today)

    match = _NUMERIC_DATE.search(t)
    if match:
        day, month, year = match.group(1), match.group(2), match.group(3)
        if year:
            return _resolve_day(f"{day}/{month}/{year}", today)
        resolved = _resolve_day(f"{day}/{month}/{today.year}", today)
        return _not_before(resolved, today)

    match = _WEEKDAY.search(t)
    if match:
        resolved = _resolve_day(WEEKDAY_NAMES[match.group(2)], today)
        if resolved is None:
            return None
        # A bare weekday is never today
        if resolved <= today:
            resolved += timedelta(days=7 * ((today - resolved).days // 7 + 1))
        # "next Friday" on a Monday means Friday of next week
        if (match.group(1) or "").strip() == "next" and _same_week(resolved, today):
            resolved += timedelta(days=7)
        return resolved

    return None


def extract_time(
    text: str,
    tz: Optional[ZoneInfo] = None,
    now: Optional[datetime] = None,
) -> Optional[TimeFacts]:
    """
    Extract a start time from an utterance.

    A clock time without a day means the next occurrence of that time.
    A day without a clock time, or with only a part of the day
    ("tomorrow afternoon"), gives a partial time at the start of that
    window.

    Args:
        text: Utterance
        tz: Business timezone (default from settings)
        now: Reference time (default: current time)

    Returns:
        TimeFacts or None if no date or time was mentioned
    """
    if not text:
        return None

    tz = tz or settings.tz
    now = (now or datetime.now(tz)).astimezone(tz)
    lower = _GREETINGS.sub(" ", text.lower())

    day = parse_date(lower, now.date())
    clock = parse_time_of_day(lower)
    partial = False

    if clock is None:
        part_hour = next(
            (hour for part, hour in PARTS_OF_DAY.items() if part in lower), None
        )
        if day is None and part_hour is None:
            return None
        partial = True
        clock = time(part_hour if part_hour is not None else settings.business_open_hour, 0)
        if day is None:
            day = now.date()

    if day is None:
        day = now.date()
        if datetime.combine(day, clock, tzinfo=tz) <= now:
            day += timedelta(days=1)

    instant = datetime.combine(day, clock, tzinfo=tz)
    return TimeFacts(
        instant=instant,
        spoken=format_spoken_datetime(instant, tz),
        partial=partial,
    )


# ==================================
# Extractor
# ==================================

class RuleBasedExtractor:
    """Turns an utterance into ExtractedFacts using the rules above."""

    def __init__(self, tz: Optional[ZoneInfo] = None):
        self._tz = tz

    async def extract(
        self,
        utterance: str,
        now: Optional[datetime] = None,
    ) -> ExtractedFacts:
        return self.extract_sync(utterance, now)

    def extract_sync(
        self,
        utterance: str,
        now: Optional[datetime] = None,
    ) -> ExtractedFacts:
        text = (utterance or "").strip()
        if not text:
            return ExtractedFacts()

        contact = extract_contact(text)
        facts = ExtractedFacts(
            name=contact.name,
            phone=contact.phone,
            email=contact.email,
            time=extract_time(text, self._tz or settings.tz, now),
            booking_intent=detects_booking_intent(text),
            earliest_request=detects_earliest_request(text),
            affirmative=is_affirmative(text),
            negative=is_negative(text),
            name_override=detects_name_override(text),
            correction=detects_correction(text),
            move_request=detects_move_request(text),
            keep_request=detects_keep_request(text),
            extra_request=detects_extra_request(text),
            raw_text=text,
            source="rules",
        )

        logger.debug(
            f"Rules extracted: time={'yes' if facts.time else 'no'}, "
            f"intent={facts.booking_intent}, earliest={facts.earliest_request}, "
            f"yes={facts.affirmative}, no={facts.negative}"
        )
        return facts


# Singleton
_extractor: Optional[RuleBasedExtractor] = None


def get_rule_extractor() -> RuleBasedExtractor:
    """Get singleton RuleBasedExtractor."""
    global _extractor
    if _extractor is None:
        _extractor = RuleBasedExtractor()
    return _extractor
