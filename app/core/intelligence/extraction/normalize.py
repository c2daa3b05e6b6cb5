"""Contact normalisation helpers shared by extraction, storage and the calendar."""

import re
from typing import Optional

# Never written as a caller name
NAME_STOPWORDS = frozenset({
    "hi", "hello", "hey", "thanks", "thank you", "thank",
    "booking", "book", "yes", "yeah", "yep", "ok", "okay",
    "sure", "fine", "perfect", "please", "would", "email", "mail",
})

UNKNOWN_CALLER_NAME = "New caller"

_WHATSAPP_PREFIX = re.compile(r"^whatsapp:", re.IGNORECASE)
_NON_PHONE_CHARS = re.compile(r"[^\d+]")


def normalize_phone_key(phone: Optional[str]) -> str:
    """
    Collapse the forms one number arrives in to a single storage key.

    "+447700900123", "whatsapp:+447700900123" and " +44 7700 900 123 "
    all map to "+447700900123". Returns "" for empty input.
    """
    if not phone:
        return ""
    value = _WHATSAPP_PREFIX.sub("", str(phone).strip())
    return _NON_PHONE_CHARS.sub("", value)


def normalize_uk_phone(raw: Optional[str]) -> Optional[str]:
    """
    Normalise a UK number to E.164.

    Accepts 07..., 447..., +447... and 0044... forms, and ten digits with
    the leading zero dropped. Returns None when the digits cannot be a UK
    number.
    """
    if not raw:
        return None
    digits = re.sub(r"\D", "", raw)

    if digits.startswith("0044"):
        digits = digits[2:]
    if digits.startswith("44") and len(digits) == 12 and digits[2] != "0":
        return f"+{digits}"
    if digits.startswith("0") and len(digits) == 11 and digits[1] != "0":
        return f"+44{digits[1:]}"
    if len(digits) == 10 and digits[0] != "0":
        return f"+44{digits}"
    return None


def looks_like_phone(value: Optional[str]) -> bool:
    """True when a caller id is a phone number rather than an opaque id."""
    key = normalize_phone_key(value)
    return len(key.lstrip("+")) >= 7 and key.lstrip("+").isdigit()


def safe_caller_name(raw_name: Optional[str]) -> str:
    """Return a name fit for the calendar, or "New caller" for junk."""
    raw = (raw_name or "").strip()
    if not raw:
        return UNKNOWN_CALLER_NAME

    lower = raw.lower()
    if lower in NAME_STOPWORDS or len(lower) <= 2:
        return UNKNOWN_CALLER_NAME

    return raw


def is_usable_name(raw_name: Optional[str]) -> bool:
    return safe_caller_name(raw_name) != UNKNOWN_CALLER_NAME
