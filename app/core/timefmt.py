"""Date and time rendering for speech and text messages."""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.config import settings


def _local(instant: datetime, tz: Optional[ZoneInfo]) -> datetime:
    tz = tz or settings.tz
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(tz)


def format_spoken_datetime(instant: datetime, tz: Optional[ZoneInfo] = None) -> str:
    """
    Render a start time the way it should be read aloud.

    Examples:
        "Tuesday 20 October at 3 o'clock P M"
        "Monday 2 November at 9:30 A M"

    Meridiem letters are spaced so speech engines spell them out.
    """
    local = _local(instant, tz)
    hour = local.hour % 12 or 12
    meridiem = "A M" if local.hour < 12 else "P M"

    if local.minute == 0:
        clock = f"{hour} o'clock {meridiem}"
    else:
        clock = f"{hour}:{local.minute:02d} {meridiem}"

    return f"{local.strftime('%A')} {local.day} {local.strftime('%B')} at {clock}"


def format_sms_datetime(instant: datetime, tz: Optional[ZoneInfo] = None) -> str:
    """Render a start time for text messages: "Tue 20 Oct 2026, 3:00pm (Europe/London)"."""
    tz = tz or settings.tz
    local = _local(instant, tz)
    hour = local.hour % 12 or 12
    meridiem = "am" if local.hour < 12 else "pm"
    return (
        f"{local.strftime('%a %d %b %Y')}, {hour}:{local.minute:02d}{meridiem} "
        f"({tz.key})"
    )


def to_rfc3339(instant: datetime) -> str:
    """UTC RFC3339 timestamp for calendar API query parameters."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
