"""
Availability scheduling.

Earliest-slot search and conflict checks against the calendar.

The search is a forward sweep over one up-front fetch of events:

1. Round the anchor up to the slot granularity.
2. Snap cursors outside business hours to the next opening.
3. Test [cursor, cursor + duration) against every event (half-open).
4. Free: that is the slot. Busy: jump to the latest end among the
   overlapping events, rounded up to the granularity, and repeat.
5. Give up once the cursor passes anchor + window.

All wall-clock reasoning happens in the business timezone; instants are
compared as absolute times so events in any offset are handled.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.timefmt import format_spoken_datetime
from .calendar_client import CalendarEvent, CalendarService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusinessHours:
    """Weekday opening window bookings must fit inside."""

    tz: ZoneInfo
    open_hour: int = 9
    close_hour: int = 17
    weekdays: frozenset = field(default_factory=lambda: frozenset(range(5)))
    granularity_minutes: int = 30

    @classmethod
    def from_settings(cls) -> "BusinessHours":
        return cls(
            tz=settings.tz,
            open_hour=settings.business_open_hour,
            close_hour=settings.business_close_hour,
            weekdays=frozenset(settings.business_weekdays),
            granularity_minutes=settings.slot_granularity_minutes,
        )

    def opening(self, day: date) -> datetime:
        return datetime.combine(day, time(self.open_hour), tzinfo=self.tz)

    def closing(self, day: date) -> datetime:
        return datetime.combine(day, time(self.close_hour), tzinfo=self.tz)

    def is_business_day(self, day: date) -> bool:
        return day.weekday() in self.weekdays

    def next_opening_after(self, day: date) -> datetime:
        """Opening time of the first business day after `day`."""
        day += timedelta(days=1)
        for _ in range(7):
            if self.is_business_day(day):
                return self.opening(day)
            day += timedelta(days=1)
        raise ValueError("No business weekdays configured")

    def round_up(self, instant: datetime) -> datetime:
        """Round up to the next granularity boundary in local wall time."""
        local = instant.astimezone(self.tz)
        minutes = local.hour * 60 + local.minute
        if local.second or local.microsecond:
            minutes += 1

        g = self.granularity_minutes
        rounded = -(-minutes // g) * g
        day = local.date()
        if rounded >= 24 * 60:
            day += timedelta(days=1)
            rounded = 0
        return datetime.combine(day, time(rounded // 60, rounded % 60), tzinfo=self.tz)

    def snap_to_open(self, instant: datetime) -> datetime:
        """Move a cursor outside business hours to the next opening time."""
        local = instant.astimezone(self.tz)
        day = local.date()

        if not self.is_business_day(day) or local >= self.closing(day):
            return self.next_opening_after(day)
        if local < self.opening(day):
            return self.opening(day)
        return local

    def contains(self, start: datetime, duration_minutes: int) -> bool:
        """True when [start, start + duration) lies inside one business day's hours."""
        local = start.astimezone(self.tz)
        end = _add_minutes(local, duration_minutes)
        day = local.date()
        return (
            self.is_business_day(day)
            and local >= self.opening(day)
            and end <= self.closing(day)
        )

    def clamp(self, start: datetime, duration_minutes: int) -> datetime:
        """
        Snap a start time into the same day's business hours.

        Before opening becomes the opening time; too late to finish by
        closing becomes the last start that does; anything in between is
        snapped to the nearest granularity boundary. The day is never
        changed.
        """
        local = start.astimezone(self.tz)
        g = self.granularity_minutes
        open_minutes = self.open_hour * 60
        last_start = ((self.close_hour * 60 - duration_minutes) // g) * g

        minutes = local.hour * 60 + local.minute
        if minutes < open_minutes:
            minutes = open_minutes
        else:
            minutes = min(((minutes + g // 2) // g) * g, last_start)

        return datetime.combine(
            local.date(), time(minutes // 60, minutes % 60), tzinfo=self.tz
        )


@dataclass
class Slot:
    """A bookable interval."""

    start: datetime
    end: datetime
    spoken: str


def _add_minutes(instant: datetime, minutes: int) -> datetime:
    """Absolute-time addition (safe across DST changes)."""
    tz = instant.tzinfo
    return (instant.astimezone(timezone.utc) + timedelta(minutes=minutes)).astimezone(tz)


def find_earliest_slot(
    events: Iterable[CalendarEvent],
    anchor: datetime,
    duration_minutes: int,
    window_days: int,
    hours: BusinessHours,
) -> Optional[datetime]:
    """
    Earliest free start at or after `anchor` within `window_days`.

    Pure function of its inputs; events may be in any order.

    Returns:
        Start instant in the business timezone, or None if nothing is free
    """
    events = list(events)
    window_end = _add_minutes(anchor, window_days * 24 * 60)
    cursor = hours.round_up(anchor)

    while True:
        cursor = hours.snap_to_open(cursor)
        if cursor > window_end:
            return None

        slot_end = _add_minutes(cursor, duration_minutes)
        if slot_end > hours.closing(cursor.date()):
            cursor = hours.next_opening_after(cursor.date())
            continue

        overlapping = [e for e in events if e.overlaps(cursor, slot_end)]
        if not overlapping:
            return cursor

        cursor = hours.round_up(max(e.end for e in overlapping))


class AvailabilityScheduler:
    """Earliest-slot search and conflict checks backed by a calendar."""

    def __init__(
        self,
        calendar: CalendarService,
        hours: Optional[BusinessHours] = None,
    ):
        """Initialize scheduler.

        Args:
            calendar: Calendar service to read events from
            hours: Business hours (defaults to settings)
        """
        self._calendar = calendar
        self.hours = hours or BusinessHours.from_settings()

    async def find_earliest_slot(
        self,
        anchor: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Slot]:
        """
        Find the earliest free slot.

        Args:
            anchor: Search start; anything earlier than now is moved to now
            duration_minutes: Slot length (default: booking duration)
            window_days: Search window (default: settings)
            now: Current time (for testing)

        Returns:
            Slot or None when nothing is free inside the window

        Raises:
            CalendarServiceError: If the calendar cannot be read
        """
        duration = duration_minutes or settings.booking_duration_minutes
        window = window_days or settings.search_window_days
        now = now or datetime.now(self.hours.tz)

        anchor = max(anchor or now, now)
        window_end = _add_minutes(anchor, window * 24 * 60)

        events = await self._calendar.list_events(
            anchor, _add_minutes(window_end, duration)
        )
        start = find_earliest_slot(events, anchor, duration, window, self.hours)

        if start is None:
            logger.info(f"No free slot within {window} days of {anchor.isoformat()}")
            return None

        logger.debug(f"Earliest slot from {anchor.isoformat()}: {start.isoformat()}")
        return Slot(
            start=start,
            end=_add_minutes(start, duration),
            spoken=format_spoken_datetime(start, self.hours.tz),
        )

    async def has_conflict(
        self,
        start: datetime,
        duration_minutes: Optional[int] = None,
    ) -> bool:
        """
        True when any event overlaps [start, start + duration).

        Raises:
            CalendarServiceError: If the calendar cannot be read
        """
        duration = duration_minutes or settings.booking_duration_minutes
        end = _add_minutes(start, duration)
        events = await self._calendar.list_events(start, end)
        return any(e.overlaps(start, end) for e in events)
