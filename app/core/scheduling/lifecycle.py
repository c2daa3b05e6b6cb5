"""
Booking event lifecycle.

The calendar is the booking database. An event belongs to this system
when its description carries the system tag, and to a caller when the
description carries their phone digits or email. The description layout
is:

    [notes]
    Booked by <system>
    Caller name: <name>
    Caller phone: <phone or n/a>
    Caller email: <email or n/a>
    [Meeting link: <url>]

    tag: <system tag>

ExistingBookingLocator reads that convention and EventLifecycleManager
writes it. Nothing else in the codebase parses descriptions apart from
the reminder sweep, which reuses PHONE_LINE_RE.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.config import settings
from app.core.intelligence.extraction.normalize import (
    is_usable_name,
    safe_caller_name,
)
from app.core.intelligence.session.models import Contact, ExistingBooking
from app.infra.notifications import mask_phone
from .availability import BusinessHours
from .calendar_client import CalendarService, CalendarServiceError

logger = logging.getLogger(__name__)

PHONE_LINE_RE = re.compile(r"Phone:\s*([+\d][\d\s\-()]+)", re.IGNORECASE)


class OutsideBusinessHoursError(CalendarServiceError):
    """Raised under the reject policy when a start time is out of hours."""

    def __init__(self, start: datetime):
        self.start = start
        super().__init__(f"Start {start.isoformat()} is outside business hours")


@dataclass
class BookingRequest:
    """Everything needed to write one booking to the calendar."""

    start: datetime
    contact: Contact
    duration_minutes: int = 30
    notes: str = ""


@dataclass
class ConfirmedEvent:
    """A created booking. `adjusted` is set when the start was clamped."""

    event_id: str
    start: datetime
    end: datetime
    adjusted: bool = False


def build_description(contact: Contact, notes: str = "") -> str:
    """Render the description lines that identify a booking's owner."""
    lines = []
    if notes:
        lines.append(notes)
    lines.append(f"Booked by {settings.app_name}")
    lines.append(f"Caller name: {safe_caller_name(contact.name)}")
    lines.append(f"Caller phone: {contact.phone or 'n/a'}")
    lines.append(f"Caller email: {contact.email or 'n/a'}")
    if settings.meeting_link:
        lines.append(f"Meeting link: {settings.meeting_link}")
    lines.append("")
    lines.append(f"tag: {settings.system_tag}")
    return "\n".join(lines)


def build_summary(contact: Contact) -> str:
    """Event title, prefixed with the caller's name when we have a real one."""
    if is_usable_name(contact.name):
        return f"({contact.name}) {settings.event_title}"
    return settings.event_title


def phone_from_description(description: str) -> Optional[str]:
    """Recover the caller's phone from a booking description."""
    match = PHONE_LINE_RE.search(description or "")
    if not match:
        return None
    phone = re.sub(r"[^\d+]", "", match.group(1))
    return phone or None


class ExistingBookingLocator:
    """Finds a caller's upcoming booking by scanning event descriptions."""

    def __init__(self, calendar: CalendarService, lookahead_days: Optional[int] = None):
        self._calendar = calendar
        self.lookahead_days = lookahead_days or settings.existing_booking_lookahead_days

    @staticmethod
    def _matches(description: str, contact: Contact) -> bool:
        if settings.system_tag not in description:
            return False
        if contact.phone and contact.phone.lstrip("+") in description:
            return True
        if contact.email and contact.email.lower() in description.lower():
            return True
        return False

    async def find(
        self,
        contact: Contact,
        now: Optional[datetime] = None,
    ) -> Optional[ExistingBooking]:
        """
        Earliest upcoming booking carrying the system tag and this contact.

        Returns None when the contact has no phone or email.

        Raises:
            CalendarServiceError: If the calendar cannot be read
        """
        if not contact.has_contact_method:
            return None

        now = now or datetime.now(settings.tz)
        events = await self._calendar.list_events(
            now, now + timedelta(days=self.lookahead_days)
        )

        for event in events:
            if self._matches(event.description, contact):
                logger.info(
                    f"Existing booking {event.id} found for {mask_phone(contact.phone)}"
                )
                return ExistingBooking(event_id=event.id, start=event.start)
        return None


class EventLifecycleManager:
    """Creates and cancels booking events."""

    def __init__(
        self,
        calendar: CalendarService,
        hours: Optional[BusinessHours] = None,
        policy: Optional[str] = None,
    ):
        """Initialize lifecycle manager.

        Args:
            calendar: Calendar service to write to
            hours: Business hours (defaults to settings)
            policy: "clamp" or "reject" for out-of-hours starts
        """
        self._calendar = calendar
        self.hours = hours or BusinessHours.from_settings()
        self.policy = policy or settings.out_of_hours_policy

    def resolve_start(self, start: datetime, duration_minutes: int) -> datetime:
        """Apply the out-of-hours policy to a requested start.

        Raises:
            OutsideBusinessHoursError: Under the reject policy
        """
        if self.hours.contains(start, duration_minutes):
            return start.astimezone(self.hours.tz)
        if self.policy == "reject":
            raise OutsideBusinessHoursError(start)
        return self.hours.clamp(start, duration_minutes)

    async def create(self, request: BookingRequest) -> ConfirmedEvent:
        """
        Create the calendar event for a booking.

        Raises:
            OutsideBusinessHoursError: Start is out of hours under the reject policy
            CalendarServiceError: If the event could not be created
        """
        start = self.resolve_start(request.start, request.duration_minutes)
        adjusted = start != request.start
        if adjusted:
            logger.info(
                f"Start {request.start.isoformat()} clamped to {start.isoformat()}"
            )

        end = start + timedelta(minutes=request.duration_minutes)
        event = await self._calendar.insert_event(
            start=start,
            end=end,
            timezone=self.hours.tz.key,
            title=build_summary(request.contact),
            description=build_description(request.contact, request.notes),
        )

        return ConfirmedEvent(
            event_id=event.id,
            start=event.start,
            end=event.end,
            adjusted=adjusted,
        )

    async def cancel(self, event_id: str) -> None:
        """
        Delete a booking event.

        Raises:
            CalendarServiceError: If the event could not be deleted
        """
        await self._calendar.delete_event(event_id)
