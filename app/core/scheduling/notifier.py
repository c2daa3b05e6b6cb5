"""
Booking notifications.

Message bodies for confirmations, reminders, cancellations and
reschedules, plus in-process reminder timers. Delivery failures are
logged and reported as False; they never undo a booking.

Reminder timers live only as long as the process. The reminder sweep
(reminders.py) covers restarts by re-deriving due reminders from the
calendar.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from app.config import settings
from app.core.intelligence.extraction.normalize import is_usable_name
from app.core.timefmt import format_sms_datetime
from app.infra.notifications import (
    NotificationError,
    NotificationService,
    get_notification_service,
    mask_phone,
)

logger = logging.getLogger(__name__)

# Timers further out than this are left to the reminder sweep
MAX_REMINDER_DELAY = timedelta(days=7)


def _link_lines() -> list[str]:
    if settings.meeting_link:
        return [f"Meeting link: {settings.meeting_link}"]
    return []


def build_confirmation_message(start: datetime, name: Optional[str] = None) -> str:
    who = f"({name}) " if is_usable_name(name) else ""
    lines = [
        f"✅ {who}{settings.event_title}",
        f"Date: {format_sms_datetime(start)}",
        *_link_lines(),
        "Reply CHANGE to reschedule.",
    ]
    return "\n".join(lines)


def build_reminder_message(start: datetime) -> str:
    lines = [
        f"⏰ Reminder: your {settings.event_title}",
        f"Starts: {format_sms_datetime(start)}",
        *_link_lines(),
    ]
    return "\n".join(lines)


def build_cancellation_message(start: datetime) -> str:
    lines = [
        f"❌ Your {settings.event_title} on {format_sms_datetime(start)} has been cancelled.",
        "Call or reply BOOK to choose a new time.",
    ]
    return "\n".join(lines)


def build_reschedule_message(
    old_start: datetime,
    new_start: datetime,
    name: Optional[str] = None,
) -> str:
    who = f"({name}) " if is_usable_name(name) else ""
    lines = [
        f"🔁 {who}{settings.event_title} has been moved",
        f"Was: {format_sms_datetime(old_start)}",
        f"Now: {format_sms_datetime(new_start)}",
        *_link_lines(),
        "Reply CHANGE to reschedule.",
    ]
    return "\n".join(lines)


class BookingNotifier:
    """Sends booking messages and keeps the reminder timers."""

    def __init__(
        self,
        messenger: Optional[NotificationService] = None,
        reminder_offsets_minutes: Optional[list[int]] = None,
    ):
        """Initialize notifier.

        Args:
            messenger: Messaging gateway (defaults to singleton)
            reminder_offsets_minutes: Minutes before start to remind at
        """
        self._messenger = messenger or get_notification_service()
        self.reminder_offsets = (
            reminder_offsets_minutes
            if reminder_offsets_minutes is not None
            else settings.reminder_offsets_minutes
        )
        self._reminders: dict[str, list[asyncio.Task]] = {}

    async def _send(self, to: Optional[str], body: str, kind: str) -> bool:
        if not to:
            logger.info(f"No phone on file, {kind} message skipped")
            return False
        try:
            sid = await self._messenger.send_sms(to, body)
        except NotificationError as e:
            logger.error(f"{kind} message to {mask_phone(to)} failed: {e}")
            return False
        except Exception:
            # Messages go out after the calendar write; a booking stands regardless
            logger.exception(f"{kind} message to {mask_phone(to)} crashed")
            return False
        return sid is not None

    async def send_confirmation(
        self,
        to: Optional[str],
        start: datetime,
        name: Optional[str] = None,
        event_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Send the confirmation and start the reminder timers."""
        sent = await self._send(to, build_confirmation_message(start, name), "confirmation")
        if to and event_id:
            self.schedule_reminders(event_id, to, start, now=now)
        return sent

    async def send_cancellation(
        self,
        to: Optional[str],
        start: datetime,
        event_id: Optional[str] = None,
    ) -> bool:
        """Send the cancellation notice and drop any pending reminders."""
        if event_id:
            self.cancel_reminders(event_id)
        return await self._send(to, build_cancellation_message(start), "cancellation")

    async def send_reschedule(
        self,
        to: Optional[str],
        old_start: datetime,
        new_start: datetime,
        name: Optional[str] = None,
        old_event_id: Optional[str] = None,
        new_event_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Send the reschedule notice and move the reminder timers."""
        if old_event_id:
            self.cancel_reminders(old_event_id)
        sent = await self._send(
            to, build_reschedule_message(old_start, new_start, name), "reschedule"
        )
        if to and new_event_id:
            self.schedule_reminders(new_event_id, to, new_start, now=now)
        return sent

    async def send_reminder(self, to: Optional[str], start: datetime) -> bool:
        return await self._send(to, build_reminder_message(start), "reminder")

    # === Reminders ===

    def schedule_reminders(
        self,
        event_id: str,
        to: str,
        start: datetime,
        now: Optional[datetime] = None,
    ) -> list[asyncio.Task]:
        """Start one timer per offset whose fire time is ahead and within a week."""
        now = now or datetime.now(start.tzinfo)
        tasks = []

        for offset in self.reminder_offsets:
            delay = (start - timedelta(minutes=offset)) - now
            if timedelta(0) < delay < MAX_REMINDER_DELAY:
                task = asyncio.create_task(
                    self._remind_later(to, start, delay.total_seconds())
                )
                tasks.append(task)

        if tasks:
            self._reminders.setdefault(event_id, []).extend(tasks)
            logger.debug(f"Scheduled {len(tasks)} reminders for event {event_id}")
        return tasks

    async def _remind_later(self, to: str, start: datetime, delay_seconds: float) -> None:
        await asyncio.sleep(delay_seconds)
        await self.send_reminder(to, start)

    def cancel_reminders(self, event_id: str) -> int:
        """Cancel pending reminder timers for an event."""
        tasks = self._reminders.pop(event_id, [])
        for task in tasks:
            task.cancel()
        return len(tasks)

    def pending_reminders(self, event_id: str) -> int:
        return sum(1 for t in self._reminders.get(event_id, []) if not t.done())

    async def close(self) -> None:
        """Cancel every pending reminder timer."""
        for event_id in list(self._reminders):
            self.cancel_reminders(event_id)


# Singleton
_notifier: Optional[BookingNotifier] = None


def get_booking_notifier() -> BookingNotifier:
    """Get singleton BookingNotifier."""
    global _notifier
    if _notifier is None:
        _notifier = BookingNotifier()
    return _notifier
