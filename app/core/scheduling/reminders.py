"""
Reminder sweep.

Run every few minutes (scripts/reminder_sweep.py). For each reminder
offset it lists the events starting within a small window around
now + offset and texts the caller recorded in the description. It uses
only calendar state, so reminders survive process restarts that drop
the in-process timers.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from app.config import settings
from app.infra.notifications import mask_phone
from .calendar_client import CalendarService
from .lifecycle import phone_from_description
from .notifier import BookingNotifier

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Counts from one sweep run."""

    checked: int = 0
    sent: int = 0
    skipped: list[str] = field(default_factory=list)


class ReminderSweep:
    """Sends reminders derived from the calendar."""

    def __init__(
        self,
        calendar: CalendarService,
        notifier: BookingNotifier,
        offsets_minutes: Optional[list[int]] = None,
        tolerance_minutes: Optional[int] = None,
    ):
        self._calendar = calendar
        self._notifier = notifier
        self.offsets = offsets_minutes or settings.reminder_offsets_minutes
        self.tolerance = tolerance_minutes or settings.reminder_sweep_tolerance_minutes

    async def run(self, now: Optional[datetime] = None) -> SweepResult:
        """Send every reminder due at `now`.

        Raises:
            CalendarServiceError: If the calendar cannot be read
        """
        now = now or datetime.now(settings.tz)
        result = SweepResult()

        for offset in self.offsets:
            target = now + timedelta(minutes=offset)
            window_start = target - timedelta(minutes=self.tolerance)
            window_end = target + timedelta(minutes=self.tolerance)

            events = await self._calendar.list_events(window_start, window_end)
            logger.info(
                f"[{offset}m] {len(events)} event(s) between "
                f"{window_start.isoformat()} and {window_end.isoformat()}"
            )

            for event in events:
                if not window_start <= event.start <= window_end:
                    continue
                if settings.system_tag not in event.description:
                    continue

                result.checked += 1
                phone = phone_from_description(event.description)
                if not phone:
                    logger.warning(f"[{offset}m] Event {event.id} has no phone, skipping")
                    result.skipped.append(event.id)
                    continue

                logger.info(f"[{offset}m] Reminding {mask_phone(phone)} about {event.id}")
                if await self._notifier.send_reminder(phone, event.start):
                    result.sent += 1

        return result
