"""Tests for the calendar-driven reminder sweep."""

import pytest
from datetime import datetime
from zoneinfo import ZoneInfo

from app.core.intelligence.session.models import Contact
from app.core.scheduling.calendar_client import CalendarServiceError
from app.core.scheduling.lifecycle import build_description
from app.core.scheduling.notifier import BookingNotifier
from app.core.scheduling.reminders import ReminderSweep
from tests.fakes import FakeCalendar, FakeMessenger

TZ = ZoneInfo("Europe/London")
NOW = datetime(2026, 10, 19, 15, 0, tzinfo=TZ)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, day, hour, minute, tzinfo=TZ)


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def sweep(calendar, messenger):
    notifier = BookingNotifier(messenger, reminder_offsets_minutes=[])
    return ReminderSweep(calendar, notifier, offsets_minutes=[1440, 60], tolerance_minutes=2)


class TestReminderSweep:
    """Test ReminderSweep.run."""

    @pytest.mark.asyncio
    async def test_sends_due_reminders(self, calendar, messenger, sweep):
        """Test the 24 hour and 60 minute reminders go to the booked phone."""
        sarah = Contact(name="Sarah", phone="+447700900123")
        tom = Contact(name="Tom", phone="+447700900456")
        calendar.add(at(20, 15), description=build_description(sarah), event_id="day")
        calendar.add(at(19, 16, 1), description=build_description(tom), event_id="hour")

        result = await sweep.run(now=NOW)

        assert result.checked == 2
        assert result.sent == 2
        assert result.skipped == []
        assert {to for to, _ in messenger.sent} == {"+447700900123", "+447700900456"}
        assert all(body.startswith("⏰ Reminder") for _, body in messenger.sent)

    @pytest.mark.asyncio
    async def test_ignores_untagged_and_out_of_window(self, calendar, messenger, sweep):
        """Test only tagged events starting inside the window are reminded."""
        calendar.add(at(19, 16), description="Dentist")
        calendar.add(
            at(19, 18),
            description=build_description(Contact(phone="+447700900123")),
        )

        result = await sweep.run(now=NOW)

        assert result.checked == 0
        assert messenger.sent == []

    @pytest.mark.asyncio
    async def test_skips_events_without_phone(self, calendar, messenger, sweep):
        """Test bookings made with an email only are skipped."""
        calendar.add(
            at(19, 16),
            description=build_description(Contact(email="sarah@example.com")),
            event_id="email-only",
        )

        result = await sweep.run(now=NOW)

        assert result.checked == 1
        assert result.sent == 0
        assert result.skipped == ["email-only"]

    @pytest.mark.asyncio
    async def test_delivery_failure_counted(self, calendar):
        """Test a failed send is checked but not counted as sent."""
        notifier = BookingNotifier(FakeMessenger(fail=True), reminder_offsets_minutes=[])
        sweep = ReminderSweep(calendar, notifier, offsets_minutes=[60], tolerance_minutes=2)
        calendar.add(
            at(19, 16),
            description=build_description(Contact(phone="+447700900123")),
        )

        result = await sweep.run(now=NOW)

        assert result.checked == 1
        assert result.sent == 0

    @pytest.mark.asyncio
    async def test_calendar_failure_propagates(self, calendar, sweep):
        calendar.fail_on.add("list")

        with pytest.raises(CalendarServiceError):
            await sweep.run(now=NOW)
