"""
Scheduling Module

Provides the booking engine, availability search, calendar integration,
event lifecycle and booking notifications.

Usage:
    from app.core.scheduling import get_booking_engine
    from app.core.intelligence import get_fact_extractor, BookingRecord

    record = BookingRecord(caller_id="+447700900123")
    facts = await get_fact_extractor().extract("can I book the earliest slot")
    outcome = await get_booking_engine().handle_turn(record, facts)
    print(outcome.reply_text)  # "The earliest I can do is ..."
"""

# Calendar Client
from app.core.scheduling.calendar_client import (
    CalendarEvent,
    CalendarService,
    CalendarServiceError,
    GoogleCalendarClient,
    get_calendar_client,
)

# Availability
from app.core.scheduling.availability import (
    AvailabilityScheduler,
    BusinessHours,
    Slot,
    find_earliest_slot,
)

# Event Lifecycle
from app.core.scheduling.lifecycle import (
    BookingRequest,
    ConfirmedEvent,
    EventLifecycleManager,
    ExistingBookingLocator,
    OutsideBusinessHoursError,
    build_description,
)

# Notifications
from app.core.scheduling.notifier import (
    BookingNotifier,
    get_booking_notifier,
)

# Replies
from app.core.scheduling.response import (
    ReplyBuilder,
    get_reply_builder,
)

# Booking Flow
from app.core.scheduling.flow import (
    BookingFlow,
    ResolutionChoice,
    get_booking_flow,
)

# Engine
from app.core.scheduling.engine import (
    BookingEngine,
    TurnOutcome,
    get_booking_engine,
)

# Reminder Sweep
from app.core.scheduling.reminders import (
    ReminderSweep,
    SweepResult,
)

__all__ = [
    # Calendar
    "CalendarEvent",
    "CalendarService",
    "CalendarServiceError",
    "GoogleCalendarClient",
    "get_calendar_client",
    # Availability
    "AvailabilityScheduler",
    "BusinessHours",
    "Slot",
    "find_earliest_slot",
    # Lifecycle
    "BookingRequest",
    "ConfirmedEvent",
    "EventLifecycleManager",
    "ExistingBookingLocator",
    "OutsideBusinessHoursError",
    "build_description",
    # Notifications
    "BookingNotifier",
    "get_booking_notifier",
    # Replies
    "ReplyBuilder",
    "get_reply_builder",
    # Flow
    "BookingFlow",
    "ResolutionChoice",
    "get_booking_flow",
    # Engine
    "BookingEngine",
    "TurnOutcome",
    "get_booking_engine",
    # Reminders
    "ReminderSweep",
    "SweepResult",
]
