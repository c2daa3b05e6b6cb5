"""
Booking Engine - Main Orchestrator.

Runs the booking state machine for one caller turn. Each turn:

1. Fold the extracted facts into the BookingRecord.
2. Settle any outstanding question (existing booking, suggested slot).
3. Search for the earliest slot when the caller asked for one.
4. Book once a time and a contact method are known.

Remote calls happen one after another in that order (lookup, conflict
check, create, notify). Any calendar failure rolls the record back to
its state after step 1 and returns an apology; nothing escapes
handle_turn.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.intelligence.extraction.types import ExtractedFacts
from app.core.intelligence.session.models import (
    BookingIntent,
    BookingRecord,
    Candidate,
    TimeChoice,
)
from app.core.intelligence.session.state import BookingPhase
from app.core.timefmt import format_spoken_datetime
from .availability import AvailabilityScheduler
from .calendar_client import CalendarServiceError, get_calendar_client
from .flow import BookingFlow, ResolutionChoice, get_booking_flow
from .lifecycle import (
    BookingRequest,
    ConfirmedEvent,
    EventLifecycleManager,
    ExistingBookingLocator,
    OutsideBusinessHoursError,
)
from .notifier import BookingNotifier, get_booking_notifier
from .response import ReplyBuilder, get_reply_builder

logger = logging.getLogger(__name__)


@dataclass
class TurnOutcome:
    """What the engine wants the agent to do this turn."""

    intercept: bool
    reply_text: Optional[str] = None

    @classmethod
    def passthrough(cls) -> "TurnOutcome":
        return cls(intercept=False)

    @classmethod
    def reply(cls, text: str) -> "TurnOutcome":
        return cls(intercept=True, reply_text=text)


def _same_minute(a: datetime, b: datetime) -> bool:
    return a.replace(second=0, microsecond=0) == b.replace(second=0, microsecond=0)


class BookingEngine:
    """
    Booking state machine.

    Holds no per-session state: the caller's BookingRecord is passed in
    every turn and mutated in place. Persisting it is the caller's job.
    """

    def __init__(
        self,
        scheduler: AvailabilityScheduler,
        locator: ExistingBookingLocator,
        lifecycle: EventLifecycleManager,
        notifier: BookingNotifier,
        replies: Optional[ReplyBuilder] = None,
        flow: Optional[BookingFlow] = None,
        verify_caller_specified_times: Optional[bool] = None,
        duration_minutes: Optional[int] = None,
        tz: Optional[ZoneInfo] = None,
    ):
        """Initialize engine.

        Args:
            scheduler: Earliest-slot search and conflict checks
            locator: Finds the caller's existing booking
            lifecycle: Creates and cancels events
            notifier: Sends booking messages
            replies: Reply templates
            flow: Fact ingestion rules
            verify_caller_specified_times: Conflict-check caller times too
            duration_minutes: Booking length
            tz: Business timezone for spoken times
        """
        self.scheduler = scheduler
        self.locator = locator
        self.lifecycle = lifecycle
        self.notifier = notifier
        self.replies = replies or get_reply_builder()
        self.flow = flow or get_booking_flow()
        self.verify_caller_specified_times = (
            verify_caller_specified_times
            if verify_caller_specified_times is not None
            else settings.verify_caller_specified_times
        )
        self.duration_minutes = duration_minutes or settings.booking_duration_minutes
        self.tz = tz or settings.tz

    def _spoken(self, instant: datetime) -> str:
        return format_spoken_datetime(instant, self.tz)

    async def handle_turn(
        self,
        record: BookingRecord,
        facts: ExtractedFacts,
        now: Optional[datetime] = None,
    ) -> TurnOutcome:
        """Process one caller turn.

        Args:
            record: The session's booking record (mutated in place)
            facts: Facts extracted from the caller's utterance
            now: Current time (for testing)

        Returns:
            TurnOutcome; intercept=False lets the agent answer freely
        """
        now = now or datetime.now(self.tz)
        before = record.snapshot()

        try:
            self.flow.ingest(record, facts)
        except Exception:
            logger.exception(f"Could not apply facts for {record.caller_id or 'caller'}")
            record.restore(before)
            return TurnOutcome.passthrough()

        known_good = record.snapshot()

        try:
            outcome = await self._decide(record, facts, now)
        except CalendarServiceError as e:
            logger.error(f"Booking turn failed for {record.caller_id or 'caller'}: {e}")
            self._roll_back(record, known_good)
            return TurnOutcome.reply(self.replies.apology())
        except Exception:
            logger.exception(f"Unexpected error in booking turn for {record.caller_id or 'caller'}")
            self._roll_back(record, known_good)
            return TurnOutcome.reply(self.replies.apology())

        logger.debug(
            f"Turn handled: phase={record.phase.value} intercept={outcome.intercept}"
        )
        return outcome

    def _roll_back(self, record: BookingRecord, known_good: BookingRecord) -> None:
        """Restore the post-ingestion record, never leaving a yes/no pending."""
        record.restore(known_good)
        if record.awaiting_confirmation:
            record.clear_time()
            record.transition_to(BookingPhase.COLLECTING)

    # === Decision procedure ===

    async def _decide(
        self,
        record: BookingRecord,
        facts: ExtractedFacts,
        now: datetime,
    ) -> TurnOutcome:
        if record.pending_resolution is not None:
            return await self._resolve_existing(record, facts, now)

        if record.confirmed:
            return TurnOutcome.passthrough()

        if record.awaiting_confirmation:
            if facts.affirmative:
                record.suggestion_accepted = True
                record.transition_to(BookingPhase.COLLECTING)
            elif facts.negative:
                record.clear_time()
                record.transition_to(BookingPhase.COLLECTING)
                return TurnOutcome.reply(self.replies.ask_alternative_time())
            else:
                return TurnOutcome.passthrough()

        if record.intent != BookingIntent.WANTS_BOOKING:
            return TurnOutcome.passthrough()

        needs_search = record.wants_earliest or record.requested_time_partial
        if needs_search and record.suggested_slot is None and record.candidate is None:
            anchor = record.requested_time.instant if record.requested_time else now
            return await self._suggest(record, anchor, now, after_conflict=False)

        if not self.flow.is_ready_to_book(record):
            return TurnOutcome.passthrough()

        return await self._book_candidate(record, record.candidate, now)

    async def _suggest(
        self,
        record: BookingRecord,
        anchor: datetime,
        now: datetime,
        after_conflict: bool,
    ) -> TurnOutcome:
        """Run the scheduler and propose what it finds."""
        slot = await self.scheduler.find_earliest_slot(anchor=anchor, now=now)

        if slot is None:
            record.clear_time()
            return TurnOutcome.reply(self.replies.no_availability())

        record.set_suggestion(TimeChoice(instant=slot.start, spoken=slot.spoken))
        record.transition_to(BookingPhase.AWAITING_CONFIRMATION)

        if after_conflict:
            return TurnOutcome.reply(self.replies.propose_alternative(slot.spoken))
        return TurnOutcome.reply(self.replies.propose_slot(slot.spoken))

    async def _book_candidate(
        self,
        record: BookingRecord,
        candidate: Candidate,
        now: datetime,
    ) -> TurnOutcome:
        if not candidate.is_suggested and candidate.instant <= now:
            record.clear_time()
            return TurnOutcome.reply(self.replies.ask_future_time())

        contact = record.contact

        # Ask for the email once; the next turn books with or without it
        if contact.phone and not contact.email and not record.contact_prompted:
            record.contact_prompted = True
            record.needs_contact_before_confirm = True
            return TurnOutcome.reply(self.replies.ask_email())
        record.needs_contact_before_confirm = False

        existing = await self.locator.find(contact, now=now)
        if existing is not None:
            if _same_minute(existing.start, candidate.instant):
                record.last_event_id = existing.event_id
                record.confirmed_start = existing.start
                record.transition_to(BookingPhase.CONFIRMED)
                return TurnOutcome.reply(
                    self.replies.already_booked(self._spoken(existing.start))
                )

            record.existing_booking = existing
            record.transition_to(BookingPhase.PENDING_RESOLUTION)
            return TurnOutcome.reply(
                self.replies.ask_resolution(self._spoken(existing.start), candidate.spoken)
            )

        if candidate.is_suggested or self.verify_caller_specified_times:
            if await self.scheduler.has_conflict(candidate.instant, self.duration_minutes):
                logger.info(f"Slot {candidate.instant.isoformat()} taken before commit")
                return await self._suggest(record, candidate.instant, now, after_conflict=True)

        try:
            event = await self._create(record, candidate.instant)
        except OutsideBusinessHoursError:
            record.clear_time()
            return TurnOutcome.reply(self.replies.ask_time_in_hours())

        await self.notifier.send_confirmation(
            contact.phone, event.start, contact.name, event_id=event.event_id, now=now
        )

        spoken = self._spoken(event.start)
        if event.adjusted:
            return TurnOutcome.reply(self.replies.booked_adjusted(spoken, contact.name))
        return TurnOutcome.reply(self.replies.booked(spoken, contact.name))

    async def _create(self, record: BookingRecord, start: datetime) -> ConfirmedEvent:
        """Create the event and mark the record confirmed."""
        event = await self.lifecycle.create(
            BookingRequest(
                start=start,
                contact=record.contact,
                duration_minutes=self.duration_minutes,
            )
        )
        record.set_requested_time(
            TimeChoice(instant=event.start, spoken=self._spoken(event.start))
        )
        record.last_event_id = event.event_id
        record.confirmed_start = event.start
        record.transition_to(BookingPhase.CONFIRMED)
        logger.info(f"Booking confirmed: event={event.event_id} start={event.start.isoformat()}")
        return event

    # === Existing booking resolution ===

    async def _resolve_existing(
        self,
        record: BookingRecord,
        facts: ExtractedFacts,
        now: datetime,
    ) -> TurnOutcome:
        existing = record.existing_booking
        contact = record.contact
        candidate = record.candidate
        choice = self.flow.resolution_choice(facts)

        if choice == ResolutionChoice.UNDECIDED:
            return TurnOutcome.passthrough()

        if choice == ResolutionChoice.KEEP:
            record.set_requested_time(
                TimeChoice(instant=existing.start, spoken=self._spoken(existing.start))
            )
            record.last_event_id = existing.event_id
            record.confirmed_start = existing.start
            record.transition_to(BookingPhase.CONFIRMED)
            return TurnOutcome.reply(self.replies.kept(self._spoken(existing.start)))

        # A past time never costs the caller their live booking
        if candidate is not None and not candidate.is_suggested and candidate.instant <= now:
            record.clear_time()
            return TurnOutcome.reply(self.replies.ask_future_time())

        # Moving to the time already held is a keep
        if candidate is not None and _same_minute(candidate.instant, existing.start):
            record.last_event_id = existing.event_id
            record.confirmed_start = existing.start
            record.transition_to(BookingPhase.CONFIRMED)
            return TurnOutcome.reply(
                self.replies.already_booked(self._spoken(existing.start))
            )

        if choice == ResolutionChoice.EXTRA:
            if candidate is None:
                record.existing_booking = None
                record.transition_to(BookingPhase.COLLECTING)
                return TurnOutcome.reply(self.replies.ask_alternative_time())
            try:
                event = await self._create(record, candidate.instant)
            except OutsideBusinessHoursError:
                record.clear_time()
                record.existing_booking = None
                record.transition_to(BookingPhase.COLLECTING)
                return TurnOutcome.reply(self.replies.ask_time_in_hours())
            await self.notifier.send_confirmation(
                contact.phone, event.start, contact.name, event_id=event.event_id, now=now
            )
            return TurnOutcome.reply(
                self.replies.extra_booked(self._spoken(event.start), contact.name)
            )

        # Move: the old event is always cancelled before a new one exists
        if candidate is None:
            await self.lifecycle.cancel(existing.event_id)
            await self.notifier.send_cancellation(
                contact.phone, existing.start, event_id=existing.event_id
            )
            record.existing_booking = None
            record.clear_time()
            record.transition_to(BookingPhase.COLLECTING)
            return TurnOutcome.reply(
                self.replies.cancelled_ask_new_time(self._spoken(existing.start))
            )

        try:
            self.lifecycle.resolve_start(candidate.instant, self.duration_minutes)
        except OutsideBusinessHoursError:
            record.clear_time()
            return TurnOutcome.reply(self.replies.ask_time_in_hours())

        await self.lifecycle.cancel(existing.event_id)
        record.existing_booking = None
        record.transition_to(BookingPhase.COLLECTING)

        try:
            event = await self._create(record, candidate.instant)
        except CalendarServiceError as e:
            # The old booking is gone; the record must not point at it
            logger.error(f"Reschedule of {existing.event_id} lost its new event: {e}")
            record.clear_time()
            await self.notifier.send_cancellation(
                contact.phone, existing.start, event_id=existing.event_id
            )
            return TurnOutcome.reply(self.replies.apology())

        await self.notifier.send_reschedule(
            contact.phone,
            existing.start,
            event.start,
            contact.name,
            old_event_id=existing.event_id,
            new_event_id=event.event_id,
            now=now,
        )
        return TurnOutcome.reply(
            self.replies.rescheduled(self._spoken(event.start), contact.name)
        )


# Singleton
_engine: Optional[BookingEngine] = None


def get_booking_engine() -> BookingEngine:
    """Get singleton BookingEngine wired to the Google calendar."""
    global _engine
    if _engine is None:
        calendar = get_calendar_client()
        scheduler = AvailabilityScheduler(calendar)
        _engine = BookingEngine(
            scheduler=scheduler,
            locator=ExistingBookingLocator(calendar),
            lifecycle=EventLifecycleManager(calendar, hours=scheduler.hours),
            notifier=get_booking_notifier(),
        )
    return _engine
