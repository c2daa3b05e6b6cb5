"""
Booking Flow.

Folds one turn's extracted facts into the booking record and classifies
the caller's answer to the move / keep / extra question. No remote calls
happen here; the engine decides what to do with the updated record.
"""

import logging
from enum import Enum
from typing import Optional

from app.core.intelligence.extraction.normalize import is_usable_name
from app.core.intelligence.extraction.types import ExtractedFacts
from app.core.intelligence.session.models import (
    BookingIntent,
    BookingRecord,
    TimeChoice,
)
from app.core.intelligence.session.state import BookingPhase

logger = logging.getLogger(__name__)


class ResolutionChoice(str, Enum):
    """Caller's answer when an earlier booking already exists."""

    MOVE = "move"
    KEEP = "keep"
    EXTRA = "extra"
    UNDECIDED = "undecided"


class BookingFlow:
    """
    Fact ingestion for the booking state machine.

    Rules:
    - Contact fields are filled once; later values only replace them when
      the caller overrides the name or corrects themselves.
    - A full time always replaces an earlier one. A partial time (day or
      part of day) only fills an empty slot, and becomes the search anchor.
    - Scheduling language after a confirmed booking starts a new cycle.
    """

    def ingest(self, record: BookingRecord, facts: ExtractedFacts) -> None:
        """Apply one turn's facts to the record.

        Args:
            record: Booking record to update in place
            facts: Facts extracted from the caller's utterance
        """
        starts_new_cycle = facts.booking_intent or facts.move_request
        if record.confirmed and starts_new_cycle:
            logger.info(f"New booking cycle for {record.caller_id or 'caller'}")
            record.start_new_cycle()

        if facts.booking_intent:
            record.intent = BookingIntent.WANTS_BOOKING
            if record.phase == BookingPhase.IDLE:
                record.transition_to(BookingPhase.COLLECTING)

        self._ingest_contact(record, facts)

        # A confirmed booking is closed; times belong to the next cycle
        if record.confirmed:
            return

        if facts.earliest_request:
            record.wants_earliest = True

        if facts.time is not None:
            self._ingest_time(record, facts)

    def _ingest_contact(self, record: BookingRecord, facts: ExtractedFacts) -> None:
        contact = record.contact
        overwrite = facts.correction

        if facts.name and is_usable_name(facts.name):
            if not contact.name or facts.name_override or overwrite:
                contact.name = facts.name

        if facts.phone and (not contact.phone or overwrite):
            contact.phone = facts.phone

        if facts.email and (not contact.email or overwrite):
            contact.email = facts.email

    def _ingest_time(self, record: BookingRecord, facts: ExtractedFacts) -> None:
        time = facts.time
        choice = TimeChoice(instant=time.instant, spoken=time.spoken)

        # "Earliest after 3pm Tuesday" anchors the search instead of fixing the time
        partial = time.partial or facts.earliest_request

        if partial:
            has_full_time = (
                record.requested_time is not None and not record.requested_time_partial
            )
            if has_full_time and not facts.earliest_request:
                return
            if record.awaiting_confirmation:
                # A new anchor means a new search
                record.set_requested_time(choice, partial=True)
                record.transition_to(BookingPhase.COLLECTING)
                return
            if record.suggested_slot is None or facts.earliest_request:
                record.set_requested_time(choice, partial=True)
            return

        record.set_requested_time(choice)
        if record.awaiting_confirmation:
            record.transition_to(BookingPhase.COLLECTING)

    def resolution_choice(self, facts: ExtractedFacts) -> ResolutionChoice:
        """Classify the answer to "move it, keep it, or add an extra one?"."""
        if facts.extra_request:
            return ResolutionChoice.EXTRA
        if facts.keep_request:
            return ResolutionChoice.KEEP
        if facts.move_request or facts.affirmative:
            return ResolutionChoice.MOVE
        return ResolutionChoice.UNDECIDED

    def is_ready_to_book(self, record: BookingRecord) -> bool:
        """Candidate time settled, caller reachable, nothing outstanding."""
        return (
            record.intent == BookingIntent.WANTS_BOOKING
            and record.candidate is not None
            and record.contact.has_contact_method
            and not record.confirmed
            and not record.awaiting_confirmation
            and record.pending_resolution is None
        )


# Singleton
_flow: Optional[BookingFlow] = None


def get_booking_flow() -> BookingFlow:
    """Get singleton BookingFlow."""
    global _flow
    if _flow is None:
        _flow = BookingFlow()
    return _flow
