"""
Booking session data models.

One BookingRecord exists per caller session. It is owned by the booking
engine, mutated every turn and stored in Redis as JSON between turns.

The boolean flags callers care about (awaiting_confirmation, confirmed,
pending_resolution) are derived from a single BookingPhase so they can
never drift into impossible combinations.
"""

import copy
import json
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .state import BookingPhase, can_transition


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class InvalidTransitionError(Exception):
    """Raised when a booking record is moved to a phase it cannot reach."""
    pass


class BookingIntent(str, Enum):
    """Whether the caller has asked to book."""

    NONE = "none"
    WANTS_BOOKING = "wants_booking"


class ResolutionKind(str, Enum):
    """Sub-state while an earlier booking for the same contact is unresolved."""

    DECIDE_MOVE_KEEP_EXTRA = "decide_move_keep_extra"


class TimeSource(str, Enum):
    """Where the candidate time came from."""

    CALLER = "caller"  # pre-confirmed, no yes/no round-trip
    SUGGESTED = "suggested"  # earliest-slot search, needs affirmation


@dataclass
class Contact:
    """Caller contact identity."""

    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @property
    def has_contact_method(self) -> bool:
        """True when the caller can be reached by phone or email."""
        return bool(self.phone or self.email)

    def to_dict(self) -> dict:
        return {"name": self.name, "phone": self.phone, "email": self.email}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Contact":
        data = data or {}
        return cls(
            name=data.get("name"),
            phone=data.get("phone"),
            email=data.get("email"),
        )


@dataclass
class TimeChoice:
    """A start instant plus its human-readable rendering."""

    instant: datetime
    spoken: str

    def to_dict(self) -> dict:
        return {"instant": self.instant.isoformat(), "spoken": self.spoken}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["TimeChoice"]:
        if not data:
            return None
        return cls(
            instant=datetime.fromisoformat(data["instant"]),
            spoken=data.get("spoken", ""),
        )


@dataclass
class Candidate:
    """The time currently under consideration for booking."""

    instant: datetime
    spoken: str
    source: TimeSource

    @property
    def is_suggested(self) -> bool:
        return self.source == TimeSource.SUGGESTED


@dataclass
class ExistingBooking:
    """A previously created booking found under the same contact."""

    event_id: str
    start: datetime

    def to_dict(self) -> dict:
        return {"event_id": self.event_id, "start": self.start.isoformat()}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["ExistingBooking"]:
        if not data:
            return None
        return cls(
            event_id=data["event_id"],
            start=datetime.fromisoformat(data["start"]),
        )


@dataclass
class BookingRecord:
    """
    Per-session booking state.

    Lifecycle:
        created lazily on the first turn of a session, mutated by the
        booking engine every turn, persisted by the SessionManager between
        turns. A new booking cycle resets the transient fields but keeps
        the verified contact details.
    """

    caller_id: str = ""

    intent: BookingIntent = BookingIntent.NONE
    contact: Contact = field(default_factory=Contact)

    # Caller-specified time (pre-confirmed)
    requested_time: Optional[TimeChoice] = None
    # Only a day or part of day is known ("next Tuesday"); search anchor, not a candidate
    requested_time_partial: bool = False

    # System-suggested slot and whether the caller said yes to it
    suggested_slot: Optional[TimeChoice] = None
    suggestion_accepted: bool = False
    wants_earliest: bool = False

    phase: BookingPhase = BookingPhase.IDLE
    last_event_id: Optional[str] = None
    confirmed_start: Optional[datetime] = None

    existing_booking: Optional[ExistingBooking] = None

    # Blocked on one missing contact field (email) before booking
    needs_contact_before_confirm: bool = False
    # The email question was already asked in this cycle
    contact_prompted: bool = False

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    # === Derived flags ===

    @property
    def awaiting_confirmation(self) -> bool:
        return self.phase == BookingPhase.AWAITING_CONFIRMATION

    @property
    def confirmed(self) -> bool:
        return self.phase == BookingPhase.CONFIRMED

    @property
    def pending_resolution(self) -> Optional[ResolutionKind]:
        if self.phase == BookingPhase.PENDING_RESOLUTION:
            return ResolutionKind.DECIDE_MOVE_KEEP_EXTRA
        return None

    @property
    def candidate(self) -> Optional[Candidate]:
        """Time to book, if one is settled.

        Caller-specified times win unless only the day is known. A
        suggestion only counts once the caller has accepted it.
        """
        if self.requested_time is not None and not self.requested_time_partial:
            return Candidate(
                instant=self.requested_time.instant,
                spoken=self.requested_time.spoken,
                source=TimeSource.CALLER,
            )
        if self.suggested_slot is not None and self.suggestion_accepted:
            return Candidate(
                instant=self.suggested_slot.instant,
                spoken=self.suggested_slot.spoken,
                source=TimeSource.SUGGESTED,
            )
        return None

    # === Transitions ===

    def transition_to(self, phase: BookingPhase) -> None:
        """Move to a new phase, enforcing the transition table and invariants.

        Raises:
            InvalidTransitionError: If the move is not allowed
        """
        if not can_transition(self.phase, phase):
            raise InvalidTransitionError(
                f"Invalid transition: {self.phase.value} -> {phase.value}"
            )
        if phase == BookingPhase.CONFIRMED and not self.last_event_id:
            raise InvalidTransitionError("Cannot confirm without an event id")
        if phase == BookingPhase.PENDING_RESOLUTION and self.existing_booking is None:
            raise InvalidTransitionError(
                "Cannot wait on a resolution without an existing booking"
            )
        if phase == BookingPhase.AWAITING_CONFIRMATION and self.suggested_slot is None:
            raise InvalidTransitionError("Cannot await confirmation without a suggestion")

        self.phase = phase
        if phase == BookingPhase.CONFIRMED:
            self.needs_contact_before_confirm = False
            self.existing_booking = None
        self.updated_at = _utcnow()

    def set_requested_time(self, choice: TimeChoice, partial: bool = False) -> None:
        """Adopt a caller-specified time; it replaces any pending suggestion."""
        self.requested_time = choice
        self.requested_time_partial = partial
        self.suggested_slot = None
        self.suggestion_accepted = False

    def set_suggestion(self, choice: TimeChoice) -> None:
        """Adopt a system suggestion; it becomes the only pending time."""
        self.suggested_slot = choice
        self.suggestion_accepted = False
        self.requested_time = None
        self.requested_time_partial = False

    def clear_time(self) -> None:
        """Forget every candidate time."""
        self.requested_time = None
        self.requested_time_partial = False
        self.suggested_slot = None
        self.suggestion_accepted = False
        self.wants_earliest = False

    def start_new_cycle(self) -> None:
        """Reset transient fields for another booking, keeping the contact."""
        self.intent = BookingIntent.NONE
        self.clear_time()
        self.existing_booking = None
        self.needs_contact_before_confirm = False
        self.contact_prompted = False
        self.confirmed_start = None
        self.transition_to(BookingPhase.IDLE)

    # === Snapshots ===

    def snapshot(self) -> "BookingRecord":
        """Deep copy used to roll back a failed turn."""
        return copy.deepcopy(self)

    def restore(self, snapshot: "BookingRecord") -> None:
        """Overwrite every field with the snapshot's values."""
        for f in fields(self):
            setattr(self, f.name, copy.deepcopy(getattr(snapshot, f.name)))

    def merged_over(self, stored: "BookingRecord") -> "BookingRecord":
        """Merge this (current-turn) record over a stored one.

        Every field this record has set wins; fields still at their
        default fall back to the stored value. Contact fields merge
        individually.
        """
        defaults = BookingRecord()
        merged = stored.snapshot()

        for f in fields(self):
            if f.name in ("contact", "created_at", "updated_at"):
                continue
            value = getattr(self, f.name)
            if value != getattr(defaults, f.name):
                setattr(merged, f.name, copy.deepcopy(value))

        merged.contact = Contact(
            name=self.contact.name or stored.contact.name,
            phone=self.contact.phone or stored.contact.phone,
            email=self.contact.email or stored.contact.email,
        )
        merged.created_at = min(self.created_at, stored.created_at)
        merged.updated_at = _utcnow()
        return merged

    # === Serialization ===

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dict."""
        return {
            "caller_id": self.caller_id,
            "intent": self.intent.value,
            "contact": self.contact.to_dict(),
            "requested_time": self.requested_time.to_dict() if self.requested_time else None,
            "requested_time_partial": self.requested_time_partial,
            "suggested_slot": self.suggested_slot.to_dict() if self.suggested_slot else None,
            "suggestion_accepted": self.suggestion_accepted,
            "wants_earliest": self.wants_earliest,
            "phase": self.phase.value,
            "last_event_id": self.last_event_id,
            "confirmed_start": self.confirmed_start.isoformat() if self.confirmed_start else None,
            "existing_booking": (
                self.existing_booking.to_dict() if self.existing_booking else None
            ),
            "needs_contact_before_confirm": self.needs_contact_before_confirm,
            "contact_prompted": self.contact_prompted,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def to_json(self) -> str:
        """Convert to JSON string for Redis storage."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BookingRecord":
        """Create from a dict produced by to_dict()."""
        confirmed_start = data.get("confirmed_start")
        return cls(
            caller_id=data.get("caller_id", ""),
            intent=BookingIntent(data.get("intent", BookingIntent.NONE.value)),
            contact=Contact.from_dict(data.get("contact")),
            requested_time=TimeChoice.from_dict(data.get("requested_time")),
            requested_time_partial=data.get("requested_time_partial", False),
            suggested_slot=TimeChoice.from_dict(data.get("suggested_slot")),
            suggestion_accepted=data.get("suggestion_accepted", False),
            wants_earliest=data.get("wants_earliest", False),
            phase=BookingPhase(data.get("phase", BookingPhase.IDLE.value)),
            last_event_id=data.get("last_event_id"),
            confirmed_start=datetime.fromisoformat(confirmed_start) if confirmed_start else None,
            existing_booking=ExistingBooking.from_dict(data.get("existing_booking")),
            needs_contact_before_confirm=data.get("needs_contact_before_confirm", False),
            contact_prompted=data.get("contact_prompted", False),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "BookingRecord":
        """Create from JSON string."""
        return cls.from_dict(json.loads(json_str))
