"""Booking phase machine."""

from enum import Enum
from typing import Set


class BookingPhase(str, Enum):
    """Phases of one booking cycle."""

    # Initial - no scheduling language heard yet
    IDLE = "idle"

    # Gathering contact details and a time
    COLLECTING = "collecting"

    # A system-suggested slot was spoken, waiting for yes/no
    AWAITING_CONFIRMATION = "awaiting_confirmation"

    # Caller already has a booking, waiting for move / keep / extra
    PENDING_RESOLUTION = "pending_resolution"

    # Event durably created (terminal for the cycle)
    CONFIRMED = "confirmed"


# Valid phase transitions
VALID_TRANSITIONS: dict[BookingPhase, Set[BookingPhase]] = {
    BookingPhase.IDLE: {
        BookingPhase.COLLECTING,
    },
    BookingPhase.COLLECTING: {
        BookingPhase.AWAITING_CONFIRMATION,
        BookingPhase.PENDING_RESOLUTION,
        BookingPhase.CONFIRMED,
    },
    BookingPhase.AWAITING_CONFIRMATION: {
        BookingPhase.COLLECTING,  # accepted, rejected or replaced
    },
    BookingPhase.PENDING_RESOLUTION: {
        BookingPhase.COLLECTING,  # moved without a new time
        BookingPhase.CONFIRMED,  # moved, kept or extra booked
    },
    BookingPhase.CONFIRMED: {
        BookingPhase.IDLE,  # caller starts another booking
        BookingPhase.COLLECTING,
    },
}


def can_transition(from_phase: BookingPhase, to_phase: BookingPhase) -> bool:
    """Check if a phase transition is valid."""
    if from_phase == to_phase:
        return True
    return to_phase in VALID_TRANSITIONS.get(from_phase, set())


def get_valid_transitions(phase: BookingPhase) -> Set[BookingPhase]:
    """Get all valid transitions from a phase."""
    return VALID_TRANSITIONS.get(phase, set())


def is_terminal_phase(phase: BookingPhase) -> bool:
    """Check if the phase ends the current booking cycle."""
    return phase == BookingPhase.CONFIRMED
