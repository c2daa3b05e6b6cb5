"""
Booking session module.

One BookingRecord per caller, persisted between turns by SessionManager.
Phase changes go through BookingRecord.transition_to().
"""

from .state import BookingPhase, can_transition, get_valid_transitions, is_terminal_phase
from .models import (
    BookingIntent,
    BookingRecord,
    Candidate,
    Contact,
    ExistingBooking,
    InvalidTransitionError,
    ResolutionKind,
    TimeChoice,
    TimeSource,
)
from .manager import SessionManager, get_session_manager, session_key_for

__all__ = [
    # State
    "BookingPhase",
    "can_transition",
    "get_valid_transitions",
    "is_terminal_phase",
    # Models
    "BookingIntent",
    "BookingRecord",
    "Candidate",
    "Contact",
    "ExistingBooking",
    "InvalidTransitionError",
    "ResolutionKind",
    "TimeChoice",
    "TimeSource",
    # Manager
    "SessionManager",
    "get_session_manager",
    "session_key_for",
]
