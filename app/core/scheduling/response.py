"""
Scripted replies for intercepted booking turns.

Every reply the booking engine speaks itself comes from here, so the
wording stays consistent across the voice and text channels. Names are
only used when they pass the caller-name safety check.
"""

from typing import Optional

from app.core.intelligence.extraction.normalize import is_usable_name


class ReplyBuilder:
    """Template replies for the booking engine."""

    @staticmethod
    def _greeting(name: Optional[str]) -> str:
        return f" {name}" if is_usable_name(name) else ""

    def propose_slot(self, spoken: str) -> str:
        return f"The earliest I can do is {spoken}. Would that work for you?"

    def propose_alternative(self, spoken: str) -> str:
        return (
            f"Ah, that time has just been taken. The next free slot is {spoken}. "
            "Would that work instead?"
        )

    def ask_alternative_time(self) -> str:
        return (
            "No worries at all, what day and time would work better for you "
            "(Monday to Friday, 9 to 5 UK time)?"
        )

    def ask_time_in_hours(self) -> str:
        return (
            "I can only book Monday to Friday, 9 to 5 UK time. "
            "What time in those hours would suit you?"
        )

    def ask_future_time(self) -> str:
        return "That time has already passed. What later day and time would suit you?"

    def no_availability(self) -> str:
        return (
            "I'm afraid we're fully booked around then. "
            "Could you suggest another day or time that might work?"
        )

    def ask_email(self) -> str:
        return "Brilliant, before I lock that in, what's your best email address, nice and slowly?"

    def booked(self, spoken: str, name: Optional[str] = None) -> str:
        who = self._greeting(name)
        target = "you" if who else "that"
        return (
            f"Brilliant{who}, I've got {target} booked in for {spoken}. "
            "You'll get a message with the details in a moment. "
            "Anything else I can help with today?"
        )

    def booked_adjusted(self, spoken: str, name: Optional[str] = None) -> str:
        who = self._greeting(name)
        return (
            f"That's outside our hours{who and ',' + who}, so I've booked the nearest time "
            f"I can, {spoken}. You'll get a message with the details in a moment. "
            "Anything else I can help with today?"
        )

    def already_booked(self, spoken: str) -> str:
        return (
            f"You're already booked in for {spoken}, so there's nothing more to do. "
            "Anything else I can help with?"
        )

    def ask_resolution(self, existing_spoken: str, requested_spoken: Optional[str]) -> str:
        if requested_spoken:
            return (
                f"I can see you already have a booking for {existing_spoken}. "
                f"Would you like to move it to {requested_spoken}, keep the one you have, "
                "or add this as an extra booking?"
            )
        return (
            f"I can see you already have a booking for {existing_spoken}. "
            "Would you like to move it, keep it, or add an extra booking?"
        )

    def cancelled_ask_new_time(self, spoken: str) -> str:
        return (
            f"Done, I've cancelled your booking for {spoken}. "
            "What day and time would you like instead?"
        )

    def rescheduled(self, spoken: str, name: Optional[str] = None) -> str:
        who = self._greeting(name)
        return (
            f"All sorted{who}, I've moved your booking to {spoken}. "
            "You'll get a message with the new details. Anything else I can help with?"
        )

    def kept(self, spoken: str) -> str:
        return f"No problem, I'll keep your booking for {spoken} as it is. Anything else I can help with?"

    def extra_booked(self, spoken: str, name: Optional[str] = None) -> str:
        who = self._greeting(name)
        return (
            f"Lovely{who}, I've added an extra booking for {spoken} and kept your "
            "existing one. Anything else I can help with?"
        )

    def apology(self) -> str:
        return (
            "Hmm, something didn't quite go through on my side. I'll note your details "
            "and follow up, but is there anything else I can help with for now?"
        )


# Singleton
_builder: Optional[ReplyBuilder] = None


def get_reply_builder() -> ReplyBuilder:
    """Get singleton ReplyBuilder."""
    global _builder
    if _builder is None:
        _builder = ReplyBuilder()
    return _builder
