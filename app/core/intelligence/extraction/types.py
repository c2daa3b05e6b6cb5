"""Fact types produced by extraction for one utterance."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol


@dataclass
class TimeFacts:
    """A start time mentioned by the caller."""

    instant: datetime                  # timezone-aware
    spoken: str                        # "Tuesday 20 October at 3 o'clock P M"
    partial: bool = False              # only a day or part of day ("next Tuesday")


@dataclass
class ContactFacts:
    """Contact fields found in one utterance."""

    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass
class ExtractedFacts:
    """
    Everything extraction found in one utterance.

    Absence is never an error: a field left at None/False simply means
    "not mentioned this turn".
    """

    # Contact
    name: Optional[str] = None
    phone: Optional[str] = None        # E.164
    email: Optional[str] = None

    # Time
    time: Optional[TimeFacts] = None

    # Signals
    booking_intent: bool = False       # "book", "schedule", "appointment"...
    earliest_request: bool = False     # "earliest", "soonest", "asap"
    affirmative: bool = False
    negative: bool = False
    name_override: bool = False        # "put it under ..."
    correction: bool = False           # "that's not right"

    # Existing-booking resolution
    move_request: bool = False         # "move it", "cancel that one", "change it"
    keep_request: bool = False         # "keep it", "leave it"
    extra_request: bool = False        # "add another", "book an extra one"

    # Metadata
    raw_text: str = ""
    source: str = "rules"

    @property
    def has_contact(self) -> bool:
        return bool(self.name or self.phone or self.email)

    def merge(self, other: "ExtractedFacts") -> "ExtractedFacts":
        """Merge with another ExtractedFacts, preferring values from other."""
        return ExtractedFacts(
            name=other.name or self.name,
            phone=other.phone or self.phone,
            email=other.email or self.email,
            time=other.time or self.time,
            booking_intent=other.booking_intent or self.booking_intent,
            earliest_request=other.earliest_request or self.earliest_request,
            affirmative=other.affirmative or self.affirmative,
            negative=other.negative or self.negative,
            name_override=other.name_override or self.name_override,
            correction=other.correction or self.correction,
            move_request=other.move_request or self.move_request,
            keep_request=other.keep_request or self.keep_request,
            extra_request=other.extra_request or self.extra_request,
            raw_text=other.raw_text or self.raw_text,
            source=other.source,
        )


class FactExtractor(Protocol):
    """Anything that turns an utterance into ExtractedFacts."""

    async def extract(
        self,
        utterance: str,
        now: Optional[datetime] = None,
    ) -> ExtractedFacts:
        ...
