"""
Intelligence Layer Module

Provides fact extraction and booking session management for the
booking engine.

Usage:
    from app.core.intelligence import get_fact_extractor, get_session_manager

    facts = await get_fact_extractor().extract("book me in for 3pm Tuesday")
    print(facts.time.spoken)  # "Tuesday 20 October at 3 o'clock P M"

    manager = await get_session_manager()
    record = await manager.load_merged("+447700900123")
"""

# Fact Extraction
from app.core.intelligence.extraction import (
    ExtractedFacts,
    FactExtractor,
    TimeFacts,
    get_fact_extractor,
)

# Session Management
from app.core.intelligence.session import (
    BookingIntent,
    BookingPhase,
    BookingRecord,
    Contact,
    SessionManager,
    get_session_manager,
)

__all__ = [
    # Extraction
    "ExtractedFacts",
    "FactExtractor",
    "TimeFacts",
    "get_fact_extractor",
    # Session
    "BookingIntent",
    "BookingPhase",
    "BookingRecord",
    "Contact",
    "SessionManager",
    "get_session_manager",
]
