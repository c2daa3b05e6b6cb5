"""
Booking Turn API Endpoint.

One request per caller utterance. The transport (voice or chat agent)
posts what the caller said; the response tells it whether to speak the
booking engine's scripted reply or answer freely.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from app.core.intelligence import BookingRecord, get_fact_extractor, get_session_manager
from app.core.intelligence.extraction.normalize import (
    looks_like_phone,
    normalize_phone_key,
    normalize_uk_phone,
)
from app.core.scheduling import get_booking_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Booking"])


class TurnRequest(BaseModel):
    """One caller utterance."""

    caller_id: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Caller phone number or opaque session id",
        examples=["+447700900123"],
    )
    utterance: str = Field(
        ...,
        max_length=2000,
        description="What the caller said this turn",
        examples=["Can I book the earliest slot tomorrow?"],
    )


class TurnResponse(BaseModel):
    """Booking engine decision for the turn."""

    intercept: bool = Field(
        ...,
        description="True when reply_text must be spoken instead of a free answer",
    )
    reply_text: Optional[str] = Field(
        default=None,
        description="Scripted reply when intercepting",
    )
    phase: str = Field(
        ...,
        description="Booking phase after this turn",
    )
    last_event_id: Optional[str] = Field(
        default=None,
        description="Calendar event id of the latest booking",
    )


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


def _seed_record(caller_id: str) -> BookingRecord:
    """Current-turn record; a phone-shaped caller id doubles as the contact phone."""
    record = BookingRecord(caller_id=caller_id)
    if looks_like_phone(caller_id):
        record.contact.phone = normalize_uk_phone(caller_id) or normalize_phone_key(caller_id)
    return record


@router.post(
    "/turn",
    response_model=TurnResponse,
    status_code=status.HTTP_200_OK,
    summary="Process a caller turn",
    description="Run the booking state machine on one caller utterance.",
    responses={
        200: {"description": "Turn processed"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)
async def turn(request: TurnRequest) -> TurnResponse:
    """
    Process one caller turn.

    - Loads the caller's booking record (merged with this turn's seed)
    - Extracts facts from the utterance
    - Runs the booking engine
    - Saves the updated record
    """
    try:
        manager = await get_session_manager()
        record = await manager.load_merged(request.caller_id, _seed_record(request.caller_id))

        facts = await get_fact_extractor().extract(request.utterance)
        outcome = await get_booking_engine().handle_turn(record, facts)

        await manager.save(record)

    except Exception as e:
        logger.exception(f"Error processing booking turn: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process turn",
        )

    return TurnResponse(
        intercept=outcome.intercept,
        reply_text=outcome.reply_text,
        phase=record.phase.value,
        last_event_id=record.last_event_id,
    )


@router.get(
    "/sessions/{caller_id}",
    response_model=dict,
    summary="Get booking session",
    description="Retrieve the stored booking record for a caller.",
    responses={
        200: {"description": "Booking record"},
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_session(caller_id: str) -> dict:
    """Get a caller's booking record."""
    manager = await get_session_manager()
    record = await manager.load(caller_id)

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )

    return record.to_dict()


@router.delete(
    "/sessions/{caller_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset a booking session",
    description="Forget a caller's booking record. Calendar events are untouched.",
)
async def reset_session(caller_id: str) -> None:
    """Delete a caller's booking record."""
    manager = await get_session_manager()
    if not await manager.delete(caller_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
