"""
Health Check Endpoints

Liveness and readiness checks for the booking service.

Readiness follows what a booking turn actually needs: the calendar must
answer (every booking reads and writes it). Redis and the messaging
gateway are reported but never fail readiness; sessions fall back to
memory and a booking stands without its text message.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.core.scheduling import CalendarServiceError, get_calendar_client
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

# Track application start time for uptime calculation
_start_time: Optional[datetime] = None

# Window read by the calendar readiness check
CALENDAR_CHECK_WINDOW = timedelta(minutes=30)


def set_start_time() -> None:
    """Set application start time. Called once on startup."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    """Get application uptime in seconds."""
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: datetime
    version: str
    environment: str


class LiveResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


class DependencyCheck(BaseModel):
    """State of one dependency."""
    status: str
    required: bool
    detail: Optional[str] = None


class ReadyResponse(BaseModel):
    """Readiness check response with dependency status."""
    status: str
    timestamp: datetime
    checks: dict[str, DependencyCheck]


# === Dependency checks ===

async def check_calendar() -> DependencyCheck:
    """Read a short window of the booking calendar."""
    now = datetime.now(timezone.utc)
    try:
        await asyncio.wait_for(
            get_calendar_client().list_events(now, now + CALENDAR_CHECK_WINDOW),
            timeout=settings.calendar_timeout_seconds,
        )
    except CalendarServiceError as e:
        logger.warning(f"Readiness check: calendar unavailable - {e}")
        return DependencyCheck(status="error", required=True, detail=str(e)[:120])
    except asyncio.TimeoutError:
        logger.warning("Readiness check: calendar timed out")
        return DependencyCheck(status="timeout", required=True)
    return DependencyCheck(status="ok", required=True)


async def check_sessions() -> DependencyCheck:
    """Redis session store; memory fallback keeps turns working."""
    if await check_redis_health():
        return DependencyCheck(status="ok", required=False)
    return DependencyCheck(
        status="degraded",
        required=False,
        detail="sessions kept in process memory",
    )


def check_messaging() -> DependencyCheck:
    if settings.messaging_enabled:
        return DependencyCheck(status="ok", required=False)
    return DependencyCheck(
        status="disabled",
        required=False,
        detail="confirmations and reminders are not sent",
    )


# === Routes ===

@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the application is running. Does not check dependencies.",
)
async def health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version="1.0.0",
        environment=settings.app_env,
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness check",
    description="Reads the booking calendar and reports session store and messaging state. Returns 503 when the calendar cannot be read.",
    responses={
        200: {"description": "Bookings can be taken"},
        503: {"description": "The calendar is unavailable"},
    },
)
async def ready() -> ReadyResponse:
    """
    Readiness check for load balancers and Kubernetes.

    Only required dependencies decide the status code.
    """
    checks = {
        "calendar": await check_calendar(),
        "sessions": await check_sessions(),
        "messaging": check_messaging(),
    }
    all_ok = all(c.status == "ok" for c in checks.values() if c.required)

    response = ReadyResponse(
        status="ready" if all_ok else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )

    if not all_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )

    return response


@router.get(
    "/live",
    response_model=LiveResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
    description="Returns 200 if the process is alive. Used for container restart decisions.",
)
async def live() -> LiveResponse:
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )
