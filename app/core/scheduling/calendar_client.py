"""
HTTP client for the Google Calendar API.

The calendar is the only store of bookings: each event's description
carries the system tag and the caller's contact lines. Calls:
- GET    /calendars/{id}/events        - list events in [from, to)
- POST   /calendars/{id}/events        - insert an event
- DELETE /calendars/{id}/events/{eid}  - delete an event

Access tokens come from a Google service account and are refreshed in
the default executor (google-auth is synchronous).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.service_account import Credentials

from app.config import get_settings
from app.core.timefmt import to_rfc3339

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]


class CalendarServiceError(Exception):
    """Raised when the calendar cannot be read or written."""
    pass


@dataclass
class CalendarEvent:
    """A timed calendar event. All-day events are never returned."""

    id: str
    start: datetime
    end: datetime
    summary: str = ""
    description: str = ""

    @classmethod
    def from_api(cls, data: dict) -> Optional["CalendarEvent"]:
        """Create from a Calendar API event resource, or None for all-day events."""
        start = (data.get("start") or {}).get("dateTime")
        end = (data.get("end") or {}).get("dateTime")
        if not start or not end:
            return None
        return cls(
            id=data.get("id", ""),
            start=datetime.fromisoformat(start.replace("Z", "+00:00")),
            end=datetime.fromisoformat(end.replace("Z", "+00:00")),
            summary=data.get("summary", ""),
            description=data.get("description", ""),
        )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval overlap with [start, end)."""
        return self.start < end and start < self.end


class CalendarService(Protocol):
    """Calendar operations the scheduling layer depends on."""

    async def list_events(
        self, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]:
        ...

    async def insert_event(
        self,
        start: datetime,
        end: datetime,
        timezone: str,
        title: str,
        description: str,
    ) -> CalendarEvent:
        ...

    async def delete_event(self, event_id: str) -> None:
        ...


class GoogleCalendarClient:
    """
    HTTP client for Google Calendar API v3.

    Every failure (auth, transport, non-2xx) surfaces as
    CalendarServiceError so the booking engine can roll back the turn.
    """

    def __init__(
        self,
        calendar_id: Optional[str] = None,
        credentials: Optional[Credentials] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            calendar_id: Calendar to operate on (defaults to settings)
            credentials: Service account credentials (loaded from settings if omitted)
            base_url: Calendar API base URL (defaults to settings)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (for testing)
        """
        settings = get_settings()
        self.calendar_id = calendar_id or settings.google_calendar_id
        self.base_url = base_url or settings.calendar_api_url
        self.timeout = timeout or settings.calendar_timeout_seconds
        self._credentials = credentials
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _load_credentials(self) -> Credentials:
        if self._credentials is None:
            path = get_settings().google_service_account_json
            if not path:
                raise CalendarServiceError(
                    "GOOGLE_SERVICE_ACCOUNT_JSON is not configured"
                )
            try:
                self._credentials = Credentials.from_service_account_file(
                    path, scopes=SCOPES
                )
            except (OSError, ValueError) as e:
                raise CalendarServiceError(
                    f"Could not load service account key: {e}"
                ) from e
        return self._credentials

    async def _auth_headers(self) -> dict[str, str]:
        """Bearer token header, refreshing the token when it has expired."""
        credentials = self._load_credentials()
        if not credentials.valid:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, credentials.refresh, Request())
            except GoogleAuthError as e:
                raise CalendarServiceError(f"Google auth failed: {e}") from e
        return {"Authorization": f"Bearer {credentials.token}"}

    def _events_path(self, event_id: Optional[str] = None) -> str:
        path = f"/calendars/{quote(self.calendar_id, safe='')}/events"
        if event_id:
            path += f"/{quote(event_id, safe='')}"
        return path

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        headers = await self._auth_headers()
        try:
            response = await client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CalendarServiceError(
                f"Calendar API {method} {path} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise CalendarServiceError(f"Calendar API {method} {path} failed: {e}") from e
        return response

    # === Events ===

    async def list_events(
        self,
        time_min: datetime,
        time_max: datetime,
        max_results: int = 250,
    ) -> list[CalendarEvent]:
        """List timed events overlapping [time_min, time_max), sorted by start.

        Raises:
            CalendarServiceError: If the calendar cannot be read
        """
        params = {
            "timeMin": to_rfc3339(time_min),
            "timeMax": to_rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": str(max_results),
        }

        events: list[CalendarEvent] = []
        while True:
            response = await self._request("GET", self._events_path(), params=params)
            data = response.json()

            for item in data.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                event = CalendarEvent.from_api(item)
                if event is not None:
                    events.append(event)

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params["pageToken"] = page_token

        events.sort(key=lambda e: e.start)
        logger.debug(f"Listed {len(events)} events between {params['timeMin']} and {params['timeMax']}")
        return events

    async def insert_event(
        self,
        start: datetime,
        end: datetime,
        timezone: str,
        title: str,
        description: str,
    ) -> CalendarEvent:
        """Create an event.

        Raises:
            CalendarServiceError: If the event could not be created
        """
        body = {
            "summary": title,
            "description": description,
            "start": {"dateTime": start.isoformat(), "timeZone": timezone},
            "end": {"dateTime": end.isoformat(), "timeZone": timezone},
        }

        response = await self._request(
            "POST",
            self._events_path(),
            json=body,
            params={"sendUpdates": "none"},
        )

        event = CalendarEvent.from_api(response.json())
        if event is None or not event.id:
            raise CalendarServiceError("Calendar API returned an event without id or times")

        logger.info(f"Created event {event.id} at {event.start.isoformat()}")
        return event

    async def delete_event(self, event_id: str) -> None:
        """Delete an event. An event that is already gone counts as deleted.

        Raises:
            CalendarServiceError: If the event could not be deleted
        """
        try:
            await self._request("DELETE", self._events_path(event_id))
        except CalendarServiceError as e:
            cause = e.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code in (404, 410):
                logger.info(f"Event {event_id} already deleted")
                return
            raise

        logger.info(f"Deleted event {event_id}")


# Singleton
_client: Optional[GoogleCalendarClient] = None


def get_calendar_client() -> GoogleCalendarClient:
    """Get singleton GoogleCalendarClient."""
    global _client
    if _client is None:
        _client = GoogleCalendarClient()
    return _client
