"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Environment Variables:
    REDIS_URL: Redis connection string
    BUSINESS_TIMEZONE: IANA timezone used for business hours and spoken times
    GOOGLE_CALENDAR_ID: Calendar that holds the bookings
    GOOGLE_SERVICE_ACCOUNT_JSON: Path to the service account key file
    TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN / TWILIO_FROM_NUMBER: Messaging gateway
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Redis Configuration
    redis_url: str = "redis://localhost:6379/0"
    """Redis connection URL.

    Format: redis://host:port/db
    Example: redis://localhost:6379/0

    Used for booking session storage.
    """

    session_ttl_seconds: int = 30 * 24 * 60 * 60
    """Booking session TTL in seconds (default: 30 days).

    A returning caller within this window picks up the same booking record,
    so their verified contact details do not have to be collected again.
    """

    # Application Environment
    app_env: Literal["development", "staging", "production"] = "development"
    """Current application environment."""

    debug: bool = False
    """Enable debug mode (verbose logging, detailed error bodies)."""

    app_name: str = "booking-orchestrator"
    """Application name."""

    host: str = "0.0.0.0"
    """Host to bind the application server."""

    port: int = 8000
    """Port to bind the application server."""

    # CORS Configuration
    cors_origins: str = "http://localhost:3000"
    """Comma-separated list of allowed CORS origins."""

    # Business Hours
    business_timezone: str = "Europe/London"
    """IANA timezone for business hours, slot search and spoken times."""

    business_open_hour: int = 9
    """First bookable hour of the day (local time)."""

    business_close_hour: int = 17
    """Closing hour. A slot must END at or before this hour."""

    business_weekdays: list[int] = [0, 1, 2, 3, 4]
    """Bookable weekdays (Monday=0). Weekends are skipped by default."""

    slot_granularity_minutes: int = 30
    """Slot starts are aligned to this increment (:00 / :30)."""

    booking_duration_minutes: int = 30
    """Length of a booked consultation."""

    search_window_days: int = 7
    """How far ahead the earliest-slot search looks."""

    existing_booking_lookahead_days: int = 60
    """How far ahead the existing-booking lookup scans the calendar."""

    # Booking Policies
    verify_caller_specified_times: bool = False
    """Run the conflict check on caller-specified times too.

    Off by default: only system-suggested times are re-checked before commit.
    Caller-specified times may therefore double-book when this stays off.
    """

    out_of_hours_policy: Literal["clamp", "reject"] = "clamp"
    """What event creation does with a start time outside business hours.

    - clamp: snap the time into the same day's business hours and read the
      adjusted time back to the caller
    - reject: refuse to create the event and ask for another time
    """

    # Google Calendar
    google_calendar_id: str = "primary"
    """Calendar that bookings are written to."""

    google_service_account_json: str = ""
    """Path to the Google service account JSON key file."""

    calendar_api_url: str = "https://www.googleapis.com/calendar/v3"
    """Google Calendar REST API base URL."""

    calendar_timeout_seconds: float = 15.0
    """HTTP timeout for calendar calls."""

    event_title: str = "Business Consultation (15-30 min)"
    """Summary line written on every created event."""

    system_tag: str = "booked by booking-orchestrator"
    """Machine-checkable tag stamped into event descriptions.

    The existing-booking locator and the reminder sweep only consider
    events whose description carries this tag.
    """

    meeting_link: str = ""
    """Optional video meeting link added to descriptions and messages."""

    # Messaging Gateway (Twilio)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    """SMS sender number (E.164)."""

    twilio_whatsapp_from: str = ""
    """WhatsApp sender used as fallback channel when SMS fails."""

    twilio_api_url: str = "https://api.twilio.com/2010-04-01"

    reminder_offsets_minutes: list[int] = [24 * 60, 60]
    """Reminders are sent this many minutes before the booked start."""

    reminder_sweep_tolerance_minutes: int = 2
    """Half-width of the window the reminder sweep matches around each offset."""

    # Extraction
    extraction_backend: Literal["rules", "claude"] = "rules"
    """Which fact extractor feeds the booking engine."""

    anthropic_api_key: str = ""
    claude_extraction_model: str = "claude-3-5-haiku-latest"
    claude_fallback_model: str = "claude-3-5-sonnet-latest"

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",  # Load from .env file if it exists
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def cors_origins_list(self) -> list[str]:
        """Split cors_origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def tz(self) -> ZoneInfo:
        """Business timezone as a tzinfo."""
        return ZoneInfo(self.business_timezone)

    @property
    def messaging_enabled(self) -> bool:
        """True when Twilio credentials and a sender are configured."""
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and (self.twilio_from_number or self.twilio_whatsapp_from)
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and reused
    across the application.

    Returns:
        Settings: Cached settings instance
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()
