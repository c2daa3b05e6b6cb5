"""Redis-based booking session storage."""

import logging
import time
from typing import Optional

from redis.exceptions import RedisError

from app.config import settings
from app.infra.redis import get_redis, APP_PREFIX
from app.core.intelligence.extraction.normalize import (
    looks_like_phone,
    normalize_phone_key,
)
from .models import BookingRecord

logger = logging.getLogger(__name__)

# Session key prefix (extends existing APP_PREFIX)
SESSION_PREFIX = f"{APP_PREFIX}booking:session:"


def session_key_for(caller_id: Optional[str]) -> str:
    """
    Storage key for a caller.

    Phone-like ids are normalised so SMS, WhatsApp and voice turns from the
    same number share one record. Other ids are used as given.
    """
    if not caller_id:
        return ""
    if looks_like_phone(caller_id):
        return normalize_phone_key(caller_id)
    return caller_id.strip()


class SessionManager:
    """
    Redis-based session manager for booking records.

    Key pattern: booking:v1:booking:session:{normalised caller id}

    Gracefully handles Redis unavailability with in-memory fallback.
    Records expire after settings.session_ttl_seconds either way.
    """

    def __init__(self, ttl_seconds: Optional[int] = None):
        """Initialize session manager."""
        self._ttl = ttl_seconds or settings.session_ttl_seconds
        # key -> (saved_at monotonic seconds, record JSON)
        self._in_memory_fallback: dict[str, tuple[float, str]] = {}

    def _key(self, session_key: str) -> str:
        """Generate Redis key."""
        return f"{SESSION_PREFIX}{session_key}"

    async def load(self, caller_id: str) -> Optional[BookingRecord]:
        """
        Load the stored record for a caller.

        Args:
            caller_id: Caller identifier (phone number or opaque id)

        Returns:
            BookingRecord or None if nothing is stored or it expired
        """
        key = session_key_for(caller_id)
        if not key:
            return None

        redis = await get_redis()

        if redis:
            try:
                data = await redis.get(self._key(key))
            except RedisError as e:
                logger.error(f"Failed to load session {key[-4:]}: {e}")
                data = None
            else:
                return BookingRecord.from_json(data) if data else None

        return self._load_in_memory(key)

    async def load_merged(
        self,
        caller_id: str,
        current: Optional[BookingRecord] = None,
    ) -> BookingRecord:
        """
        Load the stored record and merge the current-turn record over it.

        Values the current record has set win over stored ones. With no
        stored record the current one (or a fresh record) is returned.

        Args:
            caller_id: Caller identifier
            current: Record built during the current turn, if any

        Returns:
            The record the engine should work on
        """
        stored = await self.load(caller_id)

        if current is None:
            record = stored or BookingRecord()
        elif stored is None:
            record = current
        else:
            record = current.merged_over(stored)

        if not record.caller_id:
            record.caller_id = caller_id
        return record

    async def save(self, record: BookingRecord) -> bool:
        """
        Save a record, refreshing its TTL.

        Args:
            record: BookingRecord to save

        Returns:
            True if saved (to Redis or the in-memory fallback)
        """
        key = session_key_for(record.caller_id)
        if not key:
            logger.warning("Refusing to save booking session without a caller id")
            return False

        payload = record.to_json()
        redis = await get_redis()

        if redis:
            try:
                await redis.setex(self._key(key), self._ttl, payload)
                logger.debug(f"Session saved: ...{key[-4:]}")
                return True
            except RedisError as e:
                logger.error(f"Failed to save session ...{key[-4:]}: {e}")

        logger.warning("Redis unavailable, using in-memory fallback for booking session")
        self._in_memory_fallback[key] = (time.monotonic(), payload)
        return True

    async def delete(self, caller_id: str) -> bool:
        """
        Delete a caller's record.

        Returns:
            True if something was deleted
        """
        key = session_key_for(caller_id)
        if not key:
            return False

        deleted = bool(self._in_memory_fallback.pop(key, None))

        redis = await get_redis()
        if redis:
            try:
                deleted = bool(await redis.delete(self._key(key))) or deleted
            except RedisError as e:
                logger.error(f"Failed to delete session ...{key[-4:]}: {e}")

        return deleted

    def _load_in_memory(self, key: str) -> Optional[BookingRecord]:
        entry = self._in_memory_fallback.get(key)
        if entry is None:
            return None

        saved_at, payload = entry
        if time.monotonic() - saved_at > self._ttl:
            # Expired - forget it
            del self._in_memory_fallback[key]
            return None

        return BookingRecord.from_json(payload)

    def purge_expired(self) -> int:
        """Drop expired in-memory records. Returns how many were removed."""
        now = time.monotonic()
        expired = [
            key for key, (saved_at, _) in self._in_memory_fallback.items()
            if now - saved_at > self._ttl
        ]
        for key in expired:
            del self._in_memory_fallback[key]
        return len(expired)


# Singleton
_manager: Optional[SessionManager] = None


async def get_session_manager() -> SessionManager:
    """Get singleton SessionManager."""
    global _manager
    if _manager is None:
        _manager = SessionManager()
    return _manager
