"""Tests for booking session storage."""

import pytest
from unittest.mock import AsyncMock, patch
from datetime import datetime
from zoneinfo import ZoneInfo

from redis.exceptions import RedisError

from app.core.intelligence.session.manager import (
    SESSION_PREFIX,
    SessionManager,
    session_key_for,
)
from app.core.intelligence.session.models import BookingRecord, Contact, TimeChoice
from app.core.intelligence.session.state import BookingPhase

TZ = ZoneInfo("Europe/London")


def _age(manager: SessionManager, key: str, seconds: float) -> None:
    saved_at, payload = manager._in_memory_fallback[key]
    manager._in_memory_fallback[key] = (saved_at - seconds, payload)


class TestSessionKey:
    """Test caller id normalisation."""

    def test_phone_forms_share_a_key(self):
        """Test SMS, WhatsApp and voice ids for one number collapse."""
        assert session_key_for("+447700900123") == "+447700900123"
        assert session_key_for("whatsapp:+447700900123") == "+447700900123"
        assert session_key_for(" +44 7700 900 123 ") == "+447700900123"

    def test_opaque_ids_kept(self):
        """Test non-phone ids are used as given."""
        assert session_key_for("web-session-abc") == "web-session-abc"
        assert session_key_for("") == ""
        assert session_key_for(None) == ""


class TestSessionManager:
    """Test Redis session management."""

    @pytest.fixture
    def mock_redis(self):
        """Create mock Redis client."""
        mock = AsyncMock()
        mock.get = AsyncMock(return_value=None)
        mock.setex = AsyncMock()
        mock.delete = AsyncMock(return_value=1)
        return mock

    @pytest.fixture
    def manager(self):
        """Create session manager."""
        return SessionManager(ttl_seconds=60)

    @pytest.fixture
    def record(self):
        record = BookingRecord(
            caller_id="whatsapp:+447700900123",
            contact=Contact(name="Sarah", phone="+447700900123"),
        )
        record.set_requested_time(
            TimeChoice(
                instant=datetime(2026, 10, 20, 15, 0, tzinfo=TZ),
                spoken="Tuesday 20 October at 3 o'clock P M",
            )
        )
        return record

    @pytest.mark.asyncio
    async def test_save(self, manager, mock_redis, record):
        """Test save writes JSON with the TTL under the normalised key."""
        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=mock_redis,
        ):
            assert await manager.save(record) is True

        key, ttl, payload = mock_redis.setex.call_args.args
        assert key == f"{SESSION_PREFIX}+447700900123"
        assert ttl == 60
        assert BookingRecord.from_json(payload).contact.name == "Sarah"

    @pytest.mark.asyncio
    async def test_load(self, manager, mock_redis, record):
        """Test a stored record is returned."""
        mock_redis.get = AsyncMock(return_value=record.to_json())

        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=mock_redis,
        ):
            loaded = await manager.load("+447700900123")

        assert loaded is not None
        assert loaded.requested_time.instant == datetime(2026, 10, 20, 15, 0, tzinfo=TZ)

    @pytest.mark.asyncio
    async def test_load_missing(self, manager, mock_redis):
        """Test None when nothing is stored."""
        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=mock_redis,
        ):
            assert await manager.load("+447700900123") is None

    @pytest.mark.asyncio
    async def test_in_memory_fallback(self, manager, record):
        """Test records survive in memory when Redis is unavailable."""
        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=None,
        ):
            assert await manager.save(record) is True
            loaded = await manager.load("+447700900123")

        assert loaded.contact.name == "Sarah"
        assert "+447700900123" in manager._in_memory_fallback

    @pytest.mark.asyncio
    async def test_redis_error_falls_back(self, manager, mock_redis, record):
        """Test a Redis error on save uses the in-memory store."""
        mock_redis.setex = AsyncMock(side_effect=RedisError("down"))

        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=mock_redis,
        ):
            assert await manager.save(record) is True

        assert "+447700900123" in manager._in_memory_fallback

    @pytest.mark.asyncio
    async def test_in_memory_expiry(self, manager, record):
        """Test expired in-memory records are dropped."""
        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=None,
        ):
            await manager.save(record)
            _age(manager, "+447700900123", 120)

            assert await manager.load("+447700900123") is None

        assert manager._in_memory_fallback == {}

    @pytest.mark.asyncio
    async def test_purge_expired(self, manager, record):
        """Test purge removes only stale entries."""
        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=None,
        ):
            await manager.save(record)

        assert manager.purge_expired() == 0
        _age(manager, "+447700900123", 120)
        assert manager.purge_expired() == 1

    @pytest.mark.asyncio
    async def test_save_without_caller_id(self, manager):
        """Test records without a caller id are not stored."""
        assert await manager.save(BookingRecord()) is False

    @pytest.mark.asyncio
    async def test_load_merged_current_wins(self, manager, mock_redis, record):
        """Test the current-turn record is merged over the stored one."""
        record.phase = BookingPhase.COLLECTING
        mock_redis.get = AsyncMock(return_value=record.to_json())
        current = BookingRecord(contact=Contact(email="sarah@example.com"))

        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=mock_redis,
        ):
            merged = await manager.load_merged("+447700900123", current)

        assert merged.contact.name == "Sarah"
        assert merged.contact.email == "sarah@example.com"
        assert merged.phase == BookingPhase.COLLECTING
        assert merged.requested_time is not None

    @pytest.mark.asyncio
    async def test_load_merged_fresh(self, manager, mock_redis):
        """Test a new caller gets a fresh record carrying their id."""
        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=mock_redis,
        ):
            record = await manager.load_merged("+447700900999")

        assert record.caller_id == "+447700900999"
        assert record.phase == BookingPhase.IDLE

    @pytest.mark.asyncio
    async def test_delete(self, manager, mock_redis):
        """Test delete removes the Redis key."""
        with patch(
            "app.core.intelligence.session.manager.get_redis",
            return_value=mock_redis,
        ):
            assert await manager.delete("+447700900123") is True

        mock_redis.delete.assert_called_once_with(f"{SESSION_PREFIX}+447700900123")
