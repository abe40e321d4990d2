"""Tests for PreferenceRepository with a mocked database."""

from datetime import datetime, time, timezone
from unittest.mock import AsyncMock

import pytest

from brand_alerts.errors import ValidationError
from brand_alerts.notifications.preferences import PreferenceRepository, parse_clock_time

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_db_row(**overrides):
    row = {
        "user_id": "user-1",
        "email_enabled": True,
        "sms_enabled": False,
        "webhook_enabled": False,
        "in_app_enabled": True,
        "quiet_hours_start": None,
        "quiet_hours_end": None,
        "frequency_limit": 10,
        "email_address": None,
        "phone_number": None,
        "webhook_url": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


@pytest.fixture
def mock_db():
    return AsyncMock()


@pytest.fixture
def repo(mock_db):
    return PreferenceRepository(mock_db, default_frequency_limit=10)


class TestParseClockTime:
    def test_accepts_strings_and_times(self):
        assert parse_clock_time("22:00") == time(22, 0)
        assert parse_clock_time("07:30:15") == time(7, 30, 15)
        assert parse_clock_time(time(1, 2)) == time(1, 2)
        assert parse_clock_time(None) is None

    @pytest.mark.parametrize("value", ["25:00", "soon", 2200])
    def test_rejects_garbage(self, value):
        with pytest.raises(ValidationError):
            parse_clock_time(value)


class TestGetOrCreate:
    @pytest.mark.asyncio
    async def test_returns_existing(self, mock_db, repo):
        mock_db.fetchrow.return_value = _make_db_row(sms_enabled=True)

        pref = await repo.get_or_create("user-1")

        assert pref.sms_enabled is True
        assert mock_db.fetchrow.await_count == 1

    @pytest.mark.asyncio
    async def test_inserts_defaults_when_missing(self, mock_db, repo):
        mock_db.fetchrow.side_effect = [None, _make_db_row()]

        pref = await repo.get_or_create("user-1")

        assert pref.email_enabled is True
        assert pref.sms_enabled is False
        assert pref.webhook_enabled is False
        assert pref.in_app_enabled is True
        assert pref.frequency_limit == 10
        assert pref.has_quiet_hours is False
        sql, *params = mock_db.fetchrow.await_args.args
        assert "ON CONFLICT (user_id)" in sql
        assert params == ["user-1", True, False, False, True, 10]


class TestUpdate:
    @pytest.mark.asyncio
    async def test_partial_update(self, mock_db, repo):
        mock_db.fetchrow.side_effect = [
            _make_db_row(),
            _make_db_row(quiet_hours_start=time(22, 0), quiet_hours_end=time(7, 0)),
        ]

        pref = await repo.update(
            "user-1", quiet_hours_start="22:00", quiet_hours_end="07:00", ignored=True,
        )

        assert pref.has_quiet_hours is True
        sql, *params = mock_db.fetchrow.await_args.args
        assert "quiet_hours_start = $1" in sql
        assert "quiet_hours_end = $2" in sql
        assert "WHERE user_id = $3" in sql
        assert params == [time(22, 0), time(7, 0), "user-1"]

    @pytest.mark.asyncio
    async def test_no_valid_fields(self, repo):
        with pytest.raises(ValidationError, match="No valid fields to update"):
            await repo.update("user-1", favourite_color="blue")

    @pytest.mark.asyncio
    async def test_negative_frequency_limit(self, repo):
        with pytest.raises(ValidationError):
            await repo.update("user-1", frequency_limit=-1)
