"""Tests for ThresholdRepository and threshold schemas."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from brand_alerts.errors import (
    NotFoundError,
    UnknownMetricType,
    UnknownOperator,
    ValidationError,
)
from brand_alerts.thresholds.repository import (
    ThresholdRepository,
    validate_threshold_fields,
)
from brand_alerts.thresholds.schemas import AlertThreshold, MetricSnapshot

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_db_row(**overrides):
    row = {
        "id": "thr-001",
        "brand_id": "brand-acme",
        "user_id": "user-1",
        "metric_type": "overall_score",
        "threshold_value": 60.0,
        "comparison_operator": ">",
        "is_active": True,
        "notification_channels": ["email", "in_app"],
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
    return ThresholdRepository(mock_db)


# ── Schemas ──────────────────────────────────────────────


class TestSchemas:
    def test_channels_are_deduplicated_in_order(self):
        threshold = AlertThreshold(
            brand_id="b",
            user_id="u",
            metric_type="overall_score",
            threshold_value=1,
            comparison_operator=">",
            notification_channels=["sms", "email", "sms"],
        )
        assert threshold.notification_channels == ("sms", "email")
        assert isinstance(threshold.threshold_value, float)

    def test_snapshot_from_dict_ignores_unknown_and_missing(self):
        snapshot = MetricSnapshot.from_dict({
            "brand_id": "brand-acme",
            "overall_score": "65",
            "citation_count": None,
            "color": "blue",
            "captured_at": "2026-03-01T12:00:00+00:00",
        })
        assert snapshot.overall_score == 65.0
        assert snapshot.citation_count is None
        assert snapshot.captured_at == NOW


# ── Validation ───────────────────────────────────────────


class TestValidation:
    def test_unknown_metric(self):
        with pytest.raises(UnknownMetricType):
            validate_threshold_fields({"metric_type": "unknown_metric"})

    def test_unknown_operator(self):
        with pytest.raises(UnknownOperator):
            validate_threshold_fields({"comparison_operator": "!="})

    def test_unknown_channel(self):
        with pytest.raises(ValidationError, match="pager"):
            validate_threshold_fields({"notification_channels": ["email", "pager"]})

    def test_valid_fields_pass(self):
        validate_threshold_fields({
            "metric_type": "ranking_position",
            "comparison_operator": "<=",
            "notification_channels": ["webhook"],
        })


# ── CRUD ─────────────────────────────────────────────────


class TestCrud:
    @pytest.mark.asyncio
    async def test_create(self, mock_db, repo, sample_threshold):
        mock_db.fetchrow.return_value = _make_db_row()

        created = await repo.create(sample_threshold)

        assert created.notification_channels == ("email", "in_app")
        args = mock_db.fetchrow.await_args.args
        assert "INSERT INTO alert_thresholds" in args[0]
        assert args[8] == ["email", "in_app"]

    @pytest.mark.asyncio
    async def test_create_rejects_invalid_metric(self, mock_db, repo, sample_threshold):
        sample_threshold.metric_type = "unknown_metric"
        with pytest.raises(UnknownMetricType):
            await repo.create(sample_threshold)
        mock_db.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_builds_set_clause(self, mock_db, repo):
        mock_db.fetchrow.return_value = _make_db_row(threshold_value=70.0)

        updated = await repo.update(
            "thr-001", threshold_value=70.0, comparison_operator=None, bogus=1,
        )

        assert updated.threshold_value == 70.0
        sql, *params = mock_db.fetchrow.await_args.args
        assert "threshold_value = $1" in sql
        assert "updated_at = NOW()" in sql
        assert "WHERE id = $2 AND is_active = TRUE" in sql
        assert params == [70.0, "thr-001"]

    @pytest.mark.asyncio
    async def test_update_without_fields(self, repo):
        with pytest.raises(ValidationError, match="No valid fields to update"):
            await repo.update("thr-001", bogus=1)

    @pytest.mark.asyncio
    async def test_update_inactive_threshold(self, mock_db, repo):
        mock_db.fetchrow.return_value = None
        with pytest.raises(NotFoundError):
            await repo.update("thr-001", threshold_value=70.0)

    @pytest.mark.asyncio
    async def test_deactivate(self, mock_db, repo):
        mock_db.execute.return_value = "UPDATE 1"
        await repo.deactivate("thr-001")
        assert "is_active = FALSE" in mock_db.execute.await_args.args[0]

    @pytest.mark.asyncio
    async def test_deactivate_missing(self, mock_db, repo):
        mock_db.execute.return_value = "UPDATE 0"
        with pytest.raises(NotFoundError):
            await repo.deactivate("thr-404")

    @pytest.mark.asyncio
    async def test_list_active(self, mock_db, repo):
        mock_db.fetch.return_value = [_make_db_row(), _make_db_row(id="thr-002")]

        thresholds = await repo.list_active("brand-acme")

        assert [t.id for t in thresholds] == ["thr-001", "thr-002"]
        assert "is_active = TRUE" in mock_db.fetch.await_args.args[0]

    @pytest.mark.asyncio
    async def test_get_by_id_missing(self, mock_db, repo):
        mock_db.fetchrow.return_value = None
        assert await repo.get_by_id("thr-404") is None
