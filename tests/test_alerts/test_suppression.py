"""Tests for duplicate suppression of triggered evaluations."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from brand_alerts.alerts.config import AlertConfig
from brand_alerts.alerts.repository import AlertRepository
from brand_alerts.alerts.schemas import AlertEvaluationResult
from brand_alerts.alerts.suppression import SuppressionFilter


@pytest.fixture
def mock_repo():
    repo = AsyncMock(spec=AlertRepository)
    repo.find_similar.return_value = None
    return repo


@pytest.fixture
def suppression(mock_repo):
    return SuppressionFilter(mock_repo, AlertConfig())


def _result(sample_threshold, triggered=True, current_value=65.0):
    return AlertEvaluationResult(
        triggered=triggered,
        threshold=sample_threshold,
        current_value=current_value,
        severity="medium",
    )


def _mock_conn():
    conn = MagicMock()
    conn.transaction.return_value.__aenter__ = AsyncMock(return_value=None)
    conn.transaction.return_value.__aexit__ = AsyncMock(return_value=False)
    return conn


class TestShouldSuppress:
    @pytest.mark.asyncio
    async def test_untriggered_is_never_suppressed(self, suppression, mock_repo, sample_threshold):
        assert await suppression.should_suppress(_result(sample_threshold, triggered=False)) is False
        mock_repo.find_similar.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_match_allows_alert(self, suppression, sample_threshold):
        assert await suppression.should_suppress(_result(sample_threshold)) is False

    @pytest.mark.asyncio
    async def test_match_suppresses(self, suppression, mock_repo, sample_threshold):
        mock_repo.find_similar.return_value = "alert-earlier"
        assert await suppression.should_suppress(_result(sample_threshold)) is True

    @pytest.mark.asyncio
    async def test_lookup_uses_window_and_tolerance(self, suppression, mock_repo, sample_threshold):
        await suppression.should_suppress(_result(sample_threshold, current_value=66.0))

        mock_repo.find_similar.assert_awaited_once_with(
            "brand-acme",
            "overall_score",
            66.0,
            pytest.approx(3.0),  # 5% of |60|
            60,
            conn=None,
        )

    @pytest.mark.asyncio
    async def test_lookup_error_fails_open(self, suppression, mock_repo, sample_threshold):
        mock_repo.find_similar.side_effect = OSError("connection reset by peer")
        assert await suppression.should_suppress(_result(sample_threshold)) is False

    @pytest.mark.asyncio
    async def test_runs_in_savepoint_when_connection_given(
        self, suppression, mock_repo, sample_threshold
    ):
        conn = _mock_conn()
        mock_repo.find_similar.return_value = "alert-earlier"

        assert await suppression.should_suppress(_result(sample_threshold), conn=conn) is True
        conn.transaction.assert_called_once()
        assert mock_repo.find_similar.await_args.kwargs["conn"] is conn

    @pytest.mark.asyncio
    async def test_savepoint_error_fails_open(self, suppression, mock_repo, sample_threshold):
        conn = _mock_conn()
        mock_repo.find_similar.side_effect = RuntimeError("boom")

        assert await suppression.should_suppress(_result(sample_threshold), conn=conn) is False


class TestTolerance:
    def test_tolerance_is_ratio_of_threshold_magnitude(self):
        suppression = SuppressionFilter(AsyncMock(), AlertConfig(suppression_tolerance_ratio=0.1))
        assert suppression.tolerance_for(-50.0) == pytest.approx(5.0)

    def test_zero_threshold_is_floored_at_equality_tolerance(self):
        suppression = SuppressionFilter(AsyncMock(), AlertConfig())
        assert suppression.tolerance_for(0.0) == pytest.approx(0.01)

    def test_small_threshold_is_floored(self):
        suppression = SuppressionFilter(AsyncMock(), AlertConfig(equality_tolerance=0.05))
        assert suppression.tolerance_for(-0.2) == pytest.approx(0.05)
