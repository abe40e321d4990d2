"""Tests for the brand-alerts CLI."""

from unittest.mock import AsyncMock, MagicMock, patch

import click
import pytest
from click.testing import CliRunner

from brand_alerts.alerts.schemas import AlertEvaluationResult
from brand_alerts.cli import _parse_metrics, main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_db_cls():
    db = MagicMock()
    db.connect = AsyncMock()
    db.close = AsyncMock()
    with patch("brand_alerts.storage.database.Database", return_value=db) as cls:
        yield cls


class TestParseMetrics:
    def test_pairs(self):
        assert _parse_metrics(("overall_score=65", " citation_count = 12.5")) == {
            "overall_score": 65.0,
            "citation_count": 12.5,
        }

    def test_missing_equals(self):
        with pytest.raises(click.BadParameter):
            _parse_metrics(("overall_score",))

    def test_non_numeric(self):
        with pytest.raises(click.BadParameter):
            _parse_metrics(("overall_score=high",))


class TestEvaluateCommand:
    def test_rejects_bad_metric(self, runner):
        result = runner.invoke(main, ["evaluate", "brand-acme", "--metric", "overall_score"])
        assert result.exit_code == 2
        assert "NAME=VALUE" in result.output

    def test_reports_results(self, runner, mock_db_cls, sample_threshold):
        outcome = AlertEvaluationResult(
            triggered=True,
            threshold=sample_threshold,
            current_value=65.0,
            severity="medium",
            suppressed=True,
        )
        with patch(
            "brand_alerts.alerts.service.AlertService.evaluate_thresholds",
            new_callable=AsyncMock,
            return_value=[outcome],
        ) as evaluate:
            result = runner.invoke(
                main, ["evaluate", "brand-acme", "--metric", "overall_score=65", "--no-queue"],
            )

        assert result.exit_code == 0, result.output
        assert "Evaluated 1 thresholds for brand-acme" in result.output
        assert "suppressed" in result.output
        snapshot = evaluate.await_args.args[0]
        assert snapshot.brand_id == "brand-acme"
        assert snapshot.overall_score == 65.0

    def test_no_thresholds(self, runner, mock_db_cls):
        with patch(
            "brand_alerts.alerts.service.AlertService.evaluate_thresholds",
            new_callable=AsyncMock,
            return_value=[],
        ):
            result = runner.invoke(
                main, ["evaluate", "brand-acme", "--metric", "overall_score=65", "--no-queue"],
            )

        assert result.exit_code == 0
        assert "No active thresholds for brand brand-acme" in result.output


class TestCleanupCommand:
    def test_dry_run(self, runner, mock_db_cls):
        with patch(
            "brand_alerts.alerts.service.AlertService.cleanup",
            new_callable=AsyncMock,
            return_value=4,
        ) as cleanup:
            result = runner.invoke(main, ["cleanup", "--days", "30", "--dry-run"])

        assert result.exit_code == 0
        assert "would delete 4 alerts" in result.output
        cleanup.assert_awaited_once_with(30, dry_run=True)


class TestHelp:
    def test_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("worker", "evaluate", "cleanup", "stats", "test-notification", "health"):
            assert command in result.output
