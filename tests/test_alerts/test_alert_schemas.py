"""Tests for alert dataclasses."""

from datetime import datetime, timezone

import pytest

from brand_alerts.alerts.schemas import Alert, AlertStatistics


class TestAlert:
    def test_invalid_severity_rejected(self):
        with pytest.raises(ValueError, match="Invalid severity"):
            Alert(brand_id="b", severity="urgent", title="t", message="m", metric_type="overall_score")

    def test_status_transitions(self, sample_alert):
        assert sample_alert.status == "created"
        sample_alert.is_acknowledged = True
        assert sample_alert.status == "acknowledged"
        sample_alert.resolved_at = datetime.now(timezone.utc)
        assert sample_alert.status == "resolved"
        assert sample_alert.is_resolved is True

    def test_dict_round_trip(self, sample_alert):
        sample_alert.acknowledged_at = datetime(2026, 3, 2, tzinfo=timezone.utc)
        restored = Alert.from_dict(sample_alert.to_dict())
        assert restored == sample_alert

    def test_synthetic_alert_flag(self, sample_alert):
        assert sample_alert.is_test is False
        assert Alert(
            id="test-1", brand_id="test", severity="low", title="t", message="m", metric_type="test",
        ).is_test is True


class TestAlertStatistics:
    def test_defaults_cover_every_severity(self):
        assert AlertStatistics().to_dict()["by_severity"] == {
            "low": 0, "medium": 0, "high": 0, "critical": 0,
        }
