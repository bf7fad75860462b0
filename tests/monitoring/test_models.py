"""Tests for the monitoring data model."""

from datetime import UTC, datetime

from eventwatch.monitoring.models import (
    AlertEvent,
    AlertHistoryRecord,
    AlertSeverity,
    AlertStatus,
    HealthStatus,
    RequestMetrics,
    ServiceHealth,
    worst_status,
)


class TestHealthStatus:
    """Test status precedence."""

    def test_worst_status_unhealthy_wins(self):
        assert (
            worst_status(HealthStatus.HEALTHY, HealthStatus.DEGRADED, HealthStatus.UNHEALTHY)
            == HealthStatus.UNHEALTHY
        )

    def test_worst_status_degraded_over_healthy(self):
        assert worst_status(HealthStatus.HEALTHY, HealthStatus.DEGRADED) == HealthStatus.DEGRADED

    def test_worst_status_all_healthy(self):
        assert worst_status(HealthStatus.HEALTHY, HealthStatus.HEALTHY) == HealthStatus.HEALTHY

    def test_worst_status_empty(self):
        assert worst_status() == HealthStatus.HEALTHY


class TestServiceHealth:
    def test_to_dict_omits_missing_fields(self):
        health = ServiceHealth(status=HealthStatus.DEGRADED, details={"error": "slow"})

        data = health.to_dict()

        assert data["status"] == "degraded"
        assert data["details"] == {"error": "slow"}
        assert "response_time_ms" not in data
        assert "uptime_seconds" not in data

    def test_to_dict_rounds_response_time(self):
        health = ServiceHealth(status=HealthStatus.HEALTHY, response_time_ms=12.3456, uptime_seconds=61.9)

        data = health.to_dict()

        assert data["response_time_ms"] == 12.35
        assert data["uptime_seconds"] == 61


class TestRequestMetrics:
    def test_error_rate(self):
        assert RequestMetrics(total=20, errors=5).error_rate == 25.0

    def test_error_rate_without_requests(self):
        assert RequestMetrics().error_rate == 0.0


class TestAlertEvent:
    def test_key_combines_service_and_metric(self):
        alert = AlertEvent(
            severity=AlertSeverity.WARNING,
            message="High memory usage",
            service="application",
            metric="memory",
            threshold=75,
            current_value=80,
        )

        assert alert.key == "application_memory"

    def test_history_record_is_open(self):
        record = AlertHistoryRecord(
            id="alert_1",
            alert_key="application_memory",
            timestamp=datetime.now(UTC),
            message="High memory usage",
            severity=AlertSeverity.WARNING,
        )

        assert record.is_open
        record.status = AlertStatus.RESOLVED
        assert not record.is_open
        assert record.to_dict()["resolved_at"] is None
