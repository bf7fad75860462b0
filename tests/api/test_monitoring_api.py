"""Tests for the monitoring endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
import structlog
from httpx import ASGITransport, AsyncClient

from eventwatch.api.main import create_app
from eventwatch.monitoring.models import HealthStatus


def _client_for(service) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=create_app(monitoring_service=service)), base_url="http://test"
    )


class TestHealthEndpoints:
    """Test health, readiness and liveness."""

    @pytest.mark.asyncio
    async def test_health_ok(self, client):
        response = await client.get("/monitoring/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["services"]) == {"database", "storage", "application"}
        assert data["metrics"]["memory"]["percentage"] == 12.5

    @pytest.mark.asyncio
    async def test_health_degraded_is_200(self, service_factory):
        async with _client_for(service_factory({"storage": HealthStatus.DEGRADED})) as client:
            response = await client.get("/monitoring/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_health_unhealthy_is_503(self, service_factory):
        async with _client_for(service_factory({"database": HealthStatus.UNHEALTHY})) as client:
            response = await client.get("/monitoring/health")

        assert response.status_code == 503
        assert response.json()["services"]["database"]["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_health_failure_is_503(self, service, client):
        service.aggregator.get_health_snapshot = AsyncMock(side_effect=RuntimeError("boom"))

        response = await client.get("/monitoring/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["error"] == "Health check failed"
        assert data["detail"] == "boom"

    @pytest.mark.asyncio
    async def test_detailed_health(self, client):
        response = await client.get("/monitoring/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["system"]["pid"] == 1234
        assert data["endpoints"]["metrics"] == "/monitoring/metrics"

    @pytest.mark.asyncio
    async def test_ready(self, client):
        response = await client.get("/monitoring/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    @pytest.mark.asyncio
    async def test_ready_ignores_storage(self, service_factory):
        async with _client_for(service_factory({"storage": HealthStatus.UNHEALTHY})) as client:
            response = await client.get("/monitoring/ready")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_not_ready_when_database_down(self, service_factory):
        async with _client_for(service_factory({"database": HealthStatus.UNHEALTHY})) as client:
            response = await client.get("/monitoring/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not_ready"
        assert data["services"]["database"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_live(self, client):
        response = await client.get("/monitoring/live")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "alive"
        assert data["uptime"] == 60
        assert data["pid"] == 1234

    @pytest.mark.asyncio
    async def test_info(self, client):
        response = await client.get("/monitoring/info")

        assert response.status_code == 200
        assert response.json()["name"] == "eventwatch"


class TestMetricsEndpoint:
    @pytest.mark.asyncio
    async def test_prometheus_exposition(self, client):
        await client.get("/monitoring/live")

        response = await client.get("/monitoring/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain; version=0.0.4")
        body = response.text
        assert "app_health_status 1.0" in body
        assert 'route="/monitoring/live"' in body

    @pytest.mark.asyncio
    async def test_metrics_failure(self, service, client):
        service.aggregator.get_health_snapshot = AsyncMock(side_effect=RuntimeError("boom"))

        response = await client.get("/monitoring/metrics")

        assert response.status_code == 500
        assert response.text == "# Error generating metrics\n"


class TestAlertEndpoints:
    """Test current alerts, history and lifecycle actions."""

    @pytest.mark.asyncio
    async def test_current_alerts_do_not_dispatch(self, service_factory):
        service = service_factory({"storage": HealthStatus.UNHEALTHY})
        async with _client_for(service) as client:
            response = await client.get("/monitoring/alerts")

        data = response.json()
        assert data["alerts_count"] == 1
        assert data["critical"] == 1
        assert data["alerts"][0]["metric"] == "availability"
        assert service.dispatcher.get_history() == []

    @pytest.mark.asyncio
    async def test_history_and_lifecycle(self, service, client):
        await service.simulate_condition("high_memory")
        history = (await client.get("/monitoring/alerts/history")).json()
        alert_id = history["alerts"][0]["id"]

        acknowledged = await client.post(f"/monitoring/alerts/history/{alert_id}/acknowledge")
        resolved = await client.post(f"/monitoring/alerts/history/{alert_id}/resolve")
        again = await client.post(f"/monitoring/alerts/history/{alert_id}/acknowledge")
        closed = await client.post(f"/monitoring/alerts/history/{alert_id}/close")

        assert history["count"] == 1
        assert acknowledged.json()["status"] == "acknowledged"
        assert resolved.json()["status"] == "resolved"
        assert again.status_code == 409
        assert closed.json()["status"] == "closed"

    @pytest.mark.asyncio
    async def test_unknown_alert(self, client):
        response = await client.post("/monitoring/alerts/history/alert_missing/resolve")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_history_limit_validation(self, client):
        response = await client.get("/monitoring/alerts/history", params={"limit": 0})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_channels(self, client):
        response = await client.get("/monitoring/alerts/channels")

        assert response.json() == {"channels": []}

    @pytest.mark.asyncio
    async def test_unknown_channel_test(self, client):
        response = await client.post("/monitoring/alerts/channels/pager/test")

        assert response.status_code == 404


class TestSimulation:
    @pytest.mark.asyncio
    async def test_simulate(self, service, client):
        response = await client.post("/monitoring/simulate/high_memory")

        assert response.status_code == 200
        data = response.json()
        assert data["dispatched"] is True
        assert data["alert"]["severity"] == "critical"
        assert data["record"]["status"] == "triggered"
        assert len(service.anomalies) == 1

    @pytest.mark.asyncio
    async def test_simulate_during_cooldown(self, client):
        await client.post("/monitoring/simulate/disk_full")

        response = await client.post("/monitoring/simulate/disk_full")

        assert response.json()["dispatched"] is False
        assert response.json()["record"] is None

    @pytest.mark.asyncio
    async def test_unknown_condition(self, client):
        response = await client.post("/monitoring/simulate/meteor_strike")

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Unknown condition: meteor_strike"
        assert "high_memory" in data["available_conditions"]


class TestMiddleware:
    """Test request recording."""

    @pytest.mark.asyncio
    async def test_requests_are_recorded(self, service, client):
        await client.get("/monitoring/live")
        await client.get("/does-not-exist")

        assert service.recorder.total_requests == 2
        assert service.recorder.error_count == 1
        assert service.recorder.paths() == ["/monitoring/live", "/does-not-exist"]

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        generated = await client.get("/monitoring/live")
        echoed = await client.get("/monitoring/live", headers={"X-Request-ID": "req-42"})

        assert generated.headers["X-Request-ID"]
        assert echoed.headers["X-Request-ID"] == "req-42"

    @pytest.mark.asyncio
    async def test_completion_log_carries_request_id(self, client):
        bound = []
        with patch("eventwatch.api.middleware.monitoring.logger") as mock_logger:
            mock_logger.info.side_effect = lambda *args, **kwargs: bound.append(
                structlog.contextvars.get_contextvars()
            )
            await client.get("/monitoring/live", headers={"X-Request-ID": "req-7"})

        assert bound == [{"request_id": "req-7"}]
        assert structlog.contextvars.get_contextvars() == {}

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert "Eventwatch v1.0.0" in response.json()["message"]
