"""Health check and monitoring API endpoints."""

import platform
import sys
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from ...constants import CONSTANTS
from ...core.exceptions import (
    AlertNotFoundError,
    AlertStateError,
    NotificationError,
    UnknownConditionError,
)
from ...monitoring.models import AlertSeverity, HealthStatus
from ..dependencies import Monitoring
from ..schemas import (
    AlertHistoryResponse,
    AlertsResponse,
    ChannelTestResponse,
    InfoResponse,
    LivenessResponse,
    ReadinessResponse,
    SimulationResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix=CONSTANTS.MONITORING_PREFIX, tags=["Health & Monitoring"])

ENDPOINTS = {
    "health": f"{CONSTANTS.MONITORING_PREFIX}/health",
    "detailed": f"{CONSTANTS.MONITORING_PREFIX}/health/detailed",
    "metrics": f"{CONSTANTS.MONITORING_PREFIX}/metrics",
    "alerts": f"{CONSTANTS.MONITORING_PREFIX}/alerts",
    "ready": f"{CONSTANTS.MONITORING_PREFIX}/ready",
    "live": f"{CONSTANTS.MONITORING_PREFIX}/live",
}


def _unhealthy_response(error: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": HealthStatus.UNHEALTHY.value,
            "error": CONSTANTS.ERROR_HEALTH_CHECK_FAILED,
            "detail": str(error),
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


@router.get("/health")
async def health_check(monitoring: Monitoring) -> JSONResponse:
    """Aggregated health of all dependencies.

    Returns:
        The health snapshot, with status 503 when the system is unhealthy
    """
    try:
        snapshot = await monitoring.get_health_snapshot()
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return _unhealthy_response(e)

    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if snapshot.status == HealthStatus.UNHEALTHY
        else status.HTTP_200_OK
    )
    return JSONResponse(status_code=status_code, content=snapshot.to_dict())


@router.get("/health/detailed")
async def detailed_health_check(monitoring: Monitoring) -> JSONResponse:
    """Health snapshot with runtime details and the list of monitoring endpoints."""
    try:
        snapshot = await monitoring.get_health_snapshot()
    except Exception as e:
        logger.error("Detailed health check failed", error=str(e))
        return _unhealthy_response(e)

    memory = monitoring.collector.memory_usage()
    content: dict[str, Any] = snapshot.to_dict()
    content["system"] = {
        "python_version": sys.version.split()[0],
        "platform": platform.system().lower(),
        "architecture": platform.machine(),
        "pid": monitoring.collector.pid,
        "environment": CONSTANTS.ENVIRONMENT,
        "memory_rss_bytes": memory.used,
        "uptime_seconds": int(monitoring.collector.uptime_seconds()),
    }
    content["endpoints"] = ENDPOINTS

    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if snapshot.status == HealthStatus.UNHEALTHY
        else status.HTTP_200_OK
    )
    return JSONResponse(status_code=status_code, content=content)


@router.get("/metrics")
async def prometheus_metrics(monitoring: Monitoring) -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus text exposition format
    """
    try:
        data = await monitoring.render_metrics()
    except Exception as e:
        logger.error("Failed to export Prometheus metrics", error=str(e))
        return Response(
            content=CONSTANTS.ERROR_METRICS_BODY,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            media_type=CONSTANTS.PROMETHEUS_CONTENT_TYPE,
        )

    return Response(content=data, media_type=CONSTANTS.PROMETHEUS_CONTENT_TYPE)


@router.get("/alerts", response_model=AlertsResponse)
async def current_alerts(monitoring: Monitoring) -> AlertsResponse:
    """Thresholds breached right now, without dispatching anything."""
    events = await monitoring.check_thresholds()
    counts = {severity: 0 for severity in AlertSeverity}
    for event in events:
        counts[event.severity] += 1

    return AlertsResponse(
        alerts_count=len(events),
        critical=counts[AlertSeverity.CRITICAL],
        warning=counts[AlertSeverity.WARNING],
        info=counts[AlertSeverity.INFO],
        alerts=[event.to_dict() for event in events],
        timestamp=datetime.now(UTC),
    )


@router.get("/alerts/history", response_model=AlertHistoryResponse)
async def alert_history(
    monitoring: Monitoring,
    limit: int = Query(default=100, ge=1, le=CONSTANTS.ALERT_HISTORY_LIMIT),
) -> AlertHistoryResponse:
    records = monitoring.dispatcher.get_history(limit)
    return AlertHistoryResponse(count=len(records), alerts=[record.to_dict() for record in records])


def _change_alert_status(monitoring: Monitoring, alert_id: str, action: str) -> dict[str, Any]:
    operation = getattr(monitoring.dispatcher, action)
    try:
        return operation(alert_id).to_dict()
    except AlertNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except AlertStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.post("/alerts/history/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: str, monitoring: Monitoring) -> dict[str, Any]:
    return _change_alert_status(monitoring, alert_id, "acknowledge")


@router.post("/alerts/history/{alert_id}/resolve")
async def resolve_alert(alert_id: str, monitoring: Monitoring) -> dict[str, Any]:
    return _change_alert_status(monitoring, alert_id, "resolve")


@router.post("/alerts/history/{alert_id}/close")
async def close_alert(alert_id: str, monitoring: Monitoring) -> dict[str, Any]:
    return _change_alert_status(monitoring, alert_id, "close")


@router.get("/alerts/channels")
async def alert_channels(monitoring: Monitoring) -> dict[str, Any]:
    return {"channels": monitoring.dispatcher.get_channels()}


@router.post("/alerts/channels/{channel_id}/test", response_model=ChannelTestResponse)
async def test_alert_channel(channel_id: str, monitoring: Monitoring) -> ChannelTestResponse:
    """Send a test notification through one channel."""
    try:
        result = await monitoring.dispatcher.test_channel(channel_id)
    except NotificationError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return ChannelTestResponse(**result)


@router.get("/ready")
async def readiness_check(monitoring: Monitoring) -> JSONResponse:
    """Readiness check for container orchestration.

    Ready when neither the database nor the application is unhealthy.
    """
    try:
        snapshot = await monitoring.get_health_snapshot()
    except Exception as e:
        logger.error("Readiness check failed", error=str(e))
        return _unhealthy_response(e)

    services = {name: health.status.value for name, health in snapshot.services.items()}
    ready = all(
        snapshot.services[name].status != HealthStatus.UNHEALTHY
        for name in ("database", "application")
        if name in snapshot.services
    )

    body = ReadinessResponse(
        status="ready" if ready else "not_ready",
        timestamp=datetime.now(UTC),
        services=services,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(mode="json"),
    )


@router.get("/live", response_model=LivenessResponse)
async def liveness_check(monitoring: Monitoring) -> LivenessResponse:
    """Simple liveness check for container orchestration."""
    return LivenessResponse(
        uptime=int(monitoring.collector.uptime_seconds()),
        pid=monitoring.collector.pid,
        timestamp=datetime.now(UTC),
    )


@router.get("/info", response_model=InfoResponse)
async def service_info(monitoring: Monitoring) -> InfoResponse:
    return InfoResponse(**monitoring.info())


@router.post("/simulate/{condition}", response_model=SimulationResponse)
async def simulate_condition(condition: str, monitoring: Monitoring):
    """Dispatch a canned alert to exercise the notification path."""
    try:
        alert, record = await monitoring.simulate_condition(condition)
    except UnknownConditionError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": str(e), "available_conditions": e.available},
        )

    return SimulationResponse(
        message=f"Simulated condition '{condition}'",
        condition=condition,
        alert=alert.to_dict(),
        dispatched=record is not None,
        record=record.to_dict() if record else None,
    )
