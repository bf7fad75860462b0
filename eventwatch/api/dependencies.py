"""FastAPI dependencies exposing the monitoring service to route handlers."""

from typing import Annotated

from fastapi import Depends, Request

from ..monitoring.anomalies import AnomalyRegistry
from ..monitoring.service import MonitoringService


def get_monitoring(request: Request) -> MonitoringService:
    """Dependency to get the monitoring service.

    Returns:
        MonitoringService stored on the application state
    """
    return request.app.state.monitoring


def get_anomalies(request: Request) -> AnomalyRegistry:
    return request.app.state.monitoring.anomalies


Monitoring = Annotated[MonitoringService, Depends(get_monitoring)]
Anomalies = Annotated[AnomalyRegistry, Depends(get_anomalies)]
