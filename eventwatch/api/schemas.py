"""Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AlertsResponse(BaseModel):
    """Currently breached thresholds, grouped by severity."""

    alerts_count: int
    critical: int
    warning: int
    info: int
    alerts: list[dict[str, Any]]
    timestamp: datetime


class AlertHistoryResponse(BaseModel):
    """Dispatched alerts, oldest first."""

    count: int
    alerts: list[dict[str, Any]]


class LivenessResponse(BaseModel):
    status: str = "alive"
    uptime: int
    pid: int
    timestamp: datetime


class ReadinessResponse(BaseModel):
    status: str
    timestamp: datetime
    services: dict[str, str]


class InfoResponse(BaseModel):
    name: str
    version: str
    environment: str
    python_version: str
    platform: str
    architecture: str
    started_at: datetime
    uptime_seconds: int
    pid: int


class SimulationResponse(BaseModel):
    """Outcome of a simulated alert condition."""

    message: str
    condition: str
    alert: dict[str, Any]
    dispatched: bool
    record: dict[str, Any] | None = None


class ChannelTestResponse(BaseModel):
    channel: str
    delivered: bool
    error: str | None = None


# Anomaly schemas. Fields are optional so that missing values are reported
# as 400 responses by the handlers.
class AnomalyCreate(BaseModel):
    """Schema for filing a manual anomaly."""

    title: str | None = None
    description: str | None = None
    severity: str | None = None
    service: str | None = None
    component: str | None = None
    reporter: str | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class AnomalyStatusUpdate(BaseModel):
    status: str | None = None
    notes: str | None = None
    updated_by: str | None = None


class RemediationCreate(BaseModel):
    """Schema for applying a corrective action to an anomaly."""

    action: str | None = None
    description: str | None = None
    priority: str = "medium"
    category: str = "other"
    estimated_effort: str | None = None
    rollback_plan: str | None = None
    applied_by: str | None = None


class AnomalyListResponse(BaseModel):
    anomalies: list[dict[str, Any]]
    total: int
    limit: int
    offset: int
