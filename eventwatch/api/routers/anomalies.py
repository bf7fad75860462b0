"""Anomaly triage API endpoints."""

from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Query, Response, status

from ...constants import CONSTANTS
from ...core.exceptions import AnomalyNotFoundError
from ...monitoring.anomalies import (
    AnomalyFilters,
    AnomalyStatus,
    RemediationCategory,
    RemediationPriority,
)
from ...monitoring.models import AlertSeverity
from ..dependencies import Anomalies
from ..schemas import AnomalyCreate, AnomalyListResponse, AnomalyStatusUpdate, RemediationCreate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix=CONSTANTS.ANOMALIES_PREFIX, tags=["Anomalies"])

DEFAULT_OPERATOR = "admin"


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def _not_found(error: AnomalyNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))


def _parse_enum(enum_cls, values: list[str] | None, field_name: str) -> list | None:
    if not values:
        return None
    try:
        return [enum_cls(value) for value in values]
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise _bad_request(f"Invalid {field_name}; expected one of: {allowed}") from e


def _build_filters(
    status_filter: list[str] | None,
    severity: list[str] | None,
    service: list[str] | None,
    start: datetime | None,
    end: datetime | None,
    limit: int | None,
    offset: int,
) -> AnomalyFilters:
    return AnomalyFilters(
        status=_parse_enum(AnomalyStatus, status_filter, "status"),
        severity=_parse_enum(AlertSeverity, severity, "severity"),
        service=service or None,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )


@router.get("", response_model=AnomalyListResponse)
async def list_anomalies(
    anomalies: Anomalies,
    status_filter: list[str] | None = Query(default=None, alias="status"),
    severity: list[str] | None = Query(default=None),
    service: list[str] | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
) -> AnomalyListResponse:
    """List anomalies, newest first.

    Args:
        status_filter: Statuses to include (repeatable)
        severity: Severities to include (repeatable)
        service: Services to include (repeatable)
        start: Earliest detection time
        end: Latest detection time
        limit: Page size
        offset: Page offset
    """
    filters = _build_filters(status_filter, severity, service, start, end, limit, offset)
    page, total = anomalies.list_anomalies(filters)
    return AnomalyListResponse(
        anomalies=[anomaly.to_dict() for anomaly in page],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats")
async def anomaly_stats(anomalies: Anomalies) -> dict[str, Any]:
    return anomalies.get_stats()


@router.get("/export/csv")
async def export_anomalies(
    anomalies: Anomalies,
    status_filter: list[str] | None = Query(default=None, alias="status"),
    severity: list[str] | None = Query(default=None),
    service: list[str] | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
) -> Response:
    """Matching anomalies as a CSV download."""
    filters = _build_filters(status_filter, severity, service, start, end, None, 0)
    return Response(
        content=anomalies.export_csv(filters),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="anomalies.csv"'},
    )


@router.get("/{anomaly_id}")
async def get_anomaly(anomaly_id: str, anomalies: Anomalies) -> dict[str, Any]:
    try:
        return anomalies.get(anomaly_id).to_dict()
    except AnomalyNotFoundError as e:
        raise _not_found(e) from e


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_anomaly(payload: AnomalyCreate, anomalies: Anomalies) -> dict[str, Any]:
    """File a manual anomaly.

    Raises:
        HTTPException: 400 if a required field is missing or the severity is invalid
    """
    if not (payload.title and payload.description and payload.severity and payload.service):
        raise _bad_request("Fields title, description, severity and service are required")

    try:
        severity = AlertSeverity(payload.severity)
    except ValueError as e:
        raise _bad_request("Severity must be 'critical', 'warning' or 'info'") from e

    anomaly = anomalies.file_manual(
        title=payload.title,
        description=payload.description,
        severity=severity,
        service=payload.service,
        reporter=payload.reporter or DEFAULT_OPERATOR,
        component=payload.component,
        tags=payload.tags,
        metadata=payload.metadata,
    )
    return anomaly.to_dict()


@router.patch("/{anomaly_id}/status")
async def update_anomaly_status(
    anomaly_id: str, payload: AnomalyStatusUpdate, anomalies: Anomalies
) -> dict[str, Any]:
    try:
        new_status = AnomalyStatus(payload.status)
    except ValueError as e:
        raise _bad_request(
            "Status must be 'detected', 'investigating', 'resolved' or 'closed'"
        ) from e

    try:
        anomaly = anomalies.update_status(
            anomaly_id, new_status, payload.updated_by or DEFAULT_OPERATOR, payload.notes
        )
    except AnomalyNotFoundError as e:
        raise _not_found(e) from e
    return anomaly.to_dict()


@router.post("/{anomaly_id}/remediations", status_code=status.HTTP_201_CREATED)
async def apply_remediation(
    anomaly_id: str, payload: RemediationCreate, anomalies: Anomalies
) -> dict[str, Any]:
    if not (payload.action and payload.description):
        raise _bad_request("Fields action and description are required")

    try:
        priority = RemediationPriority(payload.priority)
        category = RemediationCategory(payload.category)
    except ValueError as e:
        raise _bad_request("Invalid priority or category") from e

    try:
        remediation = anomalies.apply_remediation(
            anomaly_id,
            action=payload.action,
            description=payload.description,
            applied_by=payload.applied_by or DEFAULT_OPERATOR,
            priority=priority,
            category=category,
            estimated_effort=payload.estimated_effort or "unknown",
            rollback_plan=payload.rollback_plan,
        )
    except AnomalyNotFoundError as e:
        raise _not_found(e) from e
    return remediation.to_dict()
