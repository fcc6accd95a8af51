"""Alerts API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from covenant_guardian.auth.dependencies import get_backend, require_permission
from covenant_guardian.auth.schemas import AuthUser
from covenant_guardian.modules.alerts.schemas import (
    Alert,
    AlertEscalateRequest,
    AlertEscalationResult,
    AlertFilters,
    AlertNoteRequest,
    AlertSeverity,
    AlertStats,
    AlertStatus,
    AlertType,
)
from covenant_guardian.modules.alerts.service import AlertService
from covenant_guardian.services.backend import BackendClient

router = APIRouter(prefix="/alerts", tags=["Alerts"])


@router.get("", response_model=list[Alert])
async def list_alerts(
    status: AlertStatus | None = None,
    severity: AlertSeverity | None = None,
    alert_type: AlertType | None = None,
    covenant_id: str | None = None,
    contract_id: str | None = None,
    page: int | None = Query(None, ge=1),
    limit: int | None = Query(None, ge=1, le=100),
    current_user: AuthUser = Depends(require_permission("read", "alerts")),
    backend: BackendClient = Depends(get_backend),
):
    filters = AlertFilters(
        status=status,
        severity=severity,
        alert_type=alert_type,
        covenant_id=covenant_id,
        contract_id=contract_id,
        page=page,
        limit=limit,
    )
    return await AlertService(backend).list_alerts(filters)


@router.get("/stats", response_model=AlertStats)
async def alert_stats(
    current_user: AuthUser = Depends(require_permission("read", "alerts")),
    backend: BackendClient = Depends(get_backend),
):
    return await AlertService(backend).get_alert_stats()


@router.get("/escalation-due", response_model=list[Alert])
async def alerts_due_for_escalation(
    threshold_minutes: int = Query(60, ge=1),
    current_user: AuthUser = Depends(require_permission("read", "alerts")),
    backend: BackendClient = Depends(get_backend),
):
    """New alerts nobody has acknowledged within ``threshold_minutes``."""
    return await AlertService(backend).get_alerts_for_escalation(threshold_minutes)


@router.get("/{alert_id}", response_model=Alert)
async def get_alert(
    alert_id: str,
    current_user: AuthUser = Depends(require_permission("read", "alerts")),
    backend: BackendClient = Depends(get_backend),
):
    try:
        return await AlertService(backend).get_alert(alert_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("/{alert_id}/acknowledge", response_model=Alert)
async def acknowledge_alert(
    alert_id: str,
    body: AlertNoteRequest,
    current_user: AuthUser = Depends(require_permission("acknowledge", "alerts")),
    backend: BackendClient = Depends(get_backend),
):
    return await AlertService(backend).acknowledge_alert(alert_id, current_user.id, body.resolution_notes)


@router.post("/{alert_id}/resolve", response_model=Alert)
async def resolve_alert(
    alert_id: str,
    body: AlertNoteRequest,
    current_user: AuthUser = Depends(require_permission("resolve", "alerts")),
    backend: BackendClient = Depends(get_backend),
):
    return await AlertService(backend).resolve_alert(alert_id, body.resolution_notes)


@router.post("/{alert_id}/escalate", response_model=AlertEscalationResult)
async def escalate_alert(
    alert_id: str,
    body: AlertEscalateRequest,
    current_user: AuthUser = Depends(require_permission("acknowledge", "alerts")),
    backend: BackendClient = Depends(get_backend),
):
    try:
        return await AlertService(backend).escalate_alert(alert_id, body.reason)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
