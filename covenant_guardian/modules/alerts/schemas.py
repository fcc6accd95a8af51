"""Alert schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

from covenant_guardian.modules.covenant_health.schemas import HealthStatus

AlertType = Literal["warning", "critical", "breach", "reporting_due"]
AlertSeverity = Literal["low", "medium", "high", "critical"]
AlertStatus = Literal["new", "acknowledged", "resolved", "escalated"]

SEVERITY_LEVELS: tuple[str, ...] = ("low", "medium", "high", "critical")


class Alert(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    covenant_id: int | str | None = None
    contract_id: int | str | None = None
    bank_id: int | str | None = None
    alert_type: AlertType = "warning"
    severity: AlertSeverity = "medium"
    title: str = ""
    description: str = ""
    trigger_metric_value: float | None = None
    threshold_value: float | None = None
    status: AlertStatus = "new"
    acknowledged_at: datetime | None = None
    acknowledged_by: int | str | None = None
    resolution_notes: str | None = None
    triggered_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AlertCreateInput(BaseModel):
    covenant_id: int | str
    contract_id: int | str | None = None
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    trigger_metric_value: float | None = None
    threshold_value: float | None = None


class AlertFilters(BaseModel):
    status: AlertStatus | None = None
    severity: AlertSeverity | None = None
    alert_type: AlertType | None = None
    covenant_id: int | str | None = None
    contract_id: int | str | None = None
    page: int | None = None
    limit: int | None = None


class StatusChangeEvent(BaseModel):
    covenant_id: int | str
    contract_id: int | str | None = None
    previous_status: HealthStatus
    new_status: HealthStatus
    current_value: float
    threshold_value: float
    covenant_name: str
    metric_name: str = "unknown"


class AlertEscalationResult(BaseModel):
    alert_id: int | str
    previous_severity: AlertSeverity
    new_severity: AlertSeverity
    escalated_at: datetime
    reason: str


class AlertStats(BaseModel):
    total: int = 0
    new: int = 0
    acknowledged: int = 0
    escalated: int = 0
    resolved: int = 0
    by_severity: dict[str, int] = {}


class AlertNoteRequest(BaseModel):
    resolution_notes: str | None = None


class AlertEscalateRequest(BaseModel):
    reason: str = "Manual escalation"
