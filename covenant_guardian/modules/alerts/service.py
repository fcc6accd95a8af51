"""Alert generation, acknowledgement and escalation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from covenant_guardian.core.errors import BackendAPIError
from covenant_guardian.modules.alerts.schemas import (
    SEVERITY_LEVELS,
    Alert,
    AlertCreateInput,
    AlertEscalationResult,
    AlertFilters,
    AlertSeverity,
    AlertStats,
    StatusChangeEvent,
)
from covenant_guardian.modules.covenant_health.schemas import Covenant, CovenantHealth
from covenant_guardian.services.backend import BackendClient, page_items

logger = structlog.get_logger()

HIGH_SEVERITY_BUFFER_PCT = 5.0
MEDIUM_SEVERITY_BUFFER_PCT = 15.0


# ── Pure helpers ──────────────────────────────────────────────────────────────


def determine_severity(status: str, current_value: float, threshold_value: float) -> AlertSeverity:
    """Breaches are critical; warnings scale with how close the value is to the threshold."""
    if status == "breached":
        return "critical"
    if threshold_value == 0:
        return "high"

    distance_pct = abs((current_value - threshold_value) / threshold_value) * 100
    if distance_pct <= HIGH_SEVERITY_BUFFER_PCT:
        return "high"
    if distance_pct <= MEDIUM_SEVERITY_BUFFER_PCT:
        return "medium"
    return "low"


def escalate_severity(severity: str) -> AlertSeverity:
    index = SEVERITY_LEVELS.index(severity) if severity in SEVERITY_LEVELS else 0
    return SEVERITY_LEVELS[min(index + 1, len(SEVERITY_LEVELS) - 1)]  # type: ignore[return-value]


def build_status_change_alert(event: StatusChangeEvent) -> AlertCreateInput | None:
    """Alert for compliant -> warning/breached and warning -> breached; None otherwise."""
    if event.previous_status == "compliant" and event.new_status in ("warning", "breached"):
        alert_type = "breach" if event.new_status == "breached" else "warning"
        severity = determine_severity(event.new_status, event.current_value, event.threshold_value)
    elif event.previous_status == "warning" and event.new_status == "breached":
        alert_type = "breach"
        severity = "critical"
    else:
        return None

    status_text = "BREACH" if event.new_status == "breached" else "WARNING"
    return AlertCreateInput(
        covenant_id=event.covenant_id,
        contract_id=event.contract_id,
        alert_type=alert_type,
        severity=severity,
        title=f"Covenant {status_text}: {event.covenant_name}",
        description=(
            f"{event.covenant_name} ({event.metric_name}) has moved from "
            f"{event.previous_status} to {event.new_status}. "
            f"Current value: {event.current_value:.2f}, Threshold: {event.threshold_value:.2f}."
        ),
        trigger_metric_value=event.current_value,
        threshold_value=event.threshold_value,
    )


def summarize_alerts(alerts: list[Alert]) -> AlertStats:
    return AlertStats(
        total=len(alerts),
        new=sum(1 for a in alerts if a.status == "new"),
        acknowledged=sum(1 for a in alerts if a.status == "acknowledged"),
        escalated=sum(1 for a in alerts if a.status == "escalated"),
        resolved=sum(1 for a in alerts if a.status == "resolved"),
        by_severity={level: sum(1 for a in alerts if a.severity == level) for level in SEVERITY_LEVELS},
    )


# ── Service ───────────────────────────────────────────────────────────────────


class AlertService:
    def __init__(self, backend: BackendClient) -> None:
        self.backend = backend

    async def list_alerts(self, filters: AlertFilters | None = None) -> list[Alert]:
        params = filters.model_dump(exclude_none=True) if filters else None
        items, _ = page_items(await self.backend.get_page("/alerts", params=params))
        return [Alert.model_validate(item) for item in items]

    async def get_alert(self, alert_id: int | str) -> Alert:
        try:
            data = await self.backend.get(f"/alerts/{alert_id}")
        except BackendAPIError as exc:
            if exc.status_code == 404:
                raise LookupError(f"Alert {alert_id} not found") from exc
            raise
        if not data:
            raise LookupError(f"Alert {alert_id} not found")
        return Alert.model_validate(data)

    async def create_alert(self, body: AlertCreateInput) -> Alert:
        data = await self.backend.post("/alerts", json=body.model_dump(exclude_none=True))
        alert = Alert.model_validate(data)
        logger.info(
            "alert_created",
            alert_id=str(alert.id),
            covenant_id=str(body.covenant_id),
            severity=body.severity,
            alert_type=body.alert_type,
        )
        return alert

    async def acknowledge_alert(
        self,
        alert_id: int | str,
        user_id: int | str,
        resolution_notes: str | None = None,
    ) -> Alert:
        data = await self.backend.post(
            f"/alerts/{alert_id}/acknowledge",
            json={"acknowledged_by": user_id, "resolution_notes": resolution_notes},
        )
        return Alert.model_validate(data)

    async def resolve_alert(self, alert_id: int | str, resolution_notes: str | None = None) -> Alert:
        data = await self.backend.post(
            f"/alerts/{alert_id}/resolve",
            json={"resolution_notes": resolution_notes},
        )
        return Alert.model_validate(data)

    async def escalate_alert(self, alert_id: int | str, reason: str) -> AlertEscalationResult:
        alert = await self.get_alert(alert_id)
        new_severity = escalate_severity(alert.severity)

        await self.backend.put(
            f"/alerts/{alert_id}",
            json={"severity": new_severity, "status": "escalated"},
        )
        logger.info(
            "alert_escalated",
            alert_id=str(alert_id),
            previous_severity=alert.severity,
            new_severity=new_severity,
        )
        return AlertEscalationResult(
            alert_id=alert_id,
            previous_severity=alert.severity,
            new_severity=new_severity,
            escalated_at=datetime.now(timezone.utc),
            reason=reason,
        )

    async def get_alerts_for_escalation(
        self,
        threshold_minutes: int = 60,
        now: datetime | None = None,
    ) -> list[Alert]:
        """Unacknowledged alerts triggered at least ``threshold_minutes`` ago."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=threshold_minutes)
        alerts = await self.list_alerts(AlertFilters(status="new"))

        due: list[Alert] = []
        for alert in alerts:
            triggered = alert.triggered_at or alert.created_at
            if triggered is None:
                continue
            if triggered.tzinfo is None:
                triggered = triggered.replace(tzinfo=timezone.utc)
            if triggered <= cutoff:
                due.append(alert)
        return due

    async def generate_alert_from_status_change(self, event: StatusChangeEvent) -> Alert | None:
        body = build_status_change_alert(event)
        if body is None:
            return None
        return await self.create_alert(body)

    async def process_covenant_health_update(
        self,
        covenant: Covenant,
        previous: CovenantHealth | None,
        current: CovenantHealth,
    ) -> Alert | None:
        previous_status = previous.status if previous else "compliant"
        if previous_status == current.status:
            return None

        return await self.generate_alert_from_status_change(
            StatusChangeEvent(
                covenant_id=covenant.id,
                contract_id=covenant.contract_id,
                previous_status=previous_status,
                new_status=current.status,
                current_value=current.last_reported_value or 0.0,
                threshold_value=covenant.threshold_value or 0.0,
                covenant_name=covenant.covenant_name,
                metric_name=covenant.metric_name or "unknown",
            )
        )

    async def get_alert_stats(self) -> AlertStats:
        return summarize_alerts(await self.list_alerts())
