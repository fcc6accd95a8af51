"""Tests for alert severity, status-change alerts and the alert service."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from covenant_guardian.modules.alerts.schemas import Alert, StatusChangeEvent
from covenant_guardian.modules.alerts.service import (
    AlertService,
    build_status_change_alert,
    determine_severity,
    escalate_severity,
    summarize_alerts,
)
from covenant_guardian.modules.covenant_health.schemas import Covenant, CovenantHealth


def _event(previous: str, new: str, current: float = 3.4, threshold: float = 3.5) -> StatusChangeEvent:
    return StatusChangeEvent(
        covenant_id="cov_1",
        contract_id="con_1",
        previous_status=previous,
        new_status=new,
        current_value=current,
        threshold_value=threshold,
        covenant_name="Maximum Leverage",
        metric_name="debt_to_ebitda",
    )


class TestSeverity:
    def test_breach_is_critical(self):
        assert determine_severity("breached", 4.0, 3.5) == "critical"

    @pytest.mark.parametrize(
        "current,expected",
        [(3.4, "high"), (3.1, "medium"), (2.0, "low")],
    )
    def test_warning_scales_with_distance(self, current, expected):
        assert determine_severity("warning", current, 3.5) == expected

    def test_zero_threshold_is_high(self):
        assert determine_severity("warning", 0.1, 0.0) == "high"

    def test_escalation_steps_up_and_saturates(self):
        assert escalate_severity("low") == "medium"
        assert escalate_severity("high") == "critical"
        assert escalate_severity("critical") == "critical"


class TestStatusChangeAlert:
    def test_compliant_to_warning(self):
        alert = build_status_change_alert(_event("compliant", "warning"))
        assert alert.alert_type == "warning"
        assert alert.severity == "high"
        assert alert.title == "Covenant WARNING: Maximum Leverage"
        assert "Current value: 3.40, Threshold: 3.50" in alert.description

    def test_compliant_to_breached(self):
        alert = build_status_change_alert(_event("compliant", "breached", current=3.8))
        assert alert.alert_type == "breach"
        assert alert.severity == "critical"

    def test_warning_to_breached(self):
        alert = build_status_change_alert(_event("warning", "breached", current=3.8))
        assert alert.severity == "critical"
        assert alert.title.startswith("Covenant BREACH")

    @pytest.mark.parametrize(
        "previous,new",
        [("breached", "warning"), ("warning", "compliant"), ("breached", "compliant"), ("warning", "warning")],
    )
    def test_improvements_do_not_alert(self, previous, new):
        assert build_status_change_alert(_event(previous, new)) is None


def test_summarize_alerts():
    alerts = [
        Alert(id=1, status="new", severity="critical"),
        Alert(id=2, status="acknowledged", severity="high"),
        Alert(id=3, status="new", severity="high"),
    ]
    stats = summarize_alerts(alerts)
    assert stats.total == 3
    assert stats.new == 2
    assert stats.by_severity["high"] == 2
    assert stats.by_severity["low"] == 0


@pytest.mark.anyio
class TestAlertService:
    async def test_escalate_raises_severity(self, backend, backend_stub):
        backend_stub.add("GET", "/alerts/5", {"id": 5, "severity": "medium", "status": "new"})
        backend_stub.add("PUT", "/alerts/5", {"id": 5})

        result = await AlertService(backend).escalate_alert(5, "No response from analyst")

        assert result.previous_severity == "medium"
        assert result.new_severity == "high"
        assert backend_stub.json_body("PUT", "/alerts/5") == {"severity": "high", "status": "escalated"}

    async def test_paginated_alert_list(self, backend, backend_stub):
        backend_stub.add(
            "GET",
            "/alerts",
            {
                "success": True,
                "data": [{"id": 1, "status": "new", "severity": "high"}],
                "pagination": {"page": 1, "limit": 20, "total": 1, "totalPages": 1},
            },
        )

        alerts = await AlertService(backend).list_alerts()

        assert [a.id for a in alerts] == [1]

    async def test_missing_alert_is_lookup_error(self, backend):
        with pytest.raises(LookupError):
            await AlertService(backend).get_alert(404)

    async def test_acknowledge_sends_user(self, backend, backend_stub):
        backend_stub.add("POST", "/alerts/5/acknowledge", {"id": 5, "status": "acknowledged"})

        alert = await AlertService(backend).acknowledge_alert(5, "user_analyst", "Called borrower")

        assert alert.status == "acknowledged"
        assert backend_stub.json_body("POST", "/alerts/5/acknowledge") == {
            "acknowledged_by": "user_analyst",
            "resolution_notes": "Called borrower",
        }

    async def test_escalation_due_uses_trigger_time(self, backend, backend_stub):
        now = datetime(2024, 12, 31, 12, 0, tzinfo=timezone.utc)
        backend_stub.add(
            "GET",
            "/alerts",
            [
                {"id": 1, "status": "new", "triggered_at": (now - timedelta(minutes=90)).isoformat()},
                {"id": 2, "status": "new", "triggered_at": (now - timedelta(minutes=10)).isoformat()},
                {"id": 3, "status": "new"},
            ],
        )

        due = await AlertService(backend).get_alerts_for_escalation(60, now=now)

        assert [a.id for a in due] == [1]
        assert backend_stub.calls("GET", "/alerts")[0].url.params["status"] == "new"

    async def test_health_update_creates_alert_on_deterioration(self, backend, backend_stub):
        backend_stub.add("POST", "/alerts", lambda request: {"id": 77, **json.loads(request.content)})
        covenant = Covenant(
            id="cov_1",
            contract_id="con_1",
            covenant_name="Maximum Leverage",
            metric_name="debt_to_ebitda",
            operator="<=",
            threshold_value=3.5,
        )

        alert = await AlertService(backend).process_covenant_health_update(
            covenant,
            CovenantHealth(covenant_id="cov_1", status="compliant"),
            CovenantHealth(covenant_id="cov_1", status="breached", last_reported_value=3.9),
        )

        assert alert.id == 77
        assert alert.severity == "critical"
        assert backend_stub.json_body("POST", "/alerts")["trigger_metric_value"] == 3.9

    async def test_unchanged_status_creates_nothing(self, backend, backend_stub):
        covenant = Covenant(id="cov_1", covenant_name="Maximum Leverage", threshold_value=3.5)
        health = CovenantHealth(covenant_id="cov_1", status="warning")

        assert await AlertService(backend).process_covenant_health_update(covenant, health, health) is None
        assert backend_stub.calls("POST", "/alerts") == []
