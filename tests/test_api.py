"""HTTP-level tests: routing, auth guards, tenant isolation and error mapping."""

import pytest

from tests.conftest import ADMIN_USER, BANK_ID, OTHER_BANK_ID

pytestmark = pytest.mark.anyio


class TestHealth:
    async def test_healthy_backend(self, client, backend_stub):
        backend_stub.add("GET", "/health", {"status": "ok"})

        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["gemini"]["status"] == "disabled"
        assert body["checks"]["extraction_queue"]["total"] == 0
        assert response.headers["X-API-Version"] == "v1"

    async def test_unreachable_backend_is_degraded(self, client):
        response = await client.get("/health")

        assert response.json()["status"] == "degraded"


class TestStatelessEndpoints:
    async def test_evaluate_needs_no_auth(self, client):
        response = await client.post(
            "/v1/covenant-health/evaluate",
            json={"operator": "<=", "threshold_value": 3.5, "current_value": 4.0},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "breached"
        assert body["data_sufficient"] is True

    async def test_evaluate_without_threshold(self, client):
        response = await client.post("/v1/covenant-health/evaluate", json={"operator": ">=", "current_value": 1.2})

        assert response.json()["data_sufficient"] is False

    async def test_ratios(self, client):
        response = await client.post("/v1/covenant-health/ratios", json={"debt_total": 300, "ebitda": 100})

        assert response.status_code == 200
        assert response.json()["ratios"]["debt_to_ebitda"] == pytest.approx(3.0)


class TestAuthGuards:
    async def test_anonymous_request_is_rejected(self, client):
        response = await client.get("/v1/alerts")

        assert response.status_code == 401
        assert response.json()["error"] == "http_401"

    async def test_process_session_does_not_authenticate_requests(self, client, logged_in_session, backend_stub):
        backend_stub.add("GET", "/users", [ADMIN_USER.model_dump(mode="json")])

        me = await client.get("/v1/auth/me")
        users = await client.get("/v1/users")

        assert me.status_code == 401
        assert users.status_code == 401
        assert backend_stub.requests == []

    async def test_process_session_token_is_never_forwarded(self, client, logged_in_session, backend_stub):
        backend_stub.add("POST", "/auth/logout", None, status_code=204)

        await client.post("/v1/auth/logout")

        assert all("session-token" not in r.headers.get("Authorization", "") for r in backend_stub.requests)
        assert logged_in_session.auth_token == "session-token"

    async def test_bearer_token_is_verified_by_backend(self, client, backend_stub):
        backend_stub.add("GET", "/auth/me", ADMIN_USER.model_dump(mode="json"))

        response = await client.get(
            "/v1/auth/me",
            headers={"Authorization": "Bearer user-token", "X-Bank-ID": BANK_ID},
        )

        assert response.status_code == 200
        assert backend_stub.calls("GET", "/auth/me")[0].headers["Authorization"] == "Bearer user-token"

    async def test_rejected_token(self, client, backend_stub):
        backend_stub.add("GET", "/auth/me", {"message": "expired"}, status_code=403)

        response = await client.get("/v1/auth/me", headers={"Authorization": "Bearer stale"})

        assert response.status_code == 401

    async def test_cross_tenant_request_is_forbidden(self, client, backend_stub):
        backend_stub.add("GET", "/auth/me", ADMIN_USER.model_dump(mode="json"))

        response = await client.get(
            "/v1/alerts",
            headers={"Authorization": "Bearer user-token", "X-Bank-ID": OTHER_BANK_ID},
        )

        assert response.status_code == 403
        assert backend_stub.calls("GET", "/alerts") == []

    async def test_viewer_cannot_create_contracts(self, client, as_viewer, backend_stub):
        response = await client.post("/v1/contracts", data={"contract_name": "Term Loan A"})

        assert response.status_code == 403
        assert backend_stub.calls("POST", "/contracts") == []

    async def test_viewer_cannot_list_users(self, client, as_viewer):
        response = await client.get("/v1/users")

        assert response.status_code == 403

    async def test_job_cleanup_is_admin_only(self, client, as_analyst):
        response = await client.post("/v1/extraction/cleanup")

        assert response.status_code == 403
        assert "Required: admin" in response.json()["message"]

    async def test_admin_runs_job_cleanup(self, client, as_admin):
        response = await client.post("/v1/extraction/cleanup", params={"max_age_hours": 1})

        assert response.status_code == 200
        assert response.json() == {"removed": 0}

    async def test_permissions_listing(self, client, as_viewer):
        response = await client.get("/v1/auth/permissions")

        assert response.status_code == 200
        assert "create" not in response.json().get("contracts", [])


class TestRoutes:
    async def test_contract_form_validation(self, client, as_analyst, backend_stub):
        response = await client.post("/v1/contracts", data={"contract_name": "Term Loan A"})

        assert response.status_code == 422
        assert "Borrower ID is required" in response.json()["detail"]
        assert backend_stub.calls("POST", "/contracts") == []

    async def test_missing_contract_is_404(self, client, as_viewer):
        response = await client.get("/v1/contracts/999")

        assert response.status_code == 404

    async def test_missing_alert_is_404(self, client, as_viewer):
        response = await client.get("/v1/alerts/9")

        assert response.status_code == 404

    async def test_list_alerts(self, client, as_viewer, backend_stub):
        backend_stub.add("GET", "/alerts", [{"id": 1, "title": "Leverage warning", "severity": "high"}])

        response = await client.get("/v1/alerts", params={"severity": "high"})

        assert response.status_code == 200
        assert [a["title"] for a in response.json()] == ["Leverage warning"]
        assert backend_stub.calls("GET", "/alerts")[0].url.params["severity"] == "high"

    async def test_backend_errors_are_relayed(self, client, as_viewer, backend_stub):
        backend_stub.add(
            "GET",
            "/alerts",
            {"success": False, "error": {"code": "INSUFFICIENT_PERMISSIONS", "message": "no"}},
            status_code=403,
        )

        response = await client.get("/v1/alerts")

        assert response.status_code == 403
        assert response.json()["error"] == "insufficient_permissions"

    async def test_admin_cannot_delete_self(self, client, as_admin, backend_stub):
        response = await client.delete(f"/v1/users/{ADMIN_USER.id}")

        assert response.status_code == 400
        assert backend_stub.calls("DELETE", f"/users/{ADMIN_USER.id}") == []

    async def test_admin_cannot_change_own_role(self, client, as_admin):
        response = await client.put(f"/v1/users/{ADMIN_USER.id}/role", json={"role": "viewer"})

        assert response.status_code == 400

    async def test_admin_deletes_other_user(self, client, as_admin, backend_stub):
        backend_stub.add("DELETE", "/users/user_viewer", None, status_code=204)

        response = await client.delete("/v1/users/user_viewer")

        assert response.status_code == 204

    async def test_notification_defaults_for_any_user(self, client, as_viewer):
        response = await client.get("/v1/users/me/notifications")

        assert response.status_code == 200
        assert response.json()["weekly_summary"] is True

    async def test_aggregate_endpoint(self, client):
        response = await client.post(
            "/v1/adverse-events/aggregate",
            json={
                "events": [
                    {"borrower_id": "b1", "event_type": "litigation", "risk_score": 8, "event_date": "2024-12-28T00:00:00Z"}
                ],
                "as_of": "2024-12-31T00:00:00Z",
            },
        )

        assert response.status_code == 200
        assert response.json()["total_events"] == 1
