"""Tests for user administration, preferences, audit logs and settings."""

import json

import pytest

from covenant_guardian.auth.schemas import UserRole
from covenant_guardian.core.errors import BackendAPIError
from covenant_guardian.modules.users.schemas import (
    AuditLogFilters,
    NotificationPreferencesUpdate,
    SystemSettingsUpdate,
    UserCreateInput,
)
from covenant_guardian.modules.users.service import UserService

pytestmark = pytest.mark.anyio


class TestNotificationPreferences:
    async def test_defaults_when_backend_has_none(self, backend):
        prefs = await UserService(backend).get_notification_preferences()

        assert prefs.email_alerts is True
        assert prefs.alert_severity_threshold == "medium"
        assert prefs.daily_digest is False
        assert prefs.weekly_summary is True

    async def test_defaults_are_not_shared(self, backend):
        first = await UserService(backend).get_notification_preferences()
        first.daily_digest = True

        second = await UserService(backend).get_notification_preferences()

        assert second.daily_digest is False

    async def test_update_sends_only_changed_fields(self, backend, backend_stub):
        backend_stub.add(
            "PUT",
            "/users/me/notifications",
            lambda request: {"daily_digest": True, **json.loads(request.content)},
        )

        prefs = await UserService(backend).update_notification_preferences(
            NotificationPreferencesUpdate(alert_severity_threshold="high")
        )

        assert backend_stub.json_body("PUT", "/users/me/notifications") == {"alert_severity_threshold": "high"}
        assert prefs.alert_severity_threshold == "high"
        assert prefs.daily_digest is True


class TestUsers:
    async def test_create_user(self, backend, backend_stub):
        backend_stub.add("POST", "/users", lambda request: {"id": 7, **json.loads(request.content)})

        user = await UserService(backend).create_user(UserCreateInput(email="new@bank.test", role=UserRole.ANALYST))

        assert user.id == 7
        assert user.role == UserRole.ANALYST
        assert backend_stub.json_body("POST", "/users")["role"] == "analyst"

    async def test_empty_create_response_is_an_error(self, backend, backend_stub):
        backend_stub.add("POST", "/users", {})

        with pytest.raises(BackendAPIError) as exc_info:
            await UserService(backend).create_user(UserCreateInput(email="new@bank.test"))

        assert exc_info.value.status_code == 502

    async def test_missing_user(self, backend):
        with pytest.raises(LookupError):
            await UserService(backend).get_user("ghost")

    async def test_role_update_puts_role_only(self, backend, backend_stub):
        backend_stub.add("PUT", "/users/7", {"id": 7, "email": "a@bank.test", "role": "admin"})

        user = await UserService(backend).update_user_role(7, UserRole.ADMIN)

        assert user.role == UserRole.ADMIN
        assert backend_stub.json_body("PUT", "/users/7") == {"role": "admin"}


class TestAuditLogsAndSettings:
    async def test_audit_log_paging(self, backend, backend_stub):
        backend_stub.add(
            "GET",
            "/audit-logs",
            {
                "success": True,
                "data": [{"id": 1, "action": "contract.create", "created_at": "2024-12-01T10:00:00Z"}],
                "pagination": {"page": 3, "limit": 1, "total": 3},
            },
        )

        page = await UserService(backend).get_audit_logs(AuditLogFilters(action="contract.create", page=3, limit=1))

        assert [log.action for log in page.items] == ["contract.create"]
        assert page.pagination.page == 3
        params = backend_stub.calls("GET", "/audit-logs")[0].url.params
        assert params["action"] == "contract.create"
        assert params["limit"] == "1"

    async def test_missing_audit_log(self, backend):
        with pytest.raises(LookupError):
            await UserService(backend).get_audit_log(404)

    async def test_settings_default_when_empty(self, backend, backend_stub):
        backend_stub.add("GET", "/settings/system", {})

        current = await UserService(backend).get_system_settings()

        assert current.default_currency == "USD"
        assert current.alert_escalation_hours == 24
        assert current.report_generation_schedule == "weekly"

    async def test_settings_update(self, backend, backend_stub):
        backend_stub.add("PUT", "/settings/system", {"bank_name": "First Bank", "data_retention_days": 730})

        updated = await UserService(backend).update_system_settings(SystemSettingsUpdate(data_retention_days=730))

        assert updated.data_retention_days == 730
        assert backend_stub.json_body("PUT", "/settings/system") == {"data_retention_days": 730}
