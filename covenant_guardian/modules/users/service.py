"""User administration, notification preferences, audit logs and system settings."""

from __future__ import annotations

from typing import Any

import structlog

from covenant_guardian.auth.schemas import UserRole
from covenant_guardian.core.errors import BackendAPIError, ErrorCode
from covenant_guardian.modules.users.schemas import (
    AuditLog,
    AuditLogFilters,
    AuditLogPage,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    SystemSettings,
    SystemSettingsUpdate,
    UserCreateInput,
    UserFilters,
    UserPage,
    UserProfile,
    UserUpdateInput,
)
from covenant_guardian.services.backend import BackendClient, page_items

logger = structlog.get_logger()

DEFAULT_NOTIFICATION_PREFERENCES = NotificationPreferences()
DEFAULT_SYSTEM_SETTINGS = SystemSettings()


def _required(data: Any, message: str) -> Any:
    if not data:
        raise BackendAPIError(502, message, code=ErrorCode.UNKNOWN_ERROR)
    return data


class UserService:
    def __init__(self, backend: BackendClient) -> None:
        self.backend = backend

    # ── Users ─────────────────────────────────────────────────────────────

    async def get_users(self, filters: UserFilters | None = None) -> UserPage:
        params = filters.model_dump(mode="json", exclude_none=True) if filters else None
        items, pagination = page_items(await self.backend.get_page("/users", params=params))
        return UserPage(items=[UserProfile.model_validate(i) for i in items], pagination=pagination)

    async def get_user(self, user_id: int | str) -> UserProfile:
        try:
            data = await self.backend.get(f"/users/{user_id}")
        except BackendAPIError as exc:
            if exc.status_code == 404:
                raise LookupError(f"User {user_id} not found") from exc
            raise
        if not data:
            raise LookupError(f"User {user_id} not found")
        return UserProfile.model_validate(data)

    async def create_user(self, body: UserCreateInput) -> UserProfile:
        data = await self.backend.post("/users", json=body.model_dump(mode="json", exclude_none=True))
        user = UserProfile.model_validate(_required(data, "Failed to create user"))
        logger.info("user_created", user_id=str(user.id), role=user.role.value)
        return user

    async def update_user(self, user_id: int | str, body: UserUpdateInput) -> UserProfile:
        data = await self.backend.put(f"/users/{user_id}", json=body.model_dump(mode="json", exclude_none=True))
        return UserProfile.model_validate(_required(data, "Failed to update user"))

    async def delete_user(self, user_id: int | str) -> None:
        await self.backend.delete(f"/users/{user_id}")
        logger.info("user_deleted", user_id=str(user_id))

    async def update_user_role(self, user_id: int | str, role: UserRole) -> UserProfile:
        user = await self.update_user(user_id, UserUpdateInput(role=role))
        logger.info("user_role_updated", user_id=str(user_id), role=role.value)
        return user

    # ── Notification preferences ──────────────────────────────────────────

    async def get_notification_preferences(self) -> NotificationPreferences:
        """Current user's preferences; defaults when the backend has none."""
        try:
            data = await self.backend.get("/users/me/notifications")
        except BackendAPIError as exc:
            logger.info("notification_preferences_defaulted", status_code=exc.status_code)
            return DEFAULT_NOTIFICATION_PREFERENCES.model_copy()
        if not data:
            return DEFAULT_NOTIFICATION_PREFERENCES.model_copy()
        return NotificationPreferences.model_validate(data)

    async def update_notification_preferences(
        self,
        updates: NotificationPreferencesUpdate,
    ) -> NotificationPreferences:
        data = await self.backend.put("/users/me/notifications", json=updates.model_dump(exclude_none=True))
        return NotificationPreferences.model_validate(_required(data, "Failed to update notification preferences"))

    # ── Audit logs ────────────────────────────────────────────────────────

    async def get_audit_logs(self, filters: AuditLogFilters | None = None) -> AuditLogPage:
        params = filters.model_dump(mode="json", exclude_none=True) if filters else None
        items, pagination = page_items(await self.backend.get_page("/audit-logs", params=params))
        return AuditLogPage(items=[AuditLog.model_validate(i) for i in items], pagination=pagination)

    async def get_audit_log(self, log_id: int | str) -> AuditLog:
        try:
            data = await self.backend.get(f"/audit-logs/{log_id}")
        except BackendAPIError as exc:
            if exc.status_code == 404:
                raise LookupError(f"Audit log {log_id} not found") from exc
            raise
        if not data:
            raise LookupError(f"Audit log {log_id} not found")
        return AuditLog.model_validate(data)

    # ── System settings ───────────────────────────────────────────────────

    async def get_system_settings(self) -> SystemSettings:
        data = await self.backend.get("/settings/system")
        if not data:
            return DEFAULT_SYSTEM_SETTINGS.model_copy()
        return SystemSettings.model_validate(data)

    async def update_system_settings(self, updates: SystemSettingsUpdate) -> SystemSettings:
        data = await self.backend.put("/settings/system", json=updates.model_dump(exclude_none=True))
        updated = SystemSettings.model_validate(_required(data, "Failed to update system settings"))
        logger.info("system_settings_updated", fields=sorted(updates.model_dump(exclude_none=True)))
        return updated
