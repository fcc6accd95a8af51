"""Users, audit logs and system settings API router."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from covenant_guardian.auth.dependencies import get_backend, get_current_user, require_permission
from covenant_guardian.auth.schemas import AuthUser, UserRole
from covenant_guardian.modules.users.schemas import (
    AuditLog,
    AuditLogFilters,
    AuditLogPage,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    RoleUpdateRequest,
    SystemSettings,
    SystemSettingsUpdate,
    UserCreateInput,
    UserFilters,
    UserPage,
    UserProfile,
    UserUpdateInput,
)
from covenant_guardian.modules.users.service import UserService
from covenant_guardian.services.backend import BackendClient

router = APIRouter(tags=["Users"])


# ── Current user ──────────────────────────────────────────────────────────────


@router.get("/users/me/notifications", response_model=NotificationPreferences)
async def get_notification_preferences(
    current_user: AuthUser = Depends(get_current_user),
    backend: BackendClient = Depends(get_backend),
):
    return await UserService(backend).get_notification_preferences()


@router.put("/users/me/notifications", response_model=NotificationPreferences)
async def update_notification_preferences(
    body: NotificationPreferencesUpdate,
    current_user: AuthUser = Depends(get_current_user),
    backend: BackendClient = Depends(get_backend),
):
    return await UserService(backend).update_notification_preferences(body)


# ── User administration ───────────────────────────────────────────────────────


@router.get("/users", response_model=UserPage)
async def list_users(
    role: UserRole | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    page: int | None = Query(None, ge=1),
    limit: int | None = Query(None, ge=1, le=100),
    current_user: AuthUser = Depends(require_permission("read", "users")),
    backend: BackendClient = Depends(get_backend),
):
    filters = UserFilters(role=role, is_active=is_active, search=search, page=page, limit=limit)
    return await UserService(backend).get_users(filters)


@router.post("/users", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreateInput,
    current_user: AuthUser = Depends(require_permission("create", "users")),
    backend: BackendClient = Depends(get_backend),
):
    return await UserService(backend).create_user(body)


@router.get("/users/{user_id}", response_model=UserProfile)
async def get_user(
    user_id: str,
    current_user: AuthUser = Depends(require_permission("read", "users")),
    backend: BackendClient = Depends(get_backend),
):
    try:
        return await UserService(backend).get_user(user_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.put("/users/{user_id}", response_model=UserProfile)
async def update_user(
    user_id: str,
    body: UserUpdateInput,
    current_user: AuthUser = Depends(require_permission("update", "users")),
    backend: BackendClient = Depends(get_backend),
):
    return await UserService(backend).update_user(user_id, body)


@router.put("/users/{user_id}/role", response_model=UserProfile)
async def update_user_role(
    user_id: str,
    body: RoleUpdateRequest,
    current_user: AuthUser = Depends(require_permission("update", "users")),
    backend: BackendClient = Depends(get_backend),
):
    if str(user_id) == str(current_user.id) and body.role != current_user.role:
        raise HTTPException(status_code=400, detail="You cannot change your own role")
    return await UserService(backend).update_user_role(user_id, body.role)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    current_user: AuthUser = Depends(require_permission("delete", "users")),
    backend: BackendClient = Depends(get_backend),
):
    if str(user_id) == str(current_user.id):
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    await UserService(backend).delete_user(user_id)


# ── Audit logs ────────────────────────────────────────────────────────────────


@router.get("/audit-logs", response_model=AuditLogPage)
async def list_audit_logs(
    action: str | None = None,
    table_name: str | None = None,
    user_id: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int | None = Query(None, ge=1),
    limit: int | None = Query(None, ge=1, le=100),
    current_user: AuthUser = Depends(require_permission("read", "audit-logs")),
    backend: BackendClient = Depends(get_backend),
):
    filters = AuditLogFilters(
        action=action,
        table_name=table_name,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return await UserService(backend).get_audit_logs(filters)


@router.get("/audit-logs/{log_id}", response_model=AuditLog)
async def get_audit_log(
    log_id: str,
    current_user: AuthUser = Depends(require_permission("read", "audit-logs")),
    backend: BackendClient = Depends(get_backend),
):
    try:
        return await UserService(backend).get_audit_log(log_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


# ── System settings ───────────────────────────────────────────────────────────


@router.get("/settings/system", response_model=SystemSettings)
async def get_system_settings(
    current_user: AuthUser = Depends(require_permission("read", "system-settings")),
    backend: BackendClient = Depends(get_backend),
):
    return await UserService(backend).get_system_settings()


@router.put("/settings/system", response_model=SystemSettings)
async def update_system_settings(
    body: SystemSettingsUpdate,
    current_user: AuthUser = Depends(require_permission("update", "system-settings")),
    backend: BackendClient = Depends(get_backend),
):
    return await UserService(backend).update_system_settings(body)
