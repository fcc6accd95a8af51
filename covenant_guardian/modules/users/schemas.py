"""Pydantic models for users, notification preferences, audit logs and system settings."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from covenant_guardian.auth.schemas import UserRole
from covenant_guardian.modules.alerts.schemas import AlertSeverity
from covenant_guardian.services.backend import Pagination

ReportSchedule = Literal["daily", "weekly", "monthly"]


# ── Users ─────────────────────────────────────────────────────────────────────


class NotificationPreferences(BaseModel):
    email_alerts: bool = True
    email_reports: bool = True
    email_covenant_warnings: bool = True
    email_covenant_breaches: bool = True
    in_app_alerts: bool = True
    alert_severity_threshold: AlertSeverity = "medium"
    daily_digest: bool = False
    weekly_summary: bool = True


class NotificationPreferencesUpdate(BaseModel):
    email_alerts: bool | None = None
    email_reports: bool | None = None
    email_covenant_warnings: bool | None = None
    email_covenant_breaches: bool | None = None
    in_app_alerts: bool | None = None
    alert_severity_threshold: AlertSeverity | None = None
    daily_digest: bool | None = None
    weekly_summary: bool | None = None


class UserProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    bank_id: int | str | None = None
    email: str
    role: UserRole
    first_name: str | None = None
    last_name: str | None = None
    is_active: bool = True
    last_login: datetime | None = None
    created_at: datetime | None = None
    notification_preferences: NotificationPreferences | None = None


class UserCreateInput(BaseModel):
    email: str = Field(min_length=3)
    role: UserRole = UserRole.VIEWER
    first_name: str | None = None
    last_name: str | None = None


class UserUpdateInput(BaseModel):
    email: str | None = None
    role: UserRole | None = None
    first_name: str | None = None
    last_name: str | None = None
    is_active: bool | None = None


class RoleUpdateRequest(BaseModel):
    role: UserRole


class UserFilters(BaseModel):
    role: UserRole | None = None
    is_active: bool | None = None
    search: str | None = None
    page: int | None = None
    limit: int | None = None
    sort: str | None = None
    order: Literal["asc", "desc"] | None = None


class UserPage(BaseModel):
    items: list[UserProfile] = []
    pagination: Pagination | None = None


# ── Audit logs ────────────────────────────────────────────────────────────────


class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    bank_id: int | str | None = None
    action: str
    table_name: str | None = None
    record_id: int | str | None = None
    changes: dict[str, Any] | None = None
    user_id: int | str | None = None
    user_email: str | None = None
    ip_address: str | None = None
    created_at: datetime


class AuditLogFilters(BaseModel):
    action: str | None = None
    table_name: str | None = None
    user_id: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    page: int | None = None
    limit: int | None = None
    sort: str | None = None
    order: Literal["asc", "desc"] | None = None


class AuditLogPage(BaseModel):
    items: list[AuditLog] = []
    pagination: Pagination | None = None


# ── System settings ───────────────────────────────────────────────────────────


class SystemSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bank_name: str = ""
    default_currency: str = "USD"
    covenant_warning_threshold: float = 10
    alert_escalation_hours: int = 24
    data_retention_days: int = 365
    enable_gemini_analysis: bool = True
    enable_news_monitoring: bool = True
    report_generation_schedule: ReportSchedule = "weekly"


class SystemSettingsUpdate(BaseModel):
    bank_name: str | None = None
    default_currency: str | None = None
    covenant_warning_threshold: float | None = Field(default=None, ge=0, le=100)
    alert_escalation_hours: int | None = Field(default=None, ge=1)
    data_retention_days: int | None = Field(default=None, ge=1)
    enable_gemini_analysis: bool | None = None
    enable_news_monitoring: bool | None = None
    report_generation_schedule: ReportSchedule | None = None
