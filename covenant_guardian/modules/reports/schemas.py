"""Report inputs, aggregated report data and generated reports."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from covenant_guardian.modules.covenant_health.schemas import HealthStatus, HealthTrend

ReportType = Literal["portfolio_summary", "borrower_deep_dive", "covenant_analysis"]


class ReportGenerationInput(BaseModel):
    report_type: ReportType
    start_date: date
    end_date: date
    borrower_id: str | None = None
    include_ai_summary: bool = True


class ReportFilters(BaseModel):
    report_type: ReportType | None = None
    start_date: date | None = None
    end_date: date | None = None
    limit: int | None = None


# ── Computed report content ───────────────────────────────────────────────────


class CovenantHealthSummary(BaseModel):
    total_covenants: int = 0
    compliant: int = 0
    warning: int = 0
    breached: int = 0
    compliance_rate: float = 100.0


class BreachStatistics(BaseModel):
    new_breaches: int = 0
    resolved_breaches: int = 0
    ongoing_breaches: int = 0
    breach_rate: float = 0.0


class BorrowerRiskProfile(BaseModel):
    borrower_id: int | str
    borrower_name: str
    risk_score: float = Field(ge=0, le=10)
    covenant_status: HealthStatus
    principal_at_risk: float = 0.0


class TrendSummary(BaseModel):
    improving_covenants: int = 0
    stable_covenants: int = 0
    deteriorating_covenants: int = 0
    overall_trend: HealthTrend = "stable"


class ReportData(BaseModel):
    total_contracts: int = 0
    contracts_at_risk: int = 0
    total_principal: float = 0.0
    total_covenants: int = 0
    covenants_breached: int = 0
    covenants_warning: int = 0
    covenants_compliant: int = 0
    breach_statistics: BreachStatistics = BreachStatistics()
    borrower_risk_profiles: list[BorrowerRiskProfile] = []
    trend_analysis: TrendSummary = TrendSummary()
    executive_summary: str | None = None
    key_risks: list[str] = []
    recommendations: list[str] = []


# ── Stored reports ────────────────────────────────────────────────────────────


class Report(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    bank_id: int | str | None = None
    report_type: ReportType
    report_date: datetime
    total_contracts: int | None = None
    contracts_at_risk: int | None = None
    total_principal: float | None = None
    total_covenants: int | None = None
    covenants_breached: int | None = None
    covenants_warning: int | None = None
    summary_text: str | None = None
    key_risks: dict[str, Any] | None = None
    recommendations: dict[str, Any] | None = None
    generated_by: int | str | None = None
    created_at: datetime | None = None


class GeneratedReport(Report):
    report_data: ReportData
    stored: bool = True


class ReportValidation(BaseModel):
    is_valid: bool
    errors: list[str] = []
    warnings: list[str] = []


class PortfolioRiskScore(BaseModel):
    portfolio_risk_score: float
    health: CovenantHealthSummary
