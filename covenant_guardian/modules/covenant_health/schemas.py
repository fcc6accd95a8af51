"""Covenants, health snapshots, financial metrics and trend analysis."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Operator = Literal["<", "<=", ">", ">=", "=", "!="]
CovenantType = Literal["financial", "operational", "reporting", "other"]
CheckFrequency = Literal["monthly", "quarterly", "annually", "on_demand"]
HealthStatus = Literal["compliant", "warning", "breached"]
HealthTrend = Literal["improving", "stable", "deteriorating"]
PeriodType = Literal["monthly", "quarterly", "annually"]
DataSource = Literal["manual", "api", "gemini_extracted"]

OPERATORS: tuple[str, ...] = ("<", "<=", ">", ">=", "=", "!=")
COVENANT_TYPES: tuple[str, ...] = ("financial", "operational", "reporting", "other")
CHECK_FREQUENCIES: tuple[str, ...] = ("monthly", "quarterly", "annually", "on_demand")


# ── Covenant ──────────────────────────────────────────────────────────────────


class BorrowerRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str | None = None
    legal_name: str | None = None
    industry: str | None = None


class ContractRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str | None = None
    borrower_id: int | str | None = None
    contract_name: str | None = None
    borrower: BorrowerRef | None = None


class Covenant(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    contract_id: int | str | None = None
    bank_id: int | str | None = None
    covenant_name: str
    covenant_type: CovenantType = "other"
    metric_name: str | None = None
    operator: Operator | None = None
    threshold_value: float | None = None
    threshold_unit: str | None = None
    check_frequency: CheckFrequency = "quarterly"
    covenant_clause: str | None = None
    gemini_extracted: bool = False
    borrower_id: int | str | None = None
    contract: ContractRef | None = None
    created_at: datetime | None = None

    @property
    def resolved_borrower_id(self) -> int | str | None:
        if self.borrower_id is not None:
            return self.borrower_id
        return self.contract.borrower_id if self.contract else None

    @property
    def borrower(self) -> BorrowerRef | None:
        return self.contract.borrower if self.contract else None


class CovenantCreateInput(BaseModel):
    contract_id: int | str
    covenant_name: str
    covenant_type: CovenantType
    metric_name: str | None = None
    operator: Operator | None = None
    threshold_value: float | None = None
    threshold_unit: str | None = None
    check_frequency: CheckFrequency = "quarterly"
    covenant_clause: str | None = None


# ── Health ────────────────────────────────────────────────────────────────────


class MetricPoint(BaseModel):
    period_date: date
    value: float


class CovenantHealthEvaluation(BaseModel):
    """Result of a pure health evaluation."""
    status: HealthStatus
    buffer_percentage: float | None = None
    trend: HealthTrend = "stable"
    days_to_breach: int | None = Field(default=None, ge=0)
    trend_confidence: float = 0.0
    data_sufficient: bool = True


class CovenantHealth(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str | None = None
    covenant_id: int | str
    contract_id: int | str | None = None
    bank_id: int | str | None = None
    last_reported_value: float | None = None
    last_reported_date: date | None = None
    status: HealthStatus
    buffer_percentage: float | None = None
    trend: HealthTrend = "stable"
    days_to_breach: int | None = None
    gemini_risk_assessment: str | None = None
    recommended_action: str | None = None
    last_calculated: datetime | None = None
    data_sufficient: bool = True


class RiskAssessment(BaseModel):
    risk_score: float = Field(ge=1, le=10)
    risk_factors: list[str] = []
    recommended_actions: list[str] = []
    summary: str
    confidence: float = Field(ge=0, le=1)


class TrendPoint(BaseModel):
    period_date: date
    value: float | None
    status: HealthStatus


class TrendAnalysis(BaseModel):
    covenant_id: int | str
    trend: HealthTrend
    trend_data: list[TrendPoint] = []
    velocity: float = 0.0
    days_to_breach: int | None = None
    projected_breach_date: date | None = None
    confidence: float = 0.0
    periods_analyzed: int = 0


# ── Financial data ────────────────────────────────────────────────────────────


class FinancialMetricsInput(BaseModel):
    borrower_id: int | str | None = None
    period_date: date | None = None
    period_type: PeriodType | None = None
    source: DataSource | None = None
    debt_total: float | None = None
    ebitda: float | None = None
    revenue: float | None = None
    net_income: float | None = None
    operating_cash_flow: float | None = None
    capex: float | None = None
    interest_expense: float | None = None
    equity_total: float | None = None
    current_assets: float | None = None
    current_liabilities: float | None = None


class FinancialRatios(BaseModel):
    debt_to_ebitda: float | None = None
    debt_to_equity: float | None = None
    current_ratio: float | None = None
    interest_coverage: float | None = None
    roe: float | None = None
    roa: float | None = None


class FinancialMetrics(FinancialMetricsInput, FinancialRatios):
    model_config = ConfigDict(extra="ignore")

    id: int | str | None = None
    bank_id: int | str | None = None
    data_confidence: float = 0.5
    created_at: datetime | None = None


# ── API request/response bodies ───────────────────────────────────────────────


class EvaluateHealthRequest(BaseModel):
    operator: Operator | None = None
    threshold_value: float | None = None
    current_value: float | None = None
    history: list[MetricPoint] = []
    data_confidences: list[float] = []
    warning_margin_pct: float | None = Field(default=None, ge=0, le=100)


class RatiosResponse(BaseModel):
    ratios: FinancialRatios
    data_confidence: float
    validation_errors: list[str] = []


class HealthUpdateSummary(BaseModel):
    borrower_id: int | str
    updated: list[CovenantHealth] = []
    failed_covenant_ids: list[Any] = []
