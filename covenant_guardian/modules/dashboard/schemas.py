"""Portfolio dashboard payloads."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from covenant_guardian.modules.alerts.schemas import Alert
from covenant_guardian.modules.contracts.schemas import Contract, ContractStatus
from covenant_guardian.modules.reports.schemas import CovenantHealthSummary


class PortfolioSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bank_id: int | str | None = None
    bank_name: str = ""
    total_contracts: int = 0
    total_principal_usd: float = 0.0
    contracts_breached: int = 0
    contracts_at_warning: int = 0
    open_alerts_count: int = 0
    latest_alert_time: datetime | None = None


class RiskMetrics(BaseModel):
    portfolio_risk_score: float = 0.0
    high_risk_contracts: int = 0
    trending_deteriorating: int = 0
    upcoming_covenant_checks: int = 0
    overdue_reports: int = 0


class DashboardFilters(BaseModel):
    date_from: date | None = None
    date_to: date | None = None
    status: ContractStatus | None = None


class DashboardData(BaseModel):
    portfolio_summary: PortfolioSummary
    risk_metrics: RiskMetrics
    covenant_health_breakdown: CovenantHealthSummary
    recent_alerts: list[Alert] = []
    top_risk_contracts: list[Contract] = []
