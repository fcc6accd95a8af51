"""Portfolio dashboard: summary, risk metrics, health breakdown, alerts and riskiest contracts.

Each section is fetched independently; a section the backend cannot serve
comes back empty so the rest of the dashboard still renders.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import date, timedelta
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import BackendAPIError
from covenant_guardian.modules.alerts.schemas import Alert
from covenant_guardian.modules.contracts.schemas import Contract
from covenant_guardian.modules.covenant_health.schemas import CovenantHealth
from covenant_guardian.modules.dashboard.schemas import (
    DashboardData,
    DashboardFilters,
    PortfolioSummary,
    RiskMetrics,
)
from covenant_guardian.modules.reports.analytics import (
    AT_RISK_CONTRACT_STATUSES,
    calculate_portfolio_risk_score,
    summarize_covenant_health,
)
from covenant_guardian.services.backend import BackendClient, page_items

logger = structlog.get_logger()

RECENT_ALERTS_LIMIT = 10
TOP_RISK_CONTRACTS_LIMIT = 5
UPCOMING_CHECK_DAYS = 30


def calculate_risk_metrics(
    healths: Sequence[CovenantHealth],
    upcoming_checks: int = 0,
    today: date | None = None,
    reporting_period_days: int | None = None,
) -> RiskMetrics:
    """Risk metrics from the latest health snapshots.

    A contract is high-risk when any of its covenants is breached. A report
    is overdue when its covenant's last reported value is older than one
    reporting period.
    """
    today = today or date.today()
    period = settings.REPORTING_PERIOD_DAYS if reporting_period_days is None else reporting_period_days
    cutoff = today - timedelta(days=period)

    breached_contracts = {str(h.contract_id) for h in healths if h.status == "breached" and h.contract_id is not None}
    return RiskMetrics(
        portfolio_risk_score=calculate_portfolio_risk_score(healths),
        high_risk_contracts=len(breached_contracts),
        trending_deteriorating=sum(1 for h in healths if h.trend == "deteriorating"),
        upcoming_covenant_checks=upcoming_checks,
        overdue_reports=sum(1 for h in healths if h.last_reported_date is not None and h.last_reported_date < cutoff),
    )


class DashboardService:
    def __init__(self, backend: BackendClient) -> None:
        self.backend = backend

    async def get_dashboard(self, filters: DashboardFilters | None = None, today: date | None = None) -> DashboardData:
        params = filters.model_dump(mode="json", exclude_none=True) if filters else {}
        period = {k: v for k, v in params.items() if k in ("date_from", "date_to")}
        summary, healths, upcoming, alerts, top_risk = await asyncio.gather(
            self.get_portfolio_summary(params or None),
            self._fetch("/covenant_health", period or None, CovenantHealth),
            self.get_upcoming_covenant_checks(today=today),
            self.get_recent_alerts(),
            self.get_top_risk_contracts(),
        )
        return DashboardData(
            portfolio_summary=summary,
            risk_metrics=calculate_risk_metrics(healths, upcoming, today),
            covenant_health_breakdown=summarize_covenant_health(healths),
            recent_alerts=alerts,
            top_risk_contracts=top_risk,
        )

    async def get_portfolio_summary(self, params: dict[str, Any] | None = None) -> PortfolioSummary:
        try:
            data = await self.backend.get("/portfolio_summary", params=params)
        except BackendAPIError as exc:
            logger.warning("dashboard_section_unavailable", path="/portfolio_summary", error=exc.message)
            return PortfolioSummary()
        if isinstance(data, list):
            data = data[0] if data else None
        return PortfolioSummary.model_validate(data) if data else PortfolioSummary()

    async def get_risk_metrics(self, today: date | None = None) -> RiskMetrics:
        healths, upcoming = await asyncio.gather(
            self._fetch("/covenant_health", None, CovenantHealth),
            self.get_upcoming_covenant_checks(today=today),
        )
        return calculate_risk_metrics(healths, upcoming, today)

    async def get_recent_alerts(self, limit: int = RECENT_ALERTS_LIMIT) -> list[Alert]:
        return await self._fetch("/alerts", {"limit": limit, "sort": "triggered_at", "order": "desc"}, Alert)

    async def get_top_risk_contracts(self, limit: int = TOP_RISK_CONTRACTS_LIMIT) -> list[Contract]:
        params = {
            "status": ",".join(AT_RISK_CONTRACT_STATUSES),
            "sort": "risk_score",
            "order": "desc",
            "limit": limit,
        }
        return await self._fetch("/contracts", params, Contract)

    async def get_contracts_trending_deteriorating(self) -> list[Contract]:
        return await self._fetch("/contracts", {"trend": "deteriorating"}, Contract)

    async def get_upcoming_covenant_checks(self, days: int = UPCOMING_CHECK_DAYS, today: date | None = None) -> int:
        """Covenant checks due within ``days``."""
        before = (today or date.today()) + timedelta(days=days)
        try:
            data = await self.backend.get("/covenants/upcoming-checks", params={"before": before.isoformat()})
        except BackendAPIError as exc:
            logger.warning("dashboard_section_unavailable", path="/covenants/upcoming-checks", error=exc.message)
            return 0
        if isinstance(data, dict):
            return int(data.get("count") or 0)
        return 0

    async def _fetch(self, path: str, params: dict[str, Any] | None, model: type[BaseModel]) -> list[Any]:
        try:
            items, _ = page_items(await self.backend.get_page(path, params=params))
            return [model.model_validate(i) for i in items]
        except (BackendAPIError, ValidationError) as exc:
            logger.warning("dashboard_section_unavailable", path=path, error=str(exc))
            return []
