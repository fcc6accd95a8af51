"""Dashboard API router."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from covenant_guardian.auth.dependencies import get_backend, require_permission
from covenant_guardian.auth.schemas import AuthUser
from covenant_guardian.modules.contracts.schemas import Contract, ContractStatus
from covenant_guardian.modules.dashboard.schemas import (
    DashboardData,
    DashboardFilters,
    PortfolioSummary,
    RiskMetrics,
)
from covenant_guardian.modules.dashboard.service import UPCOMING_CHECK_DAYS, DashboardService
from covenant_guardian.services.backend import BackendClient

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("", response_model=DashboardData)
async def dashboard(
    date_from: date | None = None,
    date_to: date | None = None,
    status: ContractStatus | None = None,
    current_user: AuthUser = Depends(require_permission("read", "dashboard")),
    backend: BackendClient = Depends(get_backend),
):
    """Everything the portfolio dashboard shows, in one call."""
    filters = DashboardFilters(date_from=date_from, date_to=date_to, status=status)
    return await DashboardService(backend).get_dashboard(filters)


@router.get("/portfolio-summary", response_model=PortfolioSummary)
async def portfolio_summary(
    current_user: AuthUser = Depends(require_permission("read", "dashboard")),
    backend: BackendClient = Depends(get_backend),
):
    return await DashboardService(backend).get_portfolio_summary()


@router.get("/risk-metrics", response_model=RiskMetrics)
async def risk_metrics(
    current_user: AuthUser = Depends(require_permission("read", "dashboard")),
    backend: BackendClient = Depends(get_backend),
):
    return await DashboardService(backend).get_risk_metrics()


@router.get("/top-risk-contracts", response_model=list[Contract])
async def top_risk_contracts(
    limit: int = Query(5, ge=1, le=50),
    current_user: AuthUser = Depends(require_permission("read", "dashboard")),
    backend: BackendClient = Depends(get_backend),
):
    return await DashboardService(backend).get_top_risk_contracts(limit)


@router.get("/deteriorating-contracts", response_model=list[Contract])
async def deteriorating_contracts(
    current_user: AuthUser = Depends(require_permission("read", "dashboard")),
    backend: BackendClient = Depends(get_backend),
):
    return await DashboardService(backend).get_contracts_trending_deteriorating()


@router.get("/upcoming-checks", response_model=dict[str, int])
async def upcoming_checks(
    days: int = Query(UPCOMING_CHECK_DAYS, ge=1, le=365),
    current_user: AuthUser = Depends(require_permission("read", "dashboard")),
    backend: BackendClient = Depends(get_backend),
):
    return {"count": await DashboardService(backend).get_upcoming_covenant_checks(days)}
