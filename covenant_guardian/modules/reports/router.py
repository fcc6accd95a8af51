"""Reports API router."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from covenant_guardian.auth.dependencies import get_backend, get_gemini, require_permission
from covenant_guardian.auth.schemas import AuthUser
from covenant_guardian.modules.reports.analytics import validate_report_accuracy
from covenant_guardian.modules.reports.schemas import (
    GeneratedReport,
    PortfolioRiskScore,
    Report,
    ReportFilters,
    ReportGenerationInput,
    ReportType,
    ReportValidation,
)
from covenant_guardian.modules.reports.service import ReportService
from covenant_guardian.services.backend import BackendClient
from covenant_guardian.services.gemini import GeminiClient

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.post("", response_model=GeneratedReport, status_code=status.HTTP_201_CREATED)
async def generate_report(
    body: ReportGenerationInput,
    current_user: AuthUser = Depends(require_permission("create", "reports")),
    backend: BackendClient = Depends(get_backend),
    gemini: GeminiClient = Depends(get_gemini),
):
    return await ReportService(backend, gemini).generate_report(body, generated_by=current_user.id)


@router.get("", response_model=list[Report])
async def list_reports(
    report_type: ReportType | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int | None = Query(None, ge=1, le=100),
    current_user: AuthUser = Depends(require_permission("read", "reports")),
    backend: BackendClient = Depends(get_backend),
):
    filters = ReportFilters(report_type=report_type, start_date=start_date, end_date=end_date, limit=limit)
    return await ReportService(backend).list_reports(filters)


@router.get("/portfolio-risk", response_model=PortfolioRiskScore)
async def portfolio_risk(
    current_user: AuthUser = Depends(require_permission("read", "dashboard")),
    backend: BackendClient = Depends(get_backend),
):
    return await ReportService(backend).get_portfolio_risk_score()


@router.get("/{report_id}", response_model=GeneratedReport)
async def get_report(
    report_id: str,
    current_user: AuthUser = Depends(require_permission("read", "reports")),
    backend: BackendClient = Depends(get_backend),
):
    try:
        return await ReportService(backend).get_report(report_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/{report_id}/validation", response_model=ReportValidation)
async def validate_report(
    report_id: str,
    current_user: AuthUser = Depends(require_permission("read", "reports")),
    backend: BackendClient = Depends(get_backend),
):
    try:
        report = await ReportService(backend).get_report(report_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return validate_report_accuracy(report)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    report_id: str,
    current_user: AuthUser = Depends(require_permission("delete", "reports")),
    backend: BackendClient = Depends(get_backend),
):
    await ReportService(backend).delete_report(report_id)
