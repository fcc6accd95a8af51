"""Financial data API router."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Body, Depends, Query

from covenant_guardian.auth.dependencies import get_backend, get_gemini, require_permission
from covenant_guardian.auth.schemas import AuthUser
from covenant_guardian.modules.covenant_health.schemas import FinancialMetricsInput
from covenant_guardian.modules.financial_data.schemas import (
    BatchIngestResult,
    FinancialComparison,
    FinancialDataSummary,
    StaleBorrower,
)
from covenant_guardian.modules.financial_data.service import FinancialDataService
from covenant_guardian.services.backend import BackendClient
from covenant_guardian.services.gemini import GeminiClient

router = APIRouter(tags=["Financial Data"])


@router.post("/financial-metrics/batch", response_model=BatchIngestResult)
async def batch_ingest(
    records: list[FinancialMetricsInput] = Body(..., min_length=1),
    current_user: AuthUser = Depends(require_permission("create", "financial-metrics")),
    backend: BackendClient = Depends(get_backend),
    gemini: GeminiClient = Depends(get_gemini),
):
    """Ingest several reporting periods; failures are listed per record."""
    return await FinancialDataService(backend, gemini).batch_ingest_financial_data(records)


@router.get("/financial-metrics/stale", response_model=list[StaleBorrower])
async def stale_borrowers(
    days: int | None = Query(None, ge=1, le=3650),
    current_user: AuthUser = Depends(require_permission("read", "financial-metrics")),
    backend: BackendClient = Depends(get_backend),
):
    return await FinancialDataService(backend).get_borrowers_with_stale_data(days)


@router.get("/borrowers/{borrower_id}/financials/summary", response_model=FinancialDataSummary)
async def financial_summary(
    borrower_id: str,
    current_user: AuthUser = Depends(require_permission("read", "financial-metrics")),
    backend: BackendClient = Depends(get_backend),
):
    return await FinancialDataService(backend).get_financial_data_summary(borrower_id)


@router.get("/borrowers/{borrower_id}/financials/compare", response_model=FinancialComparison)
async def compare_financials(
    borrower_id: str,
    period_from: date,
    period_to: date,
    current_user: AuthUser = Depends(require_permission("read", "financial-metrics")),
    backend: BackendClient = Depends(get_backend),
):
    """Metric-by-metric change between two reporting periods."""
    return await FinancialDataService(backend).compare_financial_metrics(borrower_id, period_from, period_to)
