"""Covenant health API router."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from covenant_guardian.auth.dependencies import get_backend, get_gemini, require_permission
from covenant_guardian.auth.schemas import AuthUser
from covenant_guardian.core.config import settings
from covenant_guardian.modules.alerts.service import AlertService
from covenant_guardian.modules.covenant_health import engine
from covenant_guardian.modules.covenant_health.schemas import (
    CovenantHealth,
    CovenantHealthEvaluation,
    EvaluateHealthRequest,
    FinancialMetrics,
    FinancialMetricsInput,
    HealthUpdateSummary,
    RatiosResponse,
    TrendAnalysis,
)
from covenant_guardian.modules.covenant_health.service import CovenantHealthService
from covenant_guardian.services.backend import BackendClient
from covenant_guardian.services.gemini import GeminiClient

logger = structlog.get_logger()

router = APIRouter(tags=["Covenant Health"])


def _service(backend: BackendClient, gemini: GeminiClient) -> CovenantHealthService:
    return CovenantHealthService(backend, gemini=gemini, alerts=AlertService(backend))


# ── Stateless evaluation ──────────────────────────────────────────────────────


@router.post("/covenant-health/evaluate", response_model=CovenantHealthEvaluation)
async def evaluate_health(body: EvaluateHealthRequest):
    """Evaluate a covenant position from the supplied values without touching the backend."""
    margin = body.warning_margin_pct
    if margin is None:
        margin = settings.COVENANT_WARNING_MARGIN_PCT
    return engine.evaluate_covenant_health(
        body.operator,
        body.threshold_value,
        body.current_value,
        history=body.history,
        data_confidences=body.data_confidences,
        warning_margin_pct=margin,
        stable_threshold_pct=settings.TREND_STABLE_THRESHOLD_PCT,
    )


@router.post("/covenant-health/ratios", response_model=RatiosResponse)
async def calculate_ratios(body: FinancialMetricsInput):
    """Compute credit ratios, data confidence and validation errors for one reporting period."""
    return RatiosResponse(
        ratios=engine.calculate_financial_ratios(body),
        data_confidence=engine.assess_data_confidence(body),
        validation_errors=engine.validate_financial_data(body),
    )


# ── Backend-backed ────────────────────────────────────────────────────────────


@router.post("/covenants/{covenant_id}/health", response_model=CovenantHealth)
async def recalculate_health(
    covenant_id: str,
    current_user: AuthUser = Depends(require_permission("update", "covenants")),
    backend: BackendClient = Depends(get_backend),
    gemini: GeminiClient = Depends(get_gemini),
):
    """Recalculate and store the health snapshot of a covenant."""
    svc = _service(backend, gemini)
    try:
        return await svc.calculate_covenant_health(covenant_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/covenants/{covenant_id}/trends", response_model=TrendAnalysis)
async def covenant_trends(
    covenant_id: str,
    periods: int = Query(4, ge=2, le=20),
    current_user: AuthUser = Depends(require_permission("read", "covenants")),
    backend: BackendClient = Depends(get_backend),
):
    svc = CovenantHealthService(backend)
    try:
        return await svc.analyze_trends(covenant_id, periods)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("/borrowers/{borrower_id}/health", response_model=HealthUpdateSummary)
async def recalculate_borrower_health(
    borrower_id: str,
    current_user: AuthUser = Depends(require_permission("update", "covenants")),
    backend: BackendClient = Depends(get_backend),
    gemini: GeminiClient = Depends(get_gemini),
):
    """Recalculate every covenant of a borrower."""
    return await _service(backend, gemini).update_health_metrics(borrower_id)


@router.post(
    "/financial-metrics",
    response_model=FinancialMetrics,
    status_code=status.HTTP_201_CREATED,
)
async def ingest_financial_metrics(
    body: FinancialMetricsInput,
    current_user: AuthUser = Depends(require_permission("create", "financial-metrics")),
    backend: BackendClient = Depends(get_backend),
    gemini: GeminiClient = Depends(get_gemini),
):
    """Store a reporting period and recalculate the borrower's covenants."""
    return await _service(backend, gemini).ingest_financial_data(body)
