"""Adverse events API router."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from covenant_guardian.auth.dependencies import get_backend, get_gemini, require_permission
from covenant_guardian.auth.schemas import AuthUser
from covenant_guardian.core.config import settings
from covenant_guardian.modules.adverse_events.aggregation import (
    aggregate_risk,
    assess_event_impact_on_covenant,
)
from covenant_guardian.modules.adverse_events.schemas import (
    AdverseEvent,
    AdverseEventInput,
    AggregateRequest,
    ImpactRequest,
    ImpactResponse,
    RiskAggregation,
    RiskAggregationResult,
    RiskSummary,
)
from covenant_guardian.modules.adverse_events.service import AdverseEventService
from covenant_guardian.services.backend import BackendClient
from covenant_guardian.services.gemini import GeminiClient

router = APIRouter(tags=["Adverse Events"])


# ── Stateless aggregation ─────────────────────────────────────────────────────


@router.post("/adverse-events/aggregate", response_model=RiskAggregationResult)
async def aggregate_events(body: AggregateRequest):
    """Aggregate the supplied events as of ``as_of`` (default: now)."""
    return aggregate_risk(
        body.events,
        now=body.as_of or datetime.now(timezone.utc),
        window_days=settings.RISK_RECENCY_WINDOW_DAYS,
        decay_days=settings.RISK_DECAY_DAYS,
    )


@router.post("/adverse-events/impact", response_model=ImpactResponse)
async def event_impact(body: ImpactRequest):
    return ImpactResponse(
        event_type=body.event_type,
        covenant_type=body.covenant_type,
        impact=assess_event_impact_on_covenant(body.event_type, body.covenant_type),
    )


# ── Backend-backed ────────────────────────────────────────────────────────────


@router.post(
    "/adverse-events",
    response_model=AdverseEvent,
    status_code=status.HTTP_201_CREATED,
)
async def ingest_event(
    body: AdverseEventInput,
    current_user: AuthUser = Depends(require_permission("update", "borrowers")),
    backend: BackendClient = Depends(get_backend),
    gemini: GeminiClient = Depends(get_gemini),
):
    """Score, store and alert on a new adverse event."""
    return await AdverseEventService(backend, gemini).ingest_event(body)


@router.post("/adverse-events/batch", response_model=list[AdverseEvent])
async def ingest_events(
    body: list[AdverseEventInput],
    current_user: AuthUser = Depends(require_permission("update", "borrowers")),
    backend: BackendClient = Depends(get_backend),
    gemini: GeminiClient = Depends(get_gemini),
):
    """Ingest several events; the ones that fail are skipped."""
    return await AdverseEventService(backend, gemini).batch_ingest_events(body)


@router.get("/adverse-events/summary", response_model=RiskSummary)
async def risk_summary(
    current_user: AuthUser = Depends(require_permission("read", "dashboard")),
    backend: BackendClient = Depends(get_backend),
):
    return await AdverseEventService(backend).get_risk_summary(current_user.bank_id)


@router.get("/adverse-events/{event_id}", response_model=AdverseEvent)
async def get_event(
    event_id: str,
    current_user: AuthUser = Depends(require_permission("read", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    try:
        return await AdverseEventService(backend).get_event(event_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/borrowers/{borrower_id}/adverse-events", response_model=list[AdverseEvent])
async def borrower_events(
    borrower_id: str,
    current_user: AuthUser = Depends(require_permission("read", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    return await AdverseEventService(backend).get_events_by_borrower(borrower_id)


@router.get("/borrowers/{borrower_id}/risk-aggregation", response_model=RiskAggregation)
async def borrower_risk_aggregation(
    borrower_id: str,
    current_user: AuthUser = Depends(require_permission("read", "borrowers")),
    backend: BackendClient = Depends(get_backend),
):
    """Recency-weighted risk over all adverse events of a borrower."""
    return await AdverseEventService(backend).aggregate_risk_scores(borrower_id)
