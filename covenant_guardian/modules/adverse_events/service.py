"""Adverse event service: AI scoring, storage, alerting and per-borrower aggregation."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import BackendAPIError
from covenant_guardian.modules.adverse_events.aggregation import (
    aggregate_risk,
    assess_event_impact_on_covenant,
    summarize_events,
)
from covenant_guardian.modules.adverse_events.schemas import (
    AdverseEvent,
    AdverseEventInput,
    EventRiskAssessment,
    RiskAggregation,
    RiskSummary,
)
from covenant_guardian.modules.alerts.schemas import Alert, AlertCreateInput
from covenant_guardian.modules.alerts.service import AlertService
from covenant_guardian.modules.covenant_health.schemas import Covenant
from covenant_guardian.services.backend import BackendClient, page_items
from covenant_guardian.services.gemini import (
    ActiveCovenant,
    AIServiceError,
    BorrowerContext,
    EventAnalysisInput,
    GeminiClient,
)

logger = structlog.get_logger()

ALERT_IMPACT_THRESHOLD = 0.5
HIGH_SEVERITY_EVENT_SCORE = 8
ANALYZED_CONFIDENCE = 0.8

FALLBACK_EVENT_ASSESSMENT = EventRiskAssessment(
    risk_score=5,
    risk_factors=["Unable to analyze - manual review required"],
    recommended_actions=["Review event manually"],
    summary="Automated analysis unavailable",
    confidence=0.1,
)


def borrower_context(covenants: list[Covenant]) -> BorrowerContext:
    """Prompt context assembled from the borrower's covenants."""
    borrower = next((c.borrower for c in covenants if c.borrower is not None), None)
    return BorrowerContext(
        borrower_name=(borrower.legal_name if borrower and borrower.legal_name else "Unknown Borrower"),
        industry=borrower.industry if borrower else None,
        active_covenants=[
            ActiveCovenant(covenant_name=c.covenant_name, covenant_type=c.covenant_type) for c in covenants
        ],
    )


class AdverseEventService:
    def __init__(
        self,
        backend: BackendClient,
        gemini: GeminiClient | None = None,
        alerts: AlertService | None = None,
    ) -> None:
        self.backend = backend
        self.gemini = gemini
        self.alerts = alerts or AlertService(backend)

    # ── Analysis ──────────────────────────────────────────────────────────────

    async def analyze_event_risk(
        self,
        event: AdverseEventInput,
        context: BorrowerContext | None = None,
    ) -> EventRiskAssessment:
        """Gemini risk assessment of one event; a fixed fallback when AI is unavailable."""
        if self.gemini is None or not self.gemini.enabled:
            return FALLBACK_EVENT_ASSESSMENT

        try:
            impact = await self.gemini.analyze_adverse_event(
                EventAnalysisInput(
                    event_type=event.event_type,
                    headline=event.headline,
                    description=event.description,
                ),
                context or BorrowerContext(),
            )
        except AIServiceError as exc:
            logger.warning("adverse_event_analysis_failed", headline=event.headline, error=str(exc))
            return FALLBACK_EVENT_ASSESSMENT

        factors = [f"Affects: {c}" for c in impact.affected_covenants] or ["General risk identified"]
        return EventRiskAssessment(
            risk_score=impact.risk_score,
            risk_factors=factors,
            recommended_actions=impact.recommended_actions,
            summary=impact.impact_assessment,
            confidence=ANALYZED_CONFIDENCE,
        )

    # ── Ingestion ─────────────────────────────────────────────────────────────

    async def ingest_event(self, event: AdverseEventInput) -> AdverseEvent:
        covenants = await self.get_covenants_by_borrower(event.borrower_id)
        assessment = await self.analyze_event_risk(event, borrower_context(covenants))

        payload = {
            **event.model_dump(mode="json", exclude_none=True),
            "risk_score": assessment.risk_score,
            "gemini_analyzed": assessment is not FALLBACK_EVENT_ASSESSMENT,
        }
        data = await self.backend.post("/adverse-events", json=payload)
        if not data:
            raise BackendAPIError(502, "Failed to store adverse event")
        stored = AdverseEvent.model_validate(data)

        logger.info(
            "adverse_event_ingested",
            borrower_id=str(event.borrower_id),
            event_type=event.event_type,
            risk_score=assessment.risk_score,
        )

        if assessment.risk_score >= settings.HIGH_RISK_EVENT_THRESHOLD:
            await self.create_alerts_for_high_risk_event(stored, assessment, covenants)
        return stored

    async def create_alerts_for_high_risk_event(
        self,
        event: AdverseEvent,
        assessment: EventRiskAssessment,
        covenants: list[Covenant] | None = None,
    ) -> list[Alert]:
        """Warn on every covenant of the borrower the event plausibly affects."""
        if covenants is None:
            covenants = await self.get_covenants_by_borrower(event.borrower_id)

        severity = "high" if assessment.risk_score >= HIGH_SEVERITY_EVENT_SCORE else "medium"
        created: list[Alert] = []
        for covenant in covenants:
            if assess_event_impact_on_covenant(event.event_type, covenant.covenant_type) < ALERT_IMPACT_THRESHOLD:
                continue
            alert = await self.alerts.create_alert(
                AlertCreateInput(
                    covenant_id=covenant.id,
                    contract_id=covenant.contract_id,
                    alert_type="warning",
                    severity=severity,
                    title=f"Adverse Event: {event.headline}",
                    description=f"{event.event_type} event detected for borrower. {assessment.summary}",
                    trigger_metric_value=assessment.risk_score,
                    threshold_value=settings.HIGH_RISK_EVENT_THRESHOLD,
                )
            )
            created.append(alert)
        return created

    async def batch_ingest_events(self, events: list[AdverseEventInput]) -> list[AdverseEvent]:
        """Ingest events one by one; an event that fails is logged and skipped."""
        stored: list[AdverseEvent] = []
        for event in events:
            try:
                stored.append(await self.ingest_event(event))
            except BackendAPIError as exc:
                logger.error("adverse_event_ingest_failed", headline=event.headline, error=exc.message)
        return stored

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_covenants_by_borrower(self, borrower_id: int | str) -> list[Covenant]:
        items, _ = page_items(await self.backend.get_page("/covenants", params={"borrower_id": borrower_id}))
        return [Covenant.model_validate(item) for item in items]

    async def get_events_by_borrower(self, borrower_id: int | str) -> list[AdverseEvent]:
        items, _ = page_items(await self.backend.get_page("/adverse-events", params={"borrower_id": borrower_id}))
        return [AdverseEvent.model_validate(item) for item in items]

    async def get_event(self, event_id: int | str) -> AdverseEvent:
        try:
            data = await self.backend.get(f"/adverse-events/{event_id}")
        except BackendAPIError as exc:
            if exc.status_code == 404:
                raise LookupError(f"Adverse event {event_id} not found") from exc
            raise
        if not data:
            raise LookupError(f"Adverse event {event_id} not found")
        return AdverseEvent.model_validate(data)

    async def aggregate_risk_scores(
        self,
        borrower_id: int | str,
        now: datetime | None = None,
    ) -> RiskAggregation:
        now = now or datetime.now(timezone.utc)
        events = await self.get_events_by_borrower(borrower_id)
        result = aggregate_risk(
            events,
            now=now,
            window_days=settings.RISK_RECENCY_WINDOW_DAYS,
            decay_days=settings.RISK_DECAY_DAYS,
        )
        return RiskAggregation(**result.model_dump(), borrower_id=borrower_id, last_calculated=now)

    async def get_risk_summary(self, bank_id: int | str) -> RiskSummary:
        items, _ = page_items(await self.backend.get_page("/adverse-events", params={"bank_id": bank_id}))
        return summarize_events([AdverseEvent.model_validate(item) for item in items])
