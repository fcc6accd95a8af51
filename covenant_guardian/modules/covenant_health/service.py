"""Covenant health service: loads backend data, evaluates it and persists the snapshot."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import BackendAPIError, ErrorCode, ValidationFailedError
from covenant_guardian.modules.alerts.service import AlertService
from covenant_guardian.modules.covenant_health import engine
from covenant_guardian.modules.covenant_health.schemas import (
    Covenant,
    CovenantHealth,
    CovenantHealthEvaluation,
    FinancialMetrics,
    FinancialMetricsInput,
    HealthUpdateSummary,
    MetricPoint,
    RiskAssessment,
    TrendAnalysis,
    TrendPoint,
)
from covenant_guardian.services.backend import BackendClient, page_items
from covenant_guardian.services.gemini import (
    AIServiceError,
    BorrowerContext,
    CovenantRiskInput,
    GeminiClient,
)

logger = structlog.get_logger()

DEFAULT_HISTORY_PERIODS = 4
RECALCULATION_BATCH_SIZE = 5

FALLBACK_RISK_ASSESSMENT = RiskAssessment(
    risk_score=5,
    risk_factors=["Unable to perform AI analysis"],
    recommended_actions=["Manual review recommended"],
    summary="AI risk analysis unavailable",
    confidence=0.1,
)


class CovenantHealthService:
    def __init__(
        self,
        backend: BackendClient,
        gemini: GeminiClient | None = None,
        alerts: AlertService | None = None,
    ) -> None:
        self.backend = backend
        self.gemini = gemini
        self.alerts = alerts

    # ── Backend reads ─────────────────────────────────────────────────────────

    async def get_covenant(self, covenant_id: int | str) -> Covenant:
        try:
            data = await self.backend.get(f"/covenants/{covenant_id}")
        except BackendAPIError as exc:
            if exc.status_code == 404:
                raise LookupError(f"Covenant {covenant_id} not found") from exc
            raise
        if not data:
            raise LookupError(f"Covenant {covenant_id} not found")
        return Covenant.model_validate(data)

    async def list_borrower_covenants(self, borrower_id: int | str) -> list[Covenant]:
        items, _ = page_items(await self.backend.get_page("/covenants", params={"borrower_id": borrower_id}))
        return [Covenant.model_validate(item) for item in items]

    async def get_financial_history(
        self, borrower_id: int | str, periods: int = DEFAULT_HISTORY_PERIODS
    ) -> list[FinancialMetrics]:
        """Most recent ``periods`` reporting periods in chronological order."""
        items, _ = page_items(
            await self.backend.get_page(
                f"/borrowers/{borrower_id}/financials",
                params={"limit": periods, "sort": "period_date", "order": "desc"},
            )
        )
        metrics = [FinancialMetrics.model_validate(item) for item in items]
        metrics.reverse()
        return metrics

    async def get_latest_financials(self, borrower_id: int | str) -> FinancialMetrics | None:
        history = await self.get_financial_history(borrower_id, periods=1)
        return history[-1] if history else None

    async def get_latest_health(self, covenant_id: int | str) -> CovenantHealth | None:
        items, _ = page_items(
            await self.backend.get_page(
                "/covenant_health",
                params={"covenant_id": covenant_id, "limit": 1, "sort": "last_calculated", "order": "desc"},
            )
        )
        return CovenantHealth.model_validate(items[0]) if items else None

    # ── Evaluation ────────────────────────────────────────────────────────────

    async def calculate_covenant_health(self, covenant_id: int | str) -> CovenantHealth:
        covenant = await self.get_covenant(covenant_id)
        borrower_id = covenant.resolved_borrower_id

        history: list[FinancialMetrics] = []
        if borrower_id is not None:
            history = await self.get_financial_history(borrower_id)
        latest = history[-1] if history else None

        points, confidences = self._metric_series(covenant, history)
        current_value = self._metric_value(covenant, latest)

        evaluation = engine.evaluate_covenant_health(
            covenant.operator,
            covenant.threshold_value,
            current_value,
            history=points,
            data_confidences=confidences,
            warning_margin_pct=settings.COVENANT_WARNING_MARGIN_PCT,
            stable_threshold_pct=settings.TREND_STABLE_THRESHOLD_PCT,
        )

        assessment = None
        if evaluation.data_sufficient:
            assessment = await self.assess_risk(covenant, current_value, evaluation, latest)

        health = CovenantHealth(
            covenant_id=covenant.id,
            contract_id=covenant.contract_id,
            bank_id=covenant.bank_id,
            last_reported_value=current_value,
            last_reported_date=latest.period_date if latest else None,
            status=evaluation.status,
            buffer_percentage=evaluation.buffer_percentage,
            trend=evaluation.trend,
            days_to_breach=evaluation.days_to_breach,
            gemini_risk_assessment=assessment.summary if assessment else None,
            recommended_action="; ".join(assessment.recommended_actions) if assessment else None,
            last_calculated=datetime.now(timezone.utc),
            data_sufficient=evaluation.data_sufficient,
        )

        previous = await self.get_latest_health(covenant.id)
        saved = await self.save_health(health)
        logger.info(
            "covenant_health_calculated",
            covenant_id=str(covenant.id),
            status=saved.status,
            trend=saved.trend,
            days_to_breach=saved.days_to_breach,
        )

        if self.alerts is not None:
            await self.alerts.process_covenant_health_update(covenant, previous, saved)
        return saved

    async def save_health(self, health: CovenantHealth) -> CovenantHealth:
        data = await self.backend.post("/covenant_health", json=health.model_dump(mode="json", exclude_none=True))
        return CovenantHealth.model_validate(data) if data else health

    async def assess_risk(
        self,
        covenant: Covenant,
        current_value: float | None,
        evaluation: CovenantHealthEvaluation,
        latest: FinancialMetrics | None = None,
    ) -> RiskAssessment:
        """Gemini assessment of a covenant position; a fixed fallback when AI is unavailable."""
        if self.gemini is None or not self.gemini.enabled:
            return FALLBACK_RISK_ASSESSMENT

        borrower = covenant.borrower
        context = BorrowerContext(
            borrower_name=(borrower.legal_name if borrower and borrower.legal_name else "Unknown Borrower"),
            industry=borrower.industry if borrower else None,
            recent_metrics=_recent_metrics(latest),
        )
        try:
            return await self.gemini.analyze_covenant_risk(
                CovenantRiskInput(
                    covenant_name=covenant.covenant_name,
                    current_value=current_value,
                    threshold_value=covenant.threshold_value,
                    trend=evaluation.trend,
                    buffer_percentage=evaluation.buffer_percentage,
                ),
                context,
            )
        except AIServiceError as exc:
            logger.warning("covenant_risk_analysis_failed", covenant_id=str(covenant.id), error=str(exc))
            return FALLBACK_RISK_ASSESSMENT

    async def analyze_trends(
        self, covenant_id: int | str, periods: int = DEFAULT_HISTORY_PERIODS
    ) -> TrendAnalysis:
        covenant = await self.get_covenant(covenant_id)
        borrower_id = covenant.resolved_borrower_id
        history = await self.get_financial_history(borrower_id, periods) if borrower_id is not None else []

        points, confidences = self._metric_series(covenant, history)
        values = [p.value for p in points]

        trend_data = [
            TrendPoint(
                period_date=p.period_date,
                value=p.value,
                status=engine.determine_status(
                    p.value,
                    covenant.threshold_value,
                    covenant.operator,
                    settings.COVENANT_WARNING_MARGIN_PCT,
                ),
            )
            for p in points
        ]

        days_to_breach = engine.estimate_days_to_breach(points, covenant.threshold_value, covenant.operator)
        projected = None
        if days_to_breach is not None and points:
            projected = points[-1].period_date + timedelta(days=days_to_breach)

        return TrendAnalysis(
            covenant_id=covenant.id,
            trend=engine.classify_trend(
                values, covenant.operator, covenant.threshold_value, settings.TREND_STABLE_THRESHOLD_PCT
            ),
            trend_data=trend_data,
            velocity=engine.calculate_velocity(values),
            days_to_breach=days_to_breach,
            projected_breach_date=projected,
            confidence=engine.calculate_trend_confidence(values, confidences),
            periods_analyzed=len(points),
        )

    async def update_health_metrics(self, borrower_id: int | str) -> HealthUpdateSummary:
        """Recalculate every covenant of a borrower, a few at a time; failures are collected."""
        covenants = await self.list_borrower_covenants(borrower_id)
        summary = HealthUpdateSummary(borrower_id=borrower_id)

        for start in range(0, len(covenants), RECALCULATION_BATCH_SIZE):
            batch = covenants[start:start + RECALCULATION_BATCH_SIZE]
            results = await asyncio.gather(
                *(self.calculate_covenant_health(c.id) for c in batch),
                return_exceptions=True,
            )
            for covenant, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error(
                        "covenant_health_update_failed",
                        covenant_id=str(covenant.id),
                        error=str(result),
                    )
                    summary.failed_covenant_ids.append(covenant.id)
                else:
                    summary.updated.append(result)

        logger.info(
            "borrower_health_updated",
            borrower_id=str(borrower_id),
            updated=len(summary.updated),
            failed=len(summary.failed_covenant_ids),
        )
        return summary

    async def ingest_financial_data(self, data: FinancialMetricsInput) -> FinancialMetrics:
        errors = engine.validate_financial_data(data)
        if errors:
            raise ValidationFailedError(errors, code=ErrorCode.FINANCIAL_DATA_INVALID)

        ratios = engine.calculate_financial_ratios(data)
        payload: dict[str, Any] = {
            **data.model_dump(mode="json", exclude_none=True),
            **ratios.model_dump(exclude_none=True),
            "data_confidence": engine.assess_data_confidence(data),
        }
        stored = await self.backend.post("/financial-metrics/ingest", json=payload)
        metrics = FinancialMetrics.model_validate(stored or payload)

        logger.info(
            "financial_data_ingested",
            borrower_id=str(data.borrower_id),
            period_date=str(data.period_date),
            data_confidence=metrics.data_confidence,
        )
        await self.update_health_metrics(data.borrower_id)
        return metrics

    # ── Helpers ───────────────────────────────────────────────────────────────

    @staticmethod
    def _metric_value(covenant: Covenant, metrics: FinancialMetrics | None) -> float | None:
        try:
            return engine.resolve_metric_value(covenant.metric_name, metrics)
        except engine.UnknownMetricError:
            logger.warning("covenant_metric_unknown", covenant_id=str(covenant.id), metric=covenant.metric_name)
            return None

    def _metric_series(
        self, covenant: Covenant, history: list[FinancialMetrics]
    ) -> tuple[list[MetricPoint], list[float]]:
        points: list[MetricPoint] = []
        confidences: list[float] = []
        for metrics in history:
            value = self._metric_value(covenant, metrics)
            if value is None or metrics.period_date is None:
                continue
            points.append(MetricPoint(period_date=metrics.period_date, value=value))
            confidences.append(metrics.data_confidence)
        return points, confidences


def _recent_metrics(latest: FinancialMetrics | None) -> dict[str, float]:
    if latest is None:
        return {}
    fields = ("debt_to_ebitda", "debt_to_equity", "current_ratio", "interest_coverage", "roe", "roa")
    computed = engine.calculate_financial_ratios(latest)
    metrics: dict[str, float] = {}
    for name in fields:
        value = getattr(latest, name)
        if value is None:
            value = getattr(computed, name)
        if value is not None:
            metrics[name] = value
    return metrics
