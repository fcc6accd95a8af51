"""Risk report generation and storage."""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from covenant_guardian.core.errors import BackendAPIError, ErrorCode, ValidationFailedError
from covenant_guardian.modules.alerts.schemas import Alert
from covenant_guardian.modules.contracts.schemas import Contract
from covenant_guardian.modules.covenant_health.schemas import BorrowerRef, CovenantHealth
from covenant_guardian.modules.reports.analytics import (
    basic_recommendations,
    build_report_data,
    calculate_portfolio_risk_score,
    executive_summary,
    identify_basic_risks,
    summarize_covenant_health,
)
from covenant_guardian.modules.reports.schemas import (
    GeneratedReport,
    PortfolioRiskScore,
    Report,
    ReportData,
    ReportFilters,
    ReportGenerationInput,
)
from covenant_guardian.services.backend import BackendClient, page_items
from covenant_guardian.services.gemini import (
    AIServiceError,
    BorrowerContext,
    CovenantRiskInput,
    GeminiClient,
)

logger = structlog.get_logger()

PORTFOLIO_BREACH_RATE_THRESHOLD = 10.0


def validate_report_input(data: ReportGenerationInput) -> list[str]:
    errors = []
    if data.start_date > data.end_date:
        errors.append("Start date must be before end date")
    if data.report_type == "borrower_deep_dive" and not data.borrower_id:
        errors.append("Borrower ID is required for borrower deep dive reports")
    return errors


def generate_report_id() -> str:
    return f"report_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ReportService:
    def __init__(self, backend: BackendClient, gemini: GeminiClient | None = None) -> None:
        self.backend = backend
        self.gemini = gemini

    async def generate_report(
        self,
        data: ReportGenerationInput,
        generated_by: int | str | None = None,
    ) -> GeneratedReport:
        errors = validate_report_input(data)
        if errors:
            raise ValidationFailedError(errors, code=ErrorCode.VALIDATION_ERROR)

        report_data = await self._gather_report_data(data)
        if data.include_ai_summary:
            await self._add_narrative(report_data, data)

        report = await self._store_report(data, report_data, generated_by)
        logger.info(
            "report_generated",
            report_id=str(report.id),
            report_type=data.report_type,
            stored=report.stored,
            total_contracts=report_data.total_contracts,
        )
        return report

    async def list_reports(self, filters: ReportFilters | None = None) -> list[Report]:
        params = filters.model_dump(mode="json", exclude_none=True) if filters else None
        items, _ = page_items(await self.backend.get_page("/reports", params=params))
        return [Report.model_validate(i) for i in items]

    async def get_report(self, report_id: int | str) -> GeneratedReport:
        try:
            data = await self.backend.get(f"/reports/{report_id}")
        except BackendAPIError as exc:
            if exc.status_code == 404:
                raise LookupError(f"Report {report_id} not found") from exc
            raise
        if not data:
            raise LookupError(f"Report {report_id} not found")
        if "report_data" not in data:
            data = {**data, "report_data": {}}
        return GeneratedReport.model_validate(data)

    async def delete_report(self, report_id: int | str) -> None:
        await self.backend.delete(f"/reports/{report_id}")
        logger.info("report_deleted", report_id=str(report_id))

    async def get_portfolio_risk_score(self) -> PortfolioRiskScore:
        contracts, healths = await asyncio.gather(
            self._fetch("/contracts", {"status": "active,watch"}, Contract),
            self._fetch("/covenant_health", None, CovenantHealth),
        )
        score = calculate_portfolio_risk_score(healths) if contracts else 0.0
        return PortfolioRiskScore(portfolio_risk_score=score, health=summarize_covenant_health(healths))

    # ── Internals ─────────────────────────────────────────────────────────

    async def _gather_report_data(self, data: ReportGenerationInput) -> ReportData:
        period = {
            "date_from": data.start_date.isoformat(),
            "date_to": data.end_date.isoformat(),
            "borrower_id": data.borrower_id,
        }
        contracts, healths, alerts, borrowers = await asyncio.gather(
            self._fetch("/contracts", period, Contract),
            self._fetch("/covenant_health", period, CovenantHealth),
            self._fetch("/alerts", period, Alert),
            self._fetch("/borrowers", {"id": data.borrower_id}, BorrowerRef),
        )
        return build_report_data(contracts, healths, alerts, borrowers)

    async def _fetch(self, path: str, params: dict[str, Any] | None, model: type[BaseModel]) -> list[Any]:
        """A report section's records; an unavailable section counts as empty."""
        try:
            items, _ = page_items(await self.backend.get_page(path, params=params))
            return [model.model_validate(i) for i in items]
        except (BackendAPIError, ValidationError) as exc:
            logger.warning("report_section_unavailable", path=path, error=str(exc))
            return []

    async def _add_narrative(self, report_data: ReportData, data: ReportGenerationInput) -> None:
        ai_summary = None
        if self.gemini is not None and self.gemini.enabled:
            try:
                assessment = await self.gemini.analyze_covenant_risk(
                    CovenantRiskInput(
                        covenant_name=f"Portfolio Report ({data.report_type})",
                        current_value=report_data.breach_statistics.breach_rate,
                        threshold_value=PORTFOLIO_BREACH_RATE_THRESHOLD,
                        trend=report_data.trend_analysis.overall_trend,
                        buffer_percentage=100 - report_data.breach_statistics.breach_rate,
                    ),
                    BorrowerContext(
                        borrower_name="Portfolio",
                        industry="Mixed",
                        recent_metrics={
                            "total_contracts": report_data.total_contracts,
                            "contracts_at_risk": report_data.contracts_at_risk,
                            "breach_rate": report_data.breach_statistics.breach_rate,
                        },
                    ),
                )
                ai_summary = assessment.summary
                report_data.key_risks = assessment.risk_factors
                report_data.recommendations = assessment.recommended_actions
            except AIServiceError as exc:
                logger.warning("report_ai_summary_failed", error=str(exc))

        report_data.executive_summary = executive_summary(report_data, ai_summary)
        if ai_summary is None:
            report_data.key_risks = identify_basic_risks(report_data)
            report_data.recommendations = basic_recommendations(report_data)

    async def _store_report(
        self,
        data: ReportGenerationInput,
        report_data: ReportData,
        generated_by: int | str | None,
    ) -> GeneratedReport:
        now = datetime.now(timezone.utc)
        report = GeneratedReport(
            id=generate_report_id(),
            report_type=data.report_type,
            report_date=now,
            total_contracts=report_data.total_contracts,
            contracts_at_risk=report_data.contracts_at_risk,
            total_principal=report_data.total_principal,
            total_covenants=report_data.total_covenants,
            covenants_breached=report_data.covenants_breached,
            covenants_warning=report_data.covenants_warning,
            summary_text=report_data.executive_summary,
            key_risks={"risks": report_data.key_risks},
            recommendations={"actions": report_data.recommendations},
            generated_by=generated_by,
            created_at=now,
            report_data=report_data,
        )

        try:
            stored = await self.backend.post("/reports", json=report.model_dump(mode="json", exclude={"stored"}))
        except BackendAPIError as exc:
            logger.warning("report_storage_failed", report_id=report.id, error=exc.message)
            return report.model_copy(update={"stored": False})

        if not stored:
            return report.model_copy(update={"stored": False})
        merged = {**report.model_dump(), **Report.model_validate(stored).model_dump(exclude_none=True)}
        merged["report_data"] = report_data
        return GeneratedReport.model_validate(merged)
