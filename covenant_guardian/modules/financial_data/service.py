"""Financial data operations across reporting periods.

Single-period ingestion lives in the covenant health service because it
recalculates covenants; this module batches it and adds the read-side views.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import date

import structlog

from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import ErrorCode, ValidationFailedError
from covenant_guardian.modules.alerts.service import AlertService
from covenant_guardian.modules.borrowers.service import BorrowerService
from covenant_guardian.modules.covenant_health.schemas import FinancialMetrics, FinancialMetricsInput
from covenant_guardian.modules.covenant_health.service import CovenantHealthService
from covenant_guardian.modules.financial_data.schemas import (
    BatchIngestResult,
    FailedIngest,
    FinancialComparison,
    FinancialDataSummary,
    MetricChange,
    StaleBorrower,
)
from covenant_guardian.services.backend import BackendClient, page_items
from covenant_guardian.services.gemini import GeminiClient

logger = structlog.get_logger()

INGEST_BATCH_SIZE = 10
SUMMARY_PERIODS = 8
KEY_RATIOS = ("debt_to_ebitda", "current_ratio", "interest_coverage")
COMPARED_METRICS = (
    "revenue",
    "ebitda",
    "net_income",
    "operating_cash_flow",
    "debt_total",
    "equity_total",
    "debt_to_ebitda",
    "debt_to_equity",
    "current_ratio",
    "interest_coverage",
)


# ── Pure views ────────────────────────────────────────────────────────────────


def summarize_financial_history(
    borrower_id: int | str,
    history: Sequence[FinancialMetrics],
) -> FinancialDataSummary:
    """Coverage of a borrower's reporting history; key ratios come from the latest period."""
    dated = sorted((m for m in history if m.period_date is not None), key=lambda m: m.period_date)
    if not dated:
        return FinancialDataSummary(borrower_id=borrower_id)

    latest = dated[-1]
    key_ratios = {name: getattr(latest, name) for name in KEY_RATIOS if getattr(latest, name) is not None}
    return FinancialDataSummary(
        borrower_id=borrower_id,
        latest_period=latest.period_date,
        periods_available=len(dated),
        data_sources=sorted({m.source for m in dated if m.source}),
        avg_confidence=sum(m.data_confidence for m in dated) / len(dated),
        key_ratios=key_ratios,
    )


def compare_periods(
    before: FinancialMetrics | None,
    after: FinancialMetrics | None,
) -> FinancialComparison:
    if before is None or after is None:
        missing = "earlier" if before is None else "later"
        return FinancialComparison(period_from=before, period_to=after, summary=f"No financial data for the {missing} period")

    changes: list[MetricChange] = []
    for metric in COMPARED_METRICS:
        old, new = getattr(before, metric), getattr(after, metric)
        if old is None or new is None:
            continue
        changes.append(
            MetricChange(
                metric=metric,
                from_value=old,
                to_value=new,
                change_amount=new - old,
                change_percentage=(new - old) / abs(old) * 100 if old else None,
            )
        )

    summary = f"{len(changes)} metrics compared between {before.period_date} and {after.period_date}"
    moved = [c for c in changes if c.change_percentage is not None]
    if moved:
        largest = max(moved, key=lambda c: abs(c.change_percentage))
        summary += f"; largest move {largest.metric} {largest.change_percentage:+.1f}%"
    return FinancialComparison(period_from=before, period_to=after, changes=changes, summary=summary)


# ── Service ───────────────────────────────────────────────────────────────────


class FinancialDataService:
    def __init__(self, backend: BackendClient, gemini: GeminiClient | None = None) -> None:
        self.backend = backend
        self.health = CovenantHealthService(backend, gemini=gemini, alerts=AlertService(backend))

    async def ingest_financial_data(self, data: FinancialMetricsInput) -> FinancialMetrics:
        """Store one period after checking its borrower exists."""
        if data.borrower_id is None:
            raise ValidationFailedError(["Borrower ID is required"], code=ErrorCode.FINANCIAL_DATA_INVALID)
        try:
            await BorrowerService(self.backend).get_borrower(data.borrower_id)
        except LookupError as exc:
            raise ValidationFailedError(
                [f"Invalid borrower ID: {data.borrower_id}"],
                code=ErrorCode.FINANCIAL_DATA_INVALID,
            ) from exc
        return await self.health.ingest_financial_data(data)

    async def batch_ingest_financial_data(
        self,
        records: Sequence[FinancialMetricsInput],
        batch_size: int = INGEST_BATCH_SIZE,
    ) -> BatchIngestResult:
        """Ingest in batches of ``batch_size``; a record that fails is reported, not raised."""
        result = BatchIngestResult()
        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self.ingest_financial_data(record) for record in batch),
                return_exceptions=True,
            )
            for record, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.warning("financial_data_ingest_failed", borrower_id=str(record.borrower_id), error=str(outcome))
                    result.failed.append(FailedIngest(data=record, error=str(outcome) or "Unknown error"))
                else:
                    result.successful.append(outcome)

        logger.info("financial_data_batch_ingested", successful=len(result.successful), failed=len(result.failed))
        return result

    async def get_financial_data_summary(
        self,
        borrower_id: int | str,
        periods: int = SUMMARY_PERIODS,
    ) -> FinancialDataSummary:
        history = await self.health.get_financial_history(borrower_id, periods)
        return summarize_financial_history(borrower_id, history)

    async def compare_financial_metrics(
        self,
        borrower_id: int | str,
        period_from: date,
        period_to: date,
    ) -> FinancialComparison:
        items, _ = page_items(
            await self.backend.get_page(
                f"/borrowers/{borrower_id}/financials",
                params={"date_from": period_from.isoformat(), "date_to": period_to.isoformat()},
            )
        )
        by_date = {m.period_date: m for m in (FinancialMetrics.model_validate(i) for i in items)}
        return compare_periods(by_date.get(period_from), by_date.get(period_to))

    async def get_borrowers_with_stale_data(self, days: int | None = None) -> list[StaleBorrower]:
        days = settings.STALE_FINANCIAL_DATA_DAYS if days is None else days
        items, _ = page_items(await self.backend.get_page("/financial-metrics/stale", params={"days": days}))
        return [StaleBorrower.model_validate(i) for i in items]
