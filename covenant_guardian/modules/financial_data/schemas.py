"""Financial data batch ingestion, summaries and period comparisons."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from covenant_guardian.modules.borrowers.schemas import Borrower
from covenant_guardian.modules.covenant_health.schemas import FinancialMetrics, FinancialMetricsInput


class FailedIngest(BaseModel):
    data: FinancialMetricsInput
    error: str


class BatchIngestResult(BaseModel):
    successful: list[FinancialMetrics] = []
    failed: list[FailedIngest] = []


class FinancialDataSummary(BaseModel):
    borrower_id: int | str
    latest_period: date | None = None
    periods_available: int = 0
    data_sources: list[str] = []
    avg_confidence: float = 0.0
    key_ratios: dict[str, float] = {}


class MetricChange(BaseModel):
    metric: str
    from_value: float
    to_value: float
    change_amount: float
    change_percentage: float | None = None


class FinancialComparison(BaseModel):
    period_from: FinancialMetrics | None = None
    period_to: FinancialMetrics | None = None
    changes: list[MetricChange] = []
    summary: str = ""


class StaleBorrower(BaseModel):
    model_config = ConfigDict(extra="ignore")

    borrower: Borrower
    last_update: datetime | None = None
    days_since_update: int = 0
    missing_periods: int = 0
