"""Borrower records and the combined borrower detail view."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from covenant_guardian.modules.adverse_events.schemas import AdverseEvent
from covenant_guardian.modules.contracts.schemas import Contract
from covenant_guardian.modules.covenant_health.schemas import FinancialMetrics
from covenant_guardian.services.backend import Pagination


class Borrower(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    bank_id: int | str | None = None
    legal_name: str
    ticker_symbol: str | None = None
    industry: str | None = None
    country: str | None = None
    credit_rating: str | None = None
    last_financial_update: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BorrowerCreateInput(BaseModel):
    legal_name: str = Field(min_length=1, max_length=255)
    ticker_symbol: str | None = Field(default=None, max_length=16)
    industry: str | None = None
    country: str | None = None
    credit_rating: str | None = None


class BorrowerUpdateInput(BaseModel):
    legal_name: str | None = Field(default=None, min_length=1, max_length=255)
    ticker_symbol: str | None = Field(default=None, max_length=16)
    industry: str | None = None
    country: str | None = None
    credit_rating: str | None = None


class BorrowerFilters(BaseModel):
    search: str | None = None
    industry: str | None = None
    country: str | None = None
    credit_rating: str | None = None


class BorrowerPage(BaseModel):
    items: list[Borrower] = []
    pagination: Pagination | None = None


class BorrowerRiskSummary(BaseModel):
    total_exposure: float = 0.0
    active_contracts: int = 0
    at_risk_contracts: int = 0
    avg_event_risk: float = 0.0


class BorrowerDetails(Borrower):
    contracts: list[Contract] = []
    latest_financials: FinancialMetrics | None = None
    recent_events: list[AdverseEvent] = []
    risk_summary: BorrowerRiskSummary = BorrowerRiskSummary()
