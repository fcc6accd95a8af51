"""Adverse event schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from covenant_guardian.modules.covenant_health.schemas import CovenantType

EventType = Literal[
    "news",
    "regulatory",
    "credit_rating_downgrade",
    "executive_change",
    "litigation",
    "other",
]
RiskTrend = Literal["increasing", "stable", "decreasing"]

EVENT_TYPES: tuple[str, ...] = (
    "news",
    "regulatory",
    "credit_rating_downgrade",
    "executive_change",
    "litigation",
    "other",
)


class AdverseEventInput(BaseModel):
    borrower_id: int | str
    event_type: EventType
    headline: str = Field(min_length=1)
    description: str | None = None
    source_url: str | None = None
    event_date: datetime


class AdverseEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str | None = None
    borrower_id: int | str
    bank_id: int | str | None = None
    event_type: EventType = "other"
    headline: str = ""
    description: str | None = None
    source_url: str | None = None
    risk_score: float | None = Field(default=None, ge=1, le=10)
    gemini_analyzed: bool = False
    event_date: datetime
    created_at: datetime | None = None


class RiskAggregationResult(BaseModel):
    """Pure aggregation over a set of events."""
    total_events: int
    aggregate_risk_score: float = Field(ge=0, le=10)
    risk_factors: list[str] = []
    highest_risk_event: AdverseEvent | None = None
    risk_trend: RiskTrend = "stable"


class RiskAggregation(RiskAggregationResult):
    borrower_id: int | str
    last_calculated: datetime


class EventImpactAssessment(BaseModel):
    risk_score: float = Field(ge=1, le=10)
    impact_assessment: str
    affected_covenants: list[str] = []
    recommended_actions: list[str] = []


class EventRiskAssessment(BaseModel):
    risk_score: float = Field(ge=1, le=10)
    risk_factors: list[str] = []
    recommended_actions: list[str] = []
    summary: str
    confidence: float = Field(ge=0, le=1)


class RiskSummary(BaseModel):
    total_events: int
    high_risk_events: int
    borrowers_with_events: int
    average_risk_score: float


# ── API request bodies ────────────────────────────────────────────────────────


class AggregateRequest(BaseModel):
    events: list[AdverseEvent]
    as_of: datetime | None = None


class ImpactRequest(BaseModel):
    event_type: EventType
    covenant_type: CovenantType


class ImpactResponse(BaseModel):
    event_type: EventType
    covenant_type: CovenantType
    impact: float
