"""Recency-weighted risk aggregation over a borrower's adverse events.

Scoring model:

- each event is weighted by recency ``max(0.1, 1 - age_days / decay_days)``
  (age floored at one day) and by severity ``0.5 + 0.5 * score / 10``;
- the base score is the weighted mean of event scores;
- an event-count multiplier ``min(1.5, 1 + 0.1 * (n - 1))`` amplifies it;
- the result is clamped to [1, 10]. No events scores 0.

Events without a risk score count as 5. An event is high-risk at or above
``settings.HIGH_RISK_EVENT_THRESHOLD`` unless a threshold is passed in.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from covenant_guardian.core.config import settings
from covenant_guardian.modules.adverse_events.schemas import (
    AdverseEvent,
    RiskAggregationResult,
    RiskSummary,
    RiskTrend,
)

DEFAULT_EVENT_SCORE = 5.0
RECENCY_WINDOW_DAYS = 30
DECAY_DAYS = 90
MIN_RECENCY_WEIGHT = 0.1
COUNT_STEP = 0.1
MAX_COUNT_MULTIPLIER = 1.5
TREND_MARGIN = 1.0

# covenant_type -> event_type -> impact in [0, 1]
IMPACT_MATRIX: dict[str, dict[str, float]] = {
    "financial": {
        "credit_rating_downgrade": 0.9,
        "regulatory": 0.7,
        "litigation": 0.6,
        "news": 0.4,
        "executive_change": 0.3,
        "other": 0.2,
    },
    "operational": {
        "executive_change": 0.8,
        "regulatory": 0.7,
        "litigation": 0.5,
        "news": 0.4,
        "credit_rating_downgrade": 0.3,
        "other": 0.2,
    },
    "reporting": {
        "regulatory": 0.8,
        "litigation": 0.6,
        "executive_change": 0.5,
        "news": 0.3,
        "credit_rating_downgrade": 0.3,
        "other": 0.2,
    },
    "other": {
        "news": 0.5,
        "regulatory": 0.5,
        "litigation": 0.5,
        "executive_change": 0.5,
        "credit_rating_downgrade": 0.5,
        "other": 0.3,
    },
}

DEFAULT_IMPACT = 0.3


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _score(event: AdverseEvent) -> float:
    return event.risk_score if event.risk_score is not None else DEFAULT_EVENT_SCORE


def _threshold(value: float | None) -> float:
    return settings.HIGH_RISK_EVENT_THRESHOLD if value is None else value


def calculate_weighted_risk_score(
    events: Sequence[AdverseEvent],
    now: datetime | None = None,
    decay_days: int = DECAY_DAYS,
) -> float:
    if not events:
        return 0.0

    now = _utc(now or datetime.now(timezone.utc))
    total_weight = 0.0
    weighted_sum = 0.0

    for event in events:
        score = _score(event)
        age_days = max(1.0, (now - _utc(event.event_date)).total_seconds() / 86400)
        recency = max(MIN_RECENCY_WEIGHT, 1 - age_days / decay_days)
        severity = score / 10
        weight = recency * (0.5 + 0.5 * severity)
        weighted_sum += score * weight
        total_weight += weight

    base = weighted_sum / total_weight if total_weight > 0 else DEFAULT_EVENT_SCORE
    multiplier = min(MAX_COUNT_MULTIPLIER, 1 + (len(events) - 1) * COUNT_STEP)
    return min(10.0, max(1.0, base * multiplier))


def extract_risk_factors(
    events: Sequence[AdverseEvent],
    high_risk_threshold: float | None = None,
) -> list[str]:
    """De-duplicated factor strings in first-seen order."""
    threshold = _threshold(high_risk_threshold)
    factors: list[str] = []
    seen: set[str] = set()

    def _add(factor: str) -> None:
        if factor not in seen:
            seen.add(factor)
            factors.append(factor)

    for event in events:
        _add(f"{event.event_type} event detected")
        if _score(event) >= threshold:
            _add(f"High-risk {event.event_type} event")
    return factors


def calculate_risk_trend(
    events: Sequence[AdverseEvent],
    now: datetime | None = None,
    window_days: int = RECENCY_WINDOW_DAYS,
) -> RiskTrend:
    if len(events) < 2:
        return "stable"

    cutoff = _utc(now or datetime.now(timezone.utc)) - timedelta(days=window_days)
    recent = [_score(e) for e in events if _utc(e.event_date) >= cutoff]
    older = [_score(e) for e in events if _utc(e.event_date) < cutoff]

    if not recent:
        return "decreasing"
    if not older:
        return "increasing"

    diff = sum(recent) / len(recent) - sum(older) / len(older)
    if diff > TREND_MARGIN:
        return "increasing"
    if diff < -TREND_MARGIN:
        return "decreasing"
    return "stable"


def find_highest_risk_event(events: Sequence[AdverseEvent]) -> AdverseEvent | None:
    if not events:
        return None
    return max(events, key=lambda e: (_score(e), _utc(e.event_date)))


def aggregate_risk(
    events: Sequence[AdverseEvent],
    now: datetime | None = None,
    window_days: int = RECENCY_WINDOW_DAYS,
    decay_days: int = DECAY_DAYS,
    high_risk_threshold: float | None = None,
) -> RiskAggregationResult:
    """Aggregate score, factors, trend and highest-risk event for a set of events."""
    if not events:
        return RiskAggregationResult(
            total_events=0,
            aggregate_risk_score=0.0,
            risk_factors=[],
            highest_risk_event=None,
            risk_trend="stable",
        )

    return RiskAggregationResult(
        total_events=len(events),
        aggregate_risk_score=calculate_weighted_risk_score(events, now, decay_days),
        risk_factors=extract_risk_factors(events, high_risk_threshold),
        highest_risk_event=find_highest_risk_event(events),
        risk_trend=calculate_risk_trend(events, now, window_days),
    )


def assess_event_impact_on_covenant(event_type: str | None, covenant_type: str | None) -> float:
    """How strongly an event of this type bears on a covenant of this type."""
    row = IMPACT_MATRIX.get(covenant_type or "other")
    if row is None:
        return DEFAULT_IMPACT
    return row.get(event_type or "other", DEFAULT_IMPACT)


def summarize_events(
    events: Sequence[AdverseEvent],
    high_risk_threshold: float | None = None,
) -> RiskSummary:
    threshold = _threshold(high_risk_threshold)
    high_risk = [e for e in events if _score(e) >= threshold]
    borrowers = {str(e.borrower_id) for e in events}
    average = sum(_score(e) for e in events) / len(events) if events else 0.0
    return RiskSummary(
        total_events=len(events),
        high_risk_events=len(high_risk),
        borrowers_with_events=len(borrowers),
        average_risk_score=average,
    )
