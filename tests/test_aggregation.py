"""Tests for adverse-event risk aggregation."""

from datetime import datetime, timedelta, timezone

import pytest

from covenant_guardian.core.config import settings
from covenant_guardian.modules.adverse_events.aggregation import (
    aggregate_risk,
    assess_event_impact_on_covenant,
    calculate_risk_trend,
    calculate_weighted_risk_score,
    extract_risk_factors,
    find_highest_risk_event,
    summarize_events,
)
from covenant_guardian.modules.adverse_events.schemas import AdverseEvent

NOW = datetime(2024, 12, 31, tzinfo=timezone.utc)


def _event(score: float | None, days_ago: float, event_type: str = "news", borrower_id: str = "b1") -> AdverseEvent:
    return AdverseEvent(
        borrower_id=borrower_id,
        event_type=event_type,
        headline=f"{event_type} {days_ago}",
        risk_score=score,
        event_date=NOW - timedelta(days=days_ago),
    )


class TestAggregateRisk:
    def test_no_events(self):
        result = aggregate_risk([], now=NOW)
        assert result.total_events == 0
        assert result.aggregate_risk_score == 0
        assert result.risk_trend == "stable"
        assert result.risk_factors == []
        assert result.highest_risk_event is None

    @pytest.mark.parametrize("score", [2.0, 5.0, 8.0])
    def test_identical_recent_events_amplify(self, score):
        events = [_event(score, d) for d in (1, 2, 3)]
        aggregate = calculate_weighted_risk_score(events, now=NOW)
        assert score <= aggregate <= 10

    def test_score_is_capped(self):
        events = [_event(10.0, d) for d in range(1, 8)]
        assert calculate_weighted_risk_score(events, now=NOW) == 10.0

    def test_missing_scores_count_as_default(self):
        assert calculate_weighted_risk_score([_event(None, 1)], now=NOW) == pytest.approx(5.0)

    def test_recent_events_outweigh_old_ones(self):
        recent_high = calculate_weighted_risk_score([_event(9.0, 1), _event(2.0, 80)], now=NOW)
        old_high = calculate_weighted_risk_score([_event(9.0, 80), _event(2.0, 1)], now=NOW)
        assert recent_high > old_high

    def test_naive_event_dates_are_utc(self):
        event = AdverseEvent(borrower_id="b1", headline="x", risk_score=6.0, event_date=datetime(2024, 12, 30))
        assert calculate_weighted_risk_score([event], now=NOW) == pytest.approx(6.0)


class TestRiskTrend:
    def test_recent_high_risk_over_old_low_risk_is_increasing(self):
        events = [_event(2.0, 60), _event(2.5, 75), _event(9.0, 3)]
        assert calculate_risk_trend(events, now=NOW) == "increasing"

    def test_only_old_events_is_decreasing(self):
        assert calculate_risk_trend([_event(5.0, 40), _event(6.0, 50)], now=NOW) == "decreasing"

    def test_similar_scores_are_stable(self):
        assert calculate_risk_trend([_event(5.0, 5), _event(5.5, 45)], now=NOW) == "stable"

    def test_single_event_is_stable(self):
        assert calculate_risk_trend([_event(9.0, 1)], now=NOW) == "stable"


class TestFactorsAndHighest:
    def test_factors_are_deduplicated_in_order(self):
        events = [_event(8.0, 1, "litigation"), _event(3.0, 2, "news"), _event(9.0, 3, "litigation")]
        assert extract_risk_factors(events) == [
            "litigation event detected",
            "High-risk litigation event",
            "news event detected",
        ]

    def test_highest_risk_event(self):
        events = [_event(4.0, 1), _event(9.0, 20, "regulatory"), _event(6.0, 3)]
        assert find_highest_risk_event(events).event_type == "regulatory"

    def test_highest_of_nothing(self):
        assert find_highest_risk_event([]) is None


class TestImpactMatrix:
    def test_credit_downgrade_hits_financial_covenants_hard(self):
        assert assess_event_impact_on_covenant("credit_rating_downgrade", "financial") >= 0.8

    def test_executive_change_hits_operational_covenants(self):
        assert assess_event_impact_on_covenant("executive_change", "operational") == 0.8

    def test_unknown_types_use_default(self):
        assert assess_event_impact_on_covenant("alien_invasion", "financial") == 0.3
        assert assess_event_impact_on_covenant("news", "unknown_type") == 0.3

    def test_missing_types_fall_back_to_other(self):
        assert assess_event_impact_on_covenant(None, None) == 0.3


def test_summarize_events():
    events = [_event(8.0, 1, borrower_id="b1"), _event(4.0, 2, borrower_id="b2"), _event(7.0, 3, borrower_id="b1")]
    summary = summarize_events(events)
    assert summary.total_events == 3
    assert summary.high_risk_events == 2
    assert summary.borrowers_with_events == 2
    assert summary.average_risk_score == pytest.approx(19 / 3)


def test_unscored_events_count_as_default_score():
    summary = summarize_events([_event(None, 1)], high_risk_threshold=5.0)
    assert summary.high_risk_events == 1
    assert summary.average_risk_score == pytest.approx(5.0)


def test_high_risk_threshold_follows_settings(monkeypatch):
    events = [_event(6.0, 1, event_type="litigation")]
    assert summarize_events(events).high_risk_events == 0

    monkeypatch.setattr(settings, "HIGH_RISK_EVENT_THRESHOLD", 6.0)

    assert summarize_events(events).high_risk_events == 1
    assert "High-risk litigation event" in extract_risk_factors(events)
