"""Deterministic covenant health evaluation. No I/O, no AI calls.

Status, buffer, trend and days-to-breach are derived from a covenant's
operator/threshold and the borrower's reported metric values. Missing inputs
never raise: they yield the insufficient-data default (compliant, stable) with
``data_sufficient=False`` so callers can surface the gap instead of trusting it.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import structlog

from covenant_guardian.modules.covenant_health.schemas import (
    CovenantHealthEvaluation,
    FinancialMetrics,
    FinancialMetricsInput,
    FinancialRatios,
    HealthStatus,
    HealthTrend,
    MetricPoint,
)

logger = structlog.get_logger()

EQUALITY_TOLERANCE = 0.01

DEFAULT_WARNING_MARGIN_PCT = 10.0
DEFAULT_STABLE_THRESHOLD_PCT = 5.0
DEFAULT_DATA_CONFIDENCE = 0.5

LOWER_IS_BETTER: frozenset[str] = frozenset({"<", "<="})
HIGHER_IS_BETTER: frozenset[str] = frozenset({">", ">="})

# Metric names a covenant may monitor, mapped to FinancialMetrics attributes
METRIC_FIELDS: dict[str, str] = {
    "debt_to_ebitda": "debt_to_ebitda",
    "debt_to_equity": "debt_to_equity",
    "current_ratio": "current_ratio",
    "interest_coverage": "interest_coverage",
    "roe": "roe",
    "roa": "roa",
    "debt_total": "debt_total",
    "ebitda": "ebitda",
    "revenue": "revenue",
    "net_income": "net_income",
    "equity_total": "equity_total",
    "current_assets": "current_assets",
    "current_liabilities": "current_liabilities",
}

KEY_METRICS: tuple[str, ...] = ("debt_total", "ebitda", "revenue", "net_income", "equity_total")

NON_NEGATIVE_FIELDS: tuple[str, ...] = (
    "debt_total",
    "ebitda",
    "revenue",
    "equity_total",
    "current_assets",
    "current_liabilities",
    "capex",
)


class UnknownMetricError(ValueError):
    pass


def _is_number(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


# ── Predicate / buffer / status ───────────────────────────────────────────────


def evaluate_condition(current: float, threshold: float, operator: str) -> bool:
    """True when ``current <operator> threshold`` holds (the covenant is met)."""
    if operator == "<":
        return current < threshold
    if operator == "<=":
        return current <= threshold
    if operator == ">":
        return current > threshold
    if operator == ">=":
        return current >= threshold
    if operator == "=":
        return abs(current - threshold) < EQUALITY_TOLERANCE
    if operator == "!=":
        return abs(current - threshold) >= EQUALITY_TOLERANCE
    raise ValueError(f"Unsupported operator: {operator}")


def calculate_buffer_percentage(current: float, threshold: float, operator: str) -> float:
    """Signed distance to the threshold as a percentage of it; positive is the safe side."""
    if threshold == 0 or not _is_number(current) or not _is_number(threshold):
        return 0.0

    scale = abs(threshold)
    if operator in LOWER_IS_BETTER:
        buffer = (threshold - current) / scale * 100
    elif operator in HIGHER_IS_BETTER:
        buffer = (current - threshold) / scale * 100
    else:
        buffer = abs(current - threshold) / scale * 100

    return buffer if math.isfinite(buffer) else 0.0


def clamp_buffer_for_display(buffer: float, bound: float = 100.0) -> float:
    return max(-bound, min(bound, buffer))


def determine_status(
    current: float | None,
    threshold: float | None,
    operator: str | None,
    warning_margin_pct: float = DEFAULT_WARNING_MARGIN_PCT,
) -> HealthStatus:
    """Breached when the predicate fails, warning when it holds within the margin."""
    if not _is_number(current) or not _is_number(threshold) or not operator:
        return "compliant"

    if not evaluate_condition(current, threshold, operator):
        return "breached"

    if operator == "=":
        return "compliant"

    margin = abs(threshold) * warning_margin_pct / 100
    if abs(current - threshold) < margin:
        return "warning"
    return "compliant"


# ── Trend ─────────────────────────────────────────────────────────────────────


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _relative_change_pct(before: float, after: float) -> float:
    if before == 0:
        return 0.0 if after == 0 else math.copysign(100.0, after)
    return (after - before) / abs(before) * 100


def classify_trend(
    values: Sequence[float],
    operator: str | None,
    threshold: float | None = None,
    stable_threshold_pct: float = DEFAULT_STABLE_THRESHOLD_PCT,
) -> HealthTrend:
    """Compare the first-half mean with the second-half mean of a chronological window."""
    if len(values) < 2 or not operator:
        return "stable"

    half = len(values) // 2
    first, second = values[:half], values[half:]

    if operator in LOWER_IS_BETTER or operator in HIGHER_IS_BETTER:
        change = _relative_change_pct(_mean(first), _mean(second))
        if abs(change) < stable_threshold_pct:
            return "stable"
        getting_better = change < 0 if operator in LOWER_IS_BETTER else change > 0
    else:
        if not _is_number(threshold):
            return "stable"
        before = _mean([abs(v - threshold) for v in first])
        after = _mean([abs(v - threshold) for v in second])
        change = _relative_change_pct(before, after)
        if abs(change) < stable_threshold_pct:
            return "stable"
        # "=" wants the distance to shrink, "!=" wants it to grow
        getting_better = change < 0 if operator == "=" else change > 0

    return "improving" if getting_better else "deteriorating"


def calculate_velocity(values: Sequence[float]) -> float:
    """Average change per period between the earliest and latest value."""
    if len(values) < 2:
        return 0.0
    return (values[-1] - values[0]) / (len(values) - 1)


def calculate_trend_confidence(
    values: Sequence[float],
    data_confidences: Sequence[float] = (),
) -> float:
    if len(values) < 2:
        return 0.0

    confidence = 0.5
    confidence += min(0.3, (len(values) - 2) * 0.1)

    avg_data_confidence = _mean(data_confidences) if data_confidences else DEFAULT_DATA_CONFIDENCE
    confidence += avg_data_confidence * 0.2

    return min(1.0, max(0.0, confidence))


# ── Days to breach ────────────────────────────────────────────────────────────


def estimate_days_to_breach(
    history: Sequence[MetricPoint],
    threshold: float | None,
    operator: str | None,
) -> int | None:
    """Linear extrapolation through the two most recent points.

    Returns 0 when the latest value already breaches, None when the projection
    is undefined or moves away from the threshold.
    """
    if len(history) < 2 or not operator or not _is_number(threshold) or operator == "=":
        return None

    ordered = sorted(history, key=lambda p: p.period_date)
    previous, latest = ordered[-2], ordered[-1]

    if not evaluate_condition(latest.value, threshold, operator):
        return 0

    elapsed_days = (latest.period_date - previous.period_date).days
    if elapsed_days == 0:
        return None

    slope = (latest.value - previous.value) / elapsed_days
    if slope == 0:
        return None

    gap = threshold - latest.value
    if operator in LOWER_IS_BETTER:
        toward_breach = slope > 0
    elif operator in HIGHER_IS_BETTER:
        toward_breach = slope < 0
    else:
        toward_breach = gap != 0 and math.copysign(1, gap) == math.copysign(1, slope)

    if not toward_breach:
        return None

    days = abs(gap) / abs(slope)
    if not math.isfinite(days):
        return None
    return max(0, math.ceil(days))


# ── Composite ─────────────────────────────────────────────────────────────────


def evaluate_covenant_health(
    operator: str | None,
    threshold: float | None,
    current: float | None,
    history: Sequence[MetricPoint] = (),
    data_confidences: Sequence[float] = (),
    warning_margin_pct: float = DEFAULT_WARNING_MARGIN_PCT,
    stable_threshold_pct: float = DEFAULT_STABLE_THRESHOLD_PCT,
) -> CovenantHealthEvaluation:
    """Full health snapshot for one covenant.

    ``history`` should include the current period; trend and days-to-breach are
    computed from it in chronological order.
    """
    if not _is_number(current) or not _is_number(threshold) or not operator:
        logger.warning(
            "covenant_health_insufficient_data",
            has_value=_is_number(current),
            has_threshold=_is_number(threshold),
            has_operator=bool(operator),
        )
        return CovenantHealthEvaluation(
            status="compliant",
            buffer_percentage=None,
            trend="stable",
            days_to_breach=None,
            trend_confidence=0.0,
            data_sufficient=False,
        )

    ordered = sorted(history, key=lambda p: p.period_date)
    values = [p.value for p in ordered]

    return CovenantHealthEvaluation(
        status=determine_status(current, threshold, operator, warning_margin_pct),
        buffer_percentage=calculate_buffer_percentage(current, threshold, operator),
        trend=classify_trend(values, operator, threshold, stable_threshold_pct),
        days_to_breach=estimate_days_to_breach(ordered, threshold, operator),
        trend_confidence=calculate_trend_confidence(values, data_confidences),
        data_sufficient=True,
    )


# ── Financial data ────────────────────────────────────────────────────────────


def _safe_ratio(numerator: float | None, denominator: float | None, scale: float = 1.0) -> float | None:
    if not _is_number(numerator) or not _is_number(denominator) or denominator == 0:
        return None
    ratio = numerator / denominator * scale
    return ratio if math.isfinite(ratio) else None


def calculate_financial_ratios(data: FinancialMetricsInput) -> FinancialRatios:
    """Standard credit ratios; a ratio is omitted when its inputs cannot produce it.

    ROA is measured against current assets, the only asset figure reported.
    """
    return FinancialRatios(
        debt_to_ebitda=_safe_ratio(data.debt_total, data.ebitda),
        debt_to_equity=_safe_ratio(data.debt_total, data.equity_total),
        current_ratio=_safe_ratio(data.current_assets, data.current_liabilities),
        interest_coverage=_safe_ratio(data.ebitda, data.interest_expense),
        roe=_safe_ratio(data.net_income, data.equity_total, 100.0),
        roa=_safe_ratio(data.net_income, data.current_assets, 100.0),
    )


def assess_data_confidence(data: FinancialMetricsInput) -> float:
    confidence = 0.5

    present = [m for m in KEY_METRICS if getattr(data, m) is not None]
    confidence += len(present) / len(KEY_METRICS) * 0.3

    if data.current_assets and data.current_liabilities:
        confidence += 0.1
    if data.revenue and data.net_income:
        confidence += 0.1

    return min(1.0, max(0.0, confidence))


def validate_financial_data(data: FinancialMetricsInput) -> list[str]:
    """Return the list of validation errors (empty when the input is acceptable)."""
    errors: list[str] = []

    if data.borrower_id in (None, ""):
        errors.append("Borrower ID is required")
    if data.period_date is None:
        errors.append("Period date is required")
    if data.period_type is None:
        errors.append("Period type is required")
    if data.source is None:
        errors.append("Data source is required")

    for field in NON_NEGATIVE_FIELDS:
        value = getattr(data, field)
        if value is not None and value < 0:
            errors.append(f"{field} cannot be negative")

    return errors


def resolve_metric_value(metric_name: str | None, metrics: FinancialMetrics | None) -> float | None:
    """Value of the covenant's metric in a reporting period, None when not reported."""
    if metrics is None or not metric_name:
        return None

    field = METRIC_FIELDS.get(metric_name)
    if field is None:
        raise UnknownMetricError(f"Unknown metric: {metric_name}")

    value = getattr(metrics, field)
    if value is None and field in FinancialRatios.model_fields:
        value = getattr(calculate_financial_ratios(metrics), field)
    return value if _is_number(value) else None
