"""Portfolio statistics behind risk reports and the dashboard risk score.

Borrower risk weights each covenant health record: breached 10, warning 5,
deteriorating trend 2; the weighted sum is averaged over the borrower's
records and capped at 10. Portfolio risk is ``10 * breach rate + 5 * warning
rate`` clamped to [0, 10].
"""

from __future__ import annotations

from collections.abc import Sequence

from covenant_guardian.modules.alerts.schemas import Alert
from covenant_guardian.modules.contracts.schemas import Contract
from covenant_guardian.modules.covenant_health.schemas import BorrowerRef, CovenantHealth, HealthStatus
from covenant_guardian.modules.reports.schemas import (
    BorrowerRiskProfile,
    BreachStatistics,
    CovenantHealthSummary,
    GeneratedReport,
    ReportData,
    ReportValidation,
    TrendSummary,
)

AT_RISK_CONTRACT_STATUSES = ("watch", "default")
HIGH_RISK_BORROWER_SCORE = 7.0
BREACH_RATE_RISK_PCT = 10.0
AT_RISK_CONTRACT_SHARE = 0.2
DETERIORATING_COVENANT_SHARE = 0.3


def summarize_covenant_health(healths: Sequence[CovenantHealth]) -> CovenantHealthSummary:
    total = len(healths)
    compliant = sum(1 for h in healths if h.status == "compliant")
    return CovenantHealthSummary(
        total_covenants=total,
        compliant=compliant,
        warning=sum(1 for h in healths if h.status == "warning"),
        breached=sum(1 for h in healths if h.status == "breached"),
        compliance_rate=(compliant / total) * 100 if total else 100.0,
    )


def calculate_borrower_risk_score(healths: Sequence[CovenantHealth]) -> float:
    if not healths:
        return 0.0
    breached = sum(1 for h in healths if h.status == "breached")
    warning = sum(1 for h in healths if h.status == "warning")
    deteriorating = sum(1 for h in healths if h.trend == "deteriorating")
    raw = (breached * 10 + warning * 5 + deteriorating * 2) / len(healths)
    return min(10.0, round(raw, 2))


def calculate_portfolio_risk_score(healths: Sequence[CovenantHealth]) -> float:
    if not healths:
        return 0.0
    summary = summarize_covenant_health(healths)
    breach_rate = summary.breached / summary.total_covenants
    warning_rate = summary.warning / summary.total_covenants
    return min(10.0, max(0.0, breach_rate * 10 + warning_rate * 5))


def calculate_breach_statistics(alerts: Sequence[Alert], healths: Sequence[CovenantHealth]) -> BreachStatistics:
    breach_alerts = [a for a in alerts if a.alert_type == "breach"]
    ongoing = sum(1 for h in healths if h.status == "breached")
    rate = (ongoing / len(healths)) * 100 if healths else 0.0
    return BreachStatistics(
        new_breaches=sum(1 for a in breach_alerts if a.status == "new"),
        resolved_breaches=sum(1 for a in breach_alerts if a.status == "resolved"),
        ongoing_breaches=ongoing,
        breach_rate=round(rate, 2),
    )


def calculate_trend_summary(healths: Sequence[CovenantHealth]) -> TrendSummary:
    improving = sum(1 for h in healths if h.trend == "improving")
    stable = sum(1 for h in healths if h.trend == "stable")
    deteriorating = sum(1 for h in healths if h.trend == "deteriorating")

    overall = "stable"
    if deteriorating > improving and deteriorating > stable:
        overall = "deteriorating"
    elif improving > deteriorating and improving > stable:
        overall = "improving"

    return TrendSummary(
        improving_covenants=improving,
        stable_covenants=stable,
        deteriorating_covenants=deteriorating,
        overall_trend=overall,
    )


def _worst_status(healths: Sequence[CovenantHealth]) -> HealthStatus:
    statuses = {h.status for h in healths}
    if "breached" in statuses:
        return "breached"
    if "warning" in statuses:
        return "warning"
    return "compliant"


def borrower_risk_profiles(
    borrowers: Sequence[BorrowerRef],
    contracts: Sequence[Contract],
    healths: Sequence[CovenantHealth],
) -> list[BorrowerRiskProfile]:
    profiles = []
    for borrower in borrowers:
        if borrower.id is None:
            continue
        owned = [c for c in contracts if str(c.borrower_id) == str(borrower.id)]
        contract_ids = {str(c.id) for c in owned}
        borrower_healths = [h for h in healths if h.contract_id is not None and str(h.contract_id) in contract_ids]
        profiles.append(
            BorrowerRiskProfile(
                borrower_id=borrower.id,
                borrower_name=borrower.legal_name or "Unknown Borrower",
                risk_score=calculate_borrower_risk_score(borrower_healths),
                covenant_status=_worst_status(borrower_healths),
                principal_at_risk=sum(c.principal_amount for c in owned if c.status in AT_RISK_CONTRACT_STATUSES),
            )
        )
    return profiles


def build_report_data(
    contracts: Sequence[Contract],
    healths: Sequence[CovenantHealth],
    alerts: Sequence[Alert],
    borrowers: Sequence[BorrowerRef],
) -> ReportData:
    summary = summarize_covenant_health(healths)
    return ReportData(
        total_contracts=len(contracts),
        contracts_at_risk=sum(1 for c in contracts if c.status in AT_RISK_CONTRACT_STATUSES),
        total_principal=sum(c.principal_amount for c in contracts),
        total_covenants=summary.total_covenants,
        covenants_breached=summary.breached,
        covenants_warning=summary.warning,
        covenants_compliant=summary.compliant,
        breach_statistics=calculate_breach_statistics(alerts, healths),
        borrower_risk_profiles=borrower_risk_profiles(borrowers, contracts, healths),
        trend_analysis=calculate_trend_summary(healths),
    )


# ── Narrative ─────────────────────────────────────────────────────────────────


def executive_summary(data: ReportData, ai_summary: str | None = None) -> str:
    at_risk_pct = (data.contracts_at_risk / max(data.total_contracts, 1)) * 100
    text = (
        f"Portfolio contains {data.total_contracts} contracts with total principal of "
        f"${data.total_principal:,.0f}. "
        f"{data.contracts_at_risk} contracts ({at_risk_pct:.1f}%) are currently at risk. "
        f"Of {data.total_covenants} covenants monitored, {data.covenants_breached} are breached "
        f"and {data.covenants_warning} are at warning status. "
        f"Overall portfolio trend is {data.trend_analysis.overall_trend}."
    )
    if ai_summary:
        return f"{text}\n\nAI Analysis: {ai_summary}"
    return text


def identify_basic_risks(data: ReportData) -> list[str]:
    risks = []
    high_risk = [p for p in data.borrower_risk_profiles if p.risk_score > HIGH_RISK_BORROWER_SCORE]

    if data.breach_statistics.breach_rate > BREACH_RATE_RISK_PCT:
        risks.append(f"High breach rate of {data.breach_statistics.breach_rate:g}%")
    if data.contracts_at_risk > data.total_contracts * AT_RISK_CONTRACT_SHARE:
        risks.append(f"{data.contracts_at_risk} contracts at risk (>20% of portfolio)")
    if data.trend_analysis.overall_trend == "deteriorating":
        risks.append("Overall portfolio trend is deteriorating")
    if data.trend_analysis.deteriorating_covenants > data.total_covenants * DETERIORATING_COVENANT_SHARE:
        risks.append(f"{data.trend_analysis.deteriorating_covenants} covenants showing deteriorating trends")
    if high_risk:
        risks.append(f"{len(high_risk)} borrowers with high risk scores (>7)")

    return risks or ["No significant risks identified"]


def basic_recommendations(data: ReportData) -> list[str]:
    actions = []
    high_risk = [p for p in data.borrower_risk_profiles if p.risk_score > HIGH_RISK_BORROWER_SCORE]

    if data.covenants_breached > 0:
        actions.append("Review and address all breached covenants immediately")
    if data.covenants_warning > 0:
        actions.append("Monitor warning-status covenants closely for potential breaches")
    if data.trend_analysis.deteriorating_covenants > 0:
        actions.append("Investigate root causes of deteriorating covenant trends")
    if high_risk:
        actions.append(f"Conduct detailed review of {len(high_risk)} high-risk borrowers")
    if data.breach_statistics.new_breaches > 0:
        actions.append(f"Address {data.breach_statistics.new_breaches} new breach alerts")

    return actions or ["Continue regular monitoring"]


# ── Validation ────────────────────────────────────────────────────────────────


def validate_report_accuracy(report: GeneratedReport) -> ReportValidation:
    """Internal consistency checks on a generated report."""
    errors: list[str] = []
    warnings: list[str] = []
    data = report.report_data

    if data.total_contracts < 0:
        errors.append("Total contracts cannot be negative")
    if data.contracts_at_risk < 0:
        errors.append("Contracts at risk cannot be negative")
    if data.total_principal < 0:
        errors.append("Total principal cannot be negative")
    if data.total_covenants < 0:
        errors.append("Total covenants cannot be negative")
    if data.contracts_at_risk > data.total_contracts:
        errors.append("Contracts at risk exceeds total contracts")
    if not 0 <= data.breach_statistics.breach_rate <= 100:
        errors.append("Breach rate must be between 0 and 100")

    if data.covenants_breached + data.covenants_warning + data.covenants_compliant != data.total_covenants:
        warnings.append("Covenant status counts do not sum to total covenants")
    if not data.executive_summary:
        warnings.append("Executive summary is missing")

    return ReportValidation(is_valid=not errors, errors=errors, warnings=warnings)
