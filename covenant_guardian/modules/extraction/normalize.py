"""Normalization of model-extracted covenants into validated create inputs.

Two steps, both pure:

1. ``normalize_extracted_covenant`` turns one untrusted dict from the model
   into an ``ExtractedCovenant`` (unknown type -> "other", bad confidence ->
   0.5, unknown frequency -> "quarterly", operator phrases mapped to symbols).
2. ``validate_and_classify`` filters low-confidence or unusable entries and
   reclassifies each survivor by keyword before it is stored.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from typing import Any

import structlog

from covenant_guardian.modules.covenant_health.schemas import (
    CHECK_FREQUENCIES,
    COVENANT_TYPES,
    OPERATORS,
    CovenantCreateInput,
)
from covenant_guardian.modules.extraction.schemas import ExtractedCovenant
from covenant_guardian.services.ai_output import coerce_float, normalize_confidence

logger = structlog.get_logger()

DEFAULT_COVENANT_NAME = "Unknown Covenant"
MIN_CONFIDENCE = 0.3

FINANCIAL_KEYWORDS: tuple[str, ...] = (
    "ratio", "ebitda", "debt", "equity", "cash", "revenue", "income",
    "assets", "liabilities", "coverage", "leverage", "liquidity",
    "working capital", "net worth", "tangible", "current ratio",
)

REPORTING_KEYWORDS: tuple[str, ...] = (
    "report", "deliver", "provide", "furnish", "submit", "financial statements",
    "audit", "certificate", "notice", "information", "quarterly", "annual",
)

OPERATIONAL_KEYWORDS: tuple[str, ...] = (
    "maintain", "operate", "business", "insurance", "compliance",
    "permits", "licenses", "environmental", "safety", "employment",
)

# Comparatives in their plain sense; a preceding negation flips them.
# Longer phrases first so "greater than or equal to" wins over "greater than".
OPERATOR_PHRASES: tuple[tuple[str, str], ...] = (
    ("greater than or equal to", ">="),
    ("less than or equal to", "<="),
    ("equal to or greater than", ">="),
    ("equal to or more than", ">="),
    ("equal to or less than", "<="),
    ("at least", ">="),
    ("minimum", ">="),
    ("at most", "<="),
    ("maximum", "<="),
    ("up to", "<="),
    ("greater than", ">"),
    ("more than", ">"),
    ("higher than", ">"),
    ("in excess of", ">"),
    ("exceed", ">"),
    ("above", ">"),
    ("less than", "<"),
    ("fewer than", "<"),
    ("lower than", "<"),
    ("below", "<"),
    ("under", "<"),
    ("equal", "="),
)

NEGATED_OPERATORS: dict[str, str] = {
    ">": "<=",
    ">=": "<",
    "<": ">=",
    "<=": ">",
    "=": "!=",
    "!=": "=",
}

NEGATIONS = frozenset({"not", "no", "never", "cannot", "nor"})
NEGATION_WINDOW = 3

_PHRASE_PATTERNS = tuple(
    (re.compile(rf"\b{re.escape(phrase)}(?:s|ed|ing)?\b"), operator) for phrase, operator in OPERATOR_PHRASES
)

OPERATOR_ALIASES: dict[str, str] = {
    "≤": "<=",
    "≥": ">=",
    "=<": "<=",
    "=>": ">=",
    "==": "=",
    "<>": "!=",
    "≠": "!=",
}


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _is_negated(prefix: str) -> bool:
    words = re.findall(r"[a-z']+", prefix)[-NEGATION_WINDOW:]
    return any(word in NEGATIONS or word.endswith("n't") for word in words)


def normalize_operator(raw: Any) -> str | None:
    """Map a symbol or phrase onto one of the six supported operators.

    Phrases are read as a comparative plus any negation in the few words
    before it, so "not to exceed" is ``<=`` and "shall not fall below" is
    ``>=``. Text with no recognised comparative yields None.
    """
    text = _text(raw)
    if text is None:
        return None
    if text in OPERATORS:
        return text
    if text in OPERATOR_ALIASES:
        return OPERATOR_ALIASES[text]

    lowered = " ".join(text.lower().replace("_", " ").split())
    best: tuple[int, int, str] | None = None
    for pattern, operator in _PHRASE_PATTERNS:
        found = pattern.search(lowered)
        if found and (best is None or (found.start(), -len(found.group())) < best[:2]):
            best = (found.start(), -len(found.group()), operator)
    if best is None:
        return None

    start, _, operator = best
    return NEGATED_OPERATORS[operator] if _is_negated(lowered[:start]) else operator


def classify_covenant_type(
    covenant_name: str,
    metric_name: str | None = None,
    covenant_clause: str | None = None,
) -> str:
    text = f"{covenant_name} {metric_name or ''} {covenant_clause or ''}".lower()

    if any(keyword in text for keyword in FINANCIAL_KEYWORDS):
        return "financial"
    if any(keyword in text for keyword in REPORTING_KEYWORDS):
        return "reporting"
    if any(keyword in text for keyword in OPERATIONAL_KEYWORDS):
        return "operational"
    return "other"


def determine_check_frequency(extracted_frequency: Any, covenant_clause: str | None = None) -> str:
    frequency = _text(extracted_frequency)
    if frequency and frequency.lower() in CHECK_FREQUENCIES:
        return frequency.lower()

    text = f"{frequency or ''} {covenant_clause or ''}".lower()
    if "month" in text:
        return "monthly"
    if "quarter" in text:
        return "quarterly"
    if "annual" in text or "year" in text:
        return "annually"
    if "demand" in text or "request" in text or "upon" in text:
        return "on_demand"
    return "quarterly"


def normalize_extracted_covenant(raw: dict[str, Any]) -> ExtractedCovenant:
    repairs: list[str] = []

    name = _text(raw.get("covenant_name"))
    if name is None:
        repairs.append("Missing covenant_name")
        name = DEFAULT_COVENANT_NAME

    covenant_type = _text(raw.get("covenant_type"))
    if covenant_type is None or covenant_type.lower() not in COVENANT_TYPES:
        repairs.append(f"Reset covenant_type to 'other' (was {raw.get('covenant_type')!r})")
        covenant_type = "other"
    else:
        covenant_type = covenant_type.lower()

    operator = normalize_operator(raw.get("operator"))
    if operator is None:
        repairs.append(f"Unrecognised operator {raw.get('operator')!r}")
    elif operator != _text(raw.get("operator")):
        repairs.append(f"Normalized operator {raw.get('operator')!r} to '{operator}'")

    threshold = coerce_float(raw.get("threshold_value"))
    if threshold is None and raw.get("threshold_value") is not None:
        repairs.append(f"Dropped unparseable threshold_value {raw.get('threshold_value')!r}")

    clause = _text(raw.get("covenant_clause"))

    return ExtractedCovenant(
        covenant_name=name,
        covenant_type=covenant_type,
        metric_name=_text(raw.get("metric_name")),
        operator=operator,
        threshold_value=threshold,
        threshold_unit=_text(raw.get("threshold_unit")),
        check_frequency=determine_check_frequency(raw.get("check_frequency"), clause),
        covenant_clause=clause,
        confidence_score=normalize_confidence(raw.get("confidence_score"), repairs, "confidence_score"),
        repairs=repairs,
    )


def validate_and_classify(
    extracted: Iterable[ExtractedCovenant],
    contract_id: int | str,
    min_confidence: float = MIN_CONFIDENCE,
) -> list[CovenantCreateInput]:
    """Keep confident, well-formed covenants as create inputs."""
    validated: list[CovenantCreateInput] = []

    for covenant in extracted:
        if covenant.covenant_name == DEFAULT_COVENANT_NAME or covenant.confidence_score < min_confidence:
            logger.info(
                "extraction_covenant_skipped",
                covenant_name=covenant.covenant_name,
                confidence=covenant.confidence_score,
            )
            continue

        if covenant.operator is None:
            logger.warning("extraction_invalid_operator", covenant_name=covenant.covenant_name)
            continue
        if covenant.threshold_value is None or not math.isfinite(covenant.threshold_value):
            logger.warning("extraction_invalid_threshold", covenant_name=covenant.covenant_name)
            continue

        validated.append(
            CovenantCreateInput(
                contract_id=contract_id,
                covenant_name=covenant.covenant_name.strip(),
                covenant_type=classify_covenant_type(
                    covenant.covenant_name,
                    covenant.metric_name,
                    covenant.covenant_clause,
                ),
                metric_name=covenant.metric_name,
                operator=covenant.operator,
                threshold_value=covenant.threshold_value,
                threshold_unit=covenant.threshold_unit,
                check_frequency=determine_check_frequency(
                    covenant.check_frequency,
                    covenant.covenant_clause,
                ),
                covenant_clause=covenant.covenant_clause,
            )
        )

    return validated
