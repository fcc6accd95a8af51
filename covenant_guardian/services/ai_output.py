"""Parsing and normalization of generative-model output.

Model text is untrusted: it may be wrapped in markdown, surrounded by prose,
or carry fields with the wrong type. Everything here is a pure function from
raw text/dicts to validated values, and every repair is recorded so callers
can log what was coerced.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterator
from typing import Any

from covenant_guardian.modules.adverse_events.schemas import EventImpactAssessment
from covenant_guardian.modules.covenant_health.schemas import RiskAssessment

DEFAULT_RISK_SCORE = 5.0
DEFAULT_CONFIDENCE = 0.5

_FENCE = re.compile(r"```(?:json)?\s*")
_OBJECT = re.compile(r"\{[\s\S]*\}")
_ARRAY = re.compile(r"\[[\s\S]*\]")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


# ── JSON parsing ──────────────────────────────────────────────────────────────


def _readings(text: str) -> Iterator[tuple[str, str | None]]:
    """Candidate JSON strings, strictest first, each with the repair it implies."""
    yield text, None

    unfenced = _FENCE.sub("", text).strip()
    if unfenced != text.strip():
        yield unfenced, "Stripped markdown code fences"

    for pattern, kind in ((_OBJECT, "object"), (_ARRAY, "array")):
        found = pattern.search(text)
        if found:
            yield found.group(), f"Extracted JSON {kind} from surrounding text"

    found = _OBJECT.search(unfenced)
    loose = (found.group() if found else unfenced).replace("'", '"')
    yield _TRAILING_COMMA.sub(r"\1", loose), "Fixed quotes and trailing commas"


def robust_json_parse(text: str) -> tuple[dict | None, list[str]]:
    """Decode model text into a JSON object, trying progressively looser readings.

    A top-level array comes back wrapped as ``{"items": [...]}``.
    """
    if not text or not text.strip():
        return None, []

    for candidate, repair in _readings(text):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        repairs = [repair] if repair else []
        if isinstance(parsed, list):
            repairs.append("Wrapped top-level JSON array")
            return {"items": parsed}, repairs
        if isinstance(parsed, dict):
            return parsed, repairs

    return None, []


# ── Field coercion ────────────────────────────────────────────────────────────


def coerce_float(value: Any) -> float | None:
    """Parse numbers, numeric strings ("3.5x", "1,250", "20%") to float; None otherwise."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value.replace(",", ""))
        if match:
            return float(match.group())
    return None


def clamp_score(
    name: str,
    value: Any,
    minimum: float,
    maximum: float,
    default: float,
    repairs: list[str],
) -> float:
    number = coerce_float(value)
    if number is None:
        repairs.append(f"Reset {name} to default {default}")
        return default
    if number < minimum or number > maximum:
        clamped = min(maximum, max(minimum, number))
        repairs.append(f"Clamped {name} from {number} to {clamped}")
        return clamped
    return number


def normalize_confidence(value: Any, repairs: list[str], name: str = "confidence") -> float:
    """Confidence must lie in [0, 1]; anything else falls back to 0.5."""
    number = coerce_float(value)
    if number is None or number < 0 or number > 1:
        repairs.append(f"Reset {name} to {DEFAULT_CONFIDENCE} (was {value!r})")
        return DEFAULT_CONFIDENCE
    return number


def coerce_str_list(name: str, value: Any, repairs: list[str]) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    if isinstance(value, str):
        repairs.append(f"Wrapped {name} string in list")
        return [value.strip()] if value.strip() else []
    repairs.append(f"Reset {name} to empty list (was {type(value).__name__})")
    return []


def coerce_text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


# ── Typed results ─────────────────────────────────────────────────────────────


def normalize_risk_assessment(raw: dict[str, Any], repairs: list[str] | None = None) -> RiskAssessment:
    repairs = repairs if repairs is not None else []
    return RiskAssessment(
        risk_score=clamp_score("risk_score", raw.get("risk_score"), 1, 10, DEFAULT_RISK_SCORE, repairs),
        risk_factors=coerce_str_list("risk_factors", raw.get("risk_factors"), repairs),
        recommended_actions=coerce_str_list("recommended_actions", raw.get("recommended_actions"), repairs),
        summary=coerce_text(
            raw.get("assessment_summary", raw.get("summary")),
            "Risk analysis completed",
        ),
        confidence=normalize_confidence(
            raw.get("confidence_level", raw.get("confidence")),
            repairs,
            "confidence_level",
        ),
    )


def normalize_event_impact(raw: dict[str, Any], repairs: list[str] | None = None) -> EventImpactAssessment:
    repairs = repairs if repairs is not None else []
    return EventImpactAssessment(
        risk_score=clamp_score("risk_score", raw.get("risk_score"), 1, 10, DEFAULT_RISK_SCORE, repairs),
        impact_assessment=coerce_text(raw.get("impact_assessment"), "Impact analysis completed"),
        affected_covenants=coerce_str_list("affected_covenants", raw.get("affected_covenants"), repairs),
        recommended_actions=coerce_str_list("recommended_actions", raw.get("recommended_actions"), repairs),
    )
