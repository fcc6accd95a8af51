"""
Client for the Gemini generateContent endpoint, used for covenant
extraction, covenant risk analysis and adverse-event impact analysis.

All deterministic scoring stays in the covenant_health and adverse_events
engines; callers catch AIServiceError and fall back to those heuristics.
"""

from __future__ import annotations

import json
import time
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from covenant_guardian.core.config import settings
from covenant_guardian.core.retry import RetryPolicy
from covenant_guardian.modules.adverse_events.schemas import EventImpactAssessment
from covenant_guardian.modules.covenant_health.schemas import RiskAssessment
from covenant_guardian.modules.extraction.normalize import normalize_extracted_covenant
from covenant_guardian.modules.extraction.schemas import CovenantExtractionResult
from covenant_guardian.services.ai_output import (
    coerce_text,
    normalize_event_impact,
    normalize_risk_assessment,
    robust_json_parse,
)

logger = structlog.get_logger()

SAFETY_SETTINGS: list[dict[str, str]] = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
]

BASE_GENERATION_CONFIG: dict[str, Any] = {
    "temperature": 0.1,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
    "responseMimeType": "application/json",
}

# Per-task overrides; extraction wants near-deterministic output
EXTRACTION_CONFIG: dict[str, Any] = {"temperature": 0.1, "maxOutputTokens": 4096}
RISK_ANALYSIS_CONFIG: dict[str, Any] = {"temperature": 0.3, "maxOutputTokens": 2048}
EVENT_ANALYSIS_CONFIG: dict[str, Any] = {"temperature": 0.2, "maxOutputTokens": 1536}


# ── Errors ────────────────────────────────────────────────────────────────────


class AIServiceError(Exception):
    """Base class for every failure of the AI assessment client."""

    is_retryable = False


class AIConfigurationError(AIServiceError):
    pass


class AIRequestError(AIServiceError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:  # type: ignore[override]
        # None means the request never got a response (network/timeout)
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class AIResponseParseError(AIServiceError):
    pass


# ── Inputs ────────────────────────────────────────────────────────────────────


class CovenantRiskInput(BaseModel):
    covenant_name: str
    current_value: float | None = None
    threshold_value: float | None = None
    trend: str | None = None
    buffer_percentage: float | None = None


class EventAnalysisInput(BaseModel):
    event_type: str
    headline: str
    description: str | None = None


class ActiveCovenant(BaseModel):
    covenant_name: str
    covenant_type: str


class BorrowerContext(BaseModel):
    borrower_name: str = "Unknown Borrower"
    industry: str | None = None
    recent_metrics: dict[str, float] = {}
    active_covenants: list[ActiveCovenant] = []


# ── Prompts ───────────────────────────────────────────────────────────────────


def build_extraction_prompt(contract_text: str) -> str:
    return f"""You are an expert financial analyst specializing in loan covenant extraction.
Analyze the contract text below and extract every financial and operational covenant.

For each covenant provide:
1. covenant_name: a clear, descriptive name
2. covenant_type: one of "financial", "operational", "reporting", "other"
3. metric_name: the specific metric (e.g. "debt_to_ebitda", "current_ratio")
4. operator: one of "<", "<=", ">", ">=", "=", "!="
5. threshold_value: the numeric threshold (number only)
6. threshold_unit: the unit if applicable (e.g. "ratio", "dollars", "percent")
7. check_frequency: one of "monthly", "quarterly", "annually", "on_demand"
8. covenant_clause: the exact text from the contract
9. confidence_score: your confidence in the extraction (0.0 to 1.0)

Contract Text:
{contract_text}

Respond ONLY with valid JSON in this exact structure:
{{
  "covenants": [
    {{
      "covenant_name": "string",
      "covenant_type": "financial|operational|reporting|other",
      "metric_name": "string",
      "operator": "<|<=|>|>=|=|!=",
      "threshold_value": <number>,
      "threshold_unit": "string",
      "check_frequency": "monthly|quarterly|annually|on_demand",
      "covenant_clause": "string",
      "confidence_score": <number>
    }}
  ],
  "summary": "Brief summary of extraction results"
}}

Focus on measurable, quantifiable covenants. If a covenant is unclear or ambiguous, set confidence_score below 0.7."""


def _fmt(value: Any, default: str = "N/A") -> str:
    return default if value is None else str(value)


def build_risk_analysis_prompt(data: CovenantRiskInput, context: BorrowerContext | None = None) -> str:
    context_block = ""
    if context is not None:
        context_block = f"""
Borrower: {context.borrower_name}
Industry: {context.industry or 'Unknown'}
Recent Metrics: {json.dumps(context.recent_metrics)}
"""

    return f"""You are a senior credit risk analyst. Analyze the covenant situation below and provide a risk assessment.

Covenant Information:
- Name: {data.covenant_name}
- Current Value: {_fmt(data.current_value)}
- Threshold: {_fmt(data.threshold_value)}
- Trend: {data.trend or 'Unknown'}
- Buffer: {_fmt(data.buffer_percentage)}%
{context_block}
Respond ONLY with valid JSON in this exact structure:
{{
  "risk_score": <number 1-10, 10 is highest risk>,
  "risk_factors": ["factor1", "factor2"],
  "recommended_actions": ["action1", "action2"],
  "assessment_summary": "Detailed narrative assessment",
  "confidence_level": <number 0.0-1.0>
}}

Consider proximity to breach, trend direction and velocity, industry conditions,
buffer adequacy and historical performance."""


def build_event_analysis_prompt(event: EventAnalysisInput, context: BorrowerContext) -> str:
    active = [c.model_dump() for c in context.active_covenants]
    return f"""You are a credit risk analyst evaluating the impact of adverse events on loan covenants.

Event Details:
- Headline: {event.headline}
- Description: {event.description or 'N/A'}
- Event Type: {event.event_type}

Borrower Context:
- Company: {context.borrower_name}
- Industry: {context.industry or 'Unknown'}
- Active Covenants: {json.dumps(active)}

Respond ONLY with valid JSON in this exact structure:
{{
  "risk_score": <number 1-10>,
  "impact_assessment": "Detailed impact analysis",
  "affected_covenants": ["covenant1", "covenant2"],
  "recommended_actions": ["action1", "action2"]
}}

Consider direct financial impact on covenant metrics, indirect operational effects,
market perception and credit rating implications, and the timeline of impact."""


# ── Client ────────────────────────────────────────────────────────────────────


class GeminiClient:
    """Thin async wrapper around the Gemini generateContent API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._http = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    # ── Public operations ─────────────────────────────────────────────────────

    async def extract_covenants(self, contract_text: str) -> CovenantExtractionResult:
        started = time.monotonic()
        parsed = await self._generate_json(build_extraction_prompt(contract_text), EXTRACTION_CONFIG)

        raw_covenants = parsed.get("covenants", parsed.get("items"))
        if not isinstance(raw_covenants, list):
            raise AIResponseParseError("Invalid response format: missing covenants array")

        covenants = [normalize_extracted_covenant(c) for c in raw_covenants if isinstance(c, dict)]
        repaired = sum(1 for c in covenants if c.repairs)
        if repaired:
            logger.info("gemini_extraction_repaired", repaired=repaired, total=len(covenants))

        return CovenantExtractionResult(
            covenants=covenants,
            extraction_summary=coerce_text(parsed.get("summary"), "Covenant extraction completed"),
            processing_time_ms=int((time.monotonic() - started) * 1000),
        )

    async def analyze_covenant_risk(
        self,
        data: CovenantRiskInput,
        context: BorrowerContext | None = None,
    ) -> RiskAssessment:
        parsed = await self._generate_json(build_risk_analysis_prompt(data, context), RISK_ANALYSIS_CONFIG)
        repairs: list[str] = []
        assessment = normalize_risk_assessment(parsed, repairs)
        if repairs:
            logger.info("gemini_risk_analysis_repaired", repairs=repairs)
        return assessment

    async def analyze_adverse_event(
        self,
        event: EventAnalysisInput,
        context: BorrowerContext,
    ) -> EventImpactAssessment:
        parsed = await self._generate_json(build_event_analysis_prompt(event, context), EVENT_ANALYSIS_CONFIG)
        repairs: list[str] = []
        impact = normalize_event_impact(parsed, repairs)
        if repairs:
            logger.info("gemini_event_analysis_repaired", repairs=repairs)
        return impact

    async def health_check(self) -> bool:
        if not self.enabled:
            return False
        try:
            await self._generate("Test connection", {"maxOutputTokens": 10, "responseMimeType": "text/plain"})
            return True
        except AIServiceError as exc:
            logger.warning("gemini_health_check_failed", error=str(exc))
            return False

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _generate_json(self, prompt: str, overrides: dict[str, Any]) -> dict[str, Any]:
        text = await self._generate(prompt, overrides)
        parsed, repairs = robust_json_parse(text)
        if parsed is None:
            logger.warning("gemini_unparseable_response", preview=text[:200])
            raise AIResponseParseError("Failed to parse AI response as JSON")
        if repairs:
            logger.info("gemini_json_repaired", repairs=repairs)
        return parsed

    async def _generate(self, prompt: str, overrides: dict[str, Any]) -> str:
        if not self.enabled:
            raise AIConfigurationError("Gemini API key not configured")

        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {**BASE_GENERATION_CONFIG, **overrides},
            "safetySettings": SAFETY_SETTINGS,
        }
        body = await self.retry_policy.call(self._post, payload)
        return self._candidate_text(body)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            if self._http is not None:
                resp = await self._http.post(
                    self.endpoint,
                    params={"key": self.api_key},
                    json=payload,
                    timeout=self.timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(self.endpoint, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("gemini_request_failed", error=str(exc), error_type=type(exc).__name__)
            raise AIRequestError(f"Gemini request failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning("gemini_api_error", status_code=resp.status_code, body=resp.text[:500])
            raise AIRequestError(
                f"Gemini API error: {resp.status_code} - {resp.text[:500]}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise AIResponseParseError("Gemini returned a non-JSON body") from exc

    @staticmethod
    def _candidate_text(body: dict[str, Any]) -> str:
        candidates = body.get("candidates") or []
        if not candidates:
            raise AIResponseParseError("No response from Gemini API")
        try:
            parts = candidates[0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise AIResponseParseError("Unexpected Gemini response shape") from exc
