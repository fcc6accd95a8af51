"""Tests for the Gemini client against a mocked generateContent endpoint."""

import json

import httpx
import pytest

from covenant_guardian.core.retry import RetryPolicy
from covenant_guardian.services.gemini import (
    AIConfigurationError,
    AIRequestError,
    AIResponseParseError,
    BorrowerContext,
    CovenantRiskInput,
    EventAnalysisInput,
    GeminiClient,
    build_risk_analysis_prompt,
)
from tests.conftest import BackendStub, gemini_response

pytestmark = pytest.mark.anyio

GEMINI_PATH = "/models/gemini-test:generateContent"


@pytest.fixture
def gemini_stub() -> BackendStub:
    return BackendStub()


@pytest.fixture
async def gemini(gemini_stub: BackendStub):
    async with httpx.AsyncClient(transport=httpx.MockTransport(gemini_stub)) as http:
        yield GeminiClient(
            api_key="test-key",
            model="gemini-test",
            base_url="http://gemini.test",
            retry_policy=RetryPolicy(max_attempts=3, initial_delay=0.0, max_delay=0.0),
            http_client=http,
        )


class TestDisabled:
    async def test_missing_key_raises_configuration_error(self, disabled_gemini):
        assert disabled_gemini.enabled is False
        with pytest.raises(AIConfigurationError):
            await disabled_gemini.analyze_covenant_risk(CovenantRiskInput(covenant_name="Leverage"))

    async def test_health_check_is_false(self, disabled_gemini):
        assert await disabled_gemini.health_check() is False


class TestExtraction:
    async def test_covenants_are_normalized(self, gemini, gemini_stub):
        gemini_stub.add(
            "POST",
            GEMINI_PATH,
            gemini_response(
                {
                    "covenants": [
                        {
                            "covenant_name": "Max Leverage",
                            "covenant_type": "Financial",
                            "metric_name": "debt_to_ebitda",
                            "operator": "shall not exceed",
                            "threshold_value": "3.50x",
                            "check_frequency": "Quarterly",
                            "confidence_score": 0.92,
                        }
                    ],
                    "summary": "One covenant found",
                }
            ),
        )

        result = await gemini.extract_covenants("The Borrower shall not permit leverage to exceed 3.50x.")

        [covenant] = result.covenants
        assert covenant.operator == "<="
        assert covenant.threshold_value == 3.5
        assert covenant.covenant_type == "financial"
        assert result.extraction_summary == "One covenant found"

        request = gemini_stub.calls("POST", GEMINI_PATH)[0]
        assert request.url.params["key"] == "test-key"
        payload = json.loads(request.content)
        assert payload["generationConfig"]["maxOutputTokens"] == 4096
        assert "shall not permit leverage" in payload["contents"][0]["parts"][0]["text"]

    async def test_fenced_array_response_is_accepted(self, gemini, gemini_stub):
        text = '```json\n[{"covenant_name": "Min Liquidity", "operator": ">=", "threshold_value": 5000000}]\n```'
        gemini_stub.add("POST", GEMINI_PATH, gemini_response(text))

        result = await gemini.extract_covenants("contract")

        assert [c.covenant_name for c in result.covenants] == ["Min Liquidity"]

    async def test_missing_covenants_array(self, gemini, gemini_stub):
        gemini_stub.add("POST", GEMINI_PATH, gemini_response({"summary": "nothing"}))
        with pytest.raises(AIResponseParseError):
            await gemini.extract_covenants("contract")

    async def test_no_candidates(self, gemini, gemini_stub):
        gemini_stub.add("POST", GEMINI_PATH, {"candidates": []})
        with pytest.raises(AIResponseParseError):
            await gemini.extract_covenants("contract")


class TestRetries:
    async def test_server_errors_are_retried_then_raised(self, gemini, gemini_stub):
        gemini_stub.add("POST", GEMINI_PATH, {"error": "overloaded"}, status_code=503)

        with pytest.raises(AIRequestError) as exc_info:
            await gemini.analyze_covenant_risk(CovenantRiskInput(covenant_name="Leverage"))

        assert exc_info.value.status_code == 503
        assert len(gemini_stub.calls("POST", GEMINI_PATH)) == 3

    async def test_client_errors_are_not_retried(self, gemini, gemini_stub):
        gemini_stub.add("POST", GEMINI_PATH, {"error": "bad key"}, status_code=403)

        with pytest.raises(AIRequestError):
            await gemini.analyze_covenant_risk(CovenantRiskInput(covenant_name="Leverage"))

        assert len(gemini_stub.calls("POST", GEMINI_PATH)) == 1

    async def test_recovers_after_transient_failure(self):
        responses = [
            httpx.Response(500, json={"error": "boom"}),
            httpx.Response(200, json=gemini_response({"risk_score": 6})),
        ]
        seen: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return responses[len(seen) - 1]

        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as http:
            client = GeminiClient(
                api_key="test-key",
                retry_policy=RetryPolicy(max_attempts=3, initial_delay=0.0, max_delay=0.0),
                http_client=http,
            )
            assessment = await client.analyze_covenant_risk(CovenantRiskInput(covenant_name="Leverage"))

        assert assessment.risk_score == 6
        assert len(seen) == 2


class TestAnalysis:
    async def test_risk_assessment_is_clamped(self, gemini, gemini_stub):
        gemini_stub.add(
            "POST",
            GEMINI_PATH,
            gemini_response({"risk_score": 15, "risk_factors": "Rising leverage", "confidence_level": 0.9}),
        )

        assessment = await gemini.analyze_covenant_risk(
            CovenantRiskInput(covenant_name="Leverage", current_value=3.4, threshold_value=3.5)
        )

        assert assessment.risk_score == 10
        assert assessment.risk_factors == ["Rising leverage"]

    async def test_event_analysis(self, gemini, gemini_stub):
        gemini_stub.add(
            "POST",
            GEMINI_PATH,
            gemini_response(
                {
                    "risk_score": 7,
                    "impact_assessment": "Downgrade pressures interest coverage.",
                    "affected_covenants": ["Interest Coverage"],
                    "recommended_actions": ["Review pricing"],
                }
            ),
        )

        impact = await gemini.analyze_adverse_event(
            EventAnalysisInput(event_type="credit_rating_downgrade", headline="Acme downgraded to BB"),
            BorrowerContext(borrower_name="Acme", industry="Manufacturing"),
        )

        assert impact.risk_score == 7
        assert impact.affected_covenants == ["Interest Coverage"]


def test_risk_prompt_includes_borrower_context():
    prompt = build_risk_analysis_prompt(
        CovenantRiskInput(covenant_name="Leverage", current_value=3.1, threshold_value=3.5, buffer_percentage=11.4),
        BorrowerContext(borrower_name="Acme Corp", industry="Retail", recent_metrics={"ebitda": 120.0}),
    )
    assert "Acme Corp" in prompt
    assert "Retail" in prompt
    assert "11.4%" in prompt
