"""Tests for model-output parsing and normalization."""

import pytest

from covenant_guardian.services.ai_output import (
    coerce_float,
    coerce_str_list,
    normalize_confidence,
    normalize_event_impact,
    normalize_risk_assessment,
    robust_json_parse,
)


class TestRobustJsonParse:
    def test_plain_object(self):
        parsed, repairs = robust_json_parse('{"risk_score": 4}')
        assert parsed == {"risk_score": 4}
        assert repairs == []

    def test_markdown_fences(self):
        parsed, repairs = robust_json_parse('```json\n{"risk_score": 4}\n```')
        assert parsed == {"risk_score": 4}
        assert repairs == ["Stripped markdown code fences"]

    def test_object_inside_prose(self):
        parsed, _ = robust_json_parse('Here is the analysis: {"risk_score": 7} Hope this helps.')
        assert parsed == {"risk_score": 7}

    def test_top_level_array_is_wrapped(self):
        parsed, repairs = robust_json_parse('[{"covenant_name": "Leverage"}]')
        assert parsed == {"items": [{"covenant_name": "Leverage"}]}
        assert repairs

    def test_trailing_commas_and_single_quotes(self):
        parsed, repairs = robust_json_parse("{'risk_score': 6, 'risk_factors': ['leverage',],}")
        assert parsed == {"risk_score": 6, "risk_factors": ["leverage"]}
        assert "Fixed quotes and trailing commas" in repairs

    @pytest.mark.parametrize("text", ["", "   ", "no json here at all"])
    def test_unparseable(self, text):
        parsed, _ = robust_json_parse(text)
        assert parsed is None


class TestCoercion:
    @pytest.mark.parametrize(
        "value,expected",
        [(3, 3.0), (3.5, 3.5), ("3.5x", 3.5), ("1,250", 1250.0), ("20%", 20.0), ("-2.5", -2.5)],
    )
    def test_coerce_float(self, value, expected):
        assert coerce_float(value) == expected

    @pytest.mark.parametrize("value", [None, True, "n/a", float("nan"), {"a": 1}])
    def test_coerce_float_rejects(self, value):
        assert coerce_float(value) is None

    def test_string_becomes_single_item_list(self):
        repairs: list[str] = []
        assert coerce_str_list("risk_factors", "  leverage  ", repairs) == ["leverage"]
        assert repairs

    def test_non_list_becomes_empty(self):
        repairs: list[str] = []
        assert coerce_str_list("risk_factors", 42, repairs) == []
        assert repairs

    def test_list_items_are_trimmed_and_blank_dropped(self):
        assert coerce_str_list("x", [" a ", "", None, "b"], []) == ["a", "b"]

    def test_confidence_out_of_range_resets(self):
        repairs: list[str] = []
        assert normalize_confidence(1.7, repairs) == 0.5
        assert repairs


class TestNormalizeRiskAssessment:
    def test_well_formed(self):
        result = normalize_risk_assessment(
            {
                "risk_score": 7,
                "risk_factors": ["Leverage rising"],
                "recommended_actions": ["Request updated forecast"],
                "assessment_summary": "Leverage is trending toward the covenant limit.",
                "confidence_level": 0.8,
            }
        )
        assert result.risk_score == 7
        assert result.summary.startswith("Leverage")
        assert result.confidence == 0.8

    def test_out_of_range_score_is_clamped(self):
        repairs: list[str] = []
        result = normalize_risk_assessment({"risk_score": 14}, repairs)
        assert result.risk_score == 10
        assert any("Clamped risk_score" in r for r in repairs)

    def test_missing_fields_get_defaults(self):
        result = normalize_risk_assessment({})
        assert result.risk_score == 5.0
        assert result.risk_factors == []
        assert result.summary == "Risk analysis completed"
        assert result.confidence == 0.5


def test_normalize_event_impact():
    result = normalize_event_impact(
        {
            "risk_score": "8/10",
            "impact_assessment": "Downgrade raises refinancing costs.",
            "affected_covenants": "Debt to EBITDA",
        }
    )
    assert result.risk_score == 8
    assert result.affected_covenants == ["Debt to EBITDA"]
    assert result.recommended_actions == []
