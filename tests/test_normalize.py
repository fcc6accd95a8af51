"""Tests for extracted-covenant normalization and classification."""

import pytest

from covenant_guardian.modules.covenant_health.engine import determine_status
from covenant_guardian.modules.extraction.normalize import (
    classify_covenant_type,
    determine_check_frequency,
    normalize_extracted_covenant,
    normalize_operator,
    validate_and_classify,
)
from covenant_guardian.modules.extraction.schemas import ExtractedCovenant


class TestNormalizeOperator:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("<=", "<="),
            ("≤", "<="),
            ("=>", ">="),
            ("shall not exceed", "<="),
            ("not to exceed", "<="),
            ("shall not be more than", "<="),
            ("no greater than", "<="),
            ("no more than", "<="),
            ("no less than", ">="),
            ("shall not fall below", ">="),
            ("not less than", ">="),
            ("mustn't drop below", ">="),
            ("not less than the minimum", ">="),
            ("shall exceed", ">"),
            ("in excess of", ">"),
            ("at least", ">="),
            ("less_than", "<"),
            ("greater than or equal to", ">="),
            ("equal to or less than", "<="),
            ("not equal", "!="),
        ],
    )
    def test_symbols_and_phrases(self, raw, expected):
        assert normalize_operator(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "approximately", "understood"])
    def test_unrecognised(self, raw):
        assert normalize_operator(raw) is None

    def test_negation_far_from_comparative_is_ignored(self):
        assert normalize_operator("not applicable unless leverage is at least") == ">="

    def test_negated_ceiling_is_compliant_below_threshold(self):
        operator = normalize_operator("not to exceed")

        assert determine_status(2.8, 3.5, operator) == "compliant"
        assert determine_status(3.6, 3.5, operator) == "breached"


class TestClassification:
    def test_financial(self):
        assert classify_covenant_type("Maximum Leverage Ratio", "debt_to_ebitda") == "financial"

    def test_reporting(self):
        assert classify_covenant_type("Deliver Annual Statements") == "reporting"

    def test_operational(self):
        assert classify_covenant_type("Maintain Insurance") == "operational"

    def test_other(self):
        assert classify_covenant_type("Change of Control") == "other"

    @pytest.mark.parametrize(
        "extracted,clause,expected",
        [
            ("monthly", None, "monthly"),
            ("Quarterly", None, "quarterly"),
            (None, "tested at the end of each fiscal year", "annually"),
            ("every month", None, "monthly"),
            (None, "upon request of the Agent", "on_demand"),
            (None, None, "quarterly"),
        ],
    )
    def test_check_frequency(self, extracted, clause, expected):
        assert determine_check_frequency(extracted, clause) == expected


class TestNormalizeExtractedCovenant:
    def test_repairs_are_recorded(self):
        covenant = normalize_extracted_covenant(
            {
                "covenant_name": "  Leverage Ratio ",
                "covenant_type": "FINANCIAL",
                "operator": "not exceed",
                "threshold_value": "3.5x",
                "confidence_score": 2,
            }
        )
        assert covenant.covenant_name == "Leverage Ratio"
        assert covenant.covenant_type == "financial"
        assert covenant.operator == "<="
        assert covenant.threshold_value == 3.5
        assert covenant.confidence_score == 0.5
        assert covenant.repairs

    def test_unknown_type_and_missing_name(self):
        covenant = normalize_extracted_covenant({"covenant_type": "weird"})
        assert covenant.covenant_name == "Unknown Covenant"
        assert covenant.covenant_type == "other"
        assert covenant.check_frequency == "quarterly"


class TestValidateAndClassify:
    def _covenant(self, **overrides) -> ExtractedCovenant:
        fields = {
            "covenant_name": "Maximum Debt to EBITDA",
            "metric_name": "debt_to_ebitda",
            "operator": "<=",
            "threshold_value": 3.5,
            "covenant_clause": "  The Borrower shall not permit Debt to EBITDA to exceed 3.50 to 1.00.  ",
            "confidence_score": 0.9,
        }
        fields.update(overrides)
        return ExtractedCovenant(**fields)

    def test_round_trip_preserves_core_fields(self):
        extracted = self._covenant()
        [result] = validate_and_classify([extracted], contract_id="c1")
        assert result.contract_id == "c1"
        assert result.covenant_name == extracted.covenant_name
        assert result.operator == extracted.operator
        assert result.threshold_value == extracted.threshold_value
        assert result.covenant_clause == extracted.covenant_clause
        assert result.covenant_type == "financial"

    def test_low_confidence_is_dropped(self):
        assert validate_and_classify([self._covenant(confidence_score=0.2)], "c1") == []

    def test_custom_min_confidence(self):
        assert validate_and_classify([self._covenant(confidence_score=0.6)], "c1", min_confidence=0.7) == []

    def test_missing_operator_or_threshold_is_dropped(self):
        covenants = [self._covenant(operator=None), self._covenant(threshold_value=None)]
        assert validate_and_classify(covenants, "c1") == []

    def test_placeholder_name_is_dropped(self):
        assert validate_and_classify([self._covenant(covenant_name="Unknown Covenant")], "c1") == []
