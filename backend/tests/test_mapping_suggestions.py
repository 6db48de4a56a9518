"""Tests for the hybrid rule + model mapping suggestion engine."""

import pytest

from app.services.form_import.field_extraction import ExtractedField
from app.services.form_import.mapping_suggestions import (
    LOW_CONFIDENCE_WARNING,
    MappingMethod,
    MappingSuggestion,
    MappingSuggestionEngine,
    apply_rule_based_matching,
    calculate_confidence,
    split_schema_words,
    validate_mapping,
)
from app.services.form_import.target_schema import data_source_for


def _fields(*names):
    return [ExtractedField(id=f"field-{i + 1}", name=name) for i, name in enumerate(names)]


class TestRuleBasedMatching:
    """Pattern table lookups."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("BUYERNAME", "buyerName"),
            ("buyer_name", "buyerName"),
            ("Borrower Name", "buyerName"),
            ("property-address", "propertyAddress"),
            ("HOA Name", "hoaProperty"),
            ("Estimated Closing", "closingDate"),
            ("Purchase Price", "salePrice"),
            ("Requestor Email", "submitterEmail"),
            ("Package Type", "packageType"),
        ],
    )
    def test_matches(self, name, expected):
        assert apply_rule_based_matching(name) == expected

    def test_no_match(self):
        assert apply_rule_based_matching("Comments") is None
        assert apply_rule_based_matching("") is None

    def test_short_names_do_not_match_longer_patterns(self):
        # "bu" is contained in "buyer" but is too short for a reverse match
        assert apply_rule_based_matching("bu") is None


class TestConfidence:
    """Similarity scoring."""

    def test_rule_hit_scores_point_nine(self):
        assert calculate_confidence(ExtractedField(id="f", name="BUYERNAME"), "buyerName") == 0.9

    def test_similarity_with_type_bonus(self):
        f = ExtractedField(id="f", name="Name of Submitter", type="text")
        # both words found: 1.0 * 0.8 + 0.1 compatible type bonus
        assert calculate_confidence(f, "submitterName") == pytest.approx(0.9)

    def test_no_bonus_for_incompatible_type(self):
        f = ExtractedField(id="f", name="Name of Submitter", type="checkbox")
        assert calculate_confidence(f, "submitterName") == pytest.approx(0.8)

    def test_empty_inputs(self):
        assert calculate_confidence(None, "buyerName") == 0.0
        assert calculate_confidence(ExtractedField(id="f", name="x"), "") == 0.0

    def test_split_schema_words(self):
        assert split_schema_words("submitterEmail") == ["submitter", "email"]


class TestEngine:
    """Rule pass, model pass and merge."""

    def test_rule_only(self):
        engine = MappingSuggestionEngine(provider=None)
        suggestions = engine.suggest(_fields("BUYERNAME", "Comments"))

        assert len(suggestions) == 1
        suggestion = suggestions[0]
        assert suggestion.pdf_field == "BUYERNAME"
        assert suggestion.pdf_field_id == "field-1"
        assert suggestion.suggested_mapping == "buyerName"
        assert suggestion.confidence == 0.9
        assert suggestion.method == MappingMethod.RULE_BASED
        assert suggestion.needs_review is False

    def test_model_only_suggestion_appended_as_ai(self, scripted_provider):
        provider = scripted_provider(mappings=[
            {"pdfField": "Comments", "suggestedMapping": "hoaProperty", "confidence": 0.3, "reasoning": "guess"},
        ])
        suggestions = MappingSuggestionEngine(provider).suggest(_fields("BUYERNAME", "Comments"))

        assert [s.pdf_field for s in suggestions] == ["BUYERNAME", "Comments"]
        ai = suggestions[1]
        assert ai.method == MappingMethod.AI
        assert ai.needs_review is True
        assert LOW_CONFIDENCE_WARNING in ai.warnings

    def test_higher_model_confidence_replaces_rule(self, scripted_provider):
        provider = scripted_provider(mappings=[
            {"pdfField": "BUYERNAME", "suggestedMapping": "sellerName", "confidence": 0.97, "reasoning": "ctx"},
        ])
        suggestions = MappingSuggestionEngine(provider).suggest(_fields("BUYERNAME"))

        assert len(suggestions) == 1
        assert suggestions[0].suggested_mapping == "sellerName"
        assert suggestions[0].method == MappingMethod.AI_ENHANCED
        assert suggestions[0].confidence == 0.97

    def test_lower_model_confidence_keeps_rule(self, scripted_provider):
        provider = scripted_provider(mappings=[
            {"pdfField": "BUYERNAME", "suggestedMapping": "sellerName", "confidence": 0.4},
        ])
        suggestion = MappingSuggestionEngine(provider).suggest(_fields("BUYERNAME"))[0]

        assert suggestion.suggested_mapping == "buyerName"
        assert suggestion.method == MappingMethod.RULE_BASED

    def test_model_confidence_is_clamped(self, scripted_provider):
        provider = scripted_provider(mappings=[
            {"pdfField": "Comments", "suggestedMapping": "hoaProperty", "confidence": 7},
            {"pdfField": "Notes", "suggestedMapping": "sellerName", "confidence": "high"},
        ])
        suggestions = MappingSuggestionEngine(provider).suggest(_fields("Comments", "Notes"))
        by_field = {s.pdf_field: s for s in suggestions}

        assert by_field["Comments"].confidence == 1.0
        assert by_field["Notes"].confidence == calculate_confidence(_fields("Comments", "Notes")[1], "sellerName")

    def test_missing_model_confidence_is_scored_by_similarity(self, scripted_provider):
        provider = scripted_provider(mappings=[
            {"pdfField": "Name of Submitter", "suggestedMapping": "submitterName", "reasoning": "label"},
        ])
        suggestion = MappingSuggestionEngine(provider).suggest(_fields("Name of Submitter"))[0]

        assert suggestion.method == MappingMethod.AI
        # both words found: 1.0 * 0.8 + 0.1 compatible type bonus
        assert suggestion.confidence == pytest.approx(0.9)
        assert suggestion.needs_review is False

    def test_ignores_unknown_fields_and_mappings(self, scripted_provider):
        provider = scripted_provider(mappings=[
            {"pdfField": "NotInPdf", "suggestedMapping": "buyerName", "confidence": 0.9},
            {"pdfField": "Comments", "suggestedMapping": "favoriteColor", "confidence": 0.9},
            {"pdfField": "Comments", "suggestedMapping": None, "confidence": 0.9},
        ])
        assert MappingSuggestionEngine(provider).suggest(_fields("Comments")) == []

    def test_provider_failure_falls_back_to_rules(self, failing_provider):
        suggestions = MappingSuggestionEngine(failing_provider).suggest(_fields("BUYERNAME"))
        assert [s.method for s in suggestions] == [MappingMethod.RULE_BASED]

    def test_use_ai_false_skips_model_pass(self, scripted_provider):
        provider = scripted_provider(mappings=[
            {"pdfField": "Comments", "suggestedMapping": "hoaProperty", "confidence": 0.8},
        ])
        assert MappingSuggestionEngine(provider).suggest(_fields("Comments"), use_ai=False) == []

    def test_sorted_by_descending_confidence(self, scripted_provider):
        provider = scripted_provider(mappings=[
            {"pdfField": "Notes", "suggestedMapping": "hoaProperty", "confidence": 0.2},
            {"pdfField": "Remarks", "suggestedMapping": "sellerName", "confidence": 0.6},
        ])
        suggestions = MappingSuggestionEngine(provider).suggest(_fields("Notes", "BUYERNAME", "Remarks"))
        confidences = [s.confidence for s in suggestions]
        assert confidences == sorted(confidences, reverse=True)


class TestValidateMapping:

    def test_out_of_range_confidence_is_an_error(self):
        result = validate_mapping(MappingSuggestion("a", "buyerName", 1.5, MappingMethod.AI))
        assert result["valid"] is False

    def test_missing_mapping_is_a_warning(self):
        result = validate_mapping(MappingSuggestion("a", None, 0.7, MappingMethod.AI))
        assert result["valid"] is True
        assert result["warnings"] == ["No suggested mapping provided"]


class TestDataSource:

    def test_schema_attributes_map_to_application_paths(self):
        assert data_source_for("buyerName") == "application.buyer_name"
        assert data_source_for(None) is None
