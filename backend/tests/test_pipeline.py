"""Tests for the PDF import pipeline and its vision fallback."""

import pytest

from app.services.errors import ExtractionError, NoFieldsFound
from app.services.form_import import FormImportPipeline, convert_to_form_structure, extract
from app.services.form_import.field_extraction import ExtractedField
from app.services.form_import.mapping_suggestions import MappingMethod, MappingSuggestion
from app.services.form_import.pipeline import PREVIEW_LIMIT, AnalysisResult, infer_field_type
from app.services.form_import.vision_fallback import (
    VisionFallbackService,
    VisionStatus,
    coerce_field_type,
    is_usable_answer,
    is_usable_title,
)
from app.services.form_structure import FieldType, FieldWidth, SectionLayout, validate_structure
from app.utils.pdf_handler import PDFHandler

VISION_ANSWER = {
    "formTitle": "Lender Questionnaire",
    "fields": [
        {"label": "BORROWER NAME", "type": "text", "required": True},
        {"label": "Closing Date", "type": "date"},
        {"label": "Loan Program", "type": "dropdown"},
        {"label": "Contact Phone", "type": "phone", "description": "Daytime"},
    ],
}


@pytest.fixture
def no_rasterizer(monkeypatch):
    """Simulate a missing PDF rendering engine."""
    monkeypatch.setattr(PDFHandler, "pdf_to_images", staticmethod(lambda *args, **kwargs: []))


@pytest.fixture
def fake_rasterizer(monkeypatch):
    """Skip poppler and hand the provider a placeholder page image."""
    monkeypatch.setattr(VisionFallbackService, "rasterize_first_page", lambda self, pdf_bytes: b"png")


class TestVisionHelpers:

    @pytest.mark.parametrize(
        "answer, usable",
        [
            (VISION_ANSWER, True),
            ({"text": "not json", "raw": True}, False),
            ({"error": "cannot read"}, False),
            ({"formTitle": "Error reading document", "fields": []}, False),
            (["not", "a", "dict"], False),
            (None, False),
        ],
    )
    def test_is_usable_answer(self, answer, usable):
        assert is_usable_answer(answer) is usable

    def test_is_usable_title(self):
        assert is_usable_title("Lender Questionnaire") is True
        assert is_usable_title("Unreadable document") is False
        assert is_usable_title("") is False

    def test_coerce_field_type(self):
        assert coerce_field_type("phone") == "tel"
        assert coerce_field_type("Dropdown") == "select"
        assert coerce_field_type("multiline") == "textarea"
        assert coerce_field_type("hologram") == "text"


class TestVisionFallback:

    def test_applies_vision_fields(self, fake_rasterizer, scripted_provider, generic_pdf):
        provider = scripted_provider(vision_answer=VISION_ANSWER)
        outcome = VisionFallbackService(provider).enhance(generic_pdf, extract(generic_pdf))

        assert outcome.status == VisionStatus.APPLIED
        assert outcome.used_vision is True
        assert outcome.form_title == "Lender Questionnaire"
        assert [f.name for f in outcome.fields] == ["Borrower Name", "Closing Date", "Loan Program", "Contact Phone"]
        assert [f.type for f in outcome.fields] == ["text", "date", "select", "tel"]
        # the first vision field keeps the PDF name it replaces
        assert outcome.fields[0].original_pdf_name == "Text1"
        assert outcome.fields[1].original_pdf_name == "Closing Date"
        assert "Text1" in provider.prompts[0]

    def test_unusable_answer_keeps_fields(self, fake_rasterizer, scripted_provider, generic_pdf):
        provider = scripted_provider(vision_answer={"text": "sorry", "raw": True})
        outcome = VisionFallbackService(provider).enhance(generic_pdf, extract(generic_pdf))

        assert outcome.status == VisionStatus.KEPT
        assert [f.name for f in outcome.fields] == ["Text1"]

    def test_provider_failure_keeps_normalized_fields(self, fake_rasterizer, failing_provider, generic_pdf):
        outcome = VisionFallbackService(failing_provider).enhance(generic_pdf, extract(generic_pdf))

        assert outcome.status == VisionStatus.PROVIDER_FAILED
        assert outcome.fields[0].formatted_name == "Text 1"
        assert outcome.form_title == "Form"

    def test_rasterization_failure_degrades(self, no_rasterizer, scripted_provider, generic_pdf):
        provider = scripted_provider(vision_answer=VISION_ANSWER)
        outcome = VisionFallbackService(provider).enhance(generic_pdf, extract(generic_pdf))

        assert outcome.status == VisionStatus.UNAVAILABLE
        assert outcome.fields[0].original_name == "Text1"
        assert provider.prompts == []


class TestInferFieldType:

    @pytest.mark.parametrize(
        "name, field_type, expected",
        [
            ("Buyer Email", "text", FieldType.EMAIL),
            ("Home Phone", "text", FieldType.TEL),
            ("Closing Date", "text", FieldType.DATE),
            ("Sale Price", "text", FieldType.NUMBER),
            ("Notes", "textarea", FieldType.TEXTAREA),
            ("Email Opt In", "checkbox", FieldType.CHECKBOX),
            ("Anything", "bogus", FieldType.TEXT),
        ],
    )
    def test_infer(self, name, field_type, expected):
        assert infer_field_type(ExtractedField(id="f", name=name, type=field_type)) == expected


class TestConvertToFormStructure:

    def test_single_two_column_section(self):
        fields = [
            ExtractedField(id="field-1", name="BUYERNAME", value="John"),
            ExtractedField(id="field-2", name="Comments", type="textarea"),
            ExtractedField(id="field-3", name="Loan Type", type="select"),
            ExtractedField(id="field-4", name="Sale Amount"),
        ]
        suggestions = [
            MappingSuggestion("BUYERNAME", "buyerName", 0.9, MappingMethod.RULE_BASED),
            MappingSuggestion("BUYERNAME", "sellerName", 0.4, MappingMethod.AI),
        ]
        structure = convert_to_form_structure(fields, suggestions, "Questionnaire")

        assert len(structure.sections) == 1
        section = structure.sections[0]
        assert section.title == "Questionnaire"
        assert section.layout == SectionLayout.TWO_COLUMN
        assert [f.id for f in section.fields] == ["field_1", "field_2", "field_3", "field_4"]

        buyer, comments, loan, amount = section.fields
        assert buyer.label == "Buyername"
        assert buyer.default_value == "John"
        assert buyer.data_source == "application.buyer_name"
        assert buyer.pdf_mapping == "BUYERNAME"
        assert comments.width == FieldWidth.FULL
        assert comments.default_value == ""
        assert loan.options == ["Option 1", "Option 2"]
        assert amount.type == FieldType.NUMBER
        assert amount.currency is True
        assert validate_structure(structure) == []

    def test_default_title(self):
        structure = convert_to_form_structure([ExtractedField(id="field-1", name="Notes")])
        assert structure.sections[0].title == "Form Fields"


class TestFormImportPipeline:

    def test_fillable_pdf(self, mock_pipeline, fillable_pdf):
        result = mock_pipeline.analyze(fillable_pdf, "resale.pdf")

        assert result.used_vision is False
        assert result.form_title == "Resale Certificate Request"
        assert result.metadata["extractedFieldsCount"] == 4
        assert result.metadata["visionStatus"] is None

        fields = result.form_structure.sections[0].fields
        assert [f.type for f in fields] == [
            FieldType.TEXT, FieldType.TEXTAREA, FieldType.CHECKBOX, FieldType.SELECT,
        ]
        assert fields[3].options == ["standard", "rush"]
        assert fields[3].data_source == "application.package_type"
        assert result.form_structure.metadata["mappingSuggestionsCount"] == len(result.mapping_suggestions)

    def test_to_dict_truncates_previews(self):
        fields = [ExtractedField(id=f"field-{i}", name=f"Buyer Name {i}") for i in range(15)]
        result = AnalysisResult(
            form_structure=convert_to_form_structure(fields),
            form_title="Big Form",
            metadata={},
            extracted_fields=fields,
        )
        data = result.to_dict()

        assert len(data["extractedFields"]) == PREVIEW_LIMIT
        assert len(data["formStructure"]["sections"][0]["fields"]) == 15

    def test_generic_pdf_uses_vision(self, fake_rasterizer, scripted_provider, generic_pdf):
        pipeline = FormImportPipeline(provider=scripted_provider(vision_answer=VISION_ANSWER), use_ai=False)
        result = pipeline.analyze(generic_pdf, "lender.pdf")

        assert result.used_vision is True
        assert result.form_title == "Lender Questionnaire"
        assert result.metadata["visionStatus"] == "applied"
        labels = [f.label for f in result.form_structure.sections[0].fields]
        assert labels == ["Borrower Name", "Closing Date", "Loan Program", "Contact Phone"]
        assert result.form_structure.sections[0].fields[0].data_source == "application.buyer_name"

    def test_no_fields_and_no_vision_raises(self, no_rasterizer, mock_pipeline, blank_pdf):
        with pytest.raises(NoFieldsFound):
            mock_pipeline.analyze(blank_pdf, "scan.pdf")

    def test_no_fields_and_provider_failure_raises(self, fake_rasterizer, failing_provider, blank_pdf):
        with pytest.raises(NoFieldsFound):
            FormImportPipeline(provider=failing_provider).analyze(blank_pdf, "scan.pdf")

    def test_mapping_failure_does_not_fail_import(self, failing_provider, fillable_pdf):
        result = FormImportPipeline(provider=failing_provider).analyze(fillable_pdf, "resale.pdf")
        assert all(s.method == MappingMethod.RULE_BASED for s in result.mapping_suggestions)

    def test_extraction_error_is_surfaced(self, mock_pipeline):
        with pytest.raises(ExtractionError):
            mock_pipeline.analyze(b"not a pdf", "fake.pdf")

    def test_vision_fallback_keeps_title_from_extraction(self, no_rasterizer, mock_pipeline, generic_pdf):
        result = mock_pipeline.analyze(generic_pdf, "generic.pdf")

        assert result.used_vision is False
        assert result.metadata["visionStatus"] == VisionStatus.UNAVAILABLE.value
        assert result.form_structure.sections[0].fields[0].label == "Text 1"
