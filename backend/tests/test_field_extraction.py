"""Tests for AcroForm field extraction."""

import pytest

from app.services.errors import ExtractionError
from app.services.form_import.field_extraction import (
    ExtractedField,
    ExtractionResult,
    extract,
    get_metadata,
    is_generic,
    is_generic_name,
    validate_pdf,
)

from conftest import build_pdf


class TestExtract:
    """Reading interactive fields with pypdf."""

    def test_classifies_fields_and_skips_push_buttons(self, fillable_pdf):
        result = extract(fillable_pdf)

        assert [f.name for f in result.fields] == ["BUYERNAME", "Comments", "AgreeTerms", "PackageType"]
        assert [f.type for f in result.fields] == ["text", "textarea", "checkbox", "select"]
        assert [f.id for f in result.fields] == ["field-1", "field-2", "field-3", "field-4"]

    def test_reads_values_options_and_tooltips(self, fillable_pdf):
        fields = {f.name: f for f in extract(fillable_pdf).fields}

        assert fields["BUYERNAME"].value == "John Smith"
        assert fields["BUYERNAME"].description == "Name of the buyer"
        assert fields["BUYERNAME"].pdf_type == "Tx"
        assert fields["BUYERNAME"].original_name == "BUYERNAME"
        assert fields["AgreeTerms"].value is True
        assert fields["PackageType"].value == "rush"
        assert fields["PackageType"].options == ["standard", "rush"]
        assert all(f.page == 1 for f in fields.values())

    def test_metadata(self, fillable_pdf):
        result = extract(fillable_pdf)

        assert result.form_title == "Resale Certificate Request"
        assert result.metadata["author"] == "Test Suite"
        assert result.metadata["totalPages"] == 1
        assert result.metadata["totalFields"] == 4

    def test_pdf_without_form_yields_no_fields(self, blank_pdf):
        result = extract(blank_pdf)

        assert result.fields == []
        assert result.form_title is None

    @pytest.mark.parametrize("data", [b"", b"hello world", b"%PDF-1.7\nnot really a pdf"])
    def test_unparseable_bytes_raise(self, data):
        with pytest.raises(ExtractionError):
            extract(data)

    def test_cyclic_field_tree_is_walked_once(self):
        pdf = build_pdf([
            "<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [4 0 R 5 0 R] >> >>",
            "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
            "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Annots [5 0 R] >>",
            "<< /FT /Tx /T (Parent) /Kids [4 0 R] >>",
            "<< /Type /Annot /Subtype /Widget /Rect [50 700 250 720] /P 3 0 R /FT /Tx /T (BUYERNAME) >>",
        ])
        result = extract(pdf)

        assert [f.name for f in result.fields] == ["BUYERNAME"]

    def test_validate_pdf(self, fillable_pdf):
        assert validate_pdf(fillable_pdf) is True
        assert validate_pdf(b"GIF89a") is False

    def test_get_metadata(self, fillable_pdf):
        assert get_metadata(fillable_pdf)["formTitle"] == "Resale Certificate Request"

    def test_to_dict_uses_camel_case(self, fillable_pdf):
        data = extract(fillable_pdf).to_dict()
        assert data["fields"][0]["originalName"] == "BUYERNAME"
        assert "formattedName" in data["fields"][0]


class TestGenericNames:
    """Quality signal for machine-generated field names."""

    @pytest.mark.parametrize("name", ["nop_3", "abc", "question_12", "adop", "Clear Form", "PrintBtn", "x"])
    def test_generic(self, name):
        assert is_generic_name(name) is True

    @pytest.mark.parametrize("name", ["BUYERNAME", "Closing Date", "PackageType"])
    def test_not_generic(self, name):
        assert is_generic_name(name) is False

    def test_missing_title_is_generic(self):
        result = ExtractionResult(fields=[ExtractedField(id="field-1", name="BUYERNAME")], metadata={})
        assert is_generic(result) is True

    def test_fillable_form_is_not_generic(self, fillable_pdf):
        assert is_generic(extract(fillable_pdf)) is False

    def test_generic_form(self, generic_pdf):
        assert is_generic(extract(generic_pdf)) is True
