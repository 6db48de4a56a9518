"""Pytest configuration and shared fixtures."""

import os
import tempfile

# Offline defaults; must be set before the app (and its Config) is imported
os.environ.setdefault("AI_PROVIDER", "mock")
os.environ.setdefault("ENABLE_AI_FALLBACK", "false")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("STORAGE_LOCAL_DIR", tempfile.mkdtemp(prefix="form-engine-tests-"))

from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.errors import ProviderError
from app.services.form_import import FormImportPipeline
from app.services.form_import.ai_providers import MockProvider
from app.services.form_structure import FormStructure


def build_pdf(objects: List[str], info: Optional[str] = None) -> bytes:
    """
    Assemble a PDF from object bodies with a correct xref table.

    Object 1 must be the catalog. ``info`` is the body of the document
    information dictionary, appended as the last object.
    """
    bodies = list(objects)
    if info is not None:
        bodies.append(info)

    out = bytearray(b"%PDF-1.7\n")
    offsets = []
    for number, body in enumerate(bodies, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n{body}\nendobj\n".encode("latin-1")

    xref_offset = len(out)
    out += f"xref\n0 {len(bodies) + 1}\n".encode("latin-1")
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode("latin-1")

    trailer = f"<< /Size {len(bodies) + 1} /Root 1 0 R"
    if info is not None:
        trailer += f" /Info {len(bodies)} 0 R"
    trailer += " >>"
    out += f"trailer\n{trailer}\nstartxref\n{xref_offset}\n%%EOF\n".encode("latin-1")
    return bytes(out)


def _widget(entries: str) -> str:
    return f"<< /Type /Annot /Subtype /Widget /Rect [50 700 250 720] /P 3 0 R {entries} >>"


@pytest.fixture
def fillable_pdf() -> bytes:
    """A one-page form with text, multiline, checkbox, choice and push-button fields.

    Returns:
        bytes: PDF with an AcroForm and a document title
    """
    field_refs = "4 0 R 5 0 R 6 0 R 7 0 R 8 0 R"
    return build_pdf(
        [
            f"<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [{field_refs}] >> >>",
            "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Annots [{field_refs}] >>",
            _widget("/FT /Tx /T (BUYERNAME) /V (John Smith) /TU (Name of the buyer)"),
            _widget("/FT /Tx /Ff 4096 /T (Comments)"),
            _widget("/FT /Btn /T (AgreeTerms) /V /Yes"),
            _widget("/FT /Ch /T (PackageType) /Opt [(standard) (rush)] /V (rush)"),
            _widget("/FT /Btn /Ff 65536 /T (PrintButton)"),
        ],
        info="<< /Title (Resale Certificate Request) /Author (Test Suite) >>",
    )


@pytest.fixture
def generic_pdf() -> bytes:
    """A form whose only field has a machine-generated name and no title.

    Returns:
        bytes: PDF with an AcroForm but no document information
    """
    return build_pdf([
        "<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [4 0 R] >> >>",
        "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Annots [4 0 R] >>",
        _widget("/FT /Tx /T (Text1)"),
    ])


@pytest.fixture
def blank_pdf() -> bytes:
    """A one-page PDF without any form fields.

    Returns:
        bytes: PDF without an AcroForm
    """
    return build_pdf([
        "<< /Type /Catalog /Pages 2 0 R >>",
        "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>",
    ])


class FailingProvider:
    """Provider whose every call fails."""

    name = "failing"

    def analyze(self, image_bytes: bytes, prompt: str) -> Any:
        raise ProviderError(self.name, "service unavailable")

    def generate_mappings(self, field_names: List[str], schema_fields: List[str]) -> List[Dict[str, Any]]:
        raise ProviderError(self.name, "service unavailable")


class ScriptedProvider:
    """Provider returning canned answers and recording its calls."""

    name = "scripted"

    def __init__(self, vision_answer: Any = None, mappings: Optional[List[Dict[str, Any]]] = None):
        self.vision_answer = vision_answer
        self.mappings = mappings or []
        self.prompts: List[str] = []

    def analyze(self, image_bytes: bytes, prompt: str) -> Any:
        self.prompts.append(prompt)
        return self.vision_answer

    def generate_mappings(self, field_names: List[str], schema_fields: List[str]) -> List[Dict[str, Any]]:
        return list(self.mappings)


@pytest.fixture
def failing_provider() -> FailingProvider:
    return FailingProvider()


@pytest.fixture
def scripted_provider():
    """Factory for providers with canned vision and mapping answers."""
    return ScriptedProvider


@pytest.fixture
def mock_pipeline() -> FormImportPipeline:
    """Import pipeline backed by the offline mock provider."""
    return FormImportPipeline(provider=MockProvider(), use_ai=False)


@pytest.fixture
def sample_structure() -> FormStructure:
    """A two-section form with a conditional section, a computed total and a signature.

    Returns:
        FormStructure: Structure built from the wire format
    """
    return FormStructure.from_dict({
        "sections": [
            {
                "id": "section_buyer",
                "title": "Buyer",
                "layout": "two-column",
                "fields": [
                    {"id": "buyer_name", "label": "Buyer Name", "type": "text", "required": True,
                     "dataSource": "application.buyer_name"},
                    {"id": "buyer_email", "label": "Buyer Email", "type": "email"},
                    {"id": "has_lender", "label": "Financed", "type": "checkbox",
                     "conditionalLogic": {"action": "show", "targetId": "section_lender"}},
                    {"id": "price", "label": "Sale Price", "type": "number", "currency": True,
                     "dataSource": "application.sale_price"},
                    {"id": "fees", "label": "Fees", "type": "number", "currency": True},
                    {"id": "total", "label": "Total", "type": "number", "currency": True,
                     "computation": "price + fees"},
                ],
            },
            {
                "id": "section_lender",
                "title": "Lender",
                "layout": "single-column",
                "fields": [
                    {"id": "lender_name", "label": "Lender Name", "type": "text", "required": True},
                    {"id": "loan_type", "label": "Loan Type", "type": "select",
                     "options": ["Conventional", "FHA", "VA"]},
                ],
            },
            {
                "id": "section_sign",
                "title": "Signature",
                "fields": [
                    {"id": "signature", "label": "Buyer Signature", "type": "signature"},
                ],
            },
        ],
    })


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}
