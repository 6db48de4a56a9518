"""
Vision Fallback Service
=======================

Recovers usable labels when the AcroForm layer of a PDF is missing or
unhelpful. The first page is rasterized and sent to the vision model, which
returns the visible field labels, their types and the form title.

Outcomes:
---------
- applied: the model answered with fields; they replace the extracted set
  and borrow the original PDF names by position.
- kept: the model answered without fields (or with an unusable answer);
  the extracted set stays as it is.
- provider_failed: the model call failed; extracted names are formatted by
  the label normalizer.
- unavailable: the page could not be rasterized; same degradation as
  provider_failed.

Tradeoffs:
----------
- Only page 1 is analyzed. Multi-page forms lose fields that appear later.
- Positional pairing of model fields with PDF names is a heuristic; the
  model is told the internal names to keep the order aligned.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from app.config import Config
from app.services.errors import ProviderError, VisionUnavailable
from app.services.form_structure.model import FieldType
from app.utils.pdf_handler import PDFHandler

from .field_extraction import ExtractedField, ExtractionResult
from .label_normalizer import normalize

logger = logging.getLogger(__name__)

VISION_PROMPT = """You are analyzing a PDF form to extract fields for a web form builder.

AVAILABLE FIELD TYPES:
- text: single line text input
- textarea: multi-line text input
- email: email address
- tel: phone number
- date: date picker
- number: numeric input (use for prices and amounts)
- select: dropdown with options
- radio: one choice out of several
- checkbox: yes/no toggle
- signature: signature capture
- label: static text, not an input

CONDITIONAL LOGIC CAPABILITIES:
Checkboxes can show or hide other fields and sections. If a field is only
relevant when a box is ticked, mention that in its description.

LABEL FORMATTING RULES:
- Convert ALL CAPS labels to Title Case ("NAME OF PURCHASER" -> "Name of Purchaser")
- Keep small words lower case (of, and, or, the, a, an, to, for, in, on)
- Keep acronyms upper case (HOA, SSN, EIN, ID)
- Split concatenated words ("nameofpurchaser" -> "Name of Purchaser")
{existing_fields}
Return ONLY valid JSON in this shape:
{{
  "formTitle": "Title printed on the form",
  "fields": [
    {{"label": "Visible label", "type": "text", "required": false, "description": "Optional help text"}}
  ]
}}

CRITICAL REQUIREMENTS:
1. List fields in the order they appear on the page, top to bottom.
2. Use the visible label text, never internal names.
3. Only use the field types listed above.
4. Mark a field required only if the form says so (asterisk or "required").
5. Do not include any text outside the JSON object.
"""

EXISTING_FIELDS_NOTE = (
    "\nNote: The PDF has {count} fillable form fields with these internal names: {names}. "
    "Please match the visible labels on the form to these fields.\n"
)

_VALID_TYPES = {t.value for t in FieldType}
_TYPE_ALIASES = {'phone': 'tel', 'dropdown': 'select', 'multiline': 'textarea'}
_BAD_TITLE_MARKERS = ('error', 'unreadable')


class VisionStatus(str, Enum):
    APPLIED = "applied"
    KEPT = "kept"
    PROVIDER_FAILED = "provider_failed"
    UNAVAILABLE = "unavailable"


@dataclass
class VisionResult:
    """Answer of the vision model for one page image."""
    form_title: Optional[str]
    fields: List[Dict[str, Any]]
    usable: bool = True
    raw: Any = None


@dataclass
class VisionOutcome:
    """Field set and title after the vision pass."""
    fields: List[ExtractedField]
    form_title: str
    status: VisionStatus
    detail: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def used_vision(self) -> bool:
        return self.status == VisionStatus.APPLIED


def build_vision_prompt(existing_names: List[str]) -> str:
    note = ''
    if existing_names:
        note = EXISTING_FIELDS_NOTE.format(count=len(existing_names), names=', '.join(existing_names))
    return VISION_PROMPT.format(existing_fields=note)


def coerce_field_type(value: Any) -> str:
    """Map a model-reported type onto a supported field type (text when unknown)."""
    text = str(value or 'text').strip().lower()
    text = _TYPE_ALIASES.get(text, text)
    return text if text in _VALID_TYPES else 'text'


def is_usable_answer(answer: Any) -> bool:
    """False for non-JSON answers, error payloads and error titles."""
    if not isinstance(answer, dict):
        return False
    if answer.get('raw') or 'error' in answer:
        return False
    return 'Error' not in str(answer.get('formTitle') or '')


def is_usable_title(title: Any) -> bool:
    if not isinstance(title, str) or not title.strip():
        return False
    lowered = title.lower()
    return not any(marker in lowered for marker in _BAD_TITLE_MARKERS)


def with_formatted_labels(fields: List[ExtractedField]) -> List[ExtractedField]:
    """Pass extracted names through the label normalizer, keeping the originals."""
    for f in fields:
        f.original_name = f.original_name or f.name
        f.formatted_name = normalize(f.name)
    return fields


class VisionFallbackService:
    """
    Runs the vision model on page 1 of a PDF and reconciles its answer with
    the extracted fields.

    Args:
        provider: Object exposing ``analyze(image_bytes, prompt)`` (usually a ProviderChain)
        scale: Render scale for rasterization (1.0 = 72 dpi)
    """

    def __init__(self, provider: Any, scale: Optional[float] = None):
        self.provider = provider
        self.scale = scale or Config.VISION_SCALE

    def rasterize_first_page(self, pdf_bytes: bytes) -> bytes:
        """
        Render page 1 as PNG bytes.

        Raises:
            VisionUnavailable: if the page cannot be rendered
        """
        images = PDFHandler.pdf_to_images(pdf_bytes, first_page_only=True, scale=self.scale)
        if not images:
            raise VisionUnavailable("Could not rasterize the first page of the PDF")
        return PDFHandler.image_to_bytes(images[0], format='PNG')

    def infer_fields(self, image_bytes: bytes, prompt_context: List[str]) -> VisionResult:
        """
        Ask the vision model for the labelled fields on a page image.

        Args:
            image_bytes: PNG of the page
            prompt_context: Internal PDF field names to help the model align labels

        Returns:
            VisionResult (``usable`` is False for malformed or error answers)

        Raises:
            ProviderError: if every configured provider failed
        """
        answer = self.provider.analyze(image_bytes, build_vision_prompt(prompt_context))
        if not is_usable_answer(answer):
            return VisionResult(form_title=None, fields=[], usable=False, raw=answer)
        title = answer.get('formTitle')
        items = [item for item in (answer.get('fields') or []) if isinstance(item, dict)]
        return VisionResult(
            form_title=title.strip() if is_usable_title(title) else None,
            fields=items,
            raw=answer,
        )

    def _pair_with_originals(self, items: List[Dict[str, Any]], existing: List[ExtractedField]) -> List[ExtractedField]:
        fields: List[ExtractedField] = []
        for i, item in enumerate(items):
            label = normalize(str(item.get('label') or f"Field {i + 1}"))
            original = existing[i] if i < len(existing) else None
            original_pdf_name = label
            if original is not None:
                original_pdf_name = original.original_name or original.name or label
            fields.append(ExtractedField(
                id=f"field-{i + 1}",
                name=label,
                formatted_name=label,
                original_name=original.original_name if original is not None else None,
                original_pdf_name=original_pdf_name,
                type=coerce_field_type(item.get('type')),
                required=bool(item.get('required', False)),
                value=None,
                page=1,
                description=item.get('description') or None,
                options=[str(o) for o in item.get('options') or []],
            ))
        return fields

    def enhance(self, pdf_bytes: bytes, extraction: ExtractionResult) -> VisionOutcome:
        """
        Replace or keep extracted fields based on the vision model's answer.

        Args:
            pdf_bytes: Uploaded PDF
            extraction: Result of the AcroForm extraction (may have no fields)

        Returns:
            VisionOutcome with the field set to use
        """
        existing = list(extraction.fields)
        fallback_title = extraction.form_title or 'Form'

        try:
            image = self.rasterize_first_page(pdf_bytes)
        except VisionUnavailable as e:
            logger.warning(f"Vision analysis unavailable: {e}")
            return VisionOutcome(
                fields=with_formatted_labels(existing),
                form_title=fallback_title,
                status=VisionStatus.UNAVAILABLE,
                detail=str(e),
            )

        try:
            result = self.infer_fields(image, [f.name for f in existing])
        except ProviderError as e:
            logger.warning(f"Vision analysis failed, keeping extracted fields: {e}")
            return VisionOutcome(
                fields=with_formatted_labels(existing),
                form_title=fallback_title,
                status=VisionStatus.PROVIDER_FAILED,
                detail=str(e),
            )

        if not result.usable:
            logger.warning("Vision model returned an unusable answer; keeping extracted fields")
            return VisionOutcome(fields=existing, form_title=fallback_title, status=VisionStatus.KEPT)

        form_title = result.form_title or fallback_title
        raw = result.raw if isinstance(result.raw, dict) else {}
        if not result.fields:
            logger.info("Vision model found no fields; keeping extracted fields")
            return VisionOutcome(fields=existing, form_title=form_title, status=VisionStatus.KEPT, raw=raw)

        vision_fields = self._pair_with_originals(result.fields, existing)
        logger.info(f"Vision model identified {len(vision_fields)} fields (title={form_title!r})")
        return VisionOutcome(fields=vision_fields, form_title=form_title, status=VisionStatus.APPLIED, raw=raw)
