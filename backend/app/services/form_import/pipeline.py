"""
Form Import Pipeline
====================

Turns an uploaded PDF into an editable ``FormStructure``.

Pipeline Stages:
----------------
1. Field extraction: read the AcroForm fields with pypdf.
2. Vision fallback: when no fields were found, or the names look like
   machine-generated placeholders, ask the vision model for the visible
   labels on page 1.
3. Mapping suggestions: rule pass plus optional model pass against the
   application schema. Failures here never fail the import.
4. Conversion: one two-column section holding one form field per
   extracted field, with labels, types, data sources and PDF mappings.

Design Principles:
------------------
- Extraction errors (unparseable bytes) are surfaced; everything after
  extraction degrades instead of failing.
- An import that ends with zero fields raises ``NoFieldsFound`` so the
  caller can route the user to the manual builder.
- The pipeline holds no per-request state and can be shared between the
  request handlers and the background worker.

Example usage:

    pipeline = FormImportPipeline(provider=create_provider_chain())
    result = pipeline.analyze(pdf_bytes, "lender_questionnaire.pdf")
    structure = result.form_structure
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.services.errors import NoFieldsFound, ProviderError
from app.services.form_structure.builder import DEFAULT_OPTIONS
from app.services.form_structure.model import (
    Field,
    FieldType,
    FieldWidth,
    FormStructure,
    Section,
    SectionLayout,
)

from .ai_providers import create_provider_chain
from .field_extraction import ExtractedField, ExtractionResult, extract, is_generic
from .label_normalizer import normalize
from .mapping_suggestions import MappingSuggestion, MappingSuggestionEngine
from .target_schema import data_source_for
from .vision_fallback import VisionFallbackService, VisionOutcome

logger = logging.getLogger(__name__)

# Number of extracted fields / suggestions echoed back in the result metadata
PREVIEW_LIMIT = 10


@dataclass
class AnalysisResult:
    """Everything an import produced."""
    form_structure: FormStructure
    form_title: str
    metadata: Dict[str, Any]
    extracted_fields: List[ExtractedField] = field(default_factory=list)
    mapping_suggestions: List[MappingSuggestion] = field(default_factory=list)
    used_vision: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire format (lists truncated for display)."""
        return {
            'formStructure': self.form_structure.to_dict(),
            'formTitle': self.form_title,
            'metadata': dict(self.metadata),
            'extractedFields': [f.to_dict() for f in self.extracted_fields[:PREVIEW_LIMIT]],
            'mappingSuggestions': [s.to_dict() for s in self.mapping_suggestions[:PREVIEW_LIMIT]],
            'usedVision': self.used_vision,
        }


def infer_field_type(extracted: ExtractedField) -> FieldType:
    """
    Field type for an extracted field.

    Non-text types are kept as classified; plain text fields are refined
    from their name (email, phone, date, price/amount/cost).
    """
    try:
        field_type = FieldType(extracted.type or 'text')
    except ValueError:
        field_type = FieldType.TEXT
    if field_type != FieldType.TEXT:
        return field_type

    name = (extracted.name or '').lower()
    if 'email' in name:
        return FieldType.EMAIL
    if 'phone' in name or 'tel' in name:
        return FieldType.TEL
    if 'date' in name:
        return FieldType.DATE
    if 'price' in name or 'amount' in name or 'cost' in name:
        return FieldType.NUMBER
    return FieldType.TEXT


def convert_to_form_structure(
    fields: List[ExtractedField],
    suggestions: Optional[List[MappingSuggestion]] = None,
    form_title: Optional[str] = None,
) -> FormStructure:
    """
    Build a single-section form from extracted fields.

    Args:
        fields: Extracted (or vision-inferred) fields in display order
        suggestions: Mapping suggestions; the best one per field sets ``dataSource``
        form_title: Section title (defaults to "Form Fields")

    Returns:
        FormStructure satisfying the model invariants
    """
    best: Dict[str, MappingSuggestion] = {}
    for suggestion in suggestions or []:
        current = best.get(suggestion.pdf_field)
        if current is None or suggestion.confidence > current.confidence:
            best[suggestion.pdf_field] = suggestion

    section = Section(
        id=f"section_{uuid.uuid4().hex[:10]}",
        title=form_title or 'Form Fields',
        layout=SectionLayout.TWO_COLUMN,
    )

    for index, extracted in enumerate(fields):
        field_type = infer_field_type(extracted)
        field_id = f"field_{index + 1}"
        name_lower = (extracted.name or '').lower()
        mapping = best.get(extracted.name)

        options: List[str] = []
        if field_type in (FieldType.SELECT, FieldType.RADIO):
            options = list(extracted.options) or list(DEFAULT_OPTIONS)

        section.fields.append(Field(
            id=field_id,
            key=field_id,
            label=extracted.formatted_name or normalize(extracted.name) or f"Field {index + 1}",
            type=field_type,
            required=bool(extracted.required),
            width=FieldWidth.FULL if field_type == FieldType.TEXTAREA else FieldWidth.HALF,
            placeholder='',
            default_value=extracted.value if extracted.value is not None else '',
            options=options,
            currency=field_type == FieldType.NUMBER and ('price' in name_lower or 'amount' in name_lower),
            data_source=data_source_for(mapping.suggested_mapping) if mapping else None,
            pdf_mapping=extracted.original_pdf_name or extracted.original_name or extracted.name,
            description=extracted.description,
        ))

    return FormStructure(sections=[section], form_title=form_title)


class FormImportPipeline:
    """
    PDF -> FormStructure orchestrator.

    Args:
        provider: AI provider (or ProviderChain); built from the configuration when None
        use_ai: Whether the model pass of the mapping engine runs
    """

    def __init__(self, provider: Optional[Any] = None, use_ai: bool = True):
        self.provider = provider if provider is not None else create_provider_chain()
        self.use_ai = use_ai
        self.vision = VisionFallbackService(self.provider)
        self.mapper = MappingSuggestionEngine(self.provider)

    def _needs_vision(self, extraction: ExtractionResult) -> bool:
        if not extraction.fields:
            logger.info("No AcroForm fields found, using vision analysis")
            return True
        if is_generic(extraction):
            logger.info("Extracted field names look generic, using vision analysis for labels")
            return True
        return False

    def _suggest(self, fields: List[ExtractedField]) -> List[MappingSuggestion]:
        try:
            return self.mapper.suggest(fields, use_ai=self.use_ai)
        except ProviderError as e:
            logger.warning(f"Mapping suggestion generation failed: {e}")
            return []

    def analyze(self, pdf_bytes: bytes, filename: Optional[str] = None) -> AnalysisResult:
        """
        Run the full import.

        Args:
            pdf_bytes: Uploaded PDF
            filename: Original filename (logging only)

        Returns:
            AnalysisResult

        Raises:
            ExtractionError: if the bytes are not a parseable PDF
            NoFieldsFound: if neither extraction nor vision produced a field
        """
        logger.info(f"Analyzing PDF {filename or '<upload>'} ({len(pdf_bytes)} bytes)")
        extraction = extract(pdf_bytes)
        fields = list(extraction.fields)
        form_title = extraction.form_title or ''
        outcome: Optional[VisionOutcome] = None

        if self._needs_vision(extraction):
            outcome = self.vision.enhance(pdf_bytes, extraction)
            fields = outcome.fields
            form_title = outcome.form_title

        if not fields:
            raise NoFieldsFound()

        suggestions = self._suggest(fields)
        structure = convert_to_form_structure(fields, suggestions, form_title)

        metadata = dict(extraction.metadata)
        metadata.update({
            'formTitle': form_title or extraction.form_title,
            'extractedFieldsCount': len(fields),
            'mappingSuggestionsCount': len(suggestions),
            'visionStatus': outcome.status.value if outcome else None,
        })
        structure.metadata = {
            'extractedFieldsCount': len(fields),
            'mappingSuggestionsCount': len(suggestions),
        }

        logger.info(
            f"Import produced {len(fields)} fields and {len(suggestions)} mapping suggestions "
            f"(vision: {outcome.status.value if outcome else 'not used'})"
        )
        return AnalysisResult(
            form_structure=structure,
            form_title=form_title or 'Untitled Form',
            metadata=metadata,
            extracted_fields=fields,
            mapping_suggestions=suggestions,
            used_vision=bool(outcome and outcome.used_vision),
        )
