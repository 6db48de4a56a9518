"""
Mapping Suggestion Engine
=========================

Proposes how each extracted PDF field maps onto the target application
schema, as ``(pdfField -> schemaField, confidence, method)`` suggestions.

Passes:
-------
1. Rule pass: the field name is normalized (lower-cased, ``_``/space/``-``
   removed) and looked up in a curated pattern table, first as a direct
   hit, then as a partial (containment) match. Rule matches score 0.9.
2. Model pass (optional): the AI provider proposes mappings for the same
   field list. For a field present in both passes the higher-confidence
   suggestion wins and is tagged ``ai-enhanced``; model-only suggestions
   are appended as ``ai``.

The result is sorted by descending confidence. Suggestions below 0.5 carry
a review warning; they are never dropped.

Tradeoffs:
----------
- Rules are fast and deterministic but only cover the vocabulary in
  ``FIELD_PATTERNS``.
- Model suggestions cover arbitrary vocabulary but are only accepted when
  they name a real schema attribute and a real extracted field.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from app.services.errors import ProviderError

from .field_extraction import ExtractedField
from .target_schema import get_application_fields_schema

logger = logging.getLogger(__name__)

RULE_CONFIDENCE = 0.9
MAX_SIMILARITY_CONFIDENCE = 0.95
TYPE_BONUS = 0.1
LOW_CONFIDENCE_THRESHOLD = 0.5
LOW_CONFIDENCE_WARNING = 'Low confidence mapping - review recommended'

# Names shorter than this only match patterns that they contain, never patterns containing them
MIN_REVERSE_MATCH_LENGTH = 4

_SEPARATORS = re.compile(r'[_\s-]')
_CAMEL_WORDS = re.compile(r'[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])')


class MappingMethod(str, Enum):
    """How a mapping suggestion was produced."""
    RULE_BASED = "rule-based"
    AI = "ai"
    AI_ENHANCED = "ai-enhanced"


# Schema attribute types -> extracted field types they can hold
TYPE_COMPATIBILITY: Dict[str, List[str]] = {
    'string': ['text', 'textarea', 'email', 'tel', 'select', 'radio'],
    'date': ['date', 'text'],
    'number': ['number', 'text'],
    'boolean': ['checkbox'],
}

# Normalized name fragment -> schema attribute, most specific first within each group
FIELD_PATTERNS: Dict[str, str] = {
    # Buyer / borrower
    'buyername': 'buyerName',
    'borrowername': 'buyerName',
    'purchasername': 'buyerName',
    'purchasernam': 'buyerName',
    'buyer': 'buyerName',
    'borrower': 'buyerName',

    # Seller
    'sellername': 'sellerName',
    'ownername': 'sellerName',
    'currentowner': 'sellerName',
    'seller': 'sellerName',

    # Property
    'propertyaddress': 'propertyAddress',
    'propertyaddr': 'propertyAddress',
    'lotaddress': 'propertyAddress',
    'unitaddress': 'propertyAddress',
    'address': 'propertyAddress',
    'property': 'propertyAddress',

    # HOA / association
    'hoaname': 'hoaProperty',
    'associationname': 'hoaProperty',
    'communityname': 'hoaProperty',
    'hoa': 'hoaProperty',
    'association': 'hoaProperty',
    'community': 'hoaProperty',

    # Closing date
    'closingdate': 'closingDate',
    'estimatedclosing': 'closingDate',
    'expectedclosing': 'closingDate',
    'closing': 'closingDate',
    'date': 'closingDate',

    # Price
    'saleprice': 'salePrice',
    'purchaseprice': 'salePrice',
    'price': 'salePrice',
    'amount': 'salePrice',

    # Submitter
    'submittername': 'submitterName',
    'requestorname': 'submitterName',
    'contactname': 'submitterName',
    'submitteremail': 'submitterEmail',
    'requestoremail': 'submitterEmail',
    'contactemail': 'submitterEmail',
    'email': 'submitterEmail',

    # Package
    'packagetype': 'packageType',
    'servicetype': 'packageType',
    'package': 'packageType',
}


@dataclass
class MappingSuggestion:
    """Proposed mapping of one PDF field onto a schema attribute."""
    pdf_field: str
    suggested_mapping: Optional[str]
    confidence: float
    method: MappingMethod
    reasoning: str = ''
    pdf_field_id: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def needs_review(self) -> bool:
        return self.confidence < LOW_CONFIDENCE_THRESHOLD

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire format."""
        return {
            'pdfField': self.pdf_field,
            'pdfFieldId': self.pdf_field_id,
            'suggestedMapping': self.suggested_mapping,
            'confidence': round(self.confidence, 4),
            'method': self.method.value,
            'reasoning': self.reasoning,
            'needsReview': self.needs_review,
            'warnings': list(self.warnings),
        }


def normalize_name(name: str) -> str:
    return _SEPARATORS.sub('', (name or '').lower())


def apply_rule_based_matching(field_name: str) -> Optional[str]:
    """
    Match a PDF field name against the pattern table.

    Args:
        field_name: Raw PDF field name

    Returns:
        Schema attribute name, or None when no pattern matches
    """
    normalized = normalize_name(field_name)
    if not normalized:
        return None

    if normalized in FIELD_PATTERNS:
        return FIELD_PATTERNS[normalized]

    for pattern, mapping in FIELD_PATTERNS.items():
        if pattern in normalized:
            return mapping
        if len(normalized) >= MIN_REVERSE_MATCH_LENGTH and normalized in pattern:
            return mapping
    return None


def split_schema_words(schema_field: str) -> List[str]:
    """Split a camelCase attribute name into lower-case words."""
    return [w.lower() for w in _CAMEL_WORDS.findall(schema_field or '')]


def types_compatible(field_type: Optional[str], schema_type: Optional[str]) -> bool:
    if not field_type or not schema_type:
        return False
    return field_type in TYPE_COMPATIBILITY.get(schema_type, [])


def calculate_confidence(
    pdf_field: ExtractedField,
    schema_field: str,
    schema: Optional[Dict[str, Dict[str, Any]]] = None,
) -> float:
    """
    Confidence that ``pdf_field`` holds ``schema_field``.

    A rule-based hit scores 0.9. Otherwise the score is the share of the
    attribute's words found in the normalized field name, weighted by 0.8,
    plus 0.1 when the declared types are compatible, capped at 0.95.
    """
    if not pdf_field or not schema_field:
        return 0.0

    if apply_rule_based_matching(pdf_field.name) == schema_field:
        return RULE_CONFIDENCE

    normalized = normalize_name(pdf_field.name)
    words = split_schema_words(schema_field)
    if not words:
        return 0.0
    similarity = sum(1 for w in words if w in normalized) / len(words)

    schema = schema if schema is not None else get_application_fields_schema()
    schema_type = (schema.get(schema_field) or {}).get('type')
    bonus = TYPE_BONUS if types_compatible(pdf_field.type, schema_type) else 0.0
    return min(MAX_SIMILARITY_CONFIDENCE, similarity * 0.8 + bonus)


def validate_mapping(suggestion: MappingSuggestion) -> Dict[str, Any]:
    """
    Validate a single suggestion.

    Returns:
        Dictionary with ``valid``, ``errors`` and ``warnings``
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not suggestion.pdf_field:
        errors.append('PDF field name is required')
    if not suggestion.suggested_mapping:
        warnings.append('No suggested mapping provided')
    if suggestion.confidence < 0 or suggestion.confidence > 1:
        errors.append('Confidence score must be between 0 and 1')
    if suggestion.confidence < LOW_CONFIDENCE_THRESHOLD:
        warnings.append(LOW_CONFIDENCE_WARNING)

    return {
        'valid': not errors,
        'errors': errors,
        'warnings': warnings,
    }


def _clamp(value: Any) -> Optional[float]:
    """Model confidence clamped to [0, 1]; None when it is missing or not a number."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, min(1.0, number))


class MappingSuggestionEngine:
    """
    Hybrid rule + model mapping suggestions.

    Args:
        provider: Object exposing ``generate_mappings(field_names, schema_fields)``;
            when None only the rule pass runs.
    """

    def __init__(self, provider: Optional[Any] = None):
        self.provider = provider

    def rule_pass(self, fields: List[ExtractedField]) -> List[MappingSuggestion]:
        suggestions: List[MappingSuggestion] = []
        for f in fields:
            match = apply_rule_based_matching(f.name)
            if match is None:
                continue
            suggestions.append(MappingSuggestion(
                pdf_field=f.name,
                pdf_field_id=f.id,
                suggested_mapping=match,
                confidence=RULE_CONFIDENCE,
                method=MappingMethod.RULE_BASED,
                reasoning=f'Rule-based pattern match for "{f.name}"',
            ))
        return suggestions

    def model_pass(
        self,
        fields: List[ExtractedField],
        schema: Dict[str, Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        """Ask the provider for suggestions; failures yield an empty list."""
        if self.provider is None or not fields:
            return []
        try:
            return self.provider.generate_mappings([f.name for f in fields], list(schema.keys()))
        except ProviderError as e:
            logger.warning(f"AI mapping generation failed, using rule-based only: {e}")
            return []

    def merge(
        self,
        rule_suggestions: List[MappingSuggestion],
        model_suggestions: List[Dict[str, Any]],
        fields: List[ExtractedField],
        schema: Dict[str, Dict[str, Any]],
    ) -> List[MappingSuggestion]:
        """
        Reconcile model suggestions into the rule suggestions by highest confidence.

        A model suggestion without a usable confidence is scored with
        ``calculate_confidence`` against its field.
        """
        by_field: Dict[str, MappingSuggestion] = {s.pdf_field: s for s in rule_suggestions}
        merged = list(rule_suggestions)
        fields_by_name = {f.name: f for f in fields}

        for raw in model_suggestions:
            pdf_field = raw.get('pdfField')
            mapping = raw.get('suggestedMapping')
            if pdf_field not in fields_by_name:
                logger.debug(f"Ignoring model suggestion for unknown field {pdf_field!r}")
                continue
            if mapping not in schema:
                logger.debug(f"Ignoring model suggestion {pdf_field!r} -> {mapping!r}: not a schema field")
                continue

            confidence = _clamp(raw.get('confidence'))
            if confidence is None:
                confidence = calculate_confidence(fields_by_name[pdf_field], mapping, schema)
            reasoning = raw.get('reasoning') or 'No reasoning provided'
            existing = by_field.get(pdf_field)
            if existing is not None:
                if confidence > existing.confidence:
                    existing.suggested_mapping = mapping
                    existing.confidence = confidence
                    existing.method = MappingMethod.AI_ENHANCED
                    existing.reasoning = reasoning
                continue

            suggestion = MappingSuggestion(
                pdf_field=pdf_field,
                pdf_field_id=fields_by_name[pdf_field].id,
                suggested_mapping=mapping,
                confidence=confidence,
                method=MappingMethod.AI,
                reasoning=reasoning,
            )
            by_field[pdf_field] = suggestion
            merged.append(suggestion)

        return merged

    def suggest(
        self,
        fields: List[ExtractedField],
        schema: Optional[Dict[str, Dict[str, Any]]] = None,
        use_ai: bool = True,
    ) -> List[MappingSuggestion]:
        """
        Generate mapping suggestions for extracted fields.

        Args:
            fields: Extracted PDF fields
            schema: Target schema (defaults to the application schema)
            use_ai: Whether to run the model pass

        Returns:
            Suggestions sorted by descending confidence
        """
        schema = schema if schema is not None else get_application_fields_schema()

        suggestions = self.rule_pass(fields)
        if use_ai:
            suggestions = self.merge(suggestions, self.model_pass(fields, schema), fields, schema)

        for suggestion in suggestions:
            suggestion.warnings = validate_mapping(suggestion)['warnings']

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        review = sum(1 for s in suggestions if s.needs_review)
        logger.info(
            f"Generated {len(suggestions)} mapping suggestions for {len(fields)} fields "
            f"({review} need review)"
        )
        return suggestions
