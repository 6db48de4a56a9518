"""
Form Import
===========

PDF -> FormStructure import: AcroForm extraction, vision fallback, label
normalization, mapping suggestions and the AI providers behind them.
"""

from .ai_providers import ProviderChain, VisionProvider, create_provider_chain, get_provider_status
from .field_extraction import ExtractedField, ExtractionResult, extract, is_generic
from .label_normalizer import normalize, normalize_many
from .mapping_suggestions import MappingMethod, MappingSuggestion, MappingSuggestionEngine
from .pipeline import AnalysisResult, FormImportPipeline, convert_to_form_structure
from .target_schema import get_application_fields_schema
from .vision_fallback import VisionFallbackService, VisionOutcome, VisionResult, VisionStatus

__all__ = [
    'ProviderChain',
    'VisionProvider',
    'create_provider_chain',
    'get_provider_status',
    'ExtractedField',
    'ExtractionResult',
    'extract',
    'is_generic',
    'normalize',
    'normalize_many',
    'MappingMethod',
    'MappingSuggestion',
    'MappingSuggestionEngine',
    'AnalysisResult',
    'FormImportPipeline',
    'convert_to_form_structure',
    'get_application_fields_schema',
    'VisionFallbackService',
    'VisionOutcome',
    'VisionResult',
    'VisionStatus',
]
