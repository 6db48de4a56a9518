"""
Form Structure
==============

Canonical form schema shared by the builder, both renderers and the PDF
import pipeline.

Components:
- model: sections, fields, visibility rules and their wire format
- builder: stateful editing controller
- visibility: single-pass visibility resolution
- formula: safe evaluation of computed fields
- nested_update: schema-checked nested patches
- completion: required-field completion checks
"""

from .model import (
    FormStructure,
    Section,
    Field,
    FieldType,
    FieldWidth,
    SectionLayout,
    RuleAction,
    VisibilityRule,
    validate_structure,
)
from .builder import BuilderController, PREVIEW_SAMPLE_DATA
from .visibility import VisibilityState, resolve_visibility, is_checked
from .completion import is_complete, completion_percentage, missing_fields

__all__ = [
    'FormStructure',
    'Section',
    'Field',
    'FieldType',
    'FieldWidth',
    'SectionLayout',
    'RuleAction',
    'VisibilityRule',
    'validate_structure',
    'BuilderController',
    'PREVIEW_SAMPLE_DATA',
    'VisibilityState',
    'resolve_visibility',
    'is_checked',
    'is_complete',
    'completion_percentage',
    'missing_fields',
]
