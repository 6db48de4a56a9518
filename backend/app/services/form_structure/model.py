"""
Form Structure Model
====================

The canonical, renderer-independent description of a form: an ordered list of
sections, each holding an ordered list of fields. Both the interactive
renderer and the document renderer read this model; only the builder
controller writes it.

Wire Format:
------------
Structures are exchanged with the persistence layer as JSON with camelCase
keys (``initiallyHidden``, ``conditionalLogic``, ``dataSource`` ...). Every
dataclass here offers ``to_dict()`` / ``from_dict()`` for that format.
``from_dict`` is lenient: unknown layouts, widths or field types are
normalized to defaults so that legacy templates still load. Structures
produced by the builder always satisfy the invariants checked by
``validate_structure``.

Invariants:
-----------
- section ids are unique within a structure
- field ids are unique within a structure
- select / radio fields carry at least one option
- a computation formula only references existing field ids
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .formula import FormulaError, referenced_field_ids


class FieldType(str, Enum):
    """Field types understood by both renderers."""
    LABEL = "label"
    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    TEL = "tel"
    DATE = "date"
    NUMBER = "number"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    SIGNATURE = "signature"


class SectionLayout(str, Enum):
    """Column layouts for a section."""
    SINGLE_COLUMN = "single-column"
    TWO_COLUMN = "two-column"
    THREE_COLUMN = "three-column"

    @property
    def columns(self) -> int:
        return {
            SectionLayout.SINGLE_COLUMN: 1,
            SectionLayout.TWO_COLUMN: 2,
            SectionLayout.THREE_COLUMN: 3,
        }[self]


class FieldWidth(str, Enum):
    """Field width inside a multi-column section."""
    HALF = "half"
    FULL = "full"


class RuleAction(str, Enum):
    """What a visibility rule does to its target when its condition holds."""
    SHOW = "show"
    HIDE = "hide"


OPTION_FIELD_TYPES = {FieldType.SELECT, FieldType.RADIO}
FULL_WIDTH_FIELD_TYPES = {FieldType.TEXTAREA, FieldType.LABEL, FieldType.SIGNATURE}
INPUT_FIELD_TYPES = set(FieldType) - {FieldType.LABEL}


def _coerce_enum(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


@dataclass
class VisibilityRule:
    """
    Conditional visibility rule.

    Attached to a checkbox field (``conditionalLogic``) the rule targets
    another field or section via ``target_id``. Attached to a section
    (``conditionalVisibility``) the section itself is the target and the
    rule reads ``source_field_id`` (compared against ``value`` when given).
    A rule whose ids cannot be resolved is inert.
    """
    action: RuleAction = RuleAction.SHOW
    target_id: Optional[str] = None
    source_field_id: Optional[str] = None
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'action': self.action.value}
        if self.target_id is not None:
            data['targetId'] = self.target_id
        if self.source_field_id is not None:
            data['sourceFieldId'] = self.source_field_id
        if self.value is not None:
            data['value'] = self.value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['VisibilityRule']:
        if not data:
            return None
        return cls(
            action=_coerce_enum(RuleAction, data.get('action', 'show'), RuleAction.SHOW),
            target_id=data.get('targetId') or data.get('targetFieldId'),
            source_field_id=data.get('sourceFieldId'),
            value=data.get('value'),
        )


@dataclass
class Field:
    """A single form field."""
    id: str
    key: str
    label: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    width: FieldWidth = FieldWidth.HALF
    placeholder: Optional[str] = None
    default_value: Any = None
    options: List[str] = field(default_factory=list)
    currency: bool = False
    computation: Optional[str] = None
    conditional_logic: Optional[VisibilityRule] = None
    data_source: Optional[str] = None
    pdf_mapping: Optional[str] = None
    checkbox_label: str = ""
    description: Optional[str] = None
    validation: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_input(self) -> bool:
        return self.type in INPUT_FIELD_TYPES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire format."""
        return {
            'id': self.id,
            'key': self.key,
            'label': self.label,
            'type': self.type.value,
            'required': self.required,
            'width': self.width.value,
            'placeholder': self.placeholder,
            'defaultValue': self.default_value,
            'options': list(self.options),
            'currency': self.currency,
            'computation': self.computation,
            'conditionalLogic': self.conditional_logic.to_dict() if self.conditional_logic else None,
            'dataSource': self.data_source,
            'pdfMapping': self.pdf_mapping,
            'checkboxLabel': self.checkbox_label,
            'description': self.description,
            'validation': dict(self.validation),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Field':
        field_type = _coerce_enum(FieldType, data.get('type', 'text'), FieldType.TEXT)
        default_width = FieldWidth.FULL if field_type in FULL_WIDTH_FIELD_TYPES else FieldWidth.HALF
        field_id = str(data.get('id') or data.get('key') or '')
        return cls(
            id=field_id,
            key=data.get('key') or field_id,
            label=data.get('label') or '',
            type=field_type,
            required=bool(data.get('required', False)),
            width=_coerce_enum(FieldWidth, data.get('width') or default_width.value, default_width),
            placeholder=data.get('placeholder'),
            default_value=data.get('defaultValue'),
            options=[str(o) for o in (data.get('options') or [])],
            currency=bool(data.get('currency', False)),
            computation=data.get('computation') or None,
            conditional_logic=VisibilityRule.from_dict(data.get('conditionalLogic')),
            data_source=data.get('dataSource') or None,
            pdf_mapping=data.get('pdfMapping') or None,
            checkbox_label=data.get('checkboxLabel') or '',
            description=data.get('description'),
            validation=dict(data.get('validation') or {}),
        )


@dataclass
class Section:
    """An ordered group of fields rendered with a shared column layout."""
    id: str
    title: str
    description: Optional[str] = None
    layout: SectionLayout = SectionLayout.SINGLE_COLUMN
    collapsible: bool = False
    initially_hidden: bool = False
    required: bool = False
    conditional_visibility: Optional[VisibilityRule] = None
    fields: List[Field] = field(default_factory=list)

    def find_field(self, field_id: str) -> Optional[Field]:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire format."""
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'layout': self.layout.value,
            'collapsible': self.collapsible,
            'initiallyHidden': self.initially_hidden,
            'required': self.required,
            'conditionalVisibility': (
                self.conditional_visibility.to_dict() if self.conditional_visibility else None
            ),
            'fields': [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Section':
        return cls(
            id=str(data.get('id') or ''),
            title=data.get('title') or '',
            description=data.get('description'),
            layout=_coerce_enum(SectionLayout, data.get('layout', 'single-column'), SectionLayout.SINGLE_COLUMN),
            collapsible=bool(data.get('collapsible', False)),
            initially_hidden=bool(data.get('initiallyHidden', False)),
            required=bool(data.get('required', False)),
            conditional_visibility=VisibilityRule.from_dict(data.get('conditionalVisibility')),
            fields=[Field.from_dict(f) for f in (data.get('fields') or [])],
        )


@dataclass
class FormStructure:
    """
    A complete form definition.

    ``form_title`` and ``metadata`` are carried for imported forms and are
    ignored by the renderers.
    """
    sections: List[Section] = field(default_factory=list)
    form_title: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def iter_fields(self):
        """Yield ``(section, field)`` pairs in display order."""
        for section in self.sections:
            for f in section.fields:
                yield section, f

    def find_section(self, section_id: str) -> Optional[Section]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def find_field(self, field_id: str) -> Optional[Field]:
        for _, f in self.iter_fields():
            if f.id == field_id:
                return f
        return None

    def section_of(self, field_id: str) -> Optional[Section]:
        for section, f in self.iter_fields():
            if f.id == field_id:
                return section
        return None

    def field_ids(self) -> List[str]:
        return [f.id for _, f in self.iter_fields()]

    def copy(self) -> 'FormStructure':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire format."""
        data: Dict[str, Any] = {'sections': [s.to_dict() for s in self.sections]}
        if self.form_title is not None:
            data['formTitle'] = self.form_title
        if self.metadata:
            data['metadata'] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'FormStructure':
        data = data or {}
        return cls(
            sections=[Section.from_dict(s) for s in (data.get('sections') or [])],
            form_title=data.get('formTitle'),
            metadata=dict(data.get('metadata') or {}),
        )


def validate_structure(structure: FormStructure) -> List[str]:
    """
    Check the structural invariants of a form.

    Args:
        structure: Form to check

    Returns:
        List of human readable problems (empty when the structure is valid)
    """
    problems: List[str] = []

    seen_sections = set()
    for section in structure.sections:
        if not section.id:
            problems.append("Section without id")
        elif section.id in seen_sections:
            problems.append(f"Duplicate section id: {section.id}")
        seen_sections.add(section.id)

    seen_fields = set()
    for _, f in structure.iter_fields():
        if not f.id:
            problems.append(f"Field without id: {f.label!r}")
        elif f.id in seen_fields:
            problems.append(f"Duplicate field id: {f.id}")
        seen_fields.add(f.id)

    for _, f in structure.iter_fields():
        if f.type in OPTION_FIELD_TYPES and not f.options:
            problems.append(f"Field {f.id} ({f.type.value}) has no options")
        if f.currency and f.type != FieldType.NUMBER:
            problems.append(f"Field {f.id} is marked currency but is not a number field")
        if f.computation:
            try:
                refs = referenced_field_ids(f.computation)
            except FormulaError as e:
                problems.append(f"Field {f.id} has an invalid computation: {e}")
                continue
            missing = sorted(r for r in refs if r not in seen_fields)
            if missing:
                problems.append(f"Field {f.id} computation references unknown fields: {', '.join(missing)}")

    return problems
