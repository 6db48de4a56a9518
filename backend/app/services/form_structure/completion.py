"""
Form completion checks.

A single definition of "required" is shared by ``is_complete`` and
``completion_percentage``: a field counts when it is an input field, is
marked required, and is currently visible. Hidden required fields never
block completion.
"""
from typing import Any, Dict, List

from .model import Field, FieldType, FormStructure
from .visibility import is_checked, resolve_visibility


def required_fields(structure: FormStructure, values: Dict[str, Any]) -> List[Field]:
    """Required input fields that are visible for the given values."""
    state = resolve_visibility(structure, values)
    return [
        f for _, f in structure.iter_fields()
        if f.is_input and f.required and state.is_field_visible(f.id)
    ]


def is_filled(f: Field, value: Any) -> bool:
    if f.type == FieldType.CHECKBOX:
        return is_checked(value)
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def missing_fields(structure: FormStructure, values: Dict[str, Any]) -> List[Field]:
    return [f for f in required_fields(structure, values) if not is_filled(f, values.get(f.id))]


def is_complete(structure: FormStructure, values: Dict[str, Any]) -> bool:
    return not missing_fields(structure, values)


def completion_percentage(structure: FormStructure, values: Dict[str, Any]) -> int:
    """Share of required fields that are filled, rounded to a whole percent."""
    required = required_fields(structure, values)
    if not required:
        return 100
    filled = sum(1 for f in required if is_filled(f, values.get(f.id)))
    return round(filled * 100 / len(required))
