"""
Value resolution and formatting shared by the interactive and document renderers.
"""
import logging
import re
from typing import Any, Dict, Optional

from app.services.form_structure.formula import FormulaError, evaluate
from app.services.form_structure.model import Field, FieldType, FormStructure
from app.services.form_structure.nested_update import get_by_path
from app.services.form_structure.visibility import is_checked

logger = logging.getLogger(__name__)

_CURRENCY_STRIP = re.compile(r'[^0-9.]')


def resolve_initial_value(f: Field, data_bag: Optional[Dict[str, Any]]) -> Any:
    """
    Initial value of a field: the ``data_source`` path in the data bag, then
    the field default, then empty.
    """
    if f.data_source and data_bag:
        value = get_by_path(data_bag, f.data_source)
        if value is not None and value != '':
            return value
    if f.default_value is not None and f.default_value != '':
        return f.default_value
    return False if f.type == FieldType.CHECKBOX else ''


def initial_values(structure: FormStructure, data_bag: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Resolve the starting value of every input field, keyed by field id."""
    return {
        f.id: resolve_initial_value(f, data_bag)
        for _, f in structure.iter_fields()
        if f.is_input
    }


def merge_values(
    structure: FormStructure,
    data_bag: Optional[Dict[str, Any]],
    value_store: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Initial values overlaid with whatever the user has entered so far.

    Computed fields are re-evaluated; a computation that cannot be evaluated
    leaves the field empty.
    """
    values = initial_values(structure, data_bag)
    if value_store:
        values.update({k: v for k, v in value_store.items() if k in values})
    for _, f in structure.iter_fields():
        if f.computation and f.type == FieldType.NUMBER:
            try:
                values[f.id] = evaluate(f.computation, values)
            except FormulaError as e:
                logger.warning(f"Skipping computation of field {f.id}: {e}")
                values[f.id] = None
    return values


def sanitize_currency_input(raw: Any) -> str:
    """Strip everything but digits and the first decimal point."""
    cleaned = _CURRENCY_STRIP.sub('', str(raw if raw is not None else ''))
    if cleaned.count('.') > 1:
        head, _, tail = cleaned.partition('.')
        cleaned = head + '.' + tail.replace('.', '')
    return cleaned


def format_currency(value: Any) -> str:
    """
    Display a currency amount with a thousands separator and two decimals.

    Returns an empty string when the value is empty or not numeric.
    """
    if value is None or value == '':
        return ''
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        cleaned = sanitize_currency_input(value)
        if cleaned in ('', '.'):
            return ''
        number = float(cleaned)
    return f"{number:,.2f}"


def format_number(value: Any) -> str:
    if value is None or value == '':
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def display_value(f: Field, value: Any) -> str:
    """
    Human readable value for a field, as printed on the document.

    Returns an empty string for empty values so callers can substitute
    their own placeholder.
    """
    if f.type == FieldType.CHECKBOX:
        return 'Yes' if is_checked(value) else 'No'
    if f.type == FieldType.NUMBER:
        if f.currency:
            formatted = format_currency(value)
            return f"${formatted}" if formatted else ''
        return format_number(value)
    if f.type == FieldType.SIGNATURE:
        return '' if not value else str(value)
    if value is None:
        return ''
    return str(value).strip()
