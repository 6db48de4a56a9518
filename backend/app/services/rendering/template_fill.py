"""
Template fill: write form values back into the imported PDF.

Each form field that carries a PDF mapping (``Field.pdf_mapping`` or an
entry in the template's ``pdf_field_mappings``) is written into the
AcroForm field of that name, after an optional value transform.

Text and choice fields go through ``PdfWriter.update_page_form_field_values``
so pypdf regenerates their appearance streams. Checkboxes and radio groups
are set directly on their widgets (``/V`` on the field, ``/AS`` on each
widget), because pypdf's button path requires an existing ``/AP`` dictionary.

A mapping that names a field the template does not have is reported in
``missing`` and skipped; it never fails the fill.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple, Union

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError, PyPdfError
from pypdf.generic import NameObject

from app.services.errors import ExtractionError
from app.services.form_structure.model import Field, FormStructure
from app.services.form_structure.visibility import is_checked

from .values import format_currency, format_number, merge_values, sanitize_currency_input

logger = logging.getLogger(__name__)

TRANSFORMS = ('uppercase', 'lowercase', 'date', 'currency', 'number')

FLAG_RADIO = 1 << 15

# field id (or key) -> PDF field name, or {"pdfField": name, "transform": name}
MappingEntry = Union[str, Dict[str, Any]]


@dataclass
class TemplateFillResult:
    """Filled PDF plus a report of what was written."""
    pdf_bytes: bytes
    filled: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'filled': list(self.filled), 'missing': list(self.missing)}


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = sanitize_currency_input(value)
    if cleaned in ('', '.'):
        return None
    return float(cleaned)


def apply_transform(value: Any, transform: Optional[str]) -> Any:
    """
    Apply a named output transform to a value.

    ``date`` prints dates (and ISO date strings) as MM/DD/YYYY; ``currency``
    prints numbers as ``$1,234.50``; ``number`` turns numeric strings into
    plain numbers. Unknown transforms and empty values pass through.
    """
    if value is None or value == '' or not transform:
        return value

    name = transform.lower()
    if name == 'uppercase':
        return str(value).upper()
    if name == 'lowercase':
        return str(value).lower()
    if name == 'date':
        if isinstance(value, (date, datetime)):
            return value.strftime('%m/%d/%Y')
        try:
            return date.fromisoformat(str(value)[:10]).strftime('%m/%d/%Y')
        except ValueError:
            return str(value)
    if name == 'currency':
        if _to_number(value) is None:
            return str(value)
        return f"${format_currency(value)}"
    if name == 'number':
        number = _to_number(value)
        return format_number(number) if number is not None else str(value)

    logger.debug(f"Unknown transform {transform!r}; value left unchanged")
    return value


def _resolve_mapping(f: Field, mappings: Dict[str, MappingEntry]) -> Tuple[Optional[str], Optional[str]]:
    entry = mappings.get(f.id)
    if entry is None and f.key:
        entry = mappings.get(f.key)
    if isinstance(entry, dict):
        name = entry.get('pdfFieldName') or entry.get('pdfField') or entry.get('name') or f.pdf_mapping
        return name, entry.get('transform')
    if isinstance(entry, str) and entry:
        return entry, None
    return f.pdf_mapping, None


def _qualified_name(node: Any) -> str:
    parts = []
    while node is not None:
        node = node.get_object()
        if '/T' in node:
            parts.append(str(node['/T']))
        parent = node.get('/Parent')
        node = parent if parent is not None else None
    return '.'.join(reversed(parts))


def _button_widgets(writer: PdfWriter, name: str):
    """Yield (field dict, widget dict) for every widget of button field ``name``."""
    for page in writer.pages:
        annots = page.get('/Annots')
        for ref in (annots.get_object() if annots is not None else []):
            widget = ref.get_object()
            if widget.get('/Subtype') != '/Widget':
                continue
            owner = widget if '/T' in widget else widget.get('/Parent')
            if owner is None:
                continue
            owner = owner.get_object()
            if _qualified_name(owner) == name:
                yield owner, widget


def _widget_states(widget: Any) -> List[str]:
    appearance = widget.get('/AP')
    if appearance is None:
        return []
    normal = appearance.get_object().get('/N')
    if normal is None or not hasattr(normal.get_object(), 'keys'):
        return []
    return [str(k) for k in normal.get_object().keys()]


def _set_button(writer: PdfWriter, name: str, value: Any, is_radio: bool) -> bool:
    widgets = list(_button_widgets(writer, name))
    if not widgets:
        return False

    if is_radio:
        wanted = str(value)
        options = [s for _, w in widgets for s in _widget_states(w) if s != '/Off']
        # exact option first, then the first option containing the value
        match = next((o for o in options if o.lstrip('/') == wanted), None)
        if match is None:
            match = next((o for o in options if wanted and wanted in o), None)
        state = match or '/Off'
    elif is_checked(value):
        on_states = [s for _, w in widgets for s in _widget_states(w) if s != '/Off']
        state = on_states[0] if on_states else '/Yes'
    else:
        state = '/Off'

    for owner, widget in widgets:
        owner[NameObject('/V')] = NameObject(state)
        states = _widget_states(widget)
        widget[NameObject('/AS')] = NameObject(state if not states or state in states else '/Off')
    return True


def _choice_value(pdf_field: Any, value: Any) -> str:
    text = str(value)
    options = [str(o[1] if isinstance(o, list) and len(o) >= 2 else o) for o in (pdf_field.get('/Opt') or [])]
    if options and text not in options:
        logger.debug(f"Option {text!r} not offered; using {options[0]!r}")
        return options[0]
    return text


def fill_pdf_template(
    template_bytes: bytes,
    structure: FormStructure,
    data_bag: Optional[Dict[str, Any]] = None,
    value_store: Optional[Dict[str, Any]] = None,
    field_mappings: Optional[Dict[str, MappingEntry]] = None,
) -> TemplateFillResult:
    """
    Fill the AcroForm fields of a template PDF from form values.

    Args:
        template_bytes: The imported (fillable) PDF
        structure: Form structure whose fields carry the PDF mappings
        data_bag: Application data for ``data_source`` lookups
        value_store: Values entered so far
        field_mappings: Optional overrides keyed by field id or key

    Returns:
        TemplateFillResult with the filled PDF bytes

    Raises:
        ExtractionError: if the template is not a parseable PDF
    """
    try:
        reader = PdfReader(BytesIO(template_bytes))
        pdf_fields = reader.get_fields() or {}
        writer = PdfWriter(clone_from=reader)
    except (PdfReadError, PyPdfError, ValueError, KeyError, TypeError) as e:
        raise ExtractionError(f"Unable to parse PDF template: {e}") from e

    result = TemplateFillResult(pdf_bytes=template_bytes)
    if not pdf_fields:
        logger.warning("PDF template has no form fields; returning it unchanged")
        return result

    values = merge_values(structure, data_bag, value_store)
    mappings = field_mappings or {}
    text_values: Dict[str, str] = {}

    for _, f in structure.iter_fields():
        pdf_name, transform = _resolve_mapping(f, mappings)
        if not pdf_name or f.id not in values:
            continue
        pdf_field = pdf_fields.get(pdf_name)
        if pdf_field is None:
            logger.warning(f"PDF field {pdf_name!r} (mapped from {f.id}) not found in template")
            result.missing.append(pdf_name)
            continue

        value = apply_transform(values[f.id], transform)
        field_type = pdf_field.get('/FT')
        if field_type == '/Btn':
            is_radio = bool(int(pdf_field.get('/Ff') or 0) & FLAG_RADIO)
            if _set_button(writer, pdf_name, value, is_radio):
                result.filled.append(pdf_name)
            continue
        if value is None or value == '':
            continue
        if field_type == '/Ch':
            text_values[pdf_name] = _choice_value(pdf_field, value)
        else:
            text_values[pdf_name] = str(value)
        result.filled.append(pdf_name)

    if text_values:
        try:
            writer.update_page_form_field_values(None, text_values, auto_regenerate=False)
        except (PyPdfError, KeyError, ValueError) as e:
            raise ExtractionError(f"Unable to fill PDF template: {e}") from e
    writer.set_need_appearances_writer(True)

    buffer = BytesIO()
    writer.write(buffer)
    result.pdf_bytes = buffer.getvalue()
    logger.info(f"Filled {len(result.filled)} template fields ({len(result.missing)} mapped fields missing)")
    return result
