"""
Field Extraction Service
========================

Reads the interactive (AcroForm) fields of an uploaded PDF with ``pypdf``.

Classification by widget kind:
- ``/Tx``  -> text (textarea when the multiline flag is set)
- ``/Btn`` -> radio when the radio flag is set, checkbox otherwise
- ``/Ch``  -> select
- ``/Sig`` -> signature
Push buttons (submit / print / reset controls) are skipped.

A document without an AcroForm is not an error: it simply yields no fields,
which tells the pipeline to fall back to vision analysis. Only bytes that
cannot be parsed as a PDF raise ``ExtractionError``.

Quality Signal:
---------------
Many third-party forms expose machine-generated names ("Text1", "Check Box3",
"question_12", "adop") and no document title. ``is_generic`` flags those so
the pipeline can ask the vision model for real labels.
"""

import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, List, Optional, Set, Tuple

from pypdf import PdfReader
from pypdf.errors import PdfReadError, PyPdfError
from pypdf.generic import ArrayObject, NameObject

from app.services.errors import ExtractionError

logger = logging.getLogger(__name__)

PDF_MAGIC = b'%PDF'
MAX_FIELDS = 500

# Field flag bits (PDF 1.7, table 226 and 228)
FLAG_MULTILINE = 1 << 12
FLAG_RADIO = 1 << 15
FLAG_PUSHBUTTON = 1 << 16

_GENERIC_SHORT = re.compile(r'^[a-z]{1,4}$')
_GENERIC_PREFIX = re.compile(r'^(clear|print|area|adop|nop)')


@dataclass
class ExtractedField:
    """A field read from the PDF (or inferred by the vision model)."""
    id: str
    name: str
    type: str = 'text'
    required: bool = False
    value: Any = None
    page: int = 1
    formatted_name: Optional[str] = None
    original_name: Optional[str] = None
    original_pdf_name: Optional[str] = None
    pdf_type: Optional[str] = None
    description: Optional[str] = None
    options: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire format."""
        return {
            'id': self.id,
            'name': self.name,
            'formattedName': self.formatted_name,
            'originalName': self.original_name,
            'originalPdfName': self.original_pdf_name,
            'type': self.type,
            'required': self.required,
            'value': self.value,
            'page': self.page,
            'pdfType': self.pdf_type,
            'description': self.description,
            'options': list(self.options),
        }


@dataclass
class ExtractionResult:
    """Fields and document metadata extracted from a PDF."""
    fields: List[ExtractedField]
    metadata: Dict[str, Any]

    @property
    def form_title(self) -> Optional[str]:
        return self.metadata.get('formTitle')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fields': [f.to_dict() for f in self.fields],
            'metadata': dict(self.metadata),
        }


def _open(pdf_bytes: bytes) -> PdfReader:
    if not pdf_bytes or not pdf_bytes.lstrip()[:4].startswith(PDF_MAGIC):
        raise ExtractionError("Invalid PDF format: missing %PDF header")
    try:
        reader = PdfReader(BytesIO(pdf_bytes))
        if reader.is_encrypted:
            reader.decrypt('')
        # touch the page tree so structural damage surfaces here
        len(reader.pages)
        return reader
    except (PdfReadError, PyPdfError, ValueError, KeyError, TypeError) as e:
        raise ExtractionError(f"Unable to parse PDF: {e}") from e


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _metadata(reader: PdfReader, field_count: int) -> Dict[str, Any]:
    info = reader.metadata
    metadata: Dict[str, Any] = {
        'totalPages': len(reader.pages),
        'totalFields': field_count,
        'formTitle': None,
        'author': None,
        'subject': None,
        'creator': None,
        'producer': None,
        'creationDate': None,
        'modificationDate': None,
    }
    if info is None:
        return metadata

    metadata.update({
        'formTitle': _text(info.title),
        'author': _text(info.author),
        'subject': _text(info.subject),
        'creator': _text(info.creator),
        'producer': _text(info.producer),
    })
    for key, attr in (('creationDate', 'creation_date'), ('modificationDate', 'modification_date')):
        try:
            value = getattr(info, attr)
            metadata[key] = value.isoformat() if value else None
        except (ValueError, TypeError) as e:
            logger.debug(f"Ignoring unparseable PDF {attr}: {e}")
    return metadata


def _annotation_pages(reader: PdfReader) -> Dict[int, int]:
    """Map widget annotation object numbers to 1-based page numbers."""
    pages: Dict[int, int] = {}
    for page_number, page in enumerate(reader.pages, start=1):
        annots = page.get('/Annots')
        for ref in (annots.get_object() if annots is not None else []):
            idnum = getattr(ref, 'idnum', None)
            if idnum is not None:
                pages[idnum] = page_number
    return pages


def _walk_fields(ref: Any, parent_name: Optional[str], inherited: Dict[str, Any],
                 out: List[Tuple[str, Dict[str, Any], List[Any]]], seen: Set[int]):
    idnum = getattr(ref, 'idnum', None)
    if idnum is not None:
        # a node reachable twice (or from its own /Kids) is walked once
        if idnum in seen:
            logger.warning(f"Skipping repeated field object {idnum} in AcroForm tree")
            return
        seen.add(idnum)
    node = ref.get_object()
    partial = _text(node.get('/T'))
    if parent_name and partial:
        name = f"{parent_name}.{partial}"
    else:
        name = partial or parent_name or ''

    attrs = {k: v for k, v in inherited.items() if k in ('/FT', '/Ff')}
    for key in ('/FT', '/Ff', '/V', '/TU', '/Opt'):
        if key in node:
            attrs[key] = node[key]

    kids = node.get('/Kids')
    kids = kids.get_object() if kids is not None else []
    field_kids = [k for k in kids if '/T' in k.get_object()]
    if field_kids:
        for kid in field_kids:
            _walk_fields(kid, name, attrs, out, seen)
        return

    out.append((name, attrs, list(kids) if kids else [ref]))


def _classify(attrs: Dict[str, Any]) -> Optional[str]:
    field_type = str(attrs.get('/FT') or '')
    flags = int(attrs.get('/Ff') or 0)
    if field_type == '/Btn':
        if flags & FLAG_PUSHBUTTON:
            return None
        return 'radio' if flags & FLAG_RADIO else 'checkbox'
    if field_type == '/Ch':
        return 'select'
    if field_type == '/Sig':
        return 'signature'
    if field_type == '/Tx' and flags & FLAG_MULTILINE:
        return 'textarea'
    return 'text'


def _read_value(raw: Any, field_type: str) -> Any:
    """Best-effort conversion of a ``/V`` entry to a plain Python value."""
    try:
        if raw is None:
            return None
        raw = raw.get_object() if hasattr(raw, 'get_object') else raw
        if isinstance(raw, NameObject):
            state = str(raw).lstrip('/')
            if field_type == 'checkbox':
                return state != 'Off'
            return None if state == 'Off' else state
        if isinstance(raw, ArrayObject):
            return [str(v) for v in raw]
        text = str(raw)
        return text if text else None
    except (ValueError, TypeError, AttributeError) as e:
        logger.debug(f"Could not read field value: {e}")
        return None


def _read_options(raw: Any) -> List[str]:
    options: List[str] = []
    raw = raw.get_object() if hasattr(raw, 'get_object') else raw
    for entry in raw or []:
        entry = entry.get_object() if hasattr(entry, 'get_object') else entry
        if isinstance(entry, ArrayObject) and len(entry) >= 2:
            options.append(str(entry[1]))
        else:
            options.append(str(entry))
    return options


def extract(pdf_bytes: bytes) -> ExtractionResult:
    """
    Extract the interactive form fields of a PDF.

    Args:
        pdf_bytes: Uploaded PDF

    Returns:
        ExtractionResult (``fields`` is empty when the PDF has no form)

    Raises:
        ExtractionError: if the bytes are not a parseable PDF
    """
    reader = _open(pdf_bytes)

    raw_fields: List[Tuple[str, Dict[str, Any], List[Any]]] = []
    seen: Set[int] = set()
    try:
        root = reader.trailer['/Root']
        acro_form = root.get('/AcroForm')
        if acro_form is not None:
            top_level = acro_form.get_object().get('/Fields')
            for ref in (top_level.get_object() if top_level is not None else []):
                _walk_fields(ref, None, {}, raw_fields, seen)
    except (PdfReadError, PyPdfError, KeyError, AttributeError, TypeError) as e:
        logger.warning(f"Could not walk AcroForm field tree: {e}")
        raw_fields = []

    pages = _annotation_pages(reader)
    fields: List[ExtractedField] = []
    for name, attrs, widgets in raw_fields:
        if len(fields) >= MAX_FIELDS:
            logger.warning(f"Field cap reached ({MAX_FIELDS}); remaining fields ignored")
            break
        field_type = _classify(attrs)
        if field_type is None or not name:
            continue

        page = 1
        for widget in widgets:
            idnum = getattr(widget, 'idnum', None)
            if idnum in pages:
                page = pages[idnum]
                break

        fields.append(ExtractedField(
            id=f"field-{len(fields) + 1}",
            name=name,
            type=field_type,
            required=False,
            value=_read_value(attrs.get('/V'), field_type),
            page=page,
            original_name=name,
            pdf_type=str(attrs.get('/FT') or '').lstrip('/') or None,
            description=_text(attrs.get('/TU')),
            options=_read_options(attrs.get('/Opt')) if field_type == 'select' else [],
        ))

    metadata = _metadata(reader, len(fields))
    logger.info(
        f"Extracted {len(fields)} form fields from {metadata['totalPages']} page(s); "
        f"title={metadata['formTitle']!r}"
    )
    return ExtractionResult(fields=fields, metadata=metadata)


def get_metadata(pdf_bytes: bytes) -> Dict[str, Any]:
    """Read document metadata without walking the field tree."""
    reader = _open(pdf_bytes)
    return _metadata(reader, 0)


def validate_pdf(pdf_bytes: bytes) -> bool:
    """Return True if the bytes start with the PDF magic and parse."""
    try:
        _open(pdf_bytes)
        return True
    except ExtractionError:
        return False


def is_generic_name(name: str) -> bool:
    lowered = (name or '').lower()
    return (
        'question' in lowered
        or len(lowered) < 4
        or bool(_GENERIC_SHORT.match(lowered))
        or bool(_GENERIC_PREFIX.match(lowered))
    )


def is_generic(result: ExtractionResult) -> bool:
    """
    Quality signal: True when the extracted names are unlikely to be usable labels.

    Triggers when any field name is short or matches a known placeholder
    pattern, or when the document carries no title.
    """
    if not result.form_title:
        return True
    return any(is_generic_name(f.name) for f in result.fields)
