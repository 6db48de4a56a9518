"""
Document renderer.

Produces the print-ready version of a filled form. Rendering happens in two
steps:

1. ``build_document_layout`` is a pure function that lays the visible fields
   of each visible section out in rows according to the section's column
   count. It uses the same visibility pass and value resolution as the
   interactive renderer, so every visible field yields exactly one block.
2. ``render_document_pdf`` draws that layout into a paginated LETTER PDF
   with ``fpdf2``. The branded header and footer are drawn on every page.

Empty values print as "Not provided"; signature fields print the captured
image or "Signature not provided".
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from app.config import Config
from app.services.form_structure.model import FieldType, FieldWidth, FormStructure
from app.services.form_structure.visibility import resolve_visibility

from .signature import SignatureError, decode_data_url, is_signature_image
from .values import display_value, merge_values

logger = logging.getLogger(__name__)

EMPTY_PLACEHOLDER = "Not provided"
EMPTY_SIGNATURE_PLACEHOLDER = "Signature not provided"


@dataclass
class FieldBlock:
    """One field as it appears on the document."""
    field_id: str
    label: str
    type: str
    text: str
    column_span: int
    is_placeholder: bool = False
    image_bytes: Optional[bytes] = None


@dataclass
class SectionBlock:
    """A visible section and its rows of field blocks."""
    section_id: str
    title: str
    columns: int
    description: Optional[str] = None
    rows: List[List[FieldBlock]] = field(default_factory=list)

    @property
    def blocks(self) -> List[FieldBlock]:
        return [block for row in self.rows for block in row]


@dataclass
class DocumentLayout:
    """Everything the PDF writer needs, independent of fpdf2."""
    title: str
    sections: List[SectionBlock]
    generated_on: datetime

    @property
    def blocks(self) -> List[FieldBlock]:
        return [block for section in self.sections for block in section.blocks]


def _field_block(f, value: Any, columns: int) -> FieldBlock:
    span = columns if f.width == FieldWidth.FULL or f.type in (FieldType.TEXTAREA, FieldType.LABEL) else 1
    block = FieldBlock(field_id=f.id, label=f.label, type=f.type.value, text='', column_span=span)

    if f.type == FieldType.LABEL:
        block.text = f.label
        return block

    if f.type == FieldType.SIGNATURE:
        if is_signature_image(value):
            try:
                block.image_bytes = decode_data_url(value)
                return block
            except SignatureError as e:
                logger.warning(f"Unreadable signature for field {f.id}: {e}")
        block.text = EMPTY_SIGNATURE_PLACEHOLDER
        block.is_placeholder = True
        return block

    text = display_value(f, value)
    if not text:
        block.text = EMPTY_PLACEHOLDER
        block.is_placeholder = True
    else:
        block.text = text
    return block


def build_document_layout(
    structure: FormStructure,
    data_bag: Optional[Dict[str, Any]] = None,
    value_store: Optional[Dict[str, Any]] = None,
    title: Optional[str] = None,
    generated_on: Optional[datetime] = None,
) -> DocumentLayout:
    """
    Lay out the visible sections and fields of a filled form.

    Args:
        structure: Form definition
        data_bag: Record that ``dataSource`` paths are read from
        value_store: Entered values keyed by field id
        title: Document title (defaults to the form title)
        generated_on: Timestamp printed in the footer

    Returns:
        DocumentLayout with one FieldBlock per visible field
    """
    values = merge_values(structure, data_bag, value_store)
    state = resolve_visibility(structure, values)

    sections: List[SectionBlock] = []
    for section in structure.sections:
        if not state.is_section_visible(section.id):
            continue
        columns = section.layout.columns
        block = SectionBlock(
            section_id=section.id,
            title=section.title,
            columns=columns,
            description=section.description,
        )
        row: List[FieldBlock] = []
        used = 0
        for f in state.visible_fields(section):
            fb = _field_block(f, values.get(f.id), columns)
            if used + fb.column_span > columns and row:
                block.rows.append(row)
                row, used = [], 0
            row.append(fb)
            used += fb.column_span
            if used >= columns:
                block.rows.append(row)
                row, used = [], 0
        if row:
            block.rows.append(row)
        sections.append(block)

    return DocumentLayout(
        title=title or structure.form_title or "Form",
        sections=sections,
        generated_on=generated_on or datetime.now(),
    )


def _latin1(text: str) -> str:
    # core PDF fonts only cover latin-1
    return (text or '').encode('latin-1', 'replace').decode('latin-1')


class BrandedDocument(FPDF):
    """FPDF document with the company header and footer on every page."""

    def __init__(self, generated_on: datetime):
        super().__init__(orientation='P', unit='mm', format='Letter')
        self.generated_on = generated_on
        self.set_margins(15, 15, 15)
        self.set_auto_page_break(auto=True, margin=30)

    def header(self):
        self.set_font("helvetica", "B", 14)
        self.set_text_color(0, 51, 102)
        self.cell(0, 7, _latin1(Config.BRAND_NAME), new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C")
        self.set_font("helvetica", "", 9)
        self.set_text_color(90, 90, 90)
        self.cell(0, 5, _latin1(Config.BRAND_TAGLINE), new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C")
        self.cell(
            0, 5, _latin1(f"Phone: {Config.BRAND_PHONE}  |  Email: {Config.BRAND_EMAIL}"),
            new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C"
        )
        self.set_draw_color(0, 51, 102)
        self.line(self.l_margin, self.get_y() + 2, self.w - self.r_margin, self.get_y() + 2)
        self.ln(6)
        self.set_text_color(0, 0, 0)

    def footer(self):
        self.set_y(-25)
        self.set_draw_color(180, 180, 180)
        self.line(self.l_margin, self.get_y(), self.w - self.r_margin, self.get_y())
        self.ln(1)
        self.set_font("helvetica", "B", 8)
        self.set_text_color(100, 100, 100)
        self.cell(0, 4, _latin1(Config.BRAND_NAME), new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C")
        self.set_font("helvetica", "", 7)
        self.cell(
            0, 4, f"This document was generated on {self.generated_on.strftime('%B %d, %Y')}",
            new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C"
        )
        self.cell(
            0, 4,
            _latin1(
                f"For questions or concerns, please contact {Config.BRAND_SUPPORT_NAME} at "
                f"{Config.BRAND_EMAIL} or {Config.BRAND_PHONE}"
            ),
            new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C"
        )
        self.cell(0, 4, f"Page {self.page_no()}/{{nb}}", align="C")


class DocumentRenderer:
    """Writes a DocumentLayout to PDF bytes."""

    LABEL_HEIGHT = 5
    LINE_HEIGHT = 5
    SIGNATURE_HEIGHT = 18
    ROW_GAP = 3

    def render(self, layout: DocumentLayout) -> bytes:
        pdf = BrandedDocument(layout.generated_on)
        pdf.alias_nb_pages()
        pdf.add_page()

        pdf.set_font("helvetica", "B", 16)
        pdf.multi_cell(0, 8, _latin1(layout.title), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(4)

        for section in layout.sections:
            self._render_section(pdf, section)

        logger.info(
            f"Rendered document '{layout.title}': {len(layout.sections)} sections, "
            f"{len(layout.blocks)} fields, {pdf.page_no()} pages"
        )
        return bytes(pdf.output())

    def _render_section(self, pdf: FPDF, section: SectionBlock):
        if pdf.get_y() + 20 > pdf.page_break_trigger:
            pdf.add_page()

        pdf.set_font("helvetica", "B", 12)
        pdf.set_fill_color(235, 240, 247)
        pdf.set_text_color(0, 51, 102)
        pdf.cell(0, 8, _latin1(section.title), fill=True, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_text_color(0, 0, 0)
        if section.description:
            pdf.set_font("helvetica", "I", 9)
            pdf.multi_cell(0, 5, _latin1(section.description), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(2)

        column_width = pdf.epw / section.columns
        for row in section.rows:
            self._render_row(pdf, row, column_width)
        pdf.ln(4)

    def _block_height(self, pdf: FPDF, block: FieldBlock, width: float) -> float:
        if block.type == FieldType.LABEL.value:
            pdf.set_font("helvetica", "B", 10)
            return self._text_lines(pdf, block.text, width) * self.LINE_HEIGHT
        if block.image_bytes:
            return self.LABEL_HEIGHT + self.SIGNATURE_HEIGHT
        pdf.set_font("helvetica", "", 10)
        return self.LABEL_HEIGHT + self._text_lines(pdf, block.text, width) * self.LINE_HEIGHT

    @staticmethod
    def _text_lines(pdf: FPDF, text: str, width: float) -> int:
        usable = max(width - 2, 1)
        lines = 0
        for paragraph in _latin1(text).split('\n'):
            lines += max(1, math.ceil(pdf.get_string_width(paragraph) / usable))
        return lines

    def _render_row(self, pdf: FPDF, row: List[FieldBlock], column_width: float):
        widths = [column_width * block.column_span for block in row]
        row_height = max(self._block_height(pdf, b, w) for b, w in zip(row, widths))
        if pdf.get_y() + row_height > pdf.page_break_trigger:
            pdf.add_page()

        top = pdf.get_y()
        x = pdf.l_margin
        for block, width in zip(row, widths):
            pdf.set_xy(x, top)
            self._render_block(pdf, block, width)
            x += width
        pdf.set_xy(pdf.l_margin, top + row_height + self.ROW_GAP)

    def _render_block(self, pdf: FPDF, block: FieldBlock, width: float):
        x = pdf.get_x()
        if block.type == FieldType.LABEL.value:
            pdf.set_font("helvetica", "B", 10)
            pdf.multi_cell(width - 2, self.LINE_HEIGHT, _latin1(block.text), new_x=XPos.LEFT, new_y=YPos.NEXT)
            return

        pdf.set_font("helvetica", "B", 8)
        pdf.set_text_color(80, 80, 80)
        pdf.cell(width - 2, self.LABEL_HEIGHT, _latin1(block.label), new_x=XPos.LEFT, new_y=YPos.NEXT)
        pdf.set_text_color(0, 0, 0)
        pdf.set_x(x)

        if block.image_bytes:
            pdf.image(BytesIO(block.image_bytes), x=x, y=pdf.get_y(), h=self.SIGNATURE_HEIGHT)
            return

        if block.is_placeholder:
            pdf.set_font("helvetica", "I", 10)
            pdf.set_text_color(130, 130, 130)
        else:
            pdf.set_font("helvetica", "", 10)
        pdf.multi_cell(width - 2, self.LINE_HEIGHT, _latin1(block.text), new_x=XPos.LEFT, new_y=YPos.NEXT)
        pdf.set_text_color(0, 0, 0)


def render_document_pdf(
    structure: FormStructure,
    data_bag: Optional[Dict[str, Any]] = None,
    value_store: Optional[Dict[str, Any]] = None,
    title: Optional[str] = None,
    generated_on: Optional[datetime] = None,
) -> bytes:
    """
    Render a filled form to PDF bytes.

    Returns:
        PDF document as bytes
    """
    layout = build_document_layout(structure, data_bag, value_store, title, generated_on)
    return DocumentRenderer().render(layout)
