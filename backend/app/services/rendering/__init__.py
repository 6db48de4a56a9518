"""
Form renderers: one form structure, three outputs.

- interactive: widget tree for data entry, re-rendered on every value change
- document: paginated, branded PDF of the filled form
- template: the imported PDF with its own form fields filled in
"""

from .interactive import InteractiveFormSession, InteractiveView, render_interactive
from .document import DocumentLayout, build_document_layout, render_document_pdf
from .signature import SignatureMode, capture_signature, remove_background
from .template_fill import TemplateFillResult, apply_transform, fill_pdf_template

__all__ = [
    'InteractiveFormSession',
    'InteractiveView',
    'render_interactive',
    'DocumentLayout',
    'build_document_layout',
    'render_document_pdf',
    'SignatureMode',
    'capture_signature',
    'remove_background',
    'TemplateFillResult',
    'apply_transform',
    'fill_pdf_template',
]
