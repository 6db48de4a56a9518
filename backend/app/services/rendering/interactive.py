"""
Interactive renderer.

Turns a form structure plus current values into a widget tree the data-entry
UI draws directly. Visibility and values come from the same helpers the
document renderer uses, so both outputs always agree on which fields appear
and what they contain.
"""
import logging
from dataclasses import dataclass, field, asdict
from threading import Lock
from typing import Any, Dict, List, Optional

from app.services.form_structure.completion import completion_percentage, is_complete, missing_fields
from app.services.form_structure.model import Field, FieldType, FieldWidth, FormStructure
from app.services.form_structure.visibility import is_checked, resolve_visibility

from .signature import SignatureMode, signature_render_state
from .values import display_value, format_currency, merge_values, sanitize_currency_input

logger = logging.getLogger(__name__)


@dataclass
class FieldWidget:
    """A single rendered input (or static label)."""
    field_id: str
    key: str
    type: str
    label: str
    column_span: int
    value: Any = None
    display_value: str = ""
    required: bool = False
    placeholder: Optional[str] = None
    description: Optional[str] = None
    options: List[str] = field(default_factory=list)
    currency: bool = False
    computed: bool = False
    checked: Optional[bool] = None
    checkbox_label: Optional[str] = None
    signature_state: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SectionView:
    """A visible section with its visible widgets."""
    section_id: str
    title: str
    layout: str
    columns: int
    description: Optional[str] = None
    collapsible: bool = False
    widgets: List[FieldWidget] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['widgets'] = [w.to_dict() for w in self.widgets]
        return data


@dataclass
class InteractiveView:
    """Complete interactive render result."""
    sections: List[SectionView]
    values: Dict[str, Any]
    is_complete: bool
    completion_percentage: int
    missing_field_ids: List[str] = field(default_factory=list)

    @property
    def widget_count(self) -> int:
        return sum(len(s.widgets) for s in self.sections)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sections': [s.to_dict() for s in self.sections],
            'values': dict(self.values),
            'isComplete': self.is_complete,
            'completionPercentage': self.completion_percentage,
            'missingFieldIds': list(self.missing_field_ids),
        }


def _build_widget(f: Field, value: Any, columns: int, signature_mode: Optional[SignatureMode]) -> FieldWidget:
    span = columns if f.width == FieldWidth.FULL or f.type in (FieldType.TEXTAREA, FieldType.LABEL) else 1
    widget = FieldWidget(
        field_id=f.id,
        key=f.key,
        type=f.type.value,
        label=f.label,
        column_span=span,
        required=f.required,
        description=f.description,
    )
    if f.type == FieldType.LABEL:
        # static text only
        return widget

    widget.value = value
    widget.placeholder = f.placeholder
    widget.computed = bool(f.computation)

    if f.type in (FieldType.SELECT, FieldType.RADIO):
        widget.options = list(f.options)
        widget.display_value = display_value(f, value)
    elif f.type == FieldType.CHECKBOX:
        widget.checked = is_checked(value)
        widget.checkbox_label = f.checkbox_label or f.label
        widget.display_value = display_value(f, value)
    elif f.type == FieldType.NUMBER and f.currency:
        widget.currency = True
        widget.display_value = format_currency(value)
    elif f.type == FieldType.SIGNATURE:
        widget.signature_state = signature_render_state(signature_mode, value).value
    else:
        widget.display_value = display_value(f, value)
    return widget


def render_interactive(
    structure: FormStructure,
    data_bag: Optional[Dict[str, Any]] = None,
    value_store: Optional[Dict[str, Any]] = None,
    signature_modes: Optional[Dict[str, SignatureMode]] = None,
) -> InteractiveView:
    """
    Render a form for data entry.

    Args:
        structure: Form definition
        data_bag: Record that ``dataSource`` paths are read from
        value_store: Values entered so far, keyed by field id
        signature_modes: Capture mode currently chosen for each signature field

    Returns:
        InteractiveView with only the visible sections and fields
    """
    values = merge_values(structure, data_bag, value_store)
    state = resolve_visibility(structure, values)
    modes = signature_modes or {}

    sections: List[SectionView] = []
    for section in structure.sections:
        if not state.is_section_visible(section.id):
            continue
        columns = section.layout.columns
        sections.append(SectionView(
            section_id=section.id,
            title=section.title,
            layout=section.layout.value,
            columns=columns,
            description=section.description,
            collapsible=section.collapsible,
            widgets=[
                _build_widget(f, values.get(f.id), columns, modes.get(f.id))
                for f in state.visible_fields(section)
            ],
        ))

    return InteractiveView(
        sections=sections,
        values=values,
        is_complete=is_complete(structure, values),
        completion_percentage=completion_percentage(structure, values),
        missing_field_ids=[f.id for f in missing_fields(structure, values)],
    )


class InteractiveFormSession:
    """
    A user's data-entry session over one form.

    Every value change re-renders the form, so visibility rules and
    computed fields update immediately.
    """

    def __init__(self, structure: FormStructure, data_bag: Optional[Dict[str, Any]] = None):
        self.structure = structure.copy()
        self.data_bag = data_bag or {}
        self.values: Dict[str, Any] = merge_values(self.structure, self.data_bag, None)
        self.signature_modes: Dict[str, SignatureMode] = {}
        self._lock = Lock()
        self.view = self.render()

    def render(self) -> InteractiveView:
        return render_interactive(self.structure, self.data_bag, self.values, self.signature_modes)

    def set_value(self, field_id: str, raw_value: Any) -> InteractiveView:
        """
        Record a value typed by the user and re-render.

        Unknown, static and computed fields are ignored.
        """
        with self._lock:
            f = self.structure.find_field(field_id)
            if f is None or not f.is_input or f.computation:
                logger.debug(f"Ignoring value for non-editable field {field_id}")
                return self.view

            if f.type == FieldType.NUMBER and f.currency:
                value = sanitize_currency_input(raw_value)
            elif f.type == FieldType.CHECKBOX:
                value = is_checked(raw_value)
            else:
                value = raw_value

            self.values[field_id] = value
            self.values = merge_values(self.structure, self.data_bag, self.values)
            self.view = self.render()
            return self.view

    def set_signature_mode(self, field_id: str, mode: SignatureMode) -> InteractiveView:
        with self._lock:
            f = self.structure.find_field(field_id)
            if f is not None and f.type == FieldType.SIGNATURE:
                self.signature_modes[field_id] = SignatureMode(mode)
                self.view = self.render()
            return self.view
