"""
Builder Controller
==================

Stateful editor over a ``FormStructure``. It owns the live structure, the
active section and the selected field, and exposes the editing operations of
the visual form builder.

Design Principles:
------------------
- Every mutation works on a copy and swaps it in when complete, under a lock
  owned by the controller, so readers never observe a half-applied edit.
- Operations that do not apply (unknown ids, out-of-range indices,
  cross-section moves, patches for unknown properties) are no-ops that
  return ``False`` instead of raising.
- Structures produced here always satisfy ``validate_structure``.
- Desktop and mobile editing surfaces share one controller; ``view_state``
  returns the same state for either viewport.
"""
import logging
import uuid
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional

from .formula import FormulaError, referenced_field_ids
from .model import (
    Field, FieldType, FieldWidth, FormStructure, Section, SectionLayout,
    FULL_WIDTH_FIELD_TYPES, OPTION_FIELD_TYPES, validate_structure,
)
from .nested_update import FIELD_SCHEMA, SECTION_SCHEMA, InvalidPath, merge_patch

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = ['Option 1', 'Option 2']

DEFAULT_FIELD_LABELS = {
    FieldType.LABEL: 'Label',
    FieldType.TEXTAREA: 'Text Area',
    FieldType.TEL: 'Phone',
}

VIEWPORTS = ('desktop', 'mobile')

# Sample application record used when previewing a template
PREVIEW_SAMPLE_DATA: Dict[str, Any] = {
    'application': {
        'property_address': '123 Main Street, Richmond, VA 23220',
        'buyer_name': 'John Smith',
        'seller_name': 'Jane Doe',
        'hoa_property': 'Sample HOA Community',
        'closing_date': '2025-12-31',
        'sale_price': 350000,
        'submitter_name': 'Agent Name',
        'submitter_email': 'agent@example.com',
        'package_type': 'standard',
    }
}


def default_field_label(field_type: FieldType) -> str:
    return DEFAULT_FIELD_LABELS.get(field_type, f"{field_type.value.capitalize()} Field")


def _new_id(prefix: str, taken: set) -> str:
    while True:
        candidate = f"{prefix}_{uuid.uuid4().hex[:10]}"
        if candidate not in taken:
            return candidate


class BuilderController:
    """
    Editing session over a single form structure.

    Example usage:

        builder = BuilderController()
        field = builder.add_field('select')      # creates "Section 1" first
        builder.update_field(field.id, {'label': 'Package', 'options': ['standard', 'rush']})
        structure = builder.snapshot()
    """

    def __init__(self, structure: Optional[FormStructure] = None):
        self._lock = Lock()
        self._structure = structure.copy() if structure else FormStructure()
        self.active_section_id: Optional[str] = (
            self._structure.sections[0].id if self._structure.sections else None
        )
        self.selected_field_id: Optional[str] = None
        self.updated_at = datetime.now()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def structure(self) -> FormStructure:
        """The live structure. Treat as read-only; use ``snapshot`` to keep a copy."""
        return self._structure

    def snapshot(self) -> FormStructure:
        with self._lock:
            return self._structure.copy()

    @property
    def selected_field(self) -> Optional[Field]:
        if self.selected_field_id is None:
            return None
        return self._structure.find_field(self.selected_field_id)

    def view_state(self, viewport: str = 'desktop') -> Dict[str, Any]:
        """
        Editor state for a viewport.

        Args:
            viewport: 'desktop' or 'mobile'

        Returns:
            Dictionary with the structure, active section and selected field
        """
        if viewport not in VIEWPORTS:
            raise ValueError(f"Unknown viewport '{viewport}'. Expected one of {VIEWPORTS}")
        with self._lock:
            return {
                'viewport': viewport,
                'structure': self._structure.to_dict(),
                'activeSectionId': self.active_section_id,
                'selectedFieldId': self.selected_field_id,
            }

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def load(self, structure: FormStructure):
        """Replace the edited structure, resetting active section and selection."""
        with self._lock:
            self._structure = structure.copy()
            self.active_section_id = structure.sections[0].id if structure.sections else None
            self.selected_field_id = None
            self._touch()

    def set_active_section(self, section_id: str) -> bool:
        with self._lock:
            if self._structure.find_section(section_id) is None:
                return False
            self.active_section_id = section_id
            return True

    def select_field(self, field_id: Optional[str]) -> bool:
        with self._lock:
            if field_id is None:
                self.selected_field_id = None
                return True
            if self._structure.find_field(field_id) is None:
                return False
            self.selected_field_id = field_id
            return True

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def add_section(self, title: Optional[str] = None) -> Section:
        """Append an empty section and make it active."""
        with self._lock:
            new_structure = self._structure.copy()
            section = self._append_section(new_structure, title)
            self._commit(new_structure)
            self.active_section_id = section.id
            return section

    def update_section(self, section_id: str, patch: Dict[str, Any]) -> bool:
        with self._lock:
            new_structure = self._structure.copy()
            section = new_structure.find_section(section_id)
            if section is None:
                return False

            current = section.to_dict()
            current.pop('fields')
            try:
                merged = merge_patch(current, patch, SECTION_SCHEMA)
            except InvalidPath as e:
                logger.warning(f"Rejected update for section {section_id}: {e}")
                return False

            merged['id'] = section.id
            merged['fields'] = []
            updated = Section.from_dict(merged)
            updated.fields = section.fields
            index = new_structure.sections.index(section)
            new_structure.sections[index] = updated
            return self._commit(new_structure)

    def delete_section(self, section_id: str) -> bool:
        """Delete a section and every field in it."""
        with self._lock:
            new_structure = self._structure.copy()
            section = new_structure.find_section(section_id)
            if section is None:
                return False

            removed_ids = {f.id for f in section.fields}
            new_structure.sections.remove(section)
            self._drop_dangling_computations(new_structure, removed_ids)
            if not self._commit(new_structure):
                return False

            if self.selected_field_id in removed_ids:
                self.selected_field_id = None
            if self.active_section_id == section_id:
                self.active_section_id = new_structure.sections[0].id if new_structure.sections else None
            return True

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def add_field(self, field_type: str, target_section_id: Optional[str] = None) -> Optional[Field]:
        """
        Add a field with per-type defaults and select it.

        The target section is the explicit one when it exists, otherwise the
        active section, otherwise the first section, otherwise a new
        "Section 1" created on the fly.

        Returns:
            The new field, or None when ``field_type`` is unknown
        """
        try:
            ftype = FieldType(field_type)
        except ValueError:
            logger.warning(f"Ignoring add_field for unknown field type '{field_type}'")
            return None

        with self._lock:
            new_structure = self._structure.copy()
            section = None
            for candidate in (target_section_id, self.active_section_id):
                if candidate:
                    section = new_structure.find_section(candidate)
                    if section is not None:
                        break
            if section is None and new_structure.sections:
                section = new_structure.sections[0]
            if section is None:
                section = self._append_section(new_structure, None)

            field_id = _new_id('field', set(new_structure.field_ids()))
            new_field = Field(
                id=field_id,
                key=field_id,
                label=default_field_label(ftype),
                type=ftype,
                width=FieldWidth.FULL if ftype in FULL_WIDTH_FIELD_TYPES else FieldWidth.HALF,
                options=list(DEFAULT_OPTIONS) if ftype in OPTION_FIELD_TYPES else [],
            )
            section.fields.append(new_field)
            if not self._commit(new_structure):
                return None

            self.active_section_id = section.id
            self.selected_field_id = field_id
            return new_field

    def update_field(self, field_id: str, patch: Dict[str, Any]) -> bool:
        """
        Merge a wire-format patch into a field, replacing it by id.

        The patch may use dotted paths (``conditionalLogic.action``). The
        field id is immutable.
        """
        with self._lock:
            new_structure = self._structure.copy()
            section = new_structure.section_of(field_id)
            if section is None:
                return False

            current = section.find_field(field_id)
            try:
                merged = merge_patch(current.to_dict(), patch, FIELD_SCHEMA)
            except InvalidPath as e:
                logger.warning(f"Rejected update for field {field_id}: {e}")
                return False

            merged['id'] = field_id
            updated = Field.from_dict(merged)
            if updated.type in OPTION_FIELD_TYPES and not updated.options:
                updated.options = list(DEFAULT_OPTIONS)
            if updated.type not in OPTION_FIELD_TYPES:
                updated.options = []
            index = section.fields.index(current)
            section.fields[index] = updated
            return self._commit(new_structure)

    def delete_field(self, field_id: str) -> bool:
        with self._lock:
            new_structure = self._structure.copy()
            section = new_structure.section_of(field_id)
            if section is None:
                return False

            section.fields = [f for f in section.fields if f.id != field_id]
            self._drop_dangling_computations(new_structure, {field_id})
            if not self._commit(new_structure):
                return False

            if self.selected_field_id == field_id:
                self.selected_field_id = None
            return True

    def reorder_field(self, section_id: str, from_index: int, to_index: int) -> bool:
        """
        Move a field within one section.

        Out-of-range indices leave the structure unchanged.
        """
        with self._lock:
            new_structure = self._structure.copy()
            section = new_structure.find_section(section_id)
            if section is None:
                return False

            count = len(section.fields)
            if not (0 <= from_index < count and 0 <= to_index < count):
                return False
            if from_index == to_index:
                return True

            moved = section.fields.pop(from_index)
            section.fields.insert(to_index, moved)
            return self._commit(new_structure)

    def move_field(self, field_id: str, to_section_id: str, to_index: int) -> bool:
        """
        Drag a field to a position, possibly in another section.

        Only moves within the field's own section are applied; a move to a
        different section is rejected.
        """
        section = self._structure.section_of(field_id)
        if section is None or section.id != to_section_id:
            return False
        from_index = [f.id for f in section.fields].index(field_id)
        return self.reorder_field(section.id, from_index, to_index)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def export_template(
        self,
        name: str,
        description: str = '',
        creation_method: str = 'visual_builder',
        pdf_template_path: Optional[str] = None,
        pdf_field_mappings: Optional[Dict[str, str]] = None,
        application_types: Optional[List[str]] = None,
        task_number: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Build the template record persisted for this form.

        Raises:
            ValueError: if ``name`` is blank
        """
        if not name or not name.strip():
            raise ValueError("Template name is required")

        structure = self.snapshot()
        data_source_mappings = {
            f.id: f.data_source for _, f in structure.iter_fields() if f.data_source
        }
        if pdf_field_mappings is None:
            pdf_field_mappings = {
                f.id: f.pdf_mapping for _, f in structure.iter_fields() if f.pdf_mapping
            }
        return {
            'name': name.strip(),
            'description': description,
            'creation_method': creation_method,
            'form_structure': structure.to_dict(),
            'pdf_template_path': pdf_template_path,
            'pdf_field_mappings': pdf_field_mappings,
            'data_source_mappings': data_source_mappings,
            'application_types': list(application_types or []),
            'task_number': task_number,
            'is_active': True,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _append_section(structure: FormStructure, title: Optional[str]) -> Section:
        section = Section(
            id=_new_id('section', {s.id for s in structure.sections}),
            title=title or f"Section {len(structure.sections) + 1}",
            layout=SectionLayout.SINGLE_COLUMN,
        )
        structure.sections.append(section)
        return section

    @staticmethod
    def _drop_dangling_computations(structure: FormStructure, removed_ids: set):
        for _, f in structure.iter_fields():
            if not f.computation:
                continue
            try:
                refs = referenced_field_ids(f.computation)
            except FormulaError:
                continue
            if refs & removed_ids:
                logger.info(f"Clearing computation of field {f.id}: it referenced a deleted field")
                f.computation = None

    def _commit(self, new_structure: FormStructure) -> bool:
        # only problems introduced by this edit count
        problems = sorted(set(validate_structure(new_structure)) - set(validate_structure(self._structure)))
        if problems:
            logger.warning(f"Rejected builder edit: {'; '.join(problems)}")
            return False
        self._structure = new_structure
        self._touch()
        return True

    def _touch(self):
        self.updated_at = datetime.now()
