"""
Visibility resolution.

Resolves every section and field of a form to visible or hidden in a single
pass over the current values. Both renderers call ``resolve_visibility`` and
render only what it reports as visible, so the on-screen form and the
generated document always agree.

Resolution order:
1. A section starts hidden when ``initially_hidden`` is set, visible otherwise.
2. A section's own ``conditional_visibility`` rule is applied.
3. Checkbox ``conditional_logic`` rules are applied in display order:
   ``show`` makes the target visible only while the box is checked,
   ``hide`` hides the target while the box is checked.
4. Rules whose target or source id does not resolve are ignored.
5. Every field inside a hidden section is hidden.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from .model import FieldType, FormStructure, RuleAction, Section, Field

TRUTHY_STRINGS = {'true', 'on', 'yes', '1'}


def is_checked(value: Any) -> bool:
    """Checkbox truthiness: ``True``, ``'true'`` and ``1`` count as checked."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return False


def _condition_holds(value: Any, expected: Any) -> bool:
    if expected is None:
        if isinstance(value, str):
            return bool(value.strip()) and value.strip().lower() not in ('false', '0')
        return bool(value)
    if isinstance(expected, bool):
        return is_checked(value) == expected
    return str(value) == str(expected)


@dataclass
class VisibilityState:
    """Result of a visibility pass."""
    hidden_sections: Set[str] = field(default_factory=set)
    hidden_fields: Set[str] = field(default_factory=set)

    def is_section_visible(self, section_id: str) -> bool:
        return section_id not in self.hidden_sections

    def is_field_visible(self, field_id: str) -> bool:
        return field_id not in self.hidden_fields

    def visible_fields(self, section: Section) -> List[Field]:
        if not self.is_section_visible(section.id):
            return []
        return [f for f in section.fields if self.is_field_visible(f.id)]


def resolve_visibility(structure: FormStructure, values: Dict[str, Any]) -> VisibilityState:
    """
    Resolve which sections and fields are visible.

    Args:
        structure: Form to resolve
        values: Current values keyed by field id

    Returns:
        VisibilityState listing hidden section and field ids
    """
    section_ids = {s.id for s in structure.sections}
    field_ids = set(structure.field_ids())

    section_visible: Dict[str, bool] = {s.id: not s.initially_hidden for s in structure.sections}
    field_visible: Dict[str, bool] = {fid: True for fid in field_ids}

    for section in structure.sections:
        rule = section.conditional_visibility
        if rule is None or rule.source_field_id not in field_ids:
            continue
        holds = _condition_holds(values.get(rule.source_field_id), rule.value)
        if rule.action == RuleAction.SHOW:
            section_visible[section.id] = holds
        elif holds:
            section_visible[section.id] = False

    for _, source in structure.iter_fields():
        rule = source.conditional_logic
        if source.type != FieldType.CHECKBOX or rule is None or not rule.target_id:
            continue
        if rule.target_id == source.id:
            continue
        if rule.target_id in field_ids:
            target = field_visible
        elif rule.target_id in section_ids:
            target = section_visible
        else:
            continue
        checked = is_checked(values.get(source.id))
        if rule.action == RuleAction.SHOW:
            target[rule.target_id] = checked
        elif checked:
            target[rule.target_id] = False

    state = VisibilityState()
    for section in structure.sections:
        if not section_visible[section.id]:
            state.hidden_sections.add(section.id)
            state.hidden_fields.update(f.id for f in section.fields)
    state.hidden_fields.update(fid for fid, visible in field_visible.items() if not visible)
    return state
