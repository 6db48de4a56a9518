"""
Typed nested updates.

Builder patches arrive in the camelCase wire format and may address nested
properties either structurally (``{"conditionalLogic": {"action": "hide"}}``)
or with dotted paths (``{"conditionalLogic.action": "hide"}``). Both forms are
merged recursively into a copy of the target dictionary after every path has
been checked against a known schema, so a typo never silently creates a new
property.
"""
import copy
from typing import Any, Dict, List

LEAF = 'leaf'
FREE_MAPPING = 'mapping'

RULE_SCHEMA: Dict[str, Any] = {
    'action': LEAF,
    'targetId': LEAF,
    'sourceFieldId': LEAF,
    'value': LEAF,
}

FIELD_SCHEMA: Dict[str, Any] = {
    'key': LEAF,
    'label': LEAF,
    'type': LEAF,
    'required': LEAF,
    'width': LEAF,
    'placeholder': LEAF,
    'defaultValue': LEAF,
    'options': LEAF,
    'currency': LEAF,
    'computation': LEAF,
    'conditionalLogic': RULE_SCHEMA,
    'dataSource': LEAF,
    'pdfMapping': LEAF,
    'checkboxLabel': LEAF,
    'description': LEAF,
    'validation': FREE_MAPPING,
}

SECTION_SCHEMA: Dict[str, Any] = {
    'title': LEAF,
    'description': LEAF,
    'layout': LEAF,
    'collapsible': LEAF,
    'initiallyHidden': LEAF,
    'required': LEAF,
    'conditionalVisibility': RULE_SCHEMA,
}


class InvalidPath(ValueError):
    """A patch addresses a property the schema does not define."""


def _split_path(path: str) -> List[str]:
    parts = path.split('.')
    if not path or any(not p for p in parts):
        raise InvalidPath(f"Malformed path '{path}'")
    return parts


def _assign(target: Dict[str, Any], parts: List[str], value: Any, schema: Any, full_path: str):
    head, rest = parts[0], parts[1:]

    if schema == FREE_MAPPING:
        node = target
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)
        return

    if not isinstance(schema, dict) or head not in schema:
        raise InvalidPath(f"Unknown property '{full_path}'")

    child_schema = schema[head]
    if not rest:
        if isinstance(value, dict) and child_schema != LEAF:
            current = target.get(head)
            base = dict(current) if isinstance(current, dict) else {}
            target[head] = merge_patch(base, value, child_schema, prefix=f"{full_path}.")
        else:
            target[head] = copy.deepcopy(value)
        return

    if child_schema == LEAF:
        raise InvalidPath(f"Property '{head}' has no nested properties (path '{full_path}')")

    current = target.get(head)
    child = dict(current) if isinstance(current, dict) else {}
    target[head] = child
    _assign(child, rest, value, child_schema, full_path)


def merge_patch(base: Dict[str, Any], patch: Dict[str, Any], schema: Any, prefix: str = '') -> Dict[str, Any]:
    """
    Merge a patch into a copy of ``base``.

    Args:
        base: Current wire-format dictionary (left untouched)
        patch: Keys are property names or dotted paths
        schema: Schema the keys are validated against
        prefix: Path prefix used in error messages

    Returns:
        The merged copy

    Raises:
        InvalidPath: if any key is not defined by the schema
    """
    result = copy.deepcopy(base)
    for key, value in patch.items():
        _assign(result, _split_path(str(key)), value, schema, f"{prefix}{key}")
    return result


def apply_path_update(base: Dict[str, Any], path: str, value: Any, schema: Any) -> Dict[str, Any]:
    """Set a single dotted path on a copy of ``base``."""
    return merge_patch(base, {path: value}, schema)


def set_by_path(data: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """
    Set a dotted path in a free-form data bag, creating intermediate objects.

    Used for value stores such as ``application.buyer_name``.
    """
    return apply_path_update(data, path, value, FREE_MAPPING)


def get_by_path(data: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path from nested dictionaries."""
    node = data
    for part in path.split('.'):
        if isinstance(node, dict) and part in node:
            node = node[part]
        else:
            return default
    return node
