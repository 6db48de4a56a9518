"""
Computed-field formulas.

A number field may carry a ``computation`` such as
``"field_price + field_fees - field_credit"``. Operands are field ids or
numeric literals; the operators ``+ - * /`` and parentheses are supported.
Formulas are parsed with :mod:`ast` and only the node types above are
accepted, so nothing in a stored template can execute arbitrary code.
"""
import ast
import re
from functools import lru_cache
from typing import Any, Dict, Optional, Set

_BINARY_OPS = {
    ast.Add: lambda a, b: a + b,
    ast.Sub: lambda a, b: a - b,
    ast.Mult: lambda a, b: a * b,
    ast.Div: lambda a, b: a / b,
}
_UNARY_OPS = {
    ast.UAdd: lambda a: a,
    ast.USub: lambda a: -a,
}
_NON_NUMERIC = re.compile(r'[^0-9.\-]')


class FormulaError(ValueError):
    """The formula is not a valid arithmetic expression over field ids."""


@lru_cache(maxsize=256)
def _parse(formula: str) -> ast.Expression:
    try:
        tree = ast.parse(formula.strip(), mode='eval')
    except SyntaxError as e:
        raise FormulaError(f"Cannot parse formula '{formula}': {e.msg}") from e

    for node in ast.walk(tree):
        if isinstance(node, (ast.Expression, ast.Name, ast.Load, ast.BinOp, ast.UnaryOp)):
            continue
        if isinstance(node, tuple(_BINARY_OPS)) or isinstance(node, tuple(_UNARY_OPS)):
            continue
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) \
                and not isinstance(node.value, bool):
            continue
        raise FormulaError(f"Unsupported element '{type(node).__name__}' in formula '{formula}'")
    return tree


def referenced_field_ids(formula: str) -> Set[str]:
    """Return the field ids a formula reads."""
    tree = _parse(formula)
    return {node.id for node in ast.walk(tree) if isinstance(node, ast.Name)}


def to_number(value: Any) -> float:
    """
    Coerce a stored field value to a number.

    Empty values count as zero; currency formatting such as ``$1,250.00`` is
    stripped first.
    """
    if value is None or isinstance(value, bool):
        return float(bool(value))
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NON_NUMERIC.sub('', str(value))
    if cleaned in ('', '-', '.', '-.'):
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def evaluate(formula: str, values: Dict[str, Any]) -> Optional[float]:
    """
    Evaluate a formula against the current field values.

    Args:
        formula: Arithmetic expression over field ids
        values: Mapping of field id to current value

    Returns:
        The computed number, or None when the formula divides by zero
    """
    tree = _parse(formula)

    def _eval(node):
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant):
            return float(node.value)
        if isinstance(node, ast.Name):
            return to_number(values.get(node.id))
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](_eval(node.operand))
        if isinstance(node, ast.BinOp):
            return _BINARY_OPS[type(node.op)](_eval(node.left), _eval(node.right))
        raise FormulaError(f"Unsupported element '{type(node).__name__}'")

    try:
        return _eval(tree)
    except ZeroDivisionError:
        return None
