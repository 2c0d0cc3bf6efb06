"""In-memory evaluation of predicate trees.

This module applies translated predicates to plain document dictionaries.
Dotted field names address nested values such as ``originalData.address.city``.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from core.types import PredicateTree
from query.predicate_translator import SubstringMatch

_MISSING = object()


def matches(document: Mapping[str, Any], predicate: PredicateTree) -> bool:
    """Return whether a document satisfies every field clause.

    Args:
        document: Stored document.
        predicate: Predicate tree from the translator.

    Returns:
        True when all clauses hold.
    """
    for field_name, clause in predicate.items():
        value = resolve_field(document, field_name)
        if isinstance(clause, dict):
            if not all(_apply(operator, value, operand) for operator, operand in clause.items()):
                return False
        elif not _equals(value, clause):
            return False
    return True


def resolve_field(document: Mapping[str, Any], field_name: str) -> Any:
    """Resolve a dotted field path, returning ``None`` when absent."""
    current: Any = document
    for part in field_name.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def _apply(operator: str, value: Any, operand: Any) -> bool:
    handler = _OPERATORS.get(operator)
    if handler is None:
        return False
    return handler(value, operand)


def _equals(value: Any, operand: Any) -> bool:
    if isinstance(value, bool) or isinstance(operand, bool):
        return type(value) is type(operand) and value == operand
    return value == operand


def _compare(check: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(value: Any, operand: Any) -> bool:
        if not _comparable(value, operand):
            return False
        return check(value, operand)

    return compare


def _comparable(value: Any, operand: Any) -> bool:
    if value is None or isinstance(value, bool) or isinstance(operand, bool):
        return False
    numeric = (int, float)
    if isinstance(value, numeric) and isinstance(operand, numeric):
        return True
    return isinstance(value, str) and isinstance(operand, str)


def _is_in(value: Any, operand: Any) -> bool:
    return any(_equals(value, item) for item in operand)


def _contains(value: Any, operand: Any) -> bool:
    if isinstance(operand, SubstringMatch):
        return operand.matches(value)
    return SubstringMatch(str(operand)).matches(value)


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": _equals,
    "ne": lambda value, operand: not _equals(value, operand),
    "gt": _compare(lambda value, operand: value > operand),
    "gte": _compare(lambda value, operand: value >= operand),
    "lt": _compare(lambda value, operand: value < operand),
    "lte": _compare(lambda value, operand: value <= operand),
    "in": _is_in,
    "nin": lambda value, operand: not _is_in(value, operand),
    "contains": _contains,
}
