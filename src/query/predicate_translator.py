"""Query parameter to predicate tree translation.

This module maps ``field__operator=value`` parameters onto a structured,
store-independent predicate tree. Unknown operators are logged and dropped
so the rest of the query still executes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any, Iterable, Mapping

from core.constants import (
    LIST_OPERATORS,
    OPERATOR_SEPARATOR,
    RESERVED_PARAM_PREFIX,
    SUPPORTED_OPERATORS,
)
from core.errors import UnsupportedOperatorError
from core.logging_config import get_logger
from core.numeric import parse_number
from core.types import PredicateTree

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class SubstringMatch:
    """Case-insensitive substring matcher used by ``contains``.

    Attributes:
        text: Literal text to look for; regex metacharacters are not special.
    """

    text: str

    def matches(self, value: object) -> bool:
        """Return whether ``value`` is a string containing ``text``."""
        if not isinstance(value, str):
            return False
        return self.text.casefold() in value.casefold()

    def to_pattern(self) -> str:
        """Return an escaped regular expression for regex-capable stores."""
        return re.escape(self.text)


@dataclass(frozen=True)
class RejectedClause:
    """One query parameter dropped during translation."""

    param: str
    reason: str


@dataclass(frozen=True)
class TranslationResult:
    """Predicate tree plus the clauses that could not be translated."""

    predicate: PredicateTree
    rejected: tuple[RejectedClause, ...] = field(default_factory=tuple)


def translate(params: Mapping[str, Any]) -> PredicateTree:
    """Translate query parameters into a predicate tree.

    Args:
        params: Query parameters; values are strings, lists of strings
            for repeated parameters, or already typed scalars.

    Returns:
        Mapping of field name to a literal (equality) or operator node.
    """
    return translate_query(params).predicate


def translate_query(params: Mapping[str, Any]) -> TranslationResult:
    """Translate query parameters and report rejected clauses.

    Args:
        params: Query parameters keyed by ``field`` or ``field__operator``.

    Returns:
        Translation result with predicate and diagnostics.
    """
    predicate: PredicateTree = {}
    rejected: list[RejectedClause] = []
    for param, raw_value in params.items():
        if param.startswith(RESERVED_PARAM_PREFIX):
            continue
        if OPERATOR_SEPARATOR not in param:
            _merge_equality(predicate, param, _coerce_scalar(_last_value(raw_value)))
            continue
        try:
            field_name, operator = _split_operator(param)
        except UnsupportedOperatorError as error:
            _LOGGER.warning("unsupported_operator", param=param, reason=str(error))
            rejected.append(RejectedClause(param=param, reason=str(error)))
            continue
        _merge_operator(predicate, field_name, operator, _operand(operator, raw_value))
    return TranslationResult(predicate=predicate, rejected=tuple(rejected))


def _split_operator(param: str) -> tuple[str, str]:
    """Split ``field__operator`` on the last separator.

    Raises:
        UnsupportedOperatorError: If the operator is unknown or the field empty.
    """
    field_name, operator = param.rsplit(OPERATOR_SEPARATOR, 1)
    if not field_name:
        raise UnsupportedOperatorError(f"Missing field name before '{operator}' operator.")
    if operator not in SUPPORTED_OPERATORS:
        raise UnsupportedOperatorError(
            f"Unsupported operator '{operator}'. "
            f"Supported operators: {', '.join(SUPPORTED_OPERATORS)}."
        )
    return field_name, operator


def _operand(operator: str, raw_value: Any) -> Any:
    """Build the operand for one operator clause."""
    if operator in LIST_OPERATORS:
        return [_coerce_scalar(item) for item in _split_list(raw_value)]
    if operator == "contains":
        return SubstringMatch(str(_last_value(raw_value)))
    return _coerce_scalar(_last_value(raw_value))


def _merge_equality(predicate: PredicateTree, field_name: str, value: Any) -> None:
    existing = predicate.get(field_name)
    if isinstance(existing, dict):
        existing["eq"] = value
        return
    predicate[field_name] = value


def _merge_operator(
    predicate: PredicateTree,
    field_name: str,
    operator: str,
    operand: Any,
) -> None:
    existing = predicate.get(field_name)
    if isinstance(existing, dict):
        existing[operator] = operand
        return
    node: dict[str, Any] = {} if field_name not in predicate else {"eq": existing}
    node[operator] = operand
    predicate[field_name] = node


def _split_list(raw_value: Any) -> list[Any]:
    """Flatten comma-separated and repeated values into list items."""
    values: Iterable[Any] = raw_value if isinstance(raw_value, (list, tuple)) else [raw_value]
    items: list[Any] = []
    for value in values:
        if isinstance(value, str):
            items.extend(part.strip() for part in value.split(","))
        else:
            items.append(value)
    return items


def _last_value(raw_value: Any) -> Any:
    """Return the effective value of a possibly repeated parameter."""
    if isinstance(raw_value, (list, tuple)):
        return raw_value[-1] if raw_value else ""
    return raw_value


def _coerce_scalar(value: Any) -> Any:
    """Coerce numeric-looking strings to numbers, leaving booleans alone."""
    if isinstance(value, str):
        number = parse_number(value)
        return value if number is None else number
    return value
