"""Numeric coercion helpers.

This module decides when a raw value counts as a number.
It is shared by record normalization and query translation.
"""

from __future__ import annotations

import re

_DECIMAL_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_number(text: str) -> int | float | None:
    """Parse a string that is entirely a decimal number.

    Args:
        text: Raw string value; surrounding whitespace is ignored.

    Returns:
        ``int`` for integral literals, ``float`` otherwise, or ``None``
        when the text is not a complete decimal number.
    """
    candidate = text.strip()
    if not _DECIMAL_PATTERN.fullmatch(candidate):
        return None
    if candidate.lstrip("+-").isdigit():
        return int(candidate)
    return float(candidate)


def coerce_number(value: object) -> int | float | None:
    """Coerce a raw JSON value into a number when possible.

    Booleans map to 0/1 and numeric strings are parsed. Anything else,
    including ``None``, yields ``None``.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        return parse_number(value)
    return None
