"""Raw element to UnifiedRecord normalization.

This module maps the known source shapes onto one record layout. Field
resolution order is fixed so mixed sources tie-break deterministically.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from core.constants import MISSING_ID_SENTINEL
from core.numeric import coerce_number
from core.types import UnifiedRecord


def normalize(raw: Any, source_file: str) -> UnifiedRecord:
    """Normalize one raw element.

    Args:
        raw: Parsed array element of any JSON type.
        source_file: Provenance tag of the ingested file.

    Returns:
        Unified record keeping ``raw`` verbatim as ``original_data``.
    """
    fields: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    return UnifiedRecord(
        source_file=source_file,
        unified_id=_resolve_id(fields),
        unified_city=_resolve_city(fields),
        unified_price=_resolve_price(fields),
        unified_is_available=_first_present(fields, "availability", "isAvailable"),
        unified_name=fields.get("name") or None,
        unified_segment=fields.get("priceSegment") or None,
        original_data=raw,
    )


def _resolve_id(fields: Mapping[str, Any]) -> str:
    raw_id = fields.get("id")
    if not raw_id:
        return MISSING_ID_SENTINEL
    if isinstance(raw_id, str):
        return raw_id
    return json.dumps(raw_id, sort_keys=True, separators=(",", ":"))


def _resolve_city(fields: Mapping[str, Any]) -> Any:
    if "city" in fields:
        return fields["city"]
    address = fields.get("address")
    if isinstance(address, Mapping) and address.get("city"):
        return address["city"]
    return None


def _resolve_price(fields: Mapping[str, Any]) -> int | float | None:
    for key in ("pricePerNight", "priceForNight"):
        if key in fields:
            return coerce_number(fields[key])
    return None


def _first_present(fields: Mapping[str, Any], *keys: str) -> Any:
    """Return the value of the first key present, even when it is null."""
    for key in keys:
        if key in fields:
            return fields[key]
    return None
