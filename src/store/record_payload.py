"""Document serialization for UnifiedRecord payloads.

This module centralizes the camelCase document shape of unified records.
It is reused by every document store implementation.
"""

from __future__ import annotations

from typing import Any

from core.types import UnifiedRecord

UNIFIED_ID_FIELD = "unifiedId"
CREATED_AT_FIELD = "createdAt"
UPDATED_AT_FIELD = "updatedAt"


def record_to_document(record: UnifiedRecord) -> dict[str, Any]:
    """Serialize a UnifiedRecord into a store document.

    Args:
        record: Normalized record.

    Returns:
        Document dictionary without store-managed timestamps.
    """
    return {
        "sourceFile": record.source_file,
        UNIFIED_ID_FIELD: record.unified_id,
        "unifiedCity": record.unified_city,
        "unifiedPrice": record.unified_price,
        "unifiedIsAvailable": record.unified_is_available,
        "unifiedName": record.unified_name,
        "unifiedSegment": record.unified_segment,
        "originalData": record.original_data,
    }

