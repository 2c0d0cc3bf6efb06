"""Thread-safe in-memory document store.

This module keeps unified records in a dictionary keyed by ``unifiedId``.
It backs tests and dry runs with the same upsert semantics as MongoDB.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from itertools import count as counter
import threading
from typing import Any, Sequence

from core.constants import DEFAULT_SORT_FIELD
from core.types import PredicateTree, SortSpec, UnifiedRecord, WriteResult
from query.predicate_matching import matches, resolve_field
from store.record_payload import (
    CREATED_AT_FIELD,
    UPDATED_AT_FIELD,
    record_to_document,
)


class MemoryDocumentStore:
    """Dictionary-backed store with idempotent keyed upserts."""

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._insert_order: dict[str, int] = {}
        self._sequence = counter()
        self._lock = threading.Lock()

    def bulk_upsert(self, records: Sequence[UnifiedRecord]) -> WriteResult:
        """Insert absent keys and overwrite unified fields of present ones.

        Args:
            records: Records applied in order; later duplicates win.

        Returns:
            Matched, modified and upserted counters.
        """
        matched = modified = upserted = 0
        with self._lock:
            for record in records:
                document = record_to_document(record)
                key = record.unified_id
                now = datetime.now(timezone.utc)
                existing = self._documents.get(key)
                if existing is None:
                    document[CREATED_AT_FIELD] = now
                    document[UPDATED_AT_FIELD] = now
                    self._documents[key] = document
                    self._insert_order[key] = next(self._sequence)
                    upserted += 1
                    continue
                matched += 1
                if any(existing.get(name) != value for name, value in document.items()):
                    modified += 1
                existing.update(document)
                existing[UPDATED_AT_FIELD] = now
        return WriteResult(matched_count=matched, modified_count=modified, upserted_count=upserted)

    def find_by_filter(
        self,
        predicate: PredicateTree,
        limit: int,
        skip: int,
        sort: SortSpec | None = None,
    ) -> list[dict[str, Any]]:
        """Return copies of matching documents for one page.

        Args:
            predicate: Predicate tree.
            limit: Maximum documents returned.
            skip: Matching documents skipped before the page.
            sort: Sort order, newest first when omitted.

        Returns:
            Document copies.
        """
        sort_spec = sort or SortSpec(field=DEFAULT_SORT_FIELD, direction=-1)
        with self._lock:
            selected = [
                (key, document)
                for key, document in self._documents.items()
                if matches(document, predicate)
            ]
            selected.sort(
                key=lambda item: (
                    _sort_key(resolve_field(item[1], sort_spec.field)),
                    self._insert_order[item[0]],
                ),
                reverse=sort_spec.direction < 0,
            )
            page = selected[skip : skip + limit]
            return [copy.deepcopy(document) for _, document in page]

    def count(self, predicate: PredicateTree) -> int:
        """Return the number of matching documents."""
        with self._lock:
            return sum(1 for document in self._documents.values() if matches(document, predicate))

    def get(self, unified_id: str) -> dict[str, Any] | None:
        """Return a copy of one document by key."""
        with self._lock:
            document = self._documents.get(unified_id)
            return copy.deepcopy(document) if document is not None else None

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Return unified fields of every document keyed by ``unifiedId``."""
        with self._lock:
            return {
                key: {
                    name: value
                    for name, value in document.items()
                    if name not in (CREATED_AT_FIELD, UPDATED_AT_FIELD)
                }
                for key, document in self._documents.items()
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)

    def close(self) -> None:
        """Nothing to release for the in-memory store."""


def _sort_key(value: Any) -> tuple[int, Any]:
    """Order missing values first, then numbers, then strings."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, datetime):
        return (3, value.timestamp())
    return (4, str(value))
