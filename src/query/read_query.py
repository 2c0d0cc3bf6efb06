"""Read pagination and sort controls.

This module interprets the reserved ``_limit``, ``_skip``, ``_sort`` and
``_order`` parameters and runs one filtered page against a document store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from core.constants import DEFAULT_QUERY_LIMIT, DEFAULT_SORT_FIELD, MAX_QUERY_LIMIT
from core.types import QueryPage, SortSpec
from query.predicate_translator import translate
from store.document_store import DocumentStore


@dataclass(frozen=True)
class ReadQuery:
    """Pagination and sort options for one read.

    Attributes:
        limit: Maximum number of documents to return.
        skip: Number of matching documents to skip.
        sort: Sort order applied before paging.
    """

    limit: int
    skip: int
    sort: SortSpec

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        default_limit: int = DEFAULT_QUERY_LIMIT,
        max_limit: int = MAX_QUERY_LIMIT,
    ) -> "ReadQuery":
        """Build read options from reserved query parameters.

        Args:
            params: Raw query parameters.
            default_limit: Page size used when ``_limit`` is absent or invalid.
            max_limit: Upper bound applied to ``_limit``.

        Returns:
            Parsed read options.
        """
        limit = min(_parse_int(params.get("_limit"), default_limit), max_limit)
        skip = max(_parse_int(params.get("_skip"), 0), 0)
        sort_field = params.get("_sort")
        if sort_field:
            direction = -1 if str(params.get("_order", "")).lower() == "desc" else 1
            sort = SortSpec(field=str(sort_field), direction=direction)
        else:
            sort = SortSpec(field=DEFAULT_SORT_FIELD, direction=-1)
        return cls(limit=max(limit, 1), skip=skip, sort=sort)


def run_read_query(
    store: DocumentStore,
    params: Mapping[str, Any],
    default_limit: int = DEFAULT_QUERY_LIMIT,
    max_limit: int = MAX_QUERY_LIMIT,
) -> QueryPage:
    """Translate parameters and fetch one page of matching documents.

    Args:
        store: Document store to query.
        params: Raw query parameters including reserved controls.
        default_limit: Default page size.
        max_limit: Maximum page size.

    Returns:
        Page with the total match count and page documents.
    """
    read_query = ReadQuery.from_params(params, default_limit, max_limit)
    predicate = translate(params)
    total_count = store.count(predicate)
    records = store.find_by_filter(predicate, read_query.limit, read_query.skip, read_query.sort)
    return QueryPage(
        total_count=total_count,
        limit=read_query.limit,
        skip=read_query.skip,
        data=records,
    )


def _parse_int(raw_value: Any, default: int) -> int:
    if isinstance(raw_value, (list, tuple)):
        raw_value = raw_value[-1] if raw_value else None
    if raw_value is None or isinstance(raw_value, bool):
        return default
    try:
        return int(str(raw_value).strip())
    except ValueError:
        return default
