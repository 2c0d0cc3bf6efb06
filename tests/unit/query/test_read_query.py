"""Unit tests for paged reads."""

from __future__ import annotations

from core.types import SortSpec, UnifiedRecord
from query.read_query import ReadQuery, run_read_query
from store.memory_store import MemoryDocumentStore


def _store() -> MemoryDocumentStore:
    store = MemoryDocumentStore()
    store.bulk_upsert(
        [
            UnifiedRecord("s.json", f"stay-{index}", unified_city=city, unified_price=price)
            for index, (city, price) in enumerate(
                [("Paris", 120), ("Tokyo", 340.5), ("Rome", 95), ("Paris", 60)]
            )
        ]
    )
    return store


def test_from_params_defaults() -> None:
    """Missing controls should fall back to defaults."""
    read_query = ReadQuery.from_params({})

    assert (read_query.limit, read_query.skip) == (20, 0)
    assert read_query.sort == SortSpec(field="createdAt", direction=-1)


def test_from_params_caps_limit_and_ignores_invalid_values() -> None:
    """Limits should be bounded and unparseable values ignored."""
    assert ReadQuery.from_params({"_limit": "500"}).limit == 100
    assert ReadQuery.from_params({"_limit": "many", "_skip": "-4"}).limit == 20
    assert ReadQuery.from_params({"_skip": "-4"}).skip == 0


def test_from_params_sort_order() -> None:
    """``_sort`` with ``_order=desc`` should sort descending."""
    read_query = ReadQuery.from_params({"_sort": "unifiedPrice", "_order": "desc"})

    assert read_query.sort == SortSpec(field="unifiedPrice", direction=-1)


def test_run_read_query_filters_sorts_and_pages() -> None:
    """Reads should report the total and return one sorted page."""
    params = {"unifiedPrice__gte": "90", "_sort": "unifiedPrice", "_limit": "2", "_skip": "1"}

    page = run_read_query(_store(), params)

    assert page.total_count == 3
    assert [document["unifiedId"] for document in page.data] == ["stay-0", "stay-1"]


def test_run_read_query_equality_on_city() -> None:
    """Equality predicates should select matching documents only."""
    page = run_read_query(_store(), {"unifiedCity": "Paris", "_sort": "unifiedPrice"})

    assert [document["unifiedPrice"] for document in page.data] == [60, 120]
