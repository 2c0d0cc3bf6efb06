"""Unit tests for the MongoDB store adapter."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import bson
from pymongo.errors import PyMongoError
import pytest

from core.errors import BatchWriteError, LodestreamStoreError
from core.types import SortSpec, UnifiedRecord
from query.predicate_translator import translate
from store.mongo_store import MongoDocumentStore, to_mongo_filter


class _FakeCursor:
    def __init__(self, documents: list[dict[str, Any]]) -> None:
        self._documents = documents
        self.calls: list[tuple[str, Any]] = []

    def sort(self, field: str, direction: int) -> "_FakeCursor":
        self.calls.append(("sort", (field, direction)))
        return self

    def skip(self, count: int) -> "_FakeCursor":
        self.calls.append(("skip", count))
        return self

    def limit(self, count: int) -> "_FakeCursor":
        self.calls.append(("limit", count))
        return self

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self._documents)


class _FakeCollection:
    def __init__(self, fail_writes: bool = False) -> None:
        self.fail_writes = fail_writes
        self.bulk_calls: list[tuple[list[Any], bool]] = []
        self.indexes: list[tuple[Any, dict[str, Any]]] = []
        self.cursor = _FakeCursor([{"unifiedId": "a"}])
        self.find_calls: list[tuple[dict[str, Any], dict[str, int]]] = []

    def bulk_write(self, operations: list[Any], ordered: bool) -> SimpleNamespace:
        if self.fail_writes:
            raise PyMongoError("connection reset")
        self.bulk_calls.append((operations, ordered))
        return SimpleNamespace(
            matched_count=1,
            modified_count=1,
            upserted_count=len(operations) - 1,
        )

    def create_index(self, keys: Any, **kwargs: Any) -> str:
        self.indexes.append((keys, kwargs))
        return "index"

    def find(self, mongo_filter: dict[str, Any], projection: dict[str, int]) -> _FakeCursor:
        self.find_calls.append((mongo_filter, projection))
        return self.cursor

    def count_documents(self, mongo_filter: dict[str, Any]) -> int:
        raise PyMongoError("timed out")


def _records(count: int) -> list[UnifiedRecord]:
    return [UnifiedRecord("s.json", f"id-{index}") for index in range(count)]


def test_bulk_upsert_issues_one_ordered_bulk_write() -> None:
    """Each batch should be a single ordered round trip."""
    collection = _FakeCollection()
    store = MongoDocumentStore(collection)

    result = store.bulk_upsert(_records(3))

    assert len(collection.bulk_calls) == 1
    operations, ordered = collection.bulk_calls[0]
    assert len(operations) == 3 and ordered is True
    assert (result.matched_count, result.upserted_count) == (1, 2)


def test_bulk_upsert_empty_batch_skips_round_trip() -> None:
    """Empty batches should not touch the collection."""
    collection = _FakeCollection()

    MongoDocumentStore(collection).bulk_upsert([])

    assert collection.bulk_calls == []


def test_bulk_upsert_wraps_driver_errors() -> None:
    """Driver failures should surface as batch write errors."""
    store = MongoDocumentStore(_FakeCollection(fail_writes=True))

    with pytest.raises(BatchWriteError, match="connection reset"):
        store.bulk_upsert(_records(2))


def test_ensure_indexes_creates_unique_key() -> None:
    """The unifiedId index should be unique."""
    collection = _FakeCollection()

    MongoDocumentStore(collection).ensure_indexes()

    assert collection.indexes[0] == ("unifiedId", {"unique": True})
    assert len(collection.indexes) == 4


def test_find_by_filter_applies_projection_sort_and_paging() -> None:
    """Finds should hide ``_id`` and apply sort, skip and limit."""
    collection = _FakeCollection()

    documents = MongoDocumentStore(collection).find_by_filter(
        {"unifiedCity": "Paris"}, limit=5, skip=10, sort=SortSpec("unifiedPrice", -1)
    )

    assert documents == [{"unifiedId": "a"}]
    assert collection.find_calls == [({"unifiedCity": "Paris"}, {"_id": 0})]
    assert collection.cursor.calls == [
        ("sort", ("unifiedPrice", -1)),
        ("skip", 10),
        ("limit", 5),
    ]


def test_count_wraps_driver_errors() -> None:
    """Count failures should surface as store errors."""
    with pytest.raises(LodestreamStoreError, match="timed out"):
        MongoDocumentStore(_FakeCollection()).count({})


def test_to_mongo_filter_renders_operators() -> None:
    """Operator nodes should map to ``$`` operators."""
    predicate = translate(
        {"unifiedPrice__gte": "100", "unifiedPrice__lte": "300", "unifiedCity__in": "Paris,Rome"}
    )

    assert to_mongo_filter(predicate) == {
        "unifiedPrice": {"$gte": 100, "$lte": 300},
        "unifiedCity": {"$in": ["Paris", "Rome"]},
    }


def test_to_mongo_filter_contains_uses_escaped_case_insensitive_regex() -> None:
    """Substring matches should become escaped case-insensitive regexes."""
    mongo_filter = to_mongo_filter(translate({"unifiedName__contains": "villa(old)"}))

    assert mongo_filter == {"unifiedName": {"$regex": r"villa\(old\)", "$options": "i"}}


class _EncodingCollection(_FakeCollection):
    """Collection double that BSON-encodes each update like the driver does."""

    def bulk_write(self, operations: list[Any], ordered: bool) -> SimpleNamespace:
        for operation in operations:
            bson.encode(operation._doc["$set"])
        return super().bulk_write(operations, ordered)


@pytest.mark.parametrize(
    "original_data",
    [{"big": 10**20}, {"bad\x00key": 1}],
    ids=["int-wider-than-64-bits", "nul-in-key"],
)
def test_bulk_upsert_wraps_bson_encoding_errors(original_data: dict[str, Any]) -> None:
    """Documents the driver cannot encode should surface as batch write errors."""
    collection = _EncodingCollection()
    record = UnifiedRecord("s.json", "id-0", original_data=original_data)

    with pytest.raises(BatchWriteError, match="Bulk upsert of 1 records failed"):
        MongoDocumentStore(collection).bulk_upsert([record])

    assert collection.bulk_calls == []


def test_bulk_upsert_encodes_regular_documents() -> None:
    """Encodable documents should pass through the encoding collection."""
    collection = _EncodingCollection()
    record = UnifiedRecord("s.json", "id-0", original_data={"price": 2**40})

    MongoDocumentStore(collection).bulk_upsert([record])

    assert len(collection.bulk_calls) == 1
