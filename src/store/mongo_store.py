"""MongoDB-backed document store.

This module renders predicate trees into MongoDB filters and issues keyed
bulk upserts as one ``bulk_write`` round trip per batch.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from core.config import LodestreamConfig
from core.constants import DEFAULT_SORT_FIELD
from core.errors import BatchWriteError, LodestreamDependencyError, LodestreamStoreError
from core.logging_config import get_logger
from core.types import PredicateTree, SortSpec, UnifiedRecord, WriteResult
from query.predicate_translator import SubstringMatch
from store.record_payload import (
    CREATED_AT_FIELD,
    UNIFIED_ID_FIELD,
    UPDATED_AT_FIELD,
    record_to_document,
)

_LOGGER = get_logger(__name__)
_SECONDARY_INDEXES: tuple[tuple[str, ...], ...] = (
    ("unifiedCity",),
    ("unifiedIsAvailable", "unifiedPrice"),
    ("unifiedCity", "unifiedIsAvailable", "unifiedPrice"),
)


class MongoDocumentStore:
    """Store backed by one MongoDB collection."""

    def __init__(self, collection: Any, client: Any | None = None) -> None:
        """Wrap an existing collection.

        Args:
            collection: pymongo collection (or compatible object).
            client: Owning client closed by ``close``; None when borrowed.
        """
        self._collection = collection
        self._client = client

    @classmethod
    def from_config(cls, config: LodestreamConfig) -> "MongoDocumentStore":
        """Connect using configuration and ensure indexes.

        Args:
            config: Runtime configuration with ``mongo_uri`` set.

        Returns:
            Connected store owning its client.

        Raises:
            LodestreamDependencyError: If pymongo is not installed.
            LodestreamStoreError: If index creation fails.
        """
        pymongo = _import_pymongo()
        client = pymongo.MongoClient(config.mongo_uri, tz_aware=True)
        collection = client[config.mongo_database][config.mongo_collection]
        store = cls(collection, client=client)
        store.ensure_indexes()
        _LOGGER.info(
            "mongo_store_opened",
            database=config.mongo_database,
            collection=config.mongo_collection,
        )
        return store

    def ensure_indexes(self) -> None:
        """Create the unique key index and query indexes.

        Raises:
            LodestreamStoreError: If MongoDB rejects index creation.
        """
        errors = _import_pymongo_errors()
        try:
            self._collection.create_index(UNIFIED_ID_FIELD, unique=True)
            for fields in _SECONDARY_INDEXES:
                self._collection.create_index([(name, 1) for name in fields])
        except errors.PyMongoError as error:
            raise LodestreamStoreError(
                f"Failed to create MongoDB indexes: {error}. "
                "Check for duplicate unifiedId values and collection permissions."
            ) from error

    def bulk_upsert(self, records: Sequence[UnifiedRecord]) -> WriteResult:
        """Upsert records by ``unifiedId`` in one ordered bulk write.

        Args:
            records: Records to write; later duplicates win.

        Returns:
            Driver counters for the bulk write.

        Raises:
            BatchWriteError: If the bulk write fails.
        """
        if not records:
            return WriteResult()
        pymongo = _import_pymongo()
        write_errors = _bulk_write_errors()
        now = datetime.now(timezone.utc)
        operations = [
            pymongo.UpdateOne(
                {UNIFIED_ID_FIELD: record.unified_id},
                {
                    "$set": {**record_to_document(record), UPDATED_AT_FIELD: now},
                    "$setOnInsert": {CREATED_AT_FIELD: now},
                },
                upsert=True,
            )
            for record in records
        ]
        try:
            result = self._collection.bulk_write(operations, ordered=True)
        except write_errors as error:
            raise BatchWriteError(
                f"Bulk upsert of {len(records)} records failed: {error}."
            ) from error
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_count=result.upserted_count,
        )

    def find_by_filter(
        self,
        predicate: PredicateTree,
        limit: int,
        skip: int,
        sort: SortSpec | None = None,
    ) -> list[dict[str, Any]]:
        """Return one page of matching documents without ``_id``.

        Raises:
            LodestreamStoreError: If the query fails.
        """
        sort_spec = sort or SortSpec(field=DEFAULT_SORT_FIELD, direction=-1)
        errors = _import_pymongo_errors()
        try:
            cursor = (
                self._collection.find(to_mongo_filter(predicate), {"_id": 0})
                .sort(sort_spec.field, sort_spec.direction)
                .skip(skip)
                .limit(limit)
            )
            return list(cursor)
        except errors.PyMongoError as error:
            raise LodestreamStoreError(f"MongoDB find failed: {error}.") from error

    def count(self, predicate: PredicateTree) -> int:
        """Return the number of matching documents.

        Raises:
            LodestreamStoreError: If the count fails.
        """
        errors = _import_pymongo_errors()
        try:
            return int(self._collection.count_documents(to_mongo_filter(predicate)))
        except errors.PyMongoError as error:
            raise LodestreamStoreError(f"MongoDB count failed: {error}.") from error

    def close(self) -> None:
        """Close the owned client, if any."""
        if self._client is not None:
            self._client.close()
            self._client = None


def to_mongo_filter(predicate: PredicateTree) -> dict[str, Any]:
    """Render a predicate tree as a MongoDB query document.

    Args:
        predicate: Predicate tree from the translator.

    Returns:
        MongoDB filter using ``$``-prefixed operators.
    """
    mongo_filter: dict[str, Any] = {}
    for field_name, clause in predicate.items():
        if not isinstance(clause, dict):
            mongo_filter[field_name] = clause
            continue
        node: dict[str, Any] = {}
        for operator, operand in clause.items():
            if operator == "contains":
                text = operand
                if not isinstance(text, SubstringMatch):
                    text = SubstringMatch(str(operand))
                node["$regex"] = text.to_pattern()
                node["$options"] = "i"
            else:
                node[f"${operator}"] = operand
        mongo_filter[field_name] = node
    return mongo_filter


def _import_pymongo() -> Any:
    """Import pymongo lazily.

    Raises:
        LodestreamDependencyError: If pymongo is missing.
    """
    try:
        import pymongo
    except ImportError as error:
        raise LodestreamDependencyError(
            "MongoDB support requires pymongo, but it is not installed. "
            "Install pymongo or unset LODESTREAM_MONGO_URI."
        ) from error
    return pymongo


def _import_pymongo_errors() -> Any:
    """Import the pymongo error module lazily."""
    _import_pymongo()
    from pymongo import errors

    return errors


def _bulk_write_errors() -> tuple[type[BaseException], ...]:
    """Return driver and BSON encoding errors a bulk write can raise.

    Encoding failures such as integers wider than 64 bits or NUL bytes in
    keys are raised before the request is sent and are not ``PyMongoError``.
    """
    errors = _import_pymongo_errors()
    from bson.errors import BSONError

    return (errors.PyMongoError, BSONError, OverflowError, TypeError)
