"""Document store interface and scoped construction.

This module defines the store contract consumed by the batch sink and the
read query, and opens the configured store as an explicitly owned resource.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Protocol, Sequence

from core.config import LodestreamConfig
from core.logging_config import get_logger
from core.types import PredicateTree, SortSpec, UnifiedRecord, WriteResult

_LOGGER = get_logger(__name__)


class DocumentStore(Protocol):
    """Store of unified records with uniqueness on ``unifiedId``."""

    def bulk_upsert(self, records: Sequence[UnifiedRecord]) -> WriteResult:
        """Insert or fully overwrite each record by key in one operation."""
        ...

    def find_by_filter(
        self,
        predicate: PredicateTree,
        limit: int,
        skip: int,
        sort: SortSpec | None = None,
    ) -> list[dict[str, Any]]:
        """Return one page of documents matching the predicate."""
        ...

    def count(self, predicate: PredicateTree) -> int:
        """Return the number of documents matching the predicate."""
        ...

    def close(self) -> None:
        """Release connections held by the store."""
        ...


def build_document_store(config: LodestreamConfig) -> DocumentStore:
    """Construct the store selected by configuration.

    Args:
        config: Runtime configuration.

    Returns:
        MongoDB store when ``mongo_uri`` is set, else an in-memory store.

    Raises:
        LodestreamDependencyError: If pymongo is required but missing.
        LodestreamStoreError: If the MongoDB connection cannot be set up.
    """
    if config.mongo_uri:
        from store.mongo_store import MongoDocumentStore

        return MongoDocumentStore.from_config(config)
    from store.memory_store import MemoryDocumentStore

    _LOGGER.warning(
        "memory_store_in_use",
        reason="LODESTREAM_MONGO_URI is not set; records are not persisted",
    )
    return MemoryDocumentStore()


@contextmanager
def open_document_store(config: LodestreamConfig) -> Iterator[DocumentStore]:
    """Open the configured store and close it on exit.

    Args:
        config: Runtime configuration.

    Yields:
        Store shared by reference across workers.
    """
    store = build_document_store(config)
    try:
        yield store
    finally:
        store.close()
