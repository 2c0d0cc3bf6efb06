"""Public SDK surface for Lodestream.

This module provides a stable import path for pipeline users.
It wires config, store, stream source, and job queue into one client.
"""

from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Mapping

from core.config import LodestreamConfig
from core.types import (
    DeadLetterEntry,
    IngestionJob,
    IngestionResult,
    JobOutcome,
    PredicateTree,
    QueryPage,
    RetryPolicy,
    UnifiedRecord,
)
from ingest.normalizer import normalize
from ingest.stream_source import StreamSource
from jobs.job_queue import IngestionJobQueue
from query.predicate_translator import translate, translate_query
from query.read_query import run_read_query
from store.document_store import DocumentStore, build_document_store


class LodestreamClient:
    """Primary SDK entry point for ingestion and queries."""

    def __init__(
        self,
        config: LodestreamConfig | None = None,
        store: DocumentStore | None = None,
        source: StreamSource | None = None,
    ) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
            store: Optional injected store; built from config when omitted.
            source: Optional injected stream source.
        """
        self._config = config or LodestreamConfig.from_env()
        self._owns_store = store is None
        self._store = store if store is not None else build_document_store(self._config)
        self._queue = IngestionJobQueue.from_config(self._config, self._store, source)

    @property
    def store(self) -> DocumentStore:
        """Return the shared document store."""
        return self._store

    def ingest(self, file_reference: str, retry_policy: RetryPolicy | None = None) -> JobOutcome:
        """Ingest one file and wait for its terminal outcome.

        Args:
            file_reference: Reference of a JSON array file.
            retry_policy: Optional retry override.

        Returns:
            Succeeded or dead-lettered outcome.
        """
        return self.submit(file_reference, retry_policy).result()

    def submit(
        self,
        file_reference: str,
        retry_policy: RetryPolicy | None = None,
    ) -> Future[JobOutcome]:
        """Enqueue one file for background ingestion.

        Args:
            file_reference: Reference of a JSON array file.
            retry_policy: Optional retry override.

        Returns:
            Future resolving to the job outcome.
        """
        return self._queue.submit(file_reference, retry_policy)

    def query(self, params: Mapping[str, Any]) -> QueryPage:
        """Run a filtered, paginated read.

        Args:
            params: Filter parameters plus ``_limit``/``_skip``/``_sort``/``_order``.

        Returns:
            One page of matching documents with the total count.
        """
        return run_read_query(
            self._store,
            params,
            default_limit=self._config.query_default_limit,
            max_limit=self._config.query_max_limit,
        )

    def dead_letters(self) -> list[DeadLetterEntry]:
        """Return jobs that exhausted their attempts."""
        return self._queue.dead_letters.list_entries()

    def resubmit(self, job_id: str) -> JobOutcome:
        """Resubmit a dead-lettered job and wait for its outcome.

        Raises:
            LodestreamQueueError: If no dead letter has that id.
        """
        return self._queue.resubmit_dead_letter(job_id).result()

    def close(self) -> None:
        """Shut down workers and release owned resources."""
        self._queue.shutdown()
        if self._owns_store:
            self._store.close()

    def __enter__(self) -> "LodestreamClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = [
    "DeadLetterEntry",
    "IngestionJob",
    "IngestionResult",
    "JobOutcome",
    "LodestreamClient",
    "LodestreamConfig",
    "PredicateTree",
    "QueryPage",
    "RetryPolicy",
    "UnifiedRecord",
    "normalize",
    "translate",
    "translate_query",
]
