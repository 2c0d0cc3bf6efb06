"""Batched idempotent writes of unified records.

This module accumulates normalized records and flushes them to the document
store as one keyed bulk upsert. A flush pauses the upstream parser and always
resumes it when the write settles. A failed batch is logged for audit and
discarded so the rest of the stream keeps flowing, whatever the store raised.
"""

from __future__ import annotations

from core.constants import DEFAULT_BATCH_SIZE
from core.logging_config import get_logger
from core.types import FailedBatch, SinkStats, UnifiedRecord, WriteResult
from ingest.flow_control import FlowControl
from store.document_store import DocumentStore

_LOGGER = get_logger(__name__)


class BatchSink:
    """Size-bounded record buffer in front of a document store."""

    def __init__(
        self,
        store: DocumentStore,
        flow_control: FlowControl | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        source_file: str = "",
    ) -> None:
        """Create a sink.

        Args:
            store: Destination store shared across jobs.
            flow_control: Backpressure signal toward the parser.
            batch_size: Record count that triggers a flush.
            source_file: Provenance tag used in log events.
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._store = store
        self._flow = flow_control or FlowControl()
        self._batch_size = batch_size
        self._source_file = source_file
        self._batch: list[UnifiedRecord] = []
        self._flush_count = 0
        self._stats = SinkStats()

    @property
    def stats(self) -> SinkStats:
        """Return running write counters."""
        return self._stats

    @property
    def pending(self) -> int:
        """Return the number of buffered, unflushed records."""
        return len(self._batch)

    def accept(self, record: UnifiedRecord) -> None:
        """Buffer one record for the next flush."""
        self._batch.append(record)
        self._stats.records_accepted += 1

    def flush_if_full(self) -> WriteResult | None:
        """Flush when the buffer reached the batch size.

        Returns:
            Write result of a successful flush, else None.
        """
        if len(self._batch) < self._batch_size:
            return None
        return self._flush()

    def flush_remaining(self) -> WriteResult | None:
        """Flush whatever is buffered once the source is exhausted.

        Returns:
            Write result of a successful flush, else None.
        """
        if not self._batch:
            return None
        return self._flush()

    def _flush(self) -> WriteResult | None:
        batch = self._batch
        self._batch = []
        self._flush_count += 1
        batch_index = self._flush_count
        self._flow.pause()
        try:
            result = self._store.bulk_upsert(batch)
        except Exception as error:
            self._record_failure(batch_index, batch, error)
            return None
        finally:
            self._flow.resume()
        self._stats.records_written += len(batch)
        self._stats.batches_written += 1
        _LOGGER.info(
            "batch_flushed",
            source_file=self._source_file,
            batch_index=batch_index,
            record_count=len(batch),
            upserted_count=result.upserted_count,
            matched_count=result.matched_count,
        )
        return result

    def _record_failure(
        self,
        batch_index: int,
        batch: list[UnifiedRecord],
        error: Exception,
    ) -> None:
        failed_batch = FailedBatch(
            batch_index=batch_index,
            record_count=len(batch),
            first_unified_id=batch[0].unified_id,
            last_unified_id=batch[-1].unified_id,
            error_message=str(error),
        )
        self._stats.failed_batches.append(failed_batch)
        self._stats.records_discarded += len(batch)
        _LOGGER.error(
            "batch_write_failed",
            source_file=self._source_file,
            batch_index=batch_index,
            record_count=failed_batch.record_count,
            first_unified_id=failed_batch.first_unified_id,
            last_unified_id=failed_batch.last_unified_id,
            error_type=type(error).__name__,
            error=str(error),
        )
