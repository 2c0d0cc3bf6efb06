"""Shared typed models.

This module defines immutable data models used by ingest, store,
query, and job layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal
from uuid import uuid4

from core.constants import DEFAULT_BACKOFF_SECONDS, DEFAULT_MAX_ATTEMPTS

JobState = Literal["received", "streaming", "paused", "draining", "completed", "failed"]
JobStatus = Literal["succeeded", "dead_lettered"]
PredicateTree = dict[str, Any]


@dataclass(frozen=True)
class RetryPolicy:
    """Queue retry policy for one ingestion job.

    Attributes:
        max_attempts: Attempt ceiling, including the first attempt.
        backoff_seconds: Fixed delay between attempts.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS


@dataclass(frozen=True)
class IngestionJob:
    """One queued request to ingest a remote file.

    Attributes:
        file_reference: Remote or local locator of a JSON array file.
        retry_policy: Retry ceiling and backoff applied by the queue.
        attempt: One-based attempt number, advanced only by the queue.
        job_id: Stable job identifier used for dead-letter lookup.
    """

    file_reference: str
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    attempt: int = 1
    job_id: str = field(default_factory=lambda: uuid4().hex)


@dataclass(frozen=True)
class UnifiedRecord:
    """Normalized record shared by every source file shape.

    Attributes:
        source_file: Provenance tag, the key of the ingested file.
        unified_id: Natural key across all sources.
        unified_city: City name when present.
        unified_price: Nightly price when present.
        unified_is_available: Availability flag when present.
        unified_name: Display name when present.
        unified_segment: Price segment label when present.
        original_data: Raw element exactly as parsed.
    """

    source_file: str
    unified_id: str
    unified_city: Any = None
    unified_price: int | float | None = None
    unified_is_available: Any = None
    unified_name: Any = None
    unified_segment: Any = None
    original_data: Any = None


@dataclass(frozen=True)
class WriteResult:
    """Outcome counters of one bulk upsert.

    Attributes:
        matched_count: Existing documents matched by key.
        modified_count: Existing documents whose fields changed.
        upserted_count: Documents inserted because the key was absent.
    """

    matched_count: int = 0
    modified_count: int = 0
    upserted_count: int = 0


@dataclass(frozen=True)
class FailedBatch:
    """Audit entry for a discarded batch.

    Attributes:
        batch_index: One-based flush index within the job.
        record_count: Number of records discarded.
        first_unified_id: Key of the first record in the batch.
        last_unified_id: Key of the last record in the batch.
        error_message: Store failure description.
    """

    batch_index: int
    record_count: int
    first_unified_id: str
    last_unified_id: str
    error_message: str


@dataclass
class SinkStats:
    """Running counters kept by the batch sink."""

    records_accepted: int = 0
    records_written: int = 0
    records_discarded: int = 0
    batches_written: int = 0
    failed_batches: list[FailedBatch] = field(default_factory=list)

    @property
    def batches_failed(self) -> int:
        """Return the number of discarded batches."""
        return len(self.failed_batches)


@dataclass(frozen=True)
class IngestionResult:
    """Summary of one completed ingestion run.

    Attributes:
        job_id: Identifier of the processed job.
        file_reference: Reference that was streamed.
        source_file: Provenance tag written on each record.
        records_parsed: Number of array elements parsed.
        records_written: Records persisted by successful flushes.
        records_discarded: Records dropped with failed batches.
        batches_written: Successful flush count.
        failed_batches: Audit entries for discarded batches.
    """

    job_id: str
    file_reference: str
    source_file: str
    records_parsed: int
    records_written: int
    records_discarded: int
    batches_written: int
    failed_batches: tuple[FailedBatch, ...] = ()


@dataclass(frozen=True)
class JobOutcome:
    """Terminal outcome of a queued job across all attempts.

    Attributes:
        job: Job as submitted, with the final attempt number.
        status: ``succeeded`` or ``dead_lettered``.
        attempts: Number of attempts made.
        result: Ingestion summary when the job succeeded.
        error_type: Exception class name of the final failure.
        error_message: Final failure message.
    """

    job: IngestionJob
    status: JobStatus
    attempts: int
    result: IngestionResult | None = None
    error_type: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class DeadLetterEntry:
    """Persisted record of a job that exhausted its attempts.

    Attributes:
        job_id: Identifier of the failed job.
        file_reference: Reference the job tried to ingest.
        attempts: Number of attempts made.
        max_attempts: Ceiling configured for the job.
        error_type: Exception class name of the final failure.
        error_message: Final failure message.
        failed_at: UTC ISO-8601 timestamp of the last failure.
    """

    job_id: str
    file_reference: str
    attempts: int
    max_attempts: int
    error_type: str
    error_message: str
    failed_at: str


@dataclass(frozen=True)
class SortSpec:
    """Single-field sort order.

    Attributes:
        field: Document field to sort on.
        direction: ``1`` ascending or ``-1`` descending.
    """

    field: str
    direction: int = 1


@dataclass(frozen=True)
class QueryPage:
    """One page of filtered records.

    Attributes:
        total_count: Number of documents matching the predicate.
        limit: Page size applied.
        skip: Number of matching documents skipped.
        data: Documents in this page.
    """

    total_count: int
    limit: int
    skip: int
    data: list[dict[str, Any]]
