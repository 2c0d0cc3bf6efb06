"""In-process ingestion job queue.

This module runs jobs on a bounded thread pool. Each job is retried with a
fixed backoff up to its attempt ceiling; a job that still fails is written
to the dead-letter store instead of being dropped.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
import threading
import time
from typing import Any, Callable

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from core.config import LodestreamConfig
from core.constants import DEFAULT_WORKER_COUNT
from core.errors import LodestreamIngestError, LodestreamQueueError
from core.logging_config import get_logger
from core.types import (
    DeadLetterEntry,
    IngestionJob,
    IngestionResult,
    JobOutcome,
    RetryPolicy,
)
from ingest.job_runner import IngestionJobRunner, PipelineSettings
from ingest.stream_source import StreamSource
from jobs.dead_letter_store import DeadLetterStore
from store.document_store import DocumentStore

_LOGGER = get_logger(__name__)

RunnerFactory = Callable[[], IngestionJobRunner]


class IngestionJobQueue:
    """Bounded worker pool with retry and dead-letter semantics."""

    def __init__(
        self,
        store: DocumentStore,
        source: StreamSource,
        dead_letters: DeadLetterStore,
        settings: PipelineSettings | None = None,
        worker_count: int = DEFAULT_WORKER_COUNT,
        retry_policy: RetryPolicy | None = None,
        job_timeout_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        runner_factory: RunnerFactory | None = None,
    ) -> None:
        """Create a queue.

        Args:
            store: Destination store shared by all workers.
            source: Stream source shared by all workers.
            dead_letters: Store receiving exhausted jobs.
            settings: Pipeline tuning for each run.
            worker_count: Maximum concurrently running jobs.
            retry_policy: Default policy for submitted jobs.
            job_timeout_seconds: Optional per-attempt cancellation timeout.
            sleep: Backoff sleep function.
            runner_factory: Optional factory creating one runner per attempt.
        """
        self._store = store
        self._source = source
        self._dead_letters = dead_letters
        self._settings = settings or PipelineSettings()
        self._retry_policy = retry_policy or RetryPolicy()
        self._job_timeout_seconds = job_timeout_seconds
        self._sleep = sleep
        self._runner_factory = runner_factory or self._build_runner
        self._executor = ThreadPoolExecutor(
            max_workers=worker_count,
            thread_name_prefix="lodestream-worker",
        )
        self._owned_source: StreamSource | None = None
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: LodestreamConfig,
        store: DocumentStore,
        source: StreamSource | None = None,
    ) -> "IngestionJobQueue":
        """Build a queue from runtime configuration.

        Args:
            config: Runtime configuration.
            store: Destination store shared by all workers.
            source: Optional stream source; created and owned when absent.

        Returns:
            Ready queue.
        """
        stream_source = source or StreamSource(config)
        job_queue = cls(
            store=store,
            source=stream_source,
            dead_letters=DeadLetterStore(config.data_root),
            settings=PipelineSettings.from_config(config),
            worker_count=config.worker_count,
            retry_policy=RetryPolicy(
                max_attempts=config.max_attempts,
                backoff_seconds=config.backoff_seconds,
            ),
            job_timeout_seconds=config.job_timeout_seconds,
        )
        if source is None:
            job_queue._owned_source = stream_source
        return job_queue

    @property
    def dead_letters(self) -> DeadLetterStore:
        """Return the dead-letter store."""
        return self._dead_letters

    def submit(
        self,
        file_reference: str,
        retry_policy: RetryPolicy | None = None,
    ) -> Future[JobOutcome]:
        """Enqueue a file for ingestion.

        Args:
            file_reference: Reference of the JSON array file.
            retry_policy: Optional policy overriding the queue default.

        Returns:
            Future resolving to the job's terminal outcome.

        Raises:
            LodestreamQueueError: If the queue was shut down.
        """
        job = IngestionJob(
            file_reference=file_reference,
            retry_policy=retry_policy or self._retry_policy,
        )
        return self.submit_job(job)

    def submit_job(self, job: IngestionJob) -> Future[JobOutcome]:
        """Enqueue a prepared job.

        Raises:
            LodestreamQueueError: If the queue was shut down.
        """
        with self._lock:
            if self._closed:
                raise LodestreamQueueError(
                    f"Cannot submit {job.file_reference}: the job queue is shut down."
                )
            _LOGGER.info("job_enqueued", job_id=job.job_id, file_reference=job.file_reference)
            return self._executor.submit(self.process, job)

    def resubmit_dead_letter(self, job_id: str) -> Future[JobOutcome]:
        """Move a dead-lettered job back onto the queue.

        Args:
            job_id: Identifier of the dead-lettered job.

        Returns:
            Future for the resubmitted job.

        Raises:
            LodestreamQueueError: If no dead letter has that id.
        """
        entry = self._dead_letters.pop(job_id)
        if entry is None:
            raise LodestreamQueueError(
                f"No dead-lettered job with id '{job_id}'. "
                "List dead letters to find a valid job id."
            )
        job = IngestionJob(
            file_reference=entry.file_reference,
            retry_policy=replace(self._retry_policy, max_attempts=entry.max_attempts),
            job_id=entry.job_id,
        )
        return self.submit_job(job)

    def process(self, job: IngestionJob) -> JobOutcome:
        """Run a job through all allowed attempts on the calling thread.

        Args:
            job: Job to process.

        Returns:
            Terminal outcome; failures are dead-lettered, never raised.
        """
        policy = job.retry_policy
        retrying = Retrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_fixed(policy.backoff_seconds),
            retry=retry_if_exception_type(LodestreamIngestError),
            before_sleep=_log_retry(job),
            sleep=self._sleep,
            reraise=True,
        )
        current_job = job
        result: IngestionResult | None = None
        try:
            for attempt in retrying:
                with attempt:
                    current_job = replace(job, attempt=attempt.retry_state.attempt_number)
                    result = self._run_attempt(current_job)
        except Exception as error:
            return self._dead_letter(current_job, error)
        return JobOutcome(
            job=current_job,
            status="succeeded",
            attempts=current_job.attempt,
            result=result,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs and release owned resources.

        Args:
            wait: Block until running jobs finish.
        """
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
        if self._owned_source is not None:
            self._owned_source.close()
            self._owned_source = None

    def __enter__(self) -> "IngestionJobQueue":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def _run_attempt(self, job: IngestionJob) -> IngestionResult:
        runner = self._runner_factory()
        timer: threading.Timer | None = None
        if self._job_timeout_seconds:
            timer = threading.Timer(self._job_timeout_seconds, runner.cancel)
            timer.daemon = True
            timer.start()
        try:
            return runner.run(job)
        finally:
            if timer is not None:
                timer.cancel()

    def _build_runner(self) -> IngestionJobRunner:
        return IngestionJobRunner(self._store, self._source, self._settings)

    def _dead_letter(self, job: IngestionJob, error: Exception) -> JobOutcome:
        entry = DeadLetterEntry(
            job_id=job.job_id,
            file_reference=job.file_reference,
            attempts=job.attempt,
            max_attempts=job.retry_policy.max_attempts,
            error_type=type(error).__name__,
            error_message=str(error),
            failed_at=datetime.now(timezone.utc).isoformat(),
        )
        self._dead_letters.append(entry)
        _LOGGER.error(
            "job_dead_lettered",
            job_id=job.job_id,
            file_reference=job.file_reference,
            attempts=job.attempt,
            error_type=entry.error_type,
            error=entry.error_message,
        )
        return JobOutcome(
            job=job,
            status="dead_lettered",
            attempts=job.attempt,
            error_type=entry.error_type,
            error_message=entry.error_message,
        )


def _log_retry(job: IngestionJob) -> Callable[[RetryCallState], None]:
    """Build a tenacity hook logging each scheduled retry."""

    def log_retry(retry_state: RetryCallState) -> None:
        outcome: Any = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        _LOGGER.warning(
            "job_retry_scheduled",
            job_id=job.job_id,
            file_reference=job.file_reference,
            failed_attempt=retry_state.attempt_number,
            max_attempts=job.retry_policy.max_attempts,
            backoff_seconds=delay,
            error_type=type(error).__name__ if error else None,
            error=str(error) if error else None,
        )

    return log_retry
