"""Single-job ingestion runner.

This module wires stream source, incremental parser, normalizer, and batch
sink for one file. The parser runs on a producer thread feeding a bounded
hand-off queue; the calling thread normalizes and writes. The run returns
only after end of stream and the final flush, or raises to fail the job.
"""

from __future__ import annotations

from dataclasses import dataclass
import queue
import threading
from typing import Any

from core.config import LodestreamConfig
from core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_HANDOFF_QUEUE_DEPTH,
    DEFAULT_MAX_ELEMENT_CHARS,
)
from core.errors import IngestionCancelledError
from core.file_reference import parse_file_reference
from core.logging_config import get_logger
from core.types import IngestionJob, IngestionResult, JobState
from ingest.batch_sink import BatchSink
from ingest.flow_control import FlowControl
from ingest.normalizer import normalize
from ingest.record_parser import IncrementalArrayParser
from ingest.stream_source import SourceStream, StreamSource
from store.document_store import DocumentStore

_LOGGER = get_logger(__name__)
_POLL_SECONDS = 0.1
_END_OF_STREAM = object()


@dataclass(frozen=True)
class PipelineSettings:
    """Tuning knobs for one ingestion run.

    Attributes:
        batch_size: Records per bulk upsert.
        chunk_size: Bytes per stream read.
        max_element_chars: Largest accepted array element.
        handoff_depth: Parsed elements buffered between producer and consumer.
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_element_chars: int = DEFAULT_MAX_ELEMENT_CHARS
    handoff_depth: int = DEFAULT_HANDOFF_QUEUE_DEPTH

    @classmethod
    def from_config(cls, config: LodestreamConfig) -> "PipelineSettings":
        """Build settings from runtime configuration."""
        return cls(
            batch_size=config.batch_size,
            chunk_size=config.chunk_size,
            max_element_chars=config.max_element_chars,
        )


@dataclass(frozen=True)
class _ProducerFailure:
    error: BaseException


class IngestionJobRunner:
    """Runs one ingestion job end to end.

    A runner instance handles a single job at a time. ``cancel`` may be called
    from another thread to abandon the run; the stream is closed and ``run``
    raises ``IngestionCancelledError``.
    """

    def __init__(
        self,
        store: DocumentStore,
        source: StreamSource,
        settings: PipelineSettings | None = None,
    ) -> None:
        self._store = store
        self._source = source
        self._settings = settings or PipelineSettings()
        self._state: JobState = "received"
        self._lock = threading.Lock()
        self._flow: FlowControl | None = None
        self._stream: SourceStream | None = None
        self._cancelled = threading.Event()

    @property
    def state(self) -> JobState:
        """Return the current job state, reporting backpressure as ``paused``."""
        with self._lock:
            if self._state == "streaming" and self._flow is not None and self._flow.is_paused:
                return "paused"
            return self._state

    def cancel(self) -> None:
        """Abandon the run by closing its stream and flow control."""
        self._cancelled.set()
        with self._lock:
            flow, stream = self._flow, self._stream
        if flow is not None:
            flow.close()
        if stream is not None:
            _close_quietly(stream)

    def run(self, job: IngestionJob) -> IngestionResult:
        """Ingest the job's file and return its summary.

        Args:
            job: Job to process.

        Returns:
            Counters for the completed run.

        Raises:
            SourceUnavailableError: If the file cannot be opened or read.
            MalformedStreamError: If the content is not a JSON array.
            IngestionCancelledError: If the run was cancelled.
        """
        self._set_state("received")
        _LOGGER.info(
            "job_received",
            job_id=job.job_id,
            file_reference=job.file_reference,
            attempt=job.attempt,
        )
        try:
            return self._run(job)
        except Exception as error:
            self._set_state("failed")
            _LOGGER.error(
                "job_failed",
                job_id=job.job_id,
                file_reference=job.file_reference,
                attempt=job.attempt,
                error_type=type(error).__name__,
                error=str(error),
            )
            raise

    def _run(self, job: IngestionJob) -> IngestionResult:
        self._raise_if_cancelled(job)
        reference = parse_file_reference(job.file_reference)
        flow = FlowControl()
        stream = self._source.open_stream(reference)
        with self._lock:
            self._flow, self._stream = flow, stream
        try:
            self._raise_if_cancelled(job)
            parser = IncrementalArrayParser(
                stream,
                flow,
                chunk_size=self._settings.chunk_size,
                max_element_chars=self._settings.max_element_chars,
                source_name=reference.uri,
            )
            sink = BatchSink(self._store, flow, self._settings.batch_size, reference.key)
            self._set_state("streaming")
            self._consume(job, parser, sink, reference.key, flow)
            self._set_state("draining")
            sink.flush_remaining()
            self._raise_if_cancelled(job)
        finally:
            flow.close()
            _close_quietly(stream)
            with self._lock:
                self._flow, self._stream = None, None
        self._set_state("completed")
        stats = sink.stats
        result = IngestionResult(
            job_id=job.job_id,
            file_reference=job.file_reference,
            source_file=reference.key,
            records_parsed=parser.elements_emitted,
            records_written=stats.records_written,
            records_discarded=stats.records_discarded,
            batches_written=stats.batches_written,
            failed_batches=tuple(stats.failed_batches),
        )
        _LOGGER.info(
            "job_completed",
            job_id=job.job_id,
            file_reference=job.file_reference,
            records_parsed=result.records_parsed,
            records_written=result.records_written,
            records_discarded=result.records_discarded,
            batches_written=result.batches_written,
            batches_failed=len(result.failed_batches),
        )
        return result

    def _consume(
        self,
        job: IngestionJob,
        parser: IncrementalArrayParser,
        sink: BatchSink,
        source_file: str,
        flow: FlowControl,
    ) -> None:
        """Drain parsed elements from the producer thread into the sink."""
        handoff: queue.Queue[Any] = queue.Queue(maxsize=self._settings.handoff_depth)
        producer = threading.Thread(
            target=_produce,
            args=(parser, handoff, flow),
            name=f"lodestream-parser-{job.job_id[:8]}",
            daemon=True,
        )
        producer.start()
        try:
            while True:
                item = self._next_item(job, handoff)
                if item is _END_OF_STREAM:
                    return
                if isinstance(item, _ProducerFailure):
                    self._raise_if_cancelled(job)
                    raise item.error
                sink.accept(normalize(item, source_file))
                sink.flush_if_full()
        finally:
            flow.close()
            producer.join()

    def _next_item(self, job: IngestionJob, handoff: queue.Queue[Any]) -> Any:
        while True:
            self._raise_if_cancelled(job)
            try:
                return handoff.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue

    def _raise_if_cancelled(self, job: IngestionJob) -> None:
        if self._cancelled.is_set():
            raise IngestionCancelledError(
                f"Ingestion job {job.job_id} for {job.file_reference} was cancelled."
            )

    def _set_state(self, state: JobState) -> None:
        with self._lock:
            self._state = state


def _produce(parser: IncrementalArrayParser, handoff: queue.Queue[Any], flow: FlowControl) -> None:
    """Parse elements on the producer thread and hand them to the consumer."""
    try:
        for element in parser:
            if not _put(handoff, element, flow):
                return
        _put(handoff, _END_OF_STREAM, flow)
    except Exception as error:
        _put(handoff, _ProducerFailure(error), flow)


def _put(handoff: queue.Queue[Any], item: Any, flow: FlowControl) -> bool:
    """Block until the item is queued, giving up once the flow is closed."""
    while not flow.is_closed:
        try:
            handoff.put(item, timeout=_POLL_SECONDS)
            return True
        except queue.Full:
            continue
    return False


def _close_quietly(stream: SourceStream) -> None:
    try:
        stream.close()
    except (OSError, RuntimeError) as error:
        _LOGGER.warning("stream_close_failed", error=str(error))
