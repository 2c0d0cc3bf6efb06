"""Unit tests for the single-job ingestion runner."""

from __future__ import annotations

import json
from pathlib import Path

import bson
import pytest

from core.config import LodestreamConfig
from core.errors import IngestionCancelledError, MalformedStreamError, SourceUnavailableError
from core.types import IngestionJob, WriteResult
from ingest.job_runner import IngestionJobRunner, PipelineSettings
from ingest.stream_source import StreamSource
from store.memory_store import MemoryDocumentStore
from store.record_payload import record_to_document
from tests.fixture_paths import fixture_reference, write_json_array
from tests.helpers import CountingStream, FlakyStore


class _StaticSource:
    def __init__(self, payload: bytes) -> None:
        self.streams: list[CountingStream] = []
        self._payload = payload

    def open_stream(self, reference):  # type: ignore[no-untyped-def]
        stream = CountingStream(self._payload)
        self.streams.append(stream)
        return stream


class _CancellingStore(MemoryDocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self.runner: IngestionJobRunner | None = None

    def bulk_upsert(self, records) -> WriteResult:  # type: ignore[no-untyped-def]
        result = super().bulk_upsert(records)
        assert self.runner is not None
        self.runner.cancel()
        return result


def _local_source(tmp_path: Path) -> StreamSource:
    return StreamSource(LodestreamConfig(data_root=tmp_path))


def _elements(count: int) -> list[str]:
    return [json.dumps({"id": f"stay-{index}", "city": "Lyon"}) for index in range(count)]


def test_run_ingests_fixture_and_reports_counts(tmp_path: Path) -> None:
    """A well-formed file should be fully parsed and written."""
    store = MemoryDocumentStore()
    runner = IngestionJobRunner(store, _local_source(tmp_path), PipelineSettings(batch_size=2))

    result = runner.run(IngestionJob(fixture_reference("stays_by_city.json")))

    assert (result.records_parsed, result.records_written, result.batches_written) == (3, 3, 2)
    assert sorted(store.snapshot()) == ["stay-1", "stay-2", "stay-3"]
    assert runner.state == "completed"


def test_run_tags_records_with_source_key(tmp_path: Path) -> None:
    """Records should carry the file key as provenance."""
    reference = write_json_array(tmp_path / "source1.json", _elements(1))
    store = MemoryDocumentStore()
    runner = IngestionJobRunner(store, _local_source(tmp_path))

    result = runner.run(IngestionJob(reference))

    assert result.source_file == reference
    assert store.snapshot()["stay-0"]["sourceFile"] == reference


def test_run_continues_after_failed_batch(tmp_path: Path) -> None:
    """A failed batch should be discarded without aborting the job."""
    reference = write_json_array(tmp_path / "stays.json", _elements(5))
    store = FlakyStore(failing_calls=(2,))
    runner = IngestionJobRunner(store, _local_source(tmp_path), PipelineSettings(batch_size=2))

    result = runner.run(IngestionJob(reference))

    assert (result.records_parsed, result.records_written, result.records_discarded) == (5, 3, 2)
    assert [batch.batch_index for batch in result.failed_batches] == [2]
    assert sorted(store.snapshot()) == ["stay-0", "stay-1", "stay-4"]


def test_run_malformed_stream_fails_job_after_partial_write(tmp_path: Path) -> None:
    """Malformed content should fail the job and keep earlier writes."""
    store = MemoryDocumentStore()
    runner = IngestionJobRunner(store, _local_source(tmp_path), PipelineSettings(batch_size=1))

    with pytest.raises(MalformedStreamError):
        runner.run(IngestionJob(fixture_reference("malformed.json")))

    assert runner.state == "failed"
    assert list(store.snapshot()) == ["ok-1"]


def test_run_missing_source_raises(tmp_path: Path) -> None:
    """An unreadable reference should fail before any write."""
    store = MemoryDocumentStore()
    runner = IngestionJobRunner(store, _local_source(tmp_path))

    with pytest.raises(SourceUnavailableError):
        runner.run(IngestionJob(str(tmp_path / "absent.json")))

    assert len(store) == 0


def test_run_empty_array_completes_without_writes(tmp_path: Path) -> None:
    """An empty array should complete with zero records."""
    store = FlakyStore(failing_calls=())
    runner = IngestionJobRunner(store, _local_source(tmp_path))

    result = runner.run(IngestionJob(fixture_reference("empty_array.json")))

    assert result.records_parsed == 0 and store.calls == 0


def test_run_closes_stream(tmp_path: Path) -> None:
    """The source stream should be closed after the run."""
    source = _StaticSource(b'[{"id": "a"}, {"id": "b"}]')
    runner = IngestionJobRunner(MemoryDocumentStore(), source)  # type: ignore[arg-type]

    runner.run(IngestionJob(str(tmp_path / "memory.json")))

    assert source.streams[0].closed


def test_cancel_abandons_run(tmp_path: Path) -> None:
    """Cancelling mid-run should raise and close the stream."""
    source = _StaticSource(json.dumps([{"id": f"s-{index}"} for index in range(50)]).encode())
    store = _CancellingStore()
    runner = IngestionJobRunner(
        store, source, PipelineSettings(batch_size=5)  # type: ignore[arg-type]
    )
    store.runner = runner

    with pytest.raises(IngestionCancelledError):
        runner.run(IngestionJob(str(tmp_path / "memory.json")))

    assert runner.state == "failed"
    assert source.streams[0].closed
    assert len(store) == 5


def test_rerun_converges_to_same_store_state(tmp_path: Path) -> None:
    """Ingesting the same file twice should leave one document per key."""
    store = MemoryDocumentStore()
    runner = IngestionJobRunner(store, _local_source(tmp_path), PipelineSettings(batch_size=2))
    reference = fixture_reference("stays_by_city.json")

    runner.run(IngestionJob(reference))
    first = store.snapshot()
    runner.run(IngestionJob(reference))

    assert store.snapshot() == first and len(store) == 3


class _BsonEncodingStore(MemoryDocumentStore):
    def bulk_upsert(self, records) -> WriteResult:  # type: ignore[no-untyped-def]
        for record in records:
            bson.encode(record_to_document(record))
        return super().bulk_upsert(records)


def test_run_survives_element_the_store_cannot_encode(tmp_path: Path) -> None:
    """An unencodable element should cost only its own batch."""
    source = _StaticSource(
        b'[{"id": "a", "big": 100000000000000000000}, {"id": "b"}, {"id": "c"}]'
    )
    store = _BsonEncodingStore()
    runner = IngestionJobRunner(
        store, source, PipelineSettings(batch_size=1)  # type: ignore[arg-type]
    )

    result = runner.run(IngestionJob(str(tmp_path / "memory.json")))

    assert runner.state == "completed"
    assert (result.records_written, result.records_discarded) == (2, 1)
    assert sorted(store.snapshot()) == ["b", "c"]


def test_cancel_during_final_flush_fails_run(tmp_path: Path) -> None:
    """A cancel that lands in the draining flush should still fail the run."""
    source = _StaticSource(b'[{"id": "a"}, {"id": "b"}]')
    store = _CancellingStore()
    runner = IngestionJobRunner(
        store, source, PipelineSettings(batch_size=10)  # type: ignore[arg-type]
    )
    store.runner = runner

    with pytest.raises(IngestionCancelledError):
        runner.run(IngestionJob(str(tmp_path / "memory.json")))

    assert runner.state == "failed" and len(store) == 2
