"""Integration tests for ingesting mixed source shapes and querying them."""

from __future__ import annotations

from dataclasses import replace
import json
from pathlib import Path

from core.config import LodestreamConfig
from lodestream import LodestreamClient
from store.memory_store import MemoryDocumentStore
from tests.fixture_paths import fixture_reference, write_json_array


def _client(tmp_path: Path, store: MemoryDocumentStore) -> LodestreamClient:
    config = replace(
        LodestreamConfig(data_root=tmp_path),
        batch_size=2,
        chunk_size=16,
        worker_count=2,
        max_attempts=1,
    )
    return LodestreamClient(config, store=store)


def _ids(page_data: list[dict[str, object]]) -> list[object]:
    return sorted(str(document["unifiedId"]) for document in page_data)


def test_two_source_shapes_unify_and_query(tmp_path: Path) -> None:
    """Both source shapes should land in one queryable record layout."""
    store = MemoryDocumentStore()
    with _client(tmp_path, store) as client:
        first = client.ingest(fixture_reference("stays_by_city.json"))
        second = client.ingest(fixture_reference("stays_with_address.json"))
        available = client.query({"unifiedIsAvailable": True})
        mid_range = client.query({"unifiedPrice__gte": "100", "unifiedPrice__lte": "300"})
        villas = client.query({"unifiedName__contains": "VILLA"})
        cities = client.query({"unifiedCity__in": "Rome,Berlin"})

    assert (first.status, second.status) == ("succeeded", "succeeded")
    assert len(store) == 5
    assert _ids(available.data) == ["N/A", "stay-1", "stay-4"]
    assert _ids(mid_range.data) == ["stay-1", "stay-3", "stay-4"]
    assert _ids(villas.data) == ["stay-1"]
    assert _ids(cities.data) == ["N/A", "stay-3"]


def test_overlapping_key_takes_latest_source(tmp_path: Path) -> None:
    """A key present in both files should hold the later file's fields."""
    store = MemoryDocumentStore()
    with _client(tmp_path, store) as client:
        client.ingest(fixture_reference("stays_by_city.json"))
        client.ingest(fixture_reference("stays_with_address.json"))

    document = store.snapshot()["stay-3"]
    assert (
        document["unifiedCity"],
        document["unifiedPrice"],
        document["unifiedIsAvailable"],
        document["unifiedName"],
    ) == ("Rome", 101, False, None)
    assert document["originalData"]["address"]["country"] == "Italy"


def test_concurrent_jobs_write_disjoint_files(tmp_path: Path) -> None:
    """Jobs running on separate workers should all complete."""
    references = [
        write_json_array(
            tmp_path / f"part-{part}.json",
            [json.dumps({"id": f"p{part}-{index}", "pricePerNight": index}) for index in range(40)],
        )
        for part in range(3)
    ]
    store = MemoryDocumentStore()
    with _client(tmp_path, store) as client:
        futures = [client.submit(reference) for reference in references]
        outcomes = [future.result(timeout=30) for future in futures]
        page = client.query({"unifiedPrice__lt": "5", "_limit": "100"})

    assert all(outcome.status == "succeeded" for outcome in outcomes)
    assert len(store) == 120 and page.total_count == 15


def test_malformed_file_is_dead_lettered_with_partial_writes(tmp_path: Path) -> None:
    """A malformed file should dead-letter after writing earlier batches."""
    store = MemoryDocumentStore()
    config = replace(
        LodestreamConfig(data_root=tmp_path),
        batch_size=1,
        max_attempts=2,
        backoff_seconds=0.0,
    )
    with LodestreamClient(config, store=store) as client:
        outcome = client.ingest(fixture_reference("malformed.json"))
        entries = client.dead_letters()

    assert outcome.status == "dead_lettered" and outcome.attempts == 2
    assert [entry.error_type for entry in entries] == ["MalformedStreamError"]
    assert list(store.snapshot()) == ["ok-1"]
