"""Unit tests for record normalization."""

from __future__ import annotations

import pytest

from ingest.normalizer import normalize


def test_normalize_second_source_shape() -> None:
    """Nested address and alternate field names should resolve."""
    raw = {"priceForNight": "120", "availability": True, "address": {"city": "Rome"}}

    record = normalize(raw, "source2.json")

    assert (record.unified_price, record.unified_is_available, record.unified_city) == (
        120,
        True,
        "Rome",
    )


def test_normalize_missing_id_uses_sentinel() -> None:
    """A missing id should degrade to the N/A sentinel."""
    record = normalize({"city": "Paris"}, "source1.json")

    assert record.unified_id == "N/A"


def test_normalize_prefers_primary_fields() -> None:
    """Primary field names should win over alternates."""
    raw = {
        "id": 7,
        "availability": False,
        "isAvailable": True,
        "pricePerNight": 99.5,
        "priceForNight": 10,
        "city": "Oslo",
        "address": {"city": "Bergen"},
    }

    record = normalize(raw, "mixed.json")

    assert (
        record.unified_id,
        record.unified_is_available,
        record.unified_price,
        record.unified_city,
    ) == ("7", False, 99.5, "Oslo")


def test_normalize_keeps_original_data_and_provenance() -> None:
    """Raw element should be retained verbatim with the source tag."""
    raw = {"id": "a", "name": "Villa", "priceSegment": "high", "extra": {"wifi": True}}

    record = normalize(raw, "exports/source1.json")

    assert record.original_data is raw
    assert (record.source_file, record.unified_name, record.unified_segment) == (
        "exports/source1.json",
        "Villa",
        "high",
    )


def test_normalize_defaults_optional_fields_to_none() -> None:
    """Missing optional fields should not raise."""
    record = normalize({"id": "b"}, "s.json")

    assert [
        record.unified_city,
        record.unified_price,
        record.unified_is_available,
        record.unified_name,
        record.unified_segment,
    ] == [None, None, None, None, None]


def test_normalize_non_object_element() -> None:
    """Scalar elements should normalize without raising."""
    record = normalize(42, "odd.json")

    assert record.unified_id == "N/A" and record.original_data == 42


def test_normalize_unparseable_price_is_none() -> None:
    """Non-numeric prices should become None."""
    record = normalize({"id": "c", "pricePerNight": "call us"}, "s.json")

    assert record.unified_price is None


@pytest.mark.parametrize(
    ("raw_id", "expected"),
    [
        (True, "true"),
        (1.5, "1.5"),
        (12, "12"),
        ({"b": 2, "a": 1}, '{"a":1,"b":2}'),
        ("stay-9", "stay-9"),
    ],
)
def test_normalize_formats_non_string_ids_as_json(raw_id: object, expected: str) -> None:
    """Non-string ids should keep their JSON spelling in the natural key."""
    record = normalize({"id": raw_id}, "s.json")

    assert record.unified_id == expected
