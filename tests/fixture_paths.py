"""Shared fixture path helpers for tests."""

from __future__ import annotations

from pathlib import Path


def fixture_path(relative_path: str) -> Path:
    """Resolve a fixture path relative to tests/fixtures.

    Args:
        relative_path: Path under fixtures root.

    Returns:
        Absolute fixture path.
    """
    tests_root = Path(__file__).resolve().parent
    return tests_root / "fixtures" / relative_path


def fixture_reference(relative_path: str) -> str:
    """Return a fixture as a ``file://`` ingestion reference."""
    return fixture_path(relative_path).as_uri()


def write_json_array(path: Path, elements: list[str]) -> str:
    """Write pre-encoded JSON elements as one array file.

    Args:
        path: Output file path.
        elements: JSON-encoded array elements.

    Returns:
        Local file reference for the written file.
    """
    path.write_text("[" + ",".join(elements) + "]", encoding="utf-8")
    return str(path)
