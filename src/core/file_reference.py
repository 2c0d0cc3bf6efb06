"""File reference parsing helpers.

This module resolves ingestion file references into typed locations.
It keeps reference validation consistent across stream sources and jobs.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal
from urllib.parse import unquote, urlsplit

from core.errors import SourceUnavailableError

ReferenceScheme = Literal["s3", "http", "file"]


@dataclass(frozen=True)
class FileReference:
    """Parsed file reference model.

    Attributes:
        uri: Reference exactly as submitted.
        scheme: Transport used to open the reference.
        key: Object key or path used as the record provenance tag.
        bucket: S3 bucket name for ``s3://`` references.
    """

    uri: str
    scheme: ReferenceScheme
    key: str
    bucket: str | None = None


def parse_file_reference(uri: str) -> FileReference:
    """Parse and validate an ingestion file reference.

    Args:
        uri: ``s3://bucket/key``, ``http(s)://host/path``, ``file://`` URI,
            or a local filesystem path.

    Returns:
        Parsed reference.

    Raises:
        SourceUnavailableError: If the reference is malformed.
    """
    candidate = uri.strip()
    if not candidate:
        _raise_reference_error(uri, "reference is empty")
    if candidate.startswith("s3://"):
        return _parse_s3_reference(uri, candidate)
    parts = urlsplit(candidate)
    if parts.scheme in ("http", "https"):
        key = unquote(parts.path).lstrip("/")
        if not parts.netloc or not key:
            _raise_reference_error(uri, "expected http(s)://host/path with a non-empty path")
        return FileReference(uri=uri, scheme="http", key=key)
    if parts.scheme == "file":
        path = unquote(parts.path)
        if not path or path.endswith("/"):
            _raise_reference_error(uri, "expected file:///path/to/file.json")
        return FileReference(uri=uri, scheme="file", key=path)
    if "://" in candidate:
        _raise_reference_error(uri, f"unsupported scheme '{parts.scheme}'")
    return FileReference(uri=uri, scheme="file", key=Path(candidate).as_posix())


def _parse_s3_reference(uri: str, candidate: str) -> FileReference:
    """Split an ``s3://`` URI into bucket and key."""
    stripped_uri = candidate.removeprefix("s3://")
    if "/" not in stripped_uri:
        _raise_reference_error(uri, "expected s3://bucket/key")
    bucket, key = stripped_uri.split("/", 1)
    if not bucket or not key:
        _raise_reference_error(uri, "expected s3://bucket/key with both parts")
    return FileReference(uri=uri, scheme="s3", key=key, bucket=bucket)


def _raise_reference_error(uri: str, reason: str) -> None:
    """Raise a uniform invalid reference error.

    Args:
        uri: Invalid reference value.
        reason: Human readable cause.

    Raises:
        SourceUnavailableError: Always.
    """
    raise SourceUnavailableError(
        f"Invalid file reference '{uri}': {reason}. "
        "Submit an s3://, http(s):// or local file reference."
    )
