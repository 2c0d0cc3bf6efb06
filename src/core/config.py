"""Runtime configuration model for Lodestream.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DATA_ROOT,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_ELEMENT_CHARS,
    DEFAULT_MONGO_COLLECTION,
    DEFAULT_MONGO_DATABASE,
    DEFAULT_QUERY_LIMIT,
    DEFAULT_WORKER_COUNT,
    MAX_QUERY_LIMIT,
)
from core.errors import LodestreamConfigError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LodestreamConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for dead-letter records.
        mongo_uri: Optional MongoDB connection string.
        mongo_database: MongoDB database name.
        mongo_collection: MongoDB collection holding unified records.
        s3_region: Optional default AWS region for S3 operations.
        s3_profile: Optional AWS profile for boto3 session initialization.
        batch_size: Number of records per bulk upsert.
        chunk_size: Number of bytes pulled from the source per read.
        max_element_chars: Upper bound on one buffered array element.
        worker_count: Number of concurrent ingestion workers.
        max_attempts: Attempt ceiling per ingestion job.
        backoff_seconds: Fixed delay between attempts.
        job_timeout_seconds: Optional per-attempt cancellation timeout.
        http_timeout_seconds: Timeout for HTTP connect and reads.
        query_default_limit: Page size used when ``_limit`` is absent.
        query_max_limit: Largest page size a query may request.
        log_level: Minimum structured log level.
    """

    data_root: Path
    mongo_uri: str | None = None
    mongo_database: str = DEFAULT_MONGO_DATABASE
    mongo_collection: str = DEFAULT_MONGO_COLLECTION
    s3_region: str | None = None
    s3_profile: str | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_element_chars: int = DEFAULT_MAX_ELEMENT_CHARS
    worker_count: int = DEFAULT_WORKER_COUNT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    job_timeout_seconds: float | None = None
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    query_default_limit: int = DEFAULT_QUERY_LIMIT
    query_max_limit: int = MAX_QUERY_LIMIT
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "LodestreamConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            LodestreamConfigError: If environment values are invalid.
        """
        data_root_value = os.getenv("LODESTREAM_DATA_ROOT", str(DEFAULT_DATA_ROOT))
        return cls(
            data_root=Path(data_root_value).expanduser().resolve(),
            mongo_uri=os.getenv("LODESTREAM_MONGO_URI") or None,
            mongo_database=os.getenv("LODESTREAM_MONGO_DATABASE", DEFAULT_MONGO_DATABASE),
            mongo_collection=os.getenv("LODESTREAM_MONGO_COLLECTION", DEFAULT_MONGO_COLLECTION),
            s3_region=os.getenv("LODESTREAM_S3_REGION"),
            s3_profile=os.getenv("LODESTREAM_S3_PROFILE"),
            batch_size=_read_positive_int("LODESTREAM_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            chunk_size=_read_positive_int("LODESTREAM_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            max_element_chars=_read_positive_int(
                "LODESTREAM_MAX_ELEMENT_CHARS", DEFAULT_MAX_ELEMENT_CHARS
            ),
            worker_count=_read_positive_int("LODESTREAM_WORKER_COUNT", DEFAULT_WORKER_COUNT),
            max_attempts=_read_positive_int("LODESTREAM_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            backoff_seconds=_read_non_negative_float(
                "LODESTREAM_BACKOFF_SECONDS", DEFAULT_BACKOFF_SECONDS
            ),
            job_timeout_seconds=_read_optional_timeout("LODESTREAM_JOB_TIMEOUT_SECONDS"),
            http_timeout_seconds=_read_non_negative_float(
                "LODESTREAM_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS
            ),
            query_default_limit=_read_positive_int(
                "LODESTREAM_QUERY_DEFAULT_LIMIT", DEFAULT_QUERY_LIMIT
            ),
            query_max_limit=_read_positive_int("LODESTREAM_QUERY_MAX_LIMIT", MAX_QUERY_LIMIT),
            log_level=_read_log_level(),
        )


def _read_positive_int(name: str, default: int) -> int:
    """Parse a positive integer environment value.

    Args:
        name: Environment variable name.
        default: Value used when the variable is unset.

    Returns:
        Parsed integer.

    Raises:
        LodestreamConfigError: If value is not a positive integer.
    """
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = int(raw_value)
    except ValueError as error:
        raise LodestreamConfigError(
            f"Invalid {name} value: expected integer, got '{raw_value}'. "
            f"Set {name} to a positive number."
        ) from error
    if value <= 0:
        raise LodestreamConfigError(
            f"Invalid {name} value: expected a positive integer, got {value}."
        )
    return value


def _read_non_negative_float(name: str, default: float) -> float:
    """Parse a non-negative float environment value."""
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = float(raw_value)
    except ValueError as error:
        raise LodestreamConfigError(
            f"Invalid {name} value: expected number of seconds, got '{raw_value}'."
        ) from error
    if value < 0:
        raise LodestreamConfigError(f"Invalid {name} value: must not be negative.")
    return value


def _read_optional_timeout(name: str) -> float | None:
    """Parse an optional timeout where unset or zero disables it."""
    value = _read_non_negative_float(name, 0.0)
    return value or None


def _read_log_level() -> str:
    """Parse and validate the structured log level."""
    raw_value = os.getenv("LODESTREAM_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    if raw_value not in _LOG_LEVELS:
        raise LodestreamConfigError(
            f"Invalid LODESTREAM_LOG_LEVEL value '{raw_value}'. "
            f"Expected one of: {', '.join(_LOG_LEVELS)}."
        )
    return raw_value
