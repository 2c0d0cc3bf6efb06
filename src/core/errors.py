"""Lodestream exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Job-level errors propagate to the queue; batch and query errors are contained.
"""

from __future__ import annotations


class LodestreamError(Exception):
    """Base exception for all Lodestream failures."""


class LodestreamConfigError(LodestreamError):
    """Raised for invalid runtime configuration."""


class LodestreamDependencyError(LodestreamError):
    """Raised when an optional runtime dependency is missing."""


class LodestreamIngestError(LodestreamError):
    """Raised for failures that abort a whole ingestion job."""


class SourceUnavailableError(LodestreamIngestError):
    """Raised when a remote file cannot be opened or read."""


class MalformedStreamError(LodestreamIngestError):
    """Raised when stream content is not a valid top-level JSON array."""


class IngestionCancelledError(LodestreamIngestError):
    """Raised when a running job is cancelled and its stream closed."""


class LodestreamStoreError(LodestreamError):
    """Raised for document store and driver failures."""


class BatchWriteError(LodestreamStoreError):
    """Raised when one bulk upsert batch fails."""


class UnsupportedOperatorError(LodestreamError):
    """Raised for filter clauses with an unknown operator."""


class LodestreamQueueError(LodestreamError):
    """Raised for job queue misuse."""
