"""Core constants used across Lodestream modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".lodestream")
DEAD_LETTER_FILE_NAME = "dead_letters.jsonl"
DEFAULT_MONGO_DATABASE = "lodestream"
DEFAULT_MONGO_COLLECTION = "records"
DEFAULT_BATCH_SIZE = 5000
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_ELEMENT_CHARS = 16 * 1024 * 1024
DEFAULT_HANDOFF_QUEUE_DEPTH = 8
DEFAULT_WORKER_COUNT = 2
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 10.0
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_QUERY_LIMIT = 20
MAX_QUERY_LIMIT = 100
DEFAULT_LOG_LEVEL = "INFO"
MISSING_ID_SENTINEL = "N/A"
RESERVED_PARAM_PREFIX = "_"
OPERATOR_SEPARATOR = "__"
SUPPORTED_OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte", "in", "nin", "contains")
LIST_OPERATORS = ("in", "nin")
DEFAULT_SORT_FIELD = "createdAt"
