"""Test doubles shared by unit and integration tests."""

from __future__ import annotations

import io
from typing import Sequence

from core.errors import BatchWriteError
from core.types import UnifiedRecord, WriteResult
from store.memory_store import MemoryDocumentStore


class CountingStream:
    """In-memory byte stream that records reads and closure."""

    def __init__(self, payload: bytes) -> None:
        self._buffer = io.BytesIO(payload)
        self.bytes_read = 0
        self.read_calls = 0
        self.closed = False

    def read(self, size: int) -> bytes:
        if self.closed:
            raise ValueError("read from closed stream")
        self.read_calls += 1
        data = self._buffer.read(size)
        self.bytes_read += len(data)
        return data

    def close(self) -> None:
        self.closed = True


class FlakyStore(MemoryDocumentStore):
    """Memory store whose selected bulk upserts fail."""

    def __init__(
        self,
        failing_calls: Sequence[int],
        error_type: type[Exception] = BatchWriteError,
    ) -> None:
        super().__init__()
        self._failing_calls = set(failing_calls)
        self._error_type = error_type
        self.calls = 0
        self.batch_sizes: list[int] = []

    def bulk_upsert(self, records: Sequence[UnifiedRecord]) -> WriteResult:
        self.calls += 1
        self.batch_sizes.append(len(records))
        if self.calls in self._failing_calls:
            raise self._error_type(f"simulated failure on call {self.calls}")
        return super().bulk_upsert(records)
