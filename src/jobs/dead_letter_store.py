"""Dead-letter persistence for exhausted ingestion jobs.

This module appends failed jobs to a JSONL file under the data root so
operators can inspect and resubmit them after the queue gives up.
"""

from __future__ import annotations

from dataclasses import asdict
import json
from pathlib import Path
import threading
from typing import Any

from core.constants import DEAD_LETTER_FILE_NAME
from core.errors import LodestreamQueueError
from core.types import DeadLetterEntry

_FILE_LOCKS: dict[Path, threading.Lock] = {}
_FILE_LOCKS_GUARD = threading.Lock()


class DeadLetterStore:
    """Filesystem-backed dead-letter list."""

    def __init__(self, data_root: Path) -> None:
        data_root.mkdir(parents=True, exist_ok=True)
        self._path = data_root / DEAD_LETTER_FILE_NAME
        self._lock = _lock_for(self._path)

    @property
    def path(self) -> Path:
        """Return the JSONL file holding dead letters."""
        return self._path

    def append(self, entry: DeadLetterEntry) -> None:
        """Persist one dead-lettered job."""
        line = json.dumps(asdict(entry), sort_keys=True)
        with self._lock:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def list_entries(self) -> list[DeadLetterEntry]:
        """Return all dead-lettered jobs in failure order.

        Raises:
            LodestreamQueueError: If the file holds an invalid row.
        """
        with self._lock:
            return self._read_entries()

    def pop(self, job_id: str) -> DeadLetterEntry | None:
        """Remove and return the latest entry for a job id.

        Args:
            job_id: Identifier of the dead-lettered job.

        Returns:
            Removed entry, or None when the job is not dead-lettered.
        """
        with self._lock:
            entries = self._read_entries()
            for index in range(len(entries) - 1, -1, -1):
                if entries[index].job_id == job_id:
                    entry = entries.pop(index)
                    self._write_entries(entries)
                    return entry
        return None

    def _read_entries(self) -> list[DeadLetterEntry]:
        if not self._path.exists():
            return []
        entries: list[DeadLetterEntry] = []
        lines = self._path.read_text(encoding="utf-8").splitlines()
        for line_number, line in enumerate(lines, 1):
            if not line.strip():
                continue
            entries.append(_parse_entry(self._path, line, line_number))
        return entries

    def _write_entries(self, entries: list[DeadLetterEntry]) -> None:
        lines = [json.dumps(asdict(entry), sort_keys=True) for entry in entries]
        payload = "\n".join(lines) + "\n" if lines else ""
        self._path.write_text(payload, encoding="utf-8")


def _parse_entry(path: Path, line: str, line_number: int) -> DeadLetterEntry:
    """Parse one dead-letter row."""
    try:
        payload: dict[str, Any] = json.loads(line)
        return DeadLetterEntry(
            job_id=str(payload["job_id"]),
            file_reference=str(payload["file_reference"]),
            attempts=int(payload["attempts"]),
            max_attempts=int(payload["max_attempts"]),
            error_type=str(payload["error_type"]),
            error_message=str(payload["error_message"]),
            failed_at=str(payload["failed_at"]),
        )
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as error:
        raise LodestreamQueueError(
            f"Failed to read dead letter at {path}:{line_number}: {error}. "
            "Fix or remove the row and retry."
        ) from error


def _lock_for(path: Path) -> threading.Lock:
    """Share one lock per file across store instances."""
    resolved = path.resolve()
    with _FILE_LOCKS_GUARD:
        return _FILE_LOCKS.setdefault(resolved, threading.Lock())
