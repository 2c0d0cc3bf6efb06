"""Pause/resume handshake between the batch sink and the parser.

The sink pauses the flow before a bulk write and resumes it once the write
settles. The parser waits on the flow before pulling bytes and before
emitting an element. Closing the flow releases every waiter for good.
"""

from __future__ import annotations

import threading


class FlowControl:
    """Cooperative backpressure signal shared by one producer and one consumer."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._paused = False
        self._closed = False
        self._pause_count = 0

    @property
    def is_paused(self) -> bool:
        """Return whether the consumer currently asserts backpressure."""
        with self._condition:
            return self._paused

    @property
    def is_closed(self) -> bool:
        """Return whether the flow was closed."""
        with self._condition:
            return self._closed

    @property
    def pause_count(self) -> int:
        """Return how many times backpressure was asserted."""
        with self._condition:
            return self._pause_count

    def pause(self) -> None:
        """Ask the producer to stop pulling input and emitting elements."""
        with self._condition:
            if not self._paused:
                self._pause_count += 1
            self._paused = True

    def resume(self) -> None:
        """Release backpressure and wake the producer."""
        with self._condition:
            self._paused = False
            self._condition.notify_all()

    def close(self) -> None:
        """Close the flow, clearing pause state and waking all waiters."""
        with self._condition:
            self._closed = True
            self._paused = False
            self._condition.notify_all()

    def wait_until_resumed(self, timeout: float | None = None) -> bool:
        """Block while paused.

        Args:
            timeout: Optional maximum wait in seconds.

        Returns:
            True when the producer may continue, False when the flow is closed
            or the timeout expired while still paused.
        """
        with self._condition:
            self._condition.wait_for(lambda: self._closed or not self._paused, timeout)
            return not self._closed and not self._paused
