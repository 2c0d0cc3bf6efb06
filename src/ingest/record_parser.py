"""Incremental parser for top-level JSON arrays.

This module scans a byte stream for the boundaries of top-level array
elements and decodes each element as soon as its last byte arrives. At most
one element is held in flight next to the unscanned character buffer, so
memory stays bounded by the largest element rather than the file size.
"""

from __future__ import annotations

import codecs
import json
from typing import Any, Iterator

from core.constants import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_ELEMENT_CHARS
from core.errors import IngestionCancelledError, MalformedStreamError
from ingest.flow_control import FlowControl
from ingest.stream_source import SourceStream

_WHITESPACE = " \t\n\r"
_EXPECT_ARRAY = "expect_array"
_EXPECT_FIRST_VALUE = "expect_first_value"
_EXPECT_VALUE = "expect_value"
_IN_ELEMENT = "in_element"
_EXPECT_SEPARATOR = "expect_separator"
_ARRAY_CLOSED = "array_closed"
_INCOMPLETE = object()
_END = object()


class IncrementalArrayParser:
    """Lazy, forward-only iterator over the elements of one JSON array.

    The parser honors a shared ``FlowControl``: while it is paused the parser
    neither pulls bytes from the stream nor emits elements. An element that
    was fully parsed before the pause is kept and emitted after resume.
    """

    def __init__(
        self,
        stream: SourceStream,
        flow_control: FlowControl | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_element_chars: int = DEFAULT_MAX_ELEMENT_CHARS,
        source_name: str = "<stream>",
    ) -> None:
        """Create a parser over an open byte stream.

        Args:
            stream: Byte stream expected to hold one JSON array.
            flow_control: Backpressure signal; a private one when omitted.
            chunk_size: Bytes requested per read.
            max_element_chars: Largest accepted element, in characters.
            source_name: Reference used in error messages.
        """
        self._stream = stream
        self._flow = flow_control or FlowControl()
        self._chunk_size = chunk_size
        self._max_element_chars = max_element_chars
        self._source_name = source_name
        self._decoder = codecs.getincrementaldecoder("utf-8-sig")()
        self._buffer = ""
        self._position = 0
        self._element_start = 0
        self._element_parts: list[str] = []
        self._state = _EXPECT_ARRAY
        self._depth = 0
        self._in_string = False
        self._escaped = False
        self._eof = False
        self._elements_emitted = 0
        self._bytes_read = 0

    @property
    def elements_emitted(self) -> int:
        """Return the number of elements yielded so far."""
        return self._elements_emitted

    @property
    def bytes_read(self) -> int:
        """Return the number of bytes pulled from the stream so far."""
        return self._bytes_read

    @property
    def buffered_chars(self) -> int:
        """Return the size of the retained character buffer."""
        return len(self._buffer)

    def __iter__(self) -> Iterator[Any]:
        """Yield array elements in wire order.

        Raises:
            MalformedStreamError: If the content is not a valid JSON array.
            IngestionCancelledError: If the flow control is closed.
            SourceUnavailableError: If the underlying stream fails.
        """
        while True:
            element = self._next_element()
            if element is _END:
                return
            self._await_flow()
            self._elements_emitted += 1
            yield element

    def _next_element(self) -> Any:
        while True:
            element = self._scan()
            if element is not _INCOMPLETE:
                return element
            if self._eof:
                raise self._error("unexpected end of stream before the array was closed")
            self._fill()

    def _fill(self) -> None:
        """Pull one chunk from the stream into the character buffer."""
        self._await_flow()
        chunk = self._stream.read(self._chunk_size)
        self._bytes_read += len(chunk)
        if not chunk:
            self._eof = True
        try:
            text = self._decoder.decode(chunk, final=self._eof)
        except UnicodeDecodeError as error:
            raise self._error(f"invalid UTF-8 data ({error.reason})") from error
        if self._state == _IN_ELEMENT:
            carried = self._buffer[max(self._element_start, 0) :]
            if carried:
                self._element_parts.append(carried)
            # A negative start counts the element characters held in _element_parts.
            self._element_start -= len(self._buffer)
            self._buffer = text
        else:
            self._buffer = self._buffer[self._position :] + text
        self._position = 0

    def _await_flow(self) -> None:
        if not self._flow.wait_until_resumed():
            raise IngestionCancelledError(
                f"Ingestion of {self._source_name} was cancelled; the stream was closed."
            )

    def _scan(self) -> Any:
        """Advance the scanner over buffered characters.

        Returns:
            The next decoded element, ``_END`` when the array is finished,
            or ``_INCOMPLETE`` when more input is needed.
        """
        buffer = self._buffer
        length = len(buffer)
        index = self._position
        while index < length:
            if self._state == _IN_ELEMENT:
                end = self._scan_element(buffer, index, length)
                if end < 0:
                    self._position = length
                    if length - self._element_start > self._max_element_chars:
                        raise self._error(
                            f"element exceeds {self._max_element_chars} characters"
                        )
                    return _INCOMPLETE
                return self._complete_element(end)
            char = buffer[index]
            if char in _WHITESPACE:
                index += 1
                continue
            if self._state == _EXPECT_ARRAY:
                if char != "[":
                    raise self._error(f"expected '[' to open the array, found {char!r}")
                self._state = _EXPECT_FIRST_VALUE
            elif self._state in (_EXPECT_FIRST_VALUE, _EXPECT_VALUE):
                if char == "]" and self._state == _EXPECT_FIRST_VALUE:
                    self._state = _ARRAY_CLOSED
                elif char in ",]":
                    raise self._error(f"expected an array element, found {char!r}")
                else:
                    self._begin_element(index)
                    continue
            elif self._state == _EXPECT_SEPARATOR:
                if char == ",":
                    self._state = _EXPECT_VALUE
                elif char == "]":
                    self._state = _ARRAY_CLOSED
                else:
                    raise self._error(f"expected ',' or ']' after an element, found {char!r}")
            else:
                raise self._error(f"unexpected {char!r} after the closing bracket")
            index += 1
        self._position = length
        if self._eof and self._state in (_EXPECT_ARRAY, _ARRAY_CLOSED):
            return _END
        return _INCOMPLETE

    def _begin_element(self, index: int) -> None:
        self._state = _IN_ELEMENT
        self._element_start = index
        self._depth = 0
        self._in_string = False
        self._escaped = False

    def _scan_element(self, buffer: str, index: int, length: int) -> int:
        """Find the end offset of the current element.

        Returns:
            Exclusive end offset, or -1 when the element continues past the
            buffered input. Scanner state is saved for the next call.
        """
        depth = self._depth
        in_string = self._in_string
        escaped = self._escaped
        start = self._element_start
        while index < length:
            char = buffer[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                    if depth == 0:
                        return index + 1
            elif depth == 0 and index > start and (
                char in _WHITESPACE or char in ',]}"[{'
            ):
                return index
            elif char == '"':
                in_string = True
            elif char in "[{":
                depth += 1
            elif char in "]}":
                if depth == 0:
                    return index
                depth -= 1
                if depth == 0:
                    return index + 1
            index += 1
        self._depth = depth
        self._in_string = in_string
        self._escaped = escaped
        return -1

    def _complete_element(self, end: int) -> Any:
        if self._element_start < 0:
            text = "".join(self._element_parts) + self._buffer[:end]
        else:
            text = self._buffer[self._element_start : end]
        self._element_parts = []
        try:
            element = json.loads(text, parse_constant=_reject_constant)
        except ValueError as error:
            raise self._error(f"invalid element {_preview(text)}: {error}") from error
        self._position = end
        self._element_start = end
        self._state = _EXPECT_SEPARATOR
        return element

    def _error(self, message: str) -> MalformedStreamError:
        return MalformedStreamError(
            f"Malformed JSON array in {self._source_name} "
            f"near element {self._elements_emitted + 1}: {message}."
        )


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard constant {name}")


def _preview(text: str, limit: int = 40) -> str:
    return repr(text if len(text) <= limit else text[:limit] + "...")
