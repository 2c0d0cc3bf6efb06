"""Remote byte stream sources for ingestion.

This module opens S3 objects, HTTP(S) URLs, and local files as forward-only
byte streams. It never materializes the payload and knows nothing about
its format. Every transport failure surfaces as ``SourceUnavailableError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, BinaryIO, Iterator, Protocol

import httpx

from core.config import LodestreamConfig
from core.errors import LodestreamDependencyError, SourceUnavailableError
from core.file_reference import FileReference, parse_file_reference
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)


class SourceStream(Protocol):
    """Forward-only byte stream."""

    def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes, or ``b""`` at end of stream."""
        ...

    def close(self) -> None:
        """Release the underlying connection or file handle."""
        ...


class StreamSource:
    """Opens byte streams for file references.

    One instance is shared by all workers; the HTTP and S3 clients it holds
    are thread-safe.
    """

    def __init__(
        self,
        config: LodestreamConfig,
        http_client: httpx.Client | None = None,
        s3_client: Any | None = None,
    ) -> None:
        """Create a stream source.

        Args:
            config: Runtime configuration for timeouts and S3 session.
            http_client: Optional shared httpx client; borrowed, not closed.
            s3_client: Optional boto3 S3 client; created lazily when absent.
        """
        self._config = config
        self._owns_http_client = http_client is None
        self._http_client = http_client
        self._s3_client = s3_client

    def open_stream(self, reference: str | FileReference) -> SourceStream:
        """Open a byte stream for a file reference.

        Args:
            reference: Raw reference string or parsed reference.

        Returns:
            Open byte stream positioned at the first byte.

        Raises:
            SourceUnavailableError: If the reference is malformed or the
                remote endpoint cannot be read.
        """
        location = (
            reference if isinstance(reference, FileReference) else parse_file_reference(reference)
        )
        if location.scheme == "s3":
            stream: SourceStream = self._open_s3(location)
        elif location.scheme == "http":
            stream = self._open_http(location)
        else:
            stream = _open_local(location)
        _LOGGER.info("stream_opened", file_reference=location.uri, scheme=location.scheme)
        return stream

    def close(self) -> None:
        """Close the HTTP client when this source created it."""
        if self._owns_http_client and self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def _open_http(self, location: FileReference) -> SourceStream:
        client = self._get_http_client()
        try:
            request = client.build_request("GET", location.uri.strip())
            response = client.send(request, stream=True)
        except httpx.HTTPError as error:
            raise SourceUnavailableError(
                f"Failed to open {location.uri}: {error}. "
                "Check the URL and network access, then retry the job."
            ) from error
        if not response.is_success:
            response.close()
            raise SourceUnavailableError(
                f"Failed to open {location.uri}: HTTP {response.status_code}. "
                "The remote file must be reachable with a 2xx response."
            )
        return _HttpByteStream(response, location.uri)

    def _open_s3(self, location: FileReference) -> SourceStream:
        client = self._get_s3_client()
        botocore_exceptions = _import_botocore_exceptions()
        try:
            body = client.get_object(Bucket=location.bucket, Key=location.key)["Body"]
        except (botocore_exceptions.BotoCoreError, botocore_exceptions.ClientError) as error:
            raise SourceUnavailableError(
                f"Failed to open {location.uri}: {error}. "
                "Check the bucket, key, and AWS credentials, then retry the job."
            ) from error
        return _S3ByteStream(body, location.uri)

    def _get_http_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(
                timeout=self._config.http_timeout_seconds,
                follow_redirects=True,
            )
        return self._http_client

    def _get_s3_client(self) -> Any:
        if self._s3_client is None:
            self._s3_client = _create_s3_client(self._config)
        return self._s3_client


class _HttpByteStream:
    """Byte stream over a streamed httpx response."""

    def __init__(self, response: httpx.Response, uri: str) -> None:
        self._response = response
        self._uri = uri
        self._chunks: Iterator[bytes] = response.iter_bytes()
        self._pending = b""

    def read(self, size: int) -> bytes:
        if not self._pending:
            try:
                self._pending = next(self._chunks, b"")
            except (httpx.HTTPError, httpx.StreamError) as error:
                raise SourceUnavailableError(
                    f"Failed while reading {self._uri}: {error}."
                ) from error
        data, self._pending = self._pending[:size], self._pending[size:]
        return data

    def close(self) -> None:
        self._response.close()


class _S3ByteStream:
    """Byte stream over a botocore StreamingBody."""

    def __init__(self, body: Any, uri: str) -> None:
        self._body = body
        self._uri = uri

    def read(self, size: int) -> bytes:
        botocore_exceptions = _import_botocore_exceptions()
        try:
            return self._body.read(size)
        except (botocore_exceptions.BotoCoreError, botocore_exceptions.ClientError) as error:
            raise SourceUnavailableError(f"Failed while reading {self._uri}: {error}.") from error

    def close(self) -> None:
        self._body.close()


class _FileByteStream:
    """Byte stream over a local binary file."""

    def __init__(self, handle: BinaryIO, uri: str) -> None:
        self._handle = handle
        self._uri = uri

    def read(self, size: int) -> bytes:
        try:
            return self._handle.read(size)
        except OSError as error:
            raise SourceUnavailableError(f"Failed while reading {self._uri}: {error}.") from error

    def close(self) -> None:
        self._handle.close()


def _open_local(location: FileReference) -> SourceStream:
    """Open a local file reference.

    Raises:
        SourceUnavailableError: If the file cannot be opened.
    """
    path = Path(location.key).expanduser()
    try:
        handle = path.open("rb")
    except OSError as error:
        raise SourceUnavailableError(
            f"Failed to open {location.uri}: {error.strerror or error}. "
            "Provide an existing readable file."
        ) from error
    return _FileByteStream(handle, location.uri)


def _create_s3_client(config: LodestreamConfig) -> Any:
    """Create a boto3 S3 client.

    Args:
        config: Runtime config containing optional profile/region.

    Returns:
        Boto3 S3 client.

    Raises:
        LodestreamDependencyError: If boto3 is missing.
    """
    try:
        import boto3
    except ImportError as error:
        raise LodestreamDependencyError(
            "S3 support requires boto3, but it is not installed. "
            "Install boto3 to ingest from s3:// sources."
        ) from error
    session_kwargs = _build_boto3_session_kwargs(config)
    session = boto3.session.Session(**session_kwargs)
    return session.client("s3")


def _build_boto3_session_kwargs(config: LodestreamConfig) -> dict[str, str]:
    """Build boto3 Session kwargs from config.

    Args:
        config: Runtime config.

    Returns:
        Session keyword arguments.
    """
    kwargs: dict[str, str] = {}
    if config.s3_profile:
        kwargs["profile_name"] = config.s3_profile
    if config.s3_region:
        kwargs["region_name"] = config.s3_region
    return kwargs


def _import_botocore_exceptions() -> Any:
    """Import botocore exceptions lazily alongside boto3."""
    try:
        from botocore import exceptions
    except ImportError as error:
        raise LodestreamDependencyError(
            "S3 support requires boto3, but it is not installed. "
            "Install boto3 to ingest from s3:// sources."
        ) from error
    return exceptions
