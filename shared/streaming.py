"""
HTTP byte-range serving of stored audio.

``serve_resource`` answers a GET for a stored object, honouring a single
``Range: bytes=...`` request header.

Range policy:

* ``bytes=<start>-<end>`` and ``bytes=<start>-`` are served as 206; an
  ``end`` past the last byte is clamped to ``file_size - 1``.
* ``bytes=-<n>`` (suffix) serves the last ``n`` bytes, or the whole object
  when ``n >= file_size``.
* Anything else is rejected with 416 and ``Content-Range: bytes */<size>``:
  other units, missing dash, non-numeric bounds, multiple ranges,
  ``start > end``, ``start >= file_size``, ``bytes=-0``, and any range over an
  empty object. A bad header never falls back to the full object.

Bytes are read from storage in chunks, never buffered whole. Storage errors
raised before the response starts map to 404/500; after that the body
generator re-raises, which aborts the connection.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterator, Optional
from urllib.parse import quote

from flask import Response, jsonify, stream_with_context

from shared.constants import AUDIO_MIMETYPE, DEFAULT_STREAM_CHUNK_SIZE, TRACK_NAME_HEADER
from shared.errors import RangeParseError, StorageError
from storage.storage_provider import ByteStream, S3StorageProvider

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"^\s*(\d*)\s*-\s*(\d*)\s*$")


@dataclass(frozen=True)
class StreamableResource:
    """A stored object about to be streamed."""
    key: str
    file_size: int
    content_type: str = AUDIO_MIMETYPE
    display_name: str = ""


@dataclass(frozen=True)
class RangeSpec:
    """Inclusive byte range with ``0 <= start <= end <= file_size - 1``."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, file_size: int) -> str:
        return f"bytes {self.start}-{self.end}/{file_size}"


def parse_range_header(header: Optional[str], file_size: int) -> Optional[RangeSpec]:
    """
    Parse a ``Range`` header against an object of ``file_size`` bytes.

    Returns:
        None when the header is absent or blank (serve the whole object),
        otherwise the satisfiable RangeSpec

    Raises:
        RangeParseError: If the header is malformed or unsatisfiable
    """
    if header is None or not header.strip():
        return None

    unit, sep, spec = header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        raise RangeParseError(f"Unsupported range unit in {header!r}", file_size)
    if "," in spec:
        raise RangeParseError("Multiple ranges are not supported", file_size)

    match = _RANGE_RE.match(spec)
    if not match or (not match.group(1) and not match.group(2)):
        raise RangeParseError(f"Malformed range {header!r}", file_size)
    first, last = match.group(1), match.group(2)

    if file_size <= 0:
        raise RangeParseError("Range requested on an empty resource", file_size)

    if not first:
        suffix = int(last)
        if suffix == 0:
            raise RangeParseError("Zero-length suffix range", file_size)
        return RangeSpec(start=max(0, file_size - suffix), end=file_size - 1)

    start = int(first)
    end = int(last) if last else file_size - 1
    if start >= file_size:
        raise RangeParseError(f"Range start {start} beyond resource size {file_size}", file_size)
    if start > end:
        raise RangeParseError(f"Range start {start} after end {end}", file_size)
    return RangeSpec(start=start, end=min(end, file_size - 1))


def resolve_resource(storage: S3StorageProvider, key: str, display_name: str = "",
                     content_type: Optional[str] = None) -> StreamableResource:
    """
    Look up a stored object's size.

    Raises:
        StorageKeyNotFound: If the key does not exist
        StorageReadError: If the backend cannot be reached
    """
    info = storage.head(key)
    return StreamableResource(
        key=key,
        file_size=info.content_length,
        content_type=content_type or info.content_type or AUDIO_MIMETYPE,
        display_name=display_name,
    )


def _relay(stream: ByteStream, key: str) -> Iterator[bytes]:
    try:
        for chunk in stream:
            yield chunk
    except GeneratorExit:
        logger.info(f"Client disconnected while streaming {key}")
        raise
    except StorageError as e:
        logger.error(f"Aborting stream of {key} after headers were sent: {e}")
        raise
    finally:
        stream.close()


def encode_header_value(value: str) -> str:
    """Percent-encode a display name so it survives latin-1 header encoding."""
    return quote(value, safe=" !#$&'()*+,-./:;=?@[]^_`{|}~")


def serve_resource(storage: S3StorageProvider, resource: StreamableResource,
                   range_header: Optional[str],
                   chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE,
                   extra_headers: Optional[Dict[str, str]] = None) -> Response:
    """
    Build the streaming response for ``resource``.

    Args:
        storage: Provider holding the object
        resource: Object key, size, type and display name
        range_header: Raw ``Range`` header value, or None
        chunk_size: Maximum bytes per storage read
        extra_headers: Additional response headers

    Returns:
        200 response with the whole object, or 206 with the requested range

    Raises:
        RangeParseError: Malformed or unsatisfiable range (416)
        StorageKeyNotFound / StorageReadError: The byte stream could not be opened
    """
    spec = parse_range_header(range_header, resource.file_size)

    headers = {
        "Accept-Ranges": "bytes",
        TRACK_NAME_HEADER: encode_header_value(resource.display_name),
    }
    if extra_headers:
        headers.update(extra_headers)

    if spec is None:
        status = 200
        length = resource.file_size
        first, last = 0, resource.file_size - 1
    else:
        status = 206
        length = spec.length
        first, last = spec.start, spec.end
        headers["Content-Range"] = spec.content_range(resource.file_size)

    if length > 0:
        # Opened here so a missing key or dead backend still gets a proper status
        stream = storage.get_range(resource.key, first, last, chunk_size=chunk_size)
        body = stream_with_context(_relay(stream, resource.key))
    else:
        body = iter(())

    response = Response(body, status=status, mimetype=resource.content_type,
                        headers=headers)
    response.content_length = length
    if length > 0:
        # Covers a client that leaves before the body generator ever starts
        response.call_on_close(stream.close)
    logger.debug(f"Serving {resource.key}: {status} {headers.get('Content-Range', 'full')}")
    return response


def unsatisfiable_response(error: RangeParseError) -> Response:
    """416 response for a rejected ``Range`` header."""
    response = jsonify({"error": str(error)})
    response.status_code = 416
    response.headers["Content-Range"] = f"bytes */{error.file_size}"
    response.headers["Accept-Ranges"] = "bytes"
    return response
