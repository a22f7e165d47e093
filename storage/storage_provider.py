"""
Abstract base class for storage providers.

This module defines the interface every storage backend implements, allowing
the service to keep audio objects on Cloudflare R2, Backblaze B2, AWS S3, any
other S3-compatible service, or the local filesystem.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)


@dataclass
class ObjectInfo:
    """Size and type of a stored object."""
    key: str
    content_length: int
    content_type: Optional[str] = None


class ByteStream:
    """
    Chunked read of a stored byte range.

    Iterating yields the chunks; the underlying handle (file, HTTP body) is
    released through ``close()``, which runs exactly once whether the stream
    is exhausted, abandoned mid-way, or fails.
    """

    def __init__(self, chunks: Iterable[bytes], on_close: Optional[Callable[[], None]] = None):
        self._chunks = chunks
        self._on_close = on_close
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        try:
            for chunk in self._chunks:
                if chunk:
                    yield chunk
        finally:
            self.close()

    def close(self):
        if self.closed:
            return
        self.closed = True
        close_chunks = getattr(self._chunks, "close", None)
        if close_chunks is not None:
            close_chunks()
        if self._on_close is not None:
            try:
                self._on_close()
            except Exception as e:
                logger.warning(f"Failed to release storage stream: {e}")

    def read_all(self) -> bytes:
        return b"".join(self)

    def __enter__(self) -> 'ByteStream':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class S3StorageProvider(ABC):
    """
    Abstract base class for storage providers.

    Read methods raise ``StorageKeyNotFound`` for a missing key and
    ``StorageReadError`` for any other failure; write methods raise
    ``StorageWriteError``.
    """

    bucket_name: Optional[str] = None

    @abstractmethod
    def get(self, key: str) -> bytes:
        """
        Read a whole object.

        Args:
            key: Key (path) of the object in the bucket

        Returns:
            Object contents
        """
        pass

    @abstractmethod
    def get_range(self, key: str, start: int, end: int,
                  chunk_size: int = 64 * 1024) -> ByteStream:
        """
        Open a streamed read of bytes ``start`` through ``end`` (inclusive).

        Opening fails eagerly (missing key, backend down); errors raised while
        iterating are ``StorageReadError`` as well.

        Args:
            key: Key (path) of the object in the bucket
            start: First byte offset
            end: Last byte offset, inclusive
            chunk_size: Maximum size of each yielded chunk
        """
        pass

    @abstractmethod
    def head(self, key: str) -> ObjectInfo:
        """
        Get object size and content type without reading it.
        """
        pass

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        """
        Write an object, replacing any existing one.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """
        Delete an object. Deleting a missing key is not an error.
        """
        pass

    def exists(self, key: str) -> bool:
        """Check if an object exists."""
        from shared.errors import StorageKeyNotFound

        try:
            self.head(key)
            return True
        except StorageKeyNotFound:
            return False

    def close(self) -> None:
        """Release pooled connections. Safe to call more than once."""
        pass
