"""
Error kinds raised by the processing, storage and streaming layers.

The API layer maps each kind to an HTTP status before response headers are
sent. Once a streamed body has started, errors abort the connection instead.
"""

from typing import Optional


class TuneshiftError(Exception):
    """Base class for all service errors."""

    status_code = 500


class CodecError(TuneshiftError):
    """Compressed audio could not be decoded or a buffer could not be encoded."""

    status_code = 422


class RangeParseError(TuneshiftError):
    """A ``Range`` header is malformed or cannot be satisfied."""

    status_code = 416

    def __init__(self, message: str, file_size: int):
        super().__init__(message)
        self.file_size = file_size


class StorageError(TuneshiftError):
    """Base class for storage backend failures."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class StorageReadError(StorageError):
    """Backend unavailable or a read failed."""


class StorageKeyNotFound(StorageReadError):
    """The requested object does not exist."""

    status_code = 404


class StorageWriteError(StorageError):
    """An object could not be written or deleted."""


class UpstreamUnavailable(TuneshiftError):
    """None of the configured upstream feed sources answered."""

    status_code = 502
