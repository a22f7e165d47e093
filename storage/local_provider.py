"""
Local filesystem storage provider.
Implements the S3StorageProvider interface for local storage.
"""

import logging
import mimetypes
import os
from pathlib import Path
from typing import Optional

from shared.errors import StorageKeyNotFound, StorageReadError, StorageWriteError
from .storage_provider import ByteStream, ObjectInfo, S3StorageProvider

logger = logging.getLogger(__name__)


class LocalStorageProvider(S3StorageProvider):
    """
    Storage provider that uses the local filesystem.
    Useful for self-hosting on a NAS or local drive, and for development.
    """

    def __init__(self, base_path: str, bucket_name: Optional[str] = "default"):
        self.base_path = Path(base_path).expanduser().absolute()
        self.bucket_name = bucket_name
        self._bucket_root().mkdir(parents=True, exist_ok=True)

    def _bucket_root(self) -> Path:
        if self.bucket_name in [None, ".", "", "default"]:
            return self.base_path
        return self.base_path / self.bucket_name

    def _get_path(self, remote_key: str) -> Path:
        """Get absolute local path for a key, refusing keys that escape the bucket."""
        root = self._bucket_root().resolve()
        path = (root / remote_key).resolve()
        if path == root or root not in path.parents:
            raise StorageKeyNotFound(f"Invalid key: {remote_key}", key=remote_key)
        return path

    def get(self, key: str) -> bytes:
        path = self._get_path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise StorageKeyNotFound(f"No such object: {key}", key=key)
        except OSError as e:
            raise StorageReadError(f"Local read failed for {key}: {e}", key=key) from e

    def get_range(self, key: str, start: int, end: int,
                  chunk_size: int = 64 * 1024) -> ByteStream:
        path = self._get_path(key)
        try:
            handle = open(path, "rb")
        except FileNotFoundError:
            raise StorageKeyNotFound(f"No such object: {key}", key=key)
        except OSError as e:
            raise StorageReadError(f"Local open failed for {key}: {e}", key=key) from e

        def chunks():
            try:
                handle.seek(start)
                remaining = end - start + 1
                while remaining > 0:
                    data = handle.read(min(chunk_size, remaining))
                    if not data:
                        break
                    remaining -= len(data)
                    yield data
            except OSError as e:
                raise StorageReadError(f"Local read failed for {key}: {e}", key=key) from e

        return ByteStream(chunks(), on_close=handle.close)

    def head(self, key: str) -> ObjectInfo:
        path = self._get_path(key)
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            raise StorageKeyNotFound(f"No such object: {key}", key=key)
        except OSError as e:
            raise StorageReadError(f"Local stat failed for {key}: {e}", key=key) from e
        if not path.is_file():
            raise StorageKeyNotFound(f"No such object: {key}", key=key)
        return ObjectInfo(key=key, content_length=size, content_type=mimetypes.guess_type(path.name)[0])

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        path = self._get_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so concurrent readers never see a partial object
            tmp_path = path.with_name(path.name + ".part")
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageWriteError(f"Local write failed for {key}: {e}", key=key) from e
        logger.debug(f"Local - wrote {len(data)} bytes to {path}")

    def delete(self, key: str) -> None:
        path = self._get_path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageWriteError(f"Local delete failed for {key}: {e}", key=key) from e
