"""
S3-compatible storage provider implementation.

Works against AWS S3, Cloudflare R2 (zero egress fees, ideal for streaming),
Backblaze B2's S3 endpoint, or any generic S3-compatible service such as MinIO.
"""

import logging
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from shared.constants import DEFAULT_NETWORK_TIMEOUT, DEFAULT_S3_POOL_CONNECTIONS
from shared.errors import StorageKeyNotFound, StorageReadError, StorageWriteError
from .storage_provider import ByteStream, ObjectInfo, S3StorageProvider

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in NOT_FOUND_CODES


class S3CompatibleProvider(S3StorageProvider):
    """
    Storage implementation using a boto3 S3 client.

    One client (and its bounded HTTP connection pool) is created per provider
    and shared by every request; ``close()`` releases the pool.
    """

    def __init__(self, bucket_name: str,
                 endpoint_url: Optional[str] = None,
                 access_key_id: Optional[str] = None,
                 secret_access_key: Optional[str] = None,
                 region: Optional[str] = None,
                 max_pool_connections: int = DEFAULT_S3_POOL_CONNECTIONS,
                 client: Any = None):
        self.bucket_name = bucket_name
        self.endpoint_url = endpoint_url
        if client is None:
            client = boto3.client(
                's3',
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                region_name=region,
                config=Config(
                    max_pool_connections=max_pool_connections,
                    connect_timeout=DEFAULT_NETWORK_TIMEOUT,
                    read_timeout=DEFAULT_NETWORK_TIMEOUT,
                    retries={'max_attempts': 3, 'mode': 'standard'},
                ),
            )
        self.s3_client = client

    def _read_error(self, key: str, error: Exception) -> StorageReadError:
        if isinstance(error, ClientError) and _is_not_found(error):
            return StorageKeyNotFound(f"No such object: {key}", key=key)
        return StorageReadError(f"S3 read failed for {key}: {error}", key=key)

    def get(self, key: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            body = response['Body']
            try:
                return body.read()
            finally:
                body.close()
        except (ClientError, BotoCoreError) as e:
            raise self._read_error(key, e) from e

    def get_range(self, key: str, start: int, end: int,
                  chunk_size: int = 64 * 1024) -> ByteStream:
        try:
            response = self.s3_client.get_object(
                Bucket=self.bucket_name, Key=key, Range=f"bytes={start}-{end}"
            )
        except (ClientError, BotoCoreError) as e:
            raise self._read_error(key, e) from e
        body = response['Body']

        def chunks():
            try:
                for chunk in body.iter_chunks(chunk_size):
                    yield chunk
            except BotoCoreError as e:
                raise StorageReadError(f"S3 stream failed for {key}: {e}", key=key) from e

        return ByteStream(chunks(), on_close=body.close)

    def head(self, key: str) -> ObjectInfo:
        try:
            response = self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._read_error(key, e) from e
        return ObjectInfo(
            key=key,
            content_length=int(response['ContentLength']),
            content_type=response.get('ContentType'),
        )

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageWriteError(f"S3 upload failed for {key}: {e}", key=key) from e

    def delete(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageWriteError(f"S3 delete failed for {key}: {e}", key=key) from e

    def close(self) -> None:
        close = getattr(self.s3_client, "close", None)
        if close is not None:
            close()
