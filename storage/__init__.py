from .storage_provider import ByteStream, ObjectInfo, S3StorageProvider
from .local_provider import LocalStorageProvider
from .s3_provider import S3CompatibleProvider
from .provider_factory import StorageProviderFactory

__all__ = [
    "ByteStream",
    "ObjectInfo",
    "S3StorageProvider",
    "LocalStorageProvider",
    "S3CompatibleProvider",
    "StorageProviderFactory",
]
