"""
Factory for creating storage provider instances.

Simplifies provider selection and initialization.
"""

from shared.config import ServiceConfig
from shared.constants import (
    AWS_S3_ENDPOINT_TEMPLATE,
    BACKBLAZE_B2_ENDPOINT_TEMPLATE,
    CLOUDFLARE_R2_ENDPOINT_TEMPLATE,
)
from shared.models import StorageProvider
from .local_provider import LocalStorageProvider
from .s3_provider import S3CompatibleProvider
from .storage_provider import S3StorageProvider


class StorageProviderFactory:
    """Factory for creating storage provider instances."""

    @staticmethod
    def endpoint_for(config: ServiceConfig) -> str:
        """
        Resolve the S3 endpoint URL for a provider.

        An explicit ``storage_endpoint`` always wins.

        Raises:
            ValueError: If the provider needs settings that are missing
        """
        if config.storage_endpoint:
            return config.storage_endpoint

        provider = config.storage_provider
        if provider == StorageProvider.CLOUDFLARE_R2:
            if not config.storage_account_id:
                raise ValueError("Cloudflare R2 requires STORAGE_ACCOUNT_ID")
            return CLOUDFLARE_R2_ENDPOINT_TEMPLATE.format(account_id=config.storage_account_id)

        if provider == StorageProvider.BACKBLAZE_B2:
            if not config.storage_region:
                raise ValueError("Backblaze B2 requires STORAGE_REGION (e.g. us-west-004)")
            return BACKBLAZE_B2_ENDPOINT_TEMPLATE.format(region=config.storage_region)

        if provider == StorageProvider.AWS_S3:
            return AWS_S3_ENDPOINT_TEMPLATE.format(region=config.storage_region or "us-east-1")

        raise ValueError("Generic S3 storage requires STORAGE_ENDPOINT")

    @staticmethod
    def create(config: ServiceConfig) -> S3StorageProvider:
        """
        Create a storage provider instance.

        Args:
            config: Service configuration naming the provider and its credentials

        Returns:
            Storage provider instance

        Raises:
            ValueError: If provider type is not supported or misconfigured
        """
        if config.storage_provider == StorageProvider.LOCAL:
            return LocalStorageProvider(config.local_storage_path, config.storage_bucket)

        if config.storage_provider in (StorageProvider.CLOUDFLARE_R2, StorageProvider.BACKBLAZE_B2,
                                       StorageProvider.AWS_S3, StorageProvider.GENERIC_S3):
            region = config.storage_region
            if config.storage_provider == StorageProvider.CLOUDFLARE_R2:
                region = 'auto'  # R2 uses 'auto' region
            return S3CompatibleProvider(
                bucket_name=config.storage_bucket,
                endpoint_url=StorageProviderFactory.endpoint_for(config),
                access_key_id=config.storage_access_key_id,
                secret_access_key=config.storage_secret_access_key,
                region=region,
            )

        raise ValueError(f"Unknown provider type: {config.storage_provider}")

    @staticmethod
    def get_provider_name(provider_type: StorageProvider) -> str:
        """Get human-readable provider name."""
        names = {
            StorageProvider.CLOUDFLARE_R2: "Cloudflare R2",
            StorageProvider.BACKBLAZE_B2: "Backblaze B2",
            StorageProvider.AWS_S3: "Amazon S3",
            StorageProvider.GENERIC_S3: "Generic S3-Compatible",
            StorageProvider.LOCAL: "Local Filesystem",
        }
        return names.get(provider_type, "Unknown")
