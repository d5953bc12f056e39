"""Storage module - bucket/object provider abstraction and backends."""
from s3proxy.core.config import Provider, Settings, get_settings
from s3proxy.core.exceptions import ConfigurationError
from s3proxy.core.logging import get_logger
from s3proxy.storage.base import StorageProvider
from s3proxy.storage.local import LocalStorage
from s3proxy.storage.remote import RemoteStorage

logger = get_logger(__name__)


def create_storage_provider(config: Settings | None = None) -> StorageProvider:
    """Build the process-wide provider selected by ``cloud_provider``.

    Raises:
        ConfigurationError: If the provider is unknown
        AuthError: If the remote backend rejects the configured credentials
    """
    config = config or get_settings()
    provider = config.cloud_provider

    if provider == Provider.LOCAL:
        storage: StorageProvider = LocalStorage(
            config.cloud_filesystem_basedir,
            default_content_type=config.default_content_type,
            chunk_size=config.chunk_size,
        )
    elif provider == Provider.REMOTE:
        storage = RemoteStorage(
            identity=config.cloud_identity,
            secret=config.cloud_credential.get_secret_value(),
            region=config.cloud_region,
            endpoint_url=config.cloud_endpoint,
            addressing_style=config.cloud_addressing_style,
            default_content_type=config.default_content_type,
        )
    else:
        raise ConfigurationError(
            f"Unknown storage provider: {provider}",
            details={"provider": str(provider)},
        )

    logger.info("Storage provider selected", provider=storage.name)
    return storage


__all__ = [
    "StorageProvider",
    "LocalStorage",
    "RemoteStorage",
    "create_storage_provider",
]
