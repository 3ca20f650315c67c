"""Factory for creating blob storage instances."""

import os
from pathlib import Path

from ..config import CONNECTION_STRING_ENV, StoreConfig
from ..errors import ConfigError
from .azure import AzureBlobStore
from .base import BlobStore
from .fs import FilesystemBlobStore


def validate_azure_config(config: StoreConfig) -> None:
    """
    Early validation of Azure configuration.

    Raises:
        ConfigError: If the connection string is missing
    """
    if CONNECTION_STRING_ENV not in os.environ:
        raise ConfigError(
            f"Set {CONNECTION_STRING_ENV} and storage.container "
            "for Azure blob storage"
        )


def make_blob_store(config: StoreConfig) -> BlobStore:
    """
    Create the backend described by config.

    Call once per destination at startup and pass the instance to its
    consumers; backends hold their client for the process lifetime.

    Raises:
        ConfigError: If configuration is invalid
        BackendError: If the Azure container cannot be prepared
    """
    if config.provider == "azure":
        validate_azure_config(config)
        return AzureBlobStore.from_connection_string(
            os.environ[CONNECTION_STRING_ENV],
            config.container,
            prefix=config.prefix,
            page_size=config.page_size,
            max_concurrency=config.max_concurrency,
            block_size=config.block_size,
            create_container=config.create_container,
        )

    if config.provider == "fs":
        return FilesystemBlobStore(Path(config.container).expanduser())

    raise ConfigError(f"Provider {config.provider} not supported")
