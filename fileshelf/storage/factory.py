"""
Storage factory for creating storage adapter instances.

Selects the backend named by the uploader configuration.
"""

from fileshelf.config.settings import StorageBackend, UploaderConfig
from fileshelf.errors import ConfigurationError
from fileshelf.storage.adapter import StorageAdapter
from fileshelf.storage.filesystem import FilesystemStorage
from fileshelf.storage.s3 import S3Storage


def create_storage(config: UploaderConfig) -> StorageAdapter:
    """
    Create the storage adapter configured for an uploader.

    Args:
        config: Uploader configuration

    Returns:
        StorageAdapter instance (FilesystemStorage or S3Storage)

    Raises:
        ConfigurationError: If the backend is not supported or misconfigured
    """
    if config.storage == StorageBackend.FILE:
        return FilesystemStorage(config)
    elif config.storage == StorageBackend.S3:
        return S3Storage(config)
    else:
        raise ConfigurationError(f"Unsupported storage backend: {config.storage}")
