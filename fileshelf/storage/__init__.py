"""
Storage backend abstraction for file operations.

Provides adapters for filesystem and S3 storage backends.
"""

from fileshelf.storage.adapter import (
    BackendError,
    NotFoundError,
    StorageAdapter,
    StorageError,
    StoredFile,
)
from fileshelf.storage.factory import create_storage
from fileshelf.storage.filesystem import FilesystemStorage, LocalFile
from fileshelf.storage.paths import derive_path
from fileshelf.storage.s3 import S3File, S3Storage

__all__ = [
    "StorageAdapter",
    "StoredFile",
    "StorageError",
    "NotFoundError",
    "BackendError",
    "FilesystemStorage",
    "LocalFile",
    "S3Storage",
    "S3File",
    "create_storage",
    "derive_path",
]
