"""
fileshelf: upload handling with pluggable storage backends.

Typical use:

    config = UploaderConfig.from_settings()
    uploader = Uploader(config, versions=[Version("thumb", resize_to_fit(64, 64))])
    cache_id = uploader.cache(incoming_file)
    uploader.store(cache_id)
    uploader.url("thumb")
"""

from fileshelf.config.settings import AccessPolicy, StorageBackend, UploaderConfig
from fileshelf.errors import (
    BackendError,
    ConfigurationError,
    FileshelfError,
    NotFoundError,
    StorageError,
)
from fileshelf.files.sanitized import SanitizedFile
from fileshelf.media.processor import resize_to_fill, resize_to_fit, resize_to_limit, convert
from fileshelf.storage.factory import create_storage
from fileshelf.storage.paths import derive_path
from fileshelf.uploader import (
    CallbackRegistry,
    FileCache,
    Mounter,
    Record,
    Uploader,
    UploaderState,
    Version,
    VersionEngine,
)

__version__ = "0.1.0"

__all__ = [
    "AccessPolicy",
    "StorageBackend",
    "UploaderConfig",
    "FileshelfError",
    "ConfigurationError",
    "StorageError",
    "NotFoundError",
    "BackendError",
    "SanitizedFile",
    "create_storage",
    "derive_path",
    "CallbackRegistry",
    "FileCache",
    "Mounter",
    "Record",
    "Uploader",
    "UploaderState",
    "Version",
    "VersionEngine",
    "resize_to_fill",
    "resize_to_fit",
    "resize_to_limit",
    "convert",
]
