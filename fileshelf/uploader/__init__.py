"""
Upload lifecycle: cache, versions, callbacks and the orchestrating Uploader.
"""

from fileshelf.uploader.base import Uploader, UploaderState
from fileshelf.uploader.cache import FileCache, generate_cache_id
from fileshelf.uploader.callbacks import CallbackRegistry
from fileshelf.uploader.mount import Mounter, Record
from fileshelf.uploader.versions import Version, VersionEngine

__all__ = [
    "Uploader",
    "UploaderState",
    "FileCache",
    "generate_cache_id",
    "CallbackRegistry",
    "Mounter",
    "Record",
    "Version",
    "VersionEngine",
]
