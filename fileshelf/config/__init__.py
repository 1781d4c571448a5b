from fileshelf.config.settings import (
    AccessPolicy,
    Settings,
    StorageBackend,
    UploaderConfig,
    get_settings,
)

__all__ = [
    "AccessPolicy",
    "Settings",
    "StorageBackend",
    "UploaderConfig",
    "get_settings",
]
