"""
Exception hierarchy shared by every fileshelf component.
"""


class FileshelfError(Exception):
    """Base class for all fileshelf errors."""
    pass


class ConfigurationError(FileshelfError):
    """Raised for missing or invalid configuration, including version dependency cycles."""
    pass


class StorageError(FileshelfError):
    """Exception raised for storage-related errors."""
    pass


class NotFoundError(StorageError):
    """Raised when a cached or stored file is requested but does not exist."""
    pass


class BackendError(StorageError):
    """Raised when the underlying storage client fails (transport, auth, quota)."""
    pass
