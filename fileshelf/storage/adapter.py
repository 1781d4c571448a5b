"""
Abstract base classes for storage backends.

Defines the interface that all storage implementations must follow, and the
handle type they return for stored files.
"""

from abc import ABC, abstractmethod
from typing import Optional

from fileshelf.config.settings import UploaderConfig
from fileshelf.errors import BackendError, NotFoundError, StorageError
from fileshelf.files.sanitized import SanitizedFile
from fileshelf.storage.paths import derive_path


class StoredFile(ABC):
    """
    Handle to content held by a storage backend.

    Handles are lazy: creating one performs no I/O. Content and metadata are
    fetched on first access.
    """

    def __init__(self, path: str):
        self._path = path

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={self._path!r})"

    @property
    def path(self) -> str:
        """Backend-relative store path."""
        return self._path

    @property
    @abstractmethod
    def url(self) -> str:
        """URL the file can be served from."""
        pass

    @property
    @abstractmethod
    def size(self) -> int:
        """Size in bytes."""
        pass

    @property
    @abstractmethod
    def content_type(self) -> Optional[str]:
        """MIME type recorded for the file, if known."""
        pass

    @abstractmethod
    def read(self) -> bytes:
        """
        Read the file content.

        Raises:
            NotFoundError: If the file does not exist
            BackendError: If the backend fails
        """
        pass

    @abstractmethod
    def delete(self) -> None:
        """Remove the file. Deleting a missing file is a no-op."""
        pass

    @abstractmethod
    def exists(self) -> bool:
        """Check whether the file currently exists in the backend."""
        pass


class StorageAdapter(ABC):
    """
    Abstract base class for storage backends.

    All storage implementations (filesystem, S3, etc.) must implement
    these methods so the uploader stays backend-agnostic.
    """

    backend_name = "abstract"

    def __init__(self, config: UploaderConfig):
        """
        Initialize the backend.

        Args:
            config: Uploader configuration
        """
        self.config = config

    def store_path(self, identifier: str, version: Optional[str] = None) -> str:
        """Path an identifier (and optional version) maps to."""
        return derive_path(identifier, self.config, version)

    @abstractmethod
    def store(self, file: SanitizedFile, path: str) -> StoredFile:
        """
        Persist a file at a store path, overwriting anything already there.

        Args:
            file: File to store
            path: Backend-relative destination path

        Returns:
            Handle to the stored file

        Raises:
            StorageError: If storage operation fails
        """
        pass

    @abstractmethod
    def retrieve(self, identifier: str, version: Optional[str] = None) -> StoredFile:
        """
        Build a handle for a stored file from its identifier.

        No content is fetched; reading the handle does that.

        Args:
            identifier: Identifier persisted on the owning record
            version: Optional version name

        Returns:
            Handle to the stored file
        """
        pass

    @abstractmethod
    def rename(self, file: StoredFile, new_path: str) -> StoredFile:
        """
        Move a stored file to a new path.

        Args:
            file: Handle of the file to move
            new_path: Backend-relative destination path

        Returns:
            Handle at the new path

        Raises:
            NotFoundError: If the source file does not exist
            StorageError: If the move fails
        """
        pass

    def delete(self, file: StoredFile) -> None:
        """
        Delete a stored file. Missing files are ignored.

        Args:
            file: Handle of the file to delete
        """
        file.delete()

    @abstractmethod
    def list_files(self, prefix: str = "") -> list[str]:
        """
        List store paths under a prefix.

        Args:
            prefix: Backend-relative path prefix

        Returns:
            List of store paths
        """
        pass


__all__ = [
    "StoredFile",
    "StorageAdapter",
    "StorageError",
    "NotFoundError",
    "BackendError",
]
