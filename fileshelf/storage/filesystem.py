"""
Filesystem storage backend implementation.

Store paths are relative to the configured root directory:
- <store_dir>/<identifier> - originals
- <store_dir>/<version>/<identifier> - versions
- <cache_dir>/<cache_id>/<filename> - staged uploads
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from fileshelf.common.metrics import track_storage_operation
from fileshelf.config.settings import UploaderConfig
from fileshelf.errors import BackendError, NotFoundError, StorageError
from fileshelf.files.sanitized import SanitizedFile, detect_content_type
from fileshelf.storage.adapter import StorageAdapter, StoredFile

logger = logging.getLogger(__name__)


class LocalFile(StoredFile):
    """Handle to a file stored under the filesystem root."""

    def __init__(self, storage: "FilesystemStorage", path: str):
        super().__init__(path)
        self.storage = storage

    @property
    def backend_name(self) -> str:
        return self.storage.backend_name

    @property
    def full_path(self) -> Path:
        """Absolute filesystem path."""
        return self.storage.resolve(self.path)

    @property
    def url(self) -> str:
        if self.storage.config.asset_host:
            return f"{self.storage.config.asset_host.rstrip('/')}/{self.path}"
        return f"/{self.path}"

    @property
    def size(self) -> int:
        if not self.exists():
            return 0
        return self.full_path.stat().st_size

    @property
    def content_type(self) -> Optional[str]:
        if not self.exists():
            return None
        with open(self.full_path, 'rb') as f:
            head = f.read(16)
        return detect_content_type(head, self.full_path.name)

    @track_storage_operation("read")
    def read(self) -> bytes:
        path = self.full_path
        if not path.is_file():
            raise NotFoundError(f"File not found: {self.path}")
        try:
            with open(path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise BackendError(f"Failed to read file {self.path}: {e}") from e

    def delete(self) -> None:
        self.storage.remove_path(self.path)

    def exists(self) -> bool:
        path = self.full_path
        return path.exists() and path.is_file()


class FilesystemStorage(StorageAdapter):
    """
    Filesystem-based storage implementation.

    Renames use os.replace and are atomic within one filesystem.
    """

    backend_name = "file"

    def __init__(self, config: UploaderConfig):
        """
        Initialize filesystem storage.

        Args:
            config: Uploader configuration; config.root is the storage root
        """
        super().__init__(config)
        self.base_path = Path(config.root).resolve()
        self._ensure_structure()

    def _ensure_structure(self) -> None:
        """Create the root and store directory if they don't exist."""
        self.resolve(self.config.store_dir).mkdir(parents=True, exist_ok=True)

    def resolve(self, path: str) -> Path:
        """
        Convert a store path to an absolute filesystem path.

        Raises:
            StorageError: If the path escapes the storage root
        """
        resolved = (self.base_path / path.lstrip("/")).resolve()
        if resolved != self.base_path and self.base_path not in resolved.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return resolved

    def _to_store_path(self, path: Path) -> str:
        return path.relative_to(self.base_path).as_posix()

    @track_storage_operation("store")
    def store(self, file: SanitizedFile, path: str) -> LocalFile:
        target_path = self.resolve(path)
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            with open(target_path, 'wb') as f:
                shutil.copyfileobj(file.open(), f)
        except OSError as e:
            raise BackendError(f"Failed to store file at {path}: {e}") from e

        logger.debug(f"Stored {file.filename} at {path}")
        return LocalFile(self, self._to_store_path(target_path))

    def retrieve(self, identifier: str, version: Optional[str] = None) -> LocalFile:
        return LocalFile(self, self.store_path(identifier, version))

    @track_storage_operation("rename")
    def rename(self, file: StoredFile, new_path: str) -> LocalFile:
        source = self.resolve(file.path)
        target = self.resolve(new_path)
        if source == target:
            return LocalFile(self, self._to_store_path(target))
        if not source.is_file():
            raise NotFoundError(f"File not found: {file.path}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)
        except OSError as e:
            raise BackendError(f"Failed to rename {file.path} to {new_path}: {e}") from e

        self._prune_empty_parents(source.parent)
        logger.info(f"Renamed {file.path} to {new_path}")
        return LocalFile(self, self._to_store_path(target))

    @track_storage_operation("delete")
    def remove_path(self, path: str) -> None:
        """Delete the file at a store path; missing files are ignored."""
        target = self.resolve(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise BackendError(f"Failed to delete file {path}: {e}") from e

        self._prune_empty_parents(target.parent)

    def _prune_empty_parents(self, parent: Path) -> None:
        """Remove empty directories, keeping the root, store and cache directories."""
        protected = {
            self.base_path,
            self.resolve(self.config.store_dir),
            self.resolve(self.config.cache_dir),
        }
        while parent not in protected and self.base_path in parent.parents:
            try:
                if any(parent.iterdir()):
                    break
                parent.rmdir()
                parent = parent.parent
            except OSError:
                # Directory not empty or already removed
                break

    def list_files(self, prefix: str = "") -> list[str]:
        prefix_path = self.resolve(prefix) if prefix else self.base_path
        if not prefix_path.exists():
            return []
        if prefix_path.is_file():
            return [self._to_store_path(prefix_path)]

        return sorted(
            self._to_store_path(path)
            for path in prefix_path.rglob("*")
            if path.is_file()
        )
