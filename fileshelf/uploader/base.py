"""
Upload lifecycle orchestrator.

An Uploader owns one mounted file and its versions and moves it through

    EMPTY -> CACHED -> STORED, STORED -> RENAMING -> STORED, * -> EMPTY

- cache(): stage a received file; the record has not been saved yet
- store(): persist the original and every version, write the identifier
- retrieve_from_store(): rebuild handles from a persisted identifier
- check_stale() + rename(): follow an identifier change on the record,
  then bring the versions in line with the renamed original
"""

import copy
import logging
import mimetypes
import uuid
from enum import Enum
from typing import Dict, Iterable, Optional, Union

from fileshelf.common.logging_config import PerformanceTracker
from fileshelf.common.metrics import renames_total
from fileshelf.config.settings import UploaderConfig
from fileshelf.errors import ConfigurationError
from fileshelf.files.sanitized import FileInput, SanitizedFile
from fileshelf.storage.adapter import StorageAdapter, StoredFile
from fileshelf.storage.factory import create_storage
from fileshelf.storage.paths import derive_path
from fileshelf.uploader.cache import FileCache
from fileshelf.uploader.callbacks import CallbackRegistry
from fileshelf.uploader.mount import Record
from fileshelf.uploader.versions import Version, VersionEngine

logger = logging.getLogger(__name__)


class UploaderState(str, Enum):
    EMPTY = "empty"
    CACHED = "cached"
    STORED = "stored"
    RENAMING = "renaming"


class Uploader:
    """
    Lifecycle state machine for one uploaded file.

    The uploader is synchronous: every storage call and version processor
    blocks. Use one instance per mounted attribute.
    """

    def __init__(
        self,
        config: UploaderConfig,
        record: Optional[Record] = None,
        mounted_as: Optional[str] = None,
        versions: Union[VersionEngine, Iterable[Version]] = (),
        storage: Optional[StorageAdapter] = None,
        cache: Optional[FileCache] = None,
        callbacks: Optional[CallbackRegistry] = None,
    ):
        """
        Initialize an uploader.

        Args:
            config: Immutable uploader configuration
            record: Owning record, if mounted
            mounted_as: Name of the record attribute holding the identifier
            versions: Version declarations or a prepared VersionEngine
            storage: Storage backend (created from config on first use if omitted)
            cache: Upload cache (created from config on first use if omitted)
            callbacks: Lifecycle callbacks

        Raises:
            ConfigurationError: If the version declarations are invalid
        """
        self.config = config
        self.record = record
        self.mounted_as = mounted_as
        self.version_engine = versions if isinstance(versions, VersionEngine) else VersionEngine(versions)
        self.callbacks = callbacks or CallbackRegistry()
        self._storage = storage
        self._cache = cache

        self.state = UploaderState.EMPTY
        self._file: Optional[Union[SanitizedFile, StoredFile]] = None
        self._versions: Dict[str, StoredFile] = {}
        self._identifier: Optional[str] = None
        self._cache_id: Optional[str] = None
        self._generated_name: Optional[str] = None

        # Rename state, valid for one save cycle
        self._rename = False
        self._original_file: Optional[StoredFile] = None
        self._pending_identifier: Optional[str] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self.state.value}, identifier={self._identifier!r})"

    # ---- collaborators ----

    @property
    def storage(self) -> StorageAdapter:
        if self._storage is None:
            self._storage = create_storage(self.config)
        return self._storage

    @property
    def cache_store(self) -> FileCache:
        if self._cache is None:
            self._cache = FileCache(self.config)
        return self._cache

    # ---- accessors ----

    @property
    def file(self) -> Optional[Union[SanitizedFile, StoredFile]]:
        """Cached file while CACHED, stored handle once STORED."""
        return self._file

    @property
    def blank(self) -> bool:
        return self._file is None

    @property
    def identifier(self) -> Optional[str]:
        return self._identifier

    @property
    def cache_id(self) -> Optional[str]:
        return self._cache_id

    @property
    def rename_pending(self) -> bool:
        return self._rename

    @property
    def original_file(self) -> Optional[StoredFile]:
        return self._original_file

    @property
    def versions(self) -> Dict[str, StoredFile]:
        return dict(self._versions)

    def version(self, name: str) -> Optional[StoredFile]:
        if name not in self.version_engine:
            raise KeyError(f"Unknown version: {name}")
        return self._versions.get(name)

    def url(self, version: Optional[str] = None) -> Optional[str]:
        """URL of the stored file or one of its versions; None until stored."""
        handle = self.version(version) if version else self._file
        if isinstance(handle, StoredFile):
            return handle.url
        return None

    def read(self) -> Optional[bytes]:
        return self._file.read() if self._file is not None else None

    def filename(self) -> Optional[str]:
        """
        Identifier to store the current file under.

        Override to customize naming. Defaults to the sanitized original
        filename, or a random name when the upload carries none.
        """
        if not isinstance(self._file, SanitizedFile):
            return None
        if self._file.filename:
            return self._file.filename
        if self._generated_name is None:
            extension = mimetypes.guess_extension(self._file.content_type) or ""
            self._generated_name = f"{uuid.uuid4().hex}{extension}"
        return self._generated_name

    def store_path(self, identifier: Optional[str] = None, version: Optional[str] = None) -> str:
        """
        Store path for an identifier.

        Defaults to the identifier the next store() or rename() would use,
        falling back to the one already stored.
        """
        identifier = identifier or self._pending_identifier or self.filename() or self._identifier
        if not identifier:
            raise ValueError("No identifier available to derive a store path")
        return derive_path(identifier, self.config, version)

    # ---- cache ----

    def cache(self, new_file: FileInput) -> Optional[str]:
        """
        Stage a received file.

        Empty input is ignored.

        Returns:
            The cache id, or None if nothing was cached
        """
        new_file = SanitizedFile(new_file)
        if new_file.is_empty():
            logger.debug("Ignoring empty upload")
            return None

        with self.callbacks.around("cache", self, new_file):
            cache_id = self.cache_store.cache(new_file)
            self._file = new_file
            self._cache_id = cache_id
            self._generated_name = None
            self.state = UploaderState.CACHED
        return cache_id

    def retrieve_from_cache(self, cache_id: str) -> None:
        """
        Re-attach a file staged by an earlier cache() call.

        Raises:
            NotFoundError: If the cache id is unknown
        """
        with self.callbacks.around("retrieve_from_cache", self, cache_id):
            self._file = self.cache_store.retrieve(cache_id)
            self._cache_id = cache_id
            self._generated_name = None
            self.state = UploaderState.CACHED

    # ---- store ----

    def store(self, new_file: Optional[FileInput] = None) -> Optional[StoredFile]:
        """
        Persist the original and all versions.

        Args:
            new_file: A cache id (str) to load from the cache, a file to store
                directly, or None to store the currently cached file

        Returns:
            Handle of the stored original, or None if there is nothing to store
        """
        if isinstance(new_file, str):
            self.retrieve_from_cache(new_file)
        elif new_file is not None:
            sanitized = SanitizedFile(new_file)
            if sanitized.is_empty():
                logger.debug("Ignoring empty upload")
                return None
            self._file = sanitized
            self._cache_id = None
            self._generated_name = None

        if not isinstance(self._file, SanitizedFile):
            # Nothing received, or already stored
            return self._file

        source = self._file
        identifier = self._pending_identifier or self.filename()
        with PerformanceTracker("store", logger, identifier=identifier, backend=self.storage.backend_name):
            with self.callbacks.around("store", self, source):
                stored = self.storage.store(source, self.store_path(identifier))
                versions = self.version_engine.process(source, identifier, self.storage)

                self._file = stored
                self._versions = versions
                self._identifier = identifier
                self._cache_id = None
                self._pending_identifier = None
                self.state = UploaderState.STORED
                if self.record is not None and self.mounted_as:
                    self.record.write_identifier(self.mounted_as, identifier)
        return stored

    def retrieve_from_store(self, identifier: str) -> StoredFile:
        """
        Rebuild handles for a stored file and its versions. No processing runs.
        """
        with self.callbacks.around("retrieve_from_store", self, identifier):
            self._file = self.storage.retrieve(identifier)
            self._versions = self.version_engine.retrieve(identifier, self.storage)
            self._identifier = identifier
            self._cache_id = None
            self.state = UploaderState.STORED
        return self._file

    # ---- rename ----

    def is_stale_record(self) -> bool:
        """
        True if the record is persisted and its mounted attribute changed.

        Raises:
            ConfigurationError: If the record cannot answer
        """
        if self.record is None or not self.mounted_as:
            return False
        try:
            return bool(self.record.is_persisted()) and bool(
                self.record.attribute_changed(self.mounted_as))
        except Exception as e:
            raise ConfigurationError(
                f"Could not determine whether '{self.mounted_as}' changed: {e}"
            ) from e

    def check_stale(self) -> bool:
        """
        Decide whether the next rename() moves the stored file.

        A rename is pending only for a stored file on a mounted record whose
        attribute changed, and never while a cached upload is waiting.

        Returns:
            Whether a rename is pending
        """
        self._rename = bool(
            isinstance(self._file, StoredFile)
            and self.record is not None
            and self._cache_id is None
            and self.is_stale_record()
        )

        if self._rename:
            new_identifier = self.record.read_identifier(self.mounted_as)
            if not new_identifier:
                self._rename = False
                raise ConfigurationError(
                    f"Record has no identifier for '{self.mounted_as}' to rename to")
            self._original_file = copy.copy(self._file)
            self._pending_identifier = new_identifier
            logger.info(f"Rename pending: {self._identifier} -> {new_identifier}")
        return self._rename

    def rename(self) -> bool:
        """
        Move the stored file to its new identifier, then recreate versions.

        Versions are recreated on every call, including when no rename was
        pending. Backend errors propagate and nothing is rolled back.

        Returns:
            True
        """
        if not self._rename:
            self.recreate_versions()
            return True

        new_identifier = self._pending_identifier
        previous_versions = dict(self._versions)
        self.state = UploaderState.RENAMING
        try:
            with PerformanceTracker("rename", logger, identifier=new_identifier):
                with self.callbacks.around("rename", self):
                    self._file = self.storage.rename(
                        self._original_file, self.store_path(new_identifier))
                    self._identifier = new_identifier
                    self._original_file = None
                    self._pending_identifier = None
                    self._rename = False
                    self.state = UploaderState.STORED
                    self.recreate_versions()
                    self._remove_replaced(previous_versions)
        except Exception:
            renames_total.labels(status="failure").inc()
            raise
        renames_total.labels(status="success").inc()
        return True

    def recreate_versions(self) -> Dict[str, StoredFile]:
        """
        Bring every version in line with the stored original.

        Versions already stored at their path for the current identifier are
        left alone.
        """
        if self.state != UploaderState.STORED or not self.version_engine or self._file is None:
            return self.versions

        source = SanitizedFile(self._file, filename=self._identifier)
        self._versions = self.version_engine.recreate(
            source, self._identifier, self.storage, self._versions)
        return self.versions

    def _remove_replaced(self, previous: Dict[str, StoredFile]) -> None:
        for name, handle in previous.items():
            current = self._versions.get(name)
            if current is None or current.path != handle.path:
                self.storage.delete(handle)

    # ---- remove ----

    def remove(self) -> None:
        """Delete the stored original and versions. Missing files are ignored."""
        with self.callbacks.around("remove", self):
            for handle in self._versions.values():
                self.storage.delete(handle)
            if isinstance(self._file, StoredFile):
                self.storage.delete(self._file)

            self._file = None
            self._versions = {}
            self._identifier = None
            self._cache_id = None
            self._rename = False
            self._original_file = None
            self._pending_identifier = None
            self.state = UploaderState.EMPTY
