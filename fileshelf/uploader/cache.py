"""
Upload cache: a local staging area for files that are not yet stored.

Each staged file lives at <cache_dir>/<cache_id>/<filename> under the
configured root. The cache_id is handed back to the caller (typically via a
hidden form field) so a later request can pick the file up again without a
re-upload. Entries are never removed by the upload lifecycle; clean() sweeps
old ones.
"""

import logging
import os
import re
import shutil
import time
import uuid
from datetime import datetime
from typing import Callable, Optional

from fileshelf.common.metrics import uploads_cached_total
from fileshelf.config.settings import UploaderConfig
from fileshelf.errors import NotFoundError
from fileshelf.files.sanitized import FileInput, SanitizedFile
from fileshelf.storage.filesystem import FilesystemStorage

logger = logging.getLogger(__name__)

CACHE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")

# Staged files without a usable name are stored under this one
FALLBACK_FILENAME = "file"


def generate_cache_id() -> str:
    """Return a fresh token like '20261018-1402-4711-9f3c2a1b'."""
    return f"{datetime.now():%Y%m%d-%H%M}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


class FileCache:
    """Stages uploads on the local filesystem, keyed by cache id."""

    def __init__(
        self,
        config: UploaderConfig,
        id_generator: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize the cache.

        Args:
            config: Uploader configuration (root and cache_dir)
            id_generator: Callable producing cache ids (defaults to generate_cache_id)
        """
        self.config = config
        self.storage = FilesystemStorage(config)
        self.id_generator = id_generator or generate_cache_id

    def _entry_dir(self, cache_id: str) -> str:
        return f"{self.config.cache_dir.strip('/')}/{cache_id}"

    def cache(self, file: FileInput) -> str:
        """
        Stage a file and return its cache id.

        Args:
            file: Anything SanitizedFile accepts

        Returns:
            The cache id the file can be retrieved by
        """
        file = file if isinstance(file, SanitizedFile) else SanitizedFile(file)
        cache_id = self.id_generator()
        if not CACHE_ID_PATTERN.match(cache_id):
            raise ValueError(f"Generated cache id is not path-safe: {cache_id!r}")

        filename = file.filename or FALLBACK_FILENAME
        entry = self.storage.resolve(self._entry_dir(cache_id))
        if entry.exists():
            # A reused id must not leave an older file beside the new one
            shutil.rmtree(entry)
        self.storage.store(file, f"{self._entry_dir(cache_id)}/{filename}")
        uploads_cached_total.inc()
        logger.info(f"Cached {filename} as {cache_id}")
        return cache_id

    def retrieve(self, cache_id: str) -> SanitizedFile:
        """
        Load a staged file.

        Args:
            cache_id: Token returned by cache()

        Returns:
            The staged file

        Raises:
            NotFoundError: If the id is malformed, unknown, or has no staged file
        """
        if not cache_id or not CACHE_ID_PATTERN.match(cache_id):
            raise NotFoundError(f"Unknown cache id: {cache_id!r}")

        staged = self.storage.list_files(self._entry_dir(cache_id))
        if not staged:
            raise NotFoundError(f"No cached file for cache id: {cache_id}")
        return SanitizedFile(self.storage.resolve(staged[0]))

    def clean(self, max_age_seconds: float, now: Optional[float] = None) -> int:
        """
        Remove cache entries older than max_age_seconds.

        Args:
            max_age_seconds: Entries last modified before now - max_age_seconds go
            now: Reference timestamp (defaults to time.time())

        Returns:
            Number of entries removed
        """
        cache_root = self.storage.resolve(self.config.cache_dir)
        if not cache_root.is_dir():
            return 0

        cutoff = (now if now is not None else time.time()) - max_age_seconds
        removed = 0
        for entry in cache_root.iterdir():
            if entry.is_dir() and entry.stat().st_mtime < cutoff:
                shutil.rmtree(entry)
                removed += 1

        if removed:
            logger.info(f"Removed {removed} stale cache entries")
        return removed
