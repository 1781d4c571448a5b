"""
Version engine: named derivations of an uploaded file.

A version is a processor applied either to the original or to another
version's output (depends_on). Versions are ordered topologically once, at
declaration time, and each result is stored at the original's path with the
version name added as a directory segment.
"""

import logging
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Optional, Union

from fileshelf.common.logging_config import PerformanceTracker
from fileshelf.common.metrics import versions_processed_total
from fileshelf.errors import ConfigurationError
from fileshelf.files.sanitized import SanitizedFile
from fileshelf.storage.adapter import StorageAdapter, StoredFile

logger = logging.getLogger(__name__)

ProcessorResult = Union[bytes, BinaryIO, SanitizedFile]
Processor = Callable[[SanitizedFile], ProcessorResult]


@dataclass(frozen=True)
class Version:
    """A named derivation rule."""
    name: str
    processor: Processor
    depends_on: Optional[str] = None


def resolve_order(versions: Dict[str, Version]) -> List[str]:
    """
    Order version names so every version follows its dependency.

    Declaration order is kept wherever dependencies allow.

    Raises:
        ConfigurationError: On an unknown dependency or a dependency cycle
    """
    for version in versions.values():
        if version.depends_on is not None and version.depends_on not in versions:
            raise ConfigurationError(
                f"Version '{version.name}' depends on unknown version '{version.depends_on}'"
            )

    order: List[str] = []
    placed = set()
    remaining = list(versions)
    while remaining:
        ready = [
            name for name in remaining
            if versions[name].depends_on is None or versions[name].depends_on in placed
        ]
        if not ready:
            raise ConfigurationError(
                f"Version dependency cycle between: {', '.join(sorted(remaining))}"
            )
        for name in ready:
            order.append(name)
            placed.add(name)
            remaining.remove(name)
    return order


class VersionEngine:
    """
    Runs the declared version pipeline and stores its results.

    Configuration problems (duplicates, unknown dependencies, cycles) raise
    ConfigurationError as soon as the offending version is declared.
    """

    def __init__(self, versions: Iterable[Version] = ()):
        self._versions: Dict[str, Version] = {}
        self._order: List[str] = []
        pending: Dict[str, Version] = {}
        for version in versions:
            if version.name in pending:
                raise ConfigurationError(f"Duplicate version name: {version.name}")
            pending[version.name] = version
        self._order = resolve_order(pending)
        self._versions = pending

    def __len__(self) -> int:
        return len(self._versions)

    def __contains__(self, name: str) -> bool:
        return name in self._versions

    @property
    def order(self) -> List[str]:
        """Version names in processing order."""
        return list(self._order)

    def add(self, name: str, processor: Processor, depends_on: Optional[str] = None) -> Version:
        """
        Declare a version.

        Raises:
            ConfigurationError: If the name is taken or the dependency is invalid
        """
        if name in self._versions:
            raise ConfigurationError(f"Duplicate version name: {name}")
        version = Version(name, processor, depends_on)
        candidate = {**self._versions, name: version}
        self._order = resolve_order(candidate)
        self._versions = candidate
        return version

    def get(self, name: str) -> Version:
        return self._versions[name]

    def _derive(self, version: Version, source: SanitizedFile) -> SanitizedFile:
        status = "success"
        try:
            with PerformanceTracker(
                "process_version", logger, logging.DEBUG, version=version.name
            ):
                result = version.processor(source)
        except Exception:
            status = "failure"
            raise
        finally:
            versions_processed_total.labels(version=version.name, status=status).inc()

        if isinstance(result, SanitizedFile):
            return result
        return SanitizedFile(result, filename=source.original_filename)

    def process(
        self,
        source: SanitizedFile,
        identifier: str,
        storage: StorageAdapter,
    ) -> Dict[str, StoredFile]:
        """
        Derive and store every version.

        Args:
            source: Original file
            identifier: Identifier the versions are stored under
            storage: Backend to store into

        Returns:
            Mapping of version name to stored handle, in processing order
        """
        return self._run(self._order, source, identifier, storage, {})

    def _run(
        self,
        names: List[str],
        source: SanitizedFile,
        identifier: str,
        storage: StorageAdapter,
        existing: Dict[str, StoredFile],
    ) -> Dict[str, StoredFile]:
        outputs: Dict[str, SanitizedFile] = {}
        stored: Dict[str, StoredFile] = {}
        for name in names:
            version = self._versions[name]
            dependency = version.depends_on
            if dependency is None:
                input_file = source
            elif dependency in outputs:
                input_file = outputs[dependency]
            else:
                # Dependency is current in storage and was not regenerated
                input_file = SanitizedFile(
                    existing[dependency], filename=source.original_filename)

            derived = self._derive(version, input_file)
            outputs[name] = derived
            stored[name] = storage.store(derived, storage.store_path(identifier, name))
            logger.debug(f"Stored version '{name}' at {stored[name].path}")
        return stored

    def retrieve(self, identifier: str, storage: StorageAdapter) -> Dict[str, StoredFile]:
        """Handles for every version of an identifier, without processing."""
        return {name: storage.retrieve(identifier, name) for name in self._order}

    def recreate(
        self,
        source: SanitizedFile,
        identifier: str,
        storage: StorageAdapter,
        current: Dict[str, StoredFile],
    ) -> Dict[str, StoredFile]:
        """
        Regenerate versions that are missing or not at their path for identifier.

        A version whose handle already points at the derived path and exists
        is left untouched; anything depending on a regenerated version is
        regenerated too.

        Returns:
            Mapping of version name to the current handle
        """
        stale: List[str] = []
        for name in self._order:
            handle: Any = current.get(name)
            dependency = self._versions[name].depends_on
            if (
                handle is None
                or handle.path != storage.store_path(identifier, name)
                or dependency in stale
                or not handle.exists()
            ):
                stale.append(name)

        if not stale:
            logger.debug(f"Versions of {identifier} are current; nothing to recreate")
            return {name: current[name] for name in self._order}

        logger.info(f"Recreating versions {stale} for {identifier}")
        regenerated = self._run(stale, source, identifier, storage, current)
        return {name: regenerated.get(name, current.get(name)) for name in self._order}
