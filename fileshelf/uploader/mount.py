"""
Boundary with the data-mapping layer.

A record that owns an upload only needs to answer four questions about the
mounted attribute (see Record). Mounter replays the hook sequence a data
layer runs around save and destroy, so any persistence layer can drive an
Uploader by calling these methods from its own hooks.
"""

import logging
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from fileshelf.common.logging_config import clear_upload_id, set_upload_id
from fileshelf.files.sanitized import FileInput

if TYPE_CHECKING:
    from fileshelf.uploader.base import Uploader

logger = logging.getLogger(__name__)


@runtime_checkable
class Record(Protocol):
    """What an uploader needs from the record it is mounted on."""

    def is_persisted(self) -> bool:
        """True once the record has been saved at least once."""
        ...

    def attribute_changed(self, name: str) -> bool:
        """True if the named attribute changed since the record was last saved."""
        ...

    def read_identifier(self, name: str) -> Optional[str]:
        """Current identifier value stored in the named attribute."""
        ...

    def write_identifier(self, name: str, identifier: Optional[str]) -> None:
        """Set the identifier on the named attribute."""
        ...


class Mounter:
    """Drives one uploader from a record's save/destroy hooks."""

    def __init__(self, record: Record, mounted_as: str, uploader: "Uploader"):
        self.record = record
        self.mounted_as = mounted_as
        self.uploader = uploader
        uploader.record = record
        uploader.mounted_as = mounted_as

    @property
    def identifier(self) -> Optional[str]:
        return self.record.read_identifier(self.mounted_as)

    def assign(self, file: FileInput) -> Optional[str]:
        """Attach a newly received file; it is cached until the record saves."""
        return self.uploader.cache(file)

    def assign_cache_id(self, cache_id: str) -> None:
        """Re-attach a file cached by an earlier request."""
        self.uploader.retrieve_from_cache(cache_id)

    def load(self) -> None:
        """Point the uploader at the stored file named by the record, if any."""
        identifier = self.identifier
        if identifier and self.uploader.cache_id is None:
            self.uploader.retrieve_from_store(identifier)

    def before_save(self) -> bool:
        """
        Write the identifier a pending upload will be stored under, then run
        the staleness check.

        Returns:
            Whether a rename is pending
        """
        set_upload_id(self.uploader.cache_id)
        if self.uploader.cache_id is not None:
            self.record.write_identifier(self.mounted_as, self.uploader.filename())
        return self.uploader.check_stale()

    def after_save(self) -> None:
        """Commit a pending cached file, then rename if the record went stale."""
        try:
            if self.uploader.cache_id is not None:
                self.uploader.store()
            self.uploader.rename()
        finally:
            clear_upload_id()

    def after_destroy(self) -> None:
        self.uploader.remove()
        logger.info(f"Removed upload mounted as {self.mounted_as}")
