"""
Store path derivation.

The persisted identifier plus the uploader configuration fully determine
where a file lives in a backend; nothing here touches storage. Changing
this rule orphans every identifier already persisted.
"""

import posixpath
from typing import Optional

from fileshelf.config.settings import UploaderConfig


def derive_path(identifier: str, config: UploaderConfig, version: Optional[str] = None) -> str:
    """
    Compute the backend-relative store path for an identifier.

    Args:
        identifier: Identifier persisted on the owning record
        config: Uploader configuration (supplies store_dir)
        version: Optional version name, added as its own path segment

    Returns:
        Path such as 'uploads/avatar.png' or 'uploads/thumb/avatar.png'
    """
    # Normalized to match the paths backends hand back
    store_dir = posixpath.normpath(config.store_dir or ".").strip("/")
    if store_dir == ".":
        store_dir = ""
    segments = [store_dir, version or "", identifier.strip("/")]
    return "/".join(segment for segment in segments if segment)
