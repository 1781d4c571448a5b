"""
Normalization of incoming file handles.

SanitizedFile wraps whatever a caller hands to an uploader (a filesystem
path, raw bytes, a binary stream, a stored-file handle) and exposes one
canonical view of it: original filename, a filesystem-safe filename,
extension, content type, size and byte content.
"""

import mimetypes
import os
import re
from io import BytesIO
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Anything outside this set is replaced when sanitizing filenames
SANITIZE_REGEXP = re.compile(r"[^A-Za-z0-9.+_-]")

FileInput = Union[str, os.PathLike, bytes, bytearray, BinaryIO, "SanitizedFile", Any]


def detect_content_type(content: bytes, filename: Optional[str] = None) -> str:
    """
    Detect MIME type from magic bytes, falling back to the filename.

    Args:
        content: Leading bytes of the file (the whole file is fine)
        filename: Optional filename used for extension lookup

    Returns:
        MIME type string
    """
    if content.startswith(b'\xff\xd8\xff'):
        return 'image/jpeg'
    elif content.startswith(b'\x89PNG\r\n\x1a\n'):
        return 'image/png'
    elif content.startswith(b'GIF87a') or content.startswith(b'GIF89a'):
        return 'image/gif'
    elif content.startswith(b'RIFF') and b'WEBP' in content[:12]:
        return 'image/webp'
    elif content.startswith(b'%PDF-'):
        return 'application/pdf'
    elif content[4:8] == b'ftyp':
        return 'video/mp4'
    elif content.startswith(b'RIFF') and b'WAVE' in content[:12]:
        return 'audio/wav'

    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return DEFAULT_CONTENT_TYPE


def sanitize_filename(name: str) -> str:
    """Strip directories and replace unsafe characters with underscores."""
    # Handle both separators regardless of platform (browsers send either)
    name = name.replace("\\", "/").split("/")[-1]
    name = SANITIZE_REGEXP.sub("_", name)
    if not name.strip("._"):
        name = "_" + name
    return name


class SanitizedFile:
    """
    Canonical, read-only view of an uploaded or stored file.

    Content is read lazily and memoized, so a stream-backed file can be read
    any number of times.
    """

    def __init__(
        self,
        file: FileInput,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ):
        """
        Wrap a file handle.

        Args:
            file: Path, bytes, binary stream, SanitizedFile or stored-file handle
            filename: Explicit original filename (overrides any detected name)
            content_type: Explicit content type (overrides detection)
        """
        self._file = file
        self._content: Optional[bytes] = None
        self._path: Optional[Path] = None
        self._original_filename = filename
        self._content_type = content_type

        if isinstance(file, SanitizedFile):
            self._original_filename = filename or file.original_filename
            self._content_type = content_type or file._content_type
            self._path = file.path
            self._content = file._content
        elif isinstance(file, (str, os.PathLike)):
            self._path = Path(file)
            self._original_filename = filename or self._path.name
        elif isinstance(file, (bytes, bytearray)):
            self._content = bytes(file)
        else:
            # Streams and stored-file handles: borrow whatever metadata they carry
            if not self._original_filename:
                name = getattr(file, "filename", None) or getattr(file, "name", None)
                if name is None and hasattr(file, "path"):
                    name = getattr(file, "path")
                if isinstance(name, (str, os.PathLike)):
                    self._original_filename = os.path.basename(os.fspath(name))
            if not self._content_type:
                carried = getattr(file, "content_type", None)
                if isinstance(carried, str) and carried:
                    self._content_type = carried

    def __repr__(self) -> str:
        return f"SanitizedFile(filename={self.filename!r}, content_type={self.content_type!r})"

    @property
    def original_filename(self) -> Optional[str]:
        """Filename as supplied by the client, unsanitized."""
        return self._original_filename

    @property
    def filename(self) -> Optional[str]:
        """Filesystem-safe version of the original filename."""
        if not self._original_filename:
            return None
        return sanitize_filename(self._original_filename)

    @property
    def extension(self) -> Optional[str]:
        """Lowercase extension without the dot, or None."""
        if not self.filename:
            return None
        suffix = Path(self.filename).suffix
        return suffix[1:].lower() if suffix else None

    @property
    def path(self) -> Optional[Path]:
        """Local filesystem path, when the file lives on disk."""
        return self._path

    @property
    def content_type(self) -> str:
        if self._content_type:
            return self._content_type
        return detect_content_type(self.read()[:16], self.filename)

    @property
    def size(self) -> int:
        if self._content is None and self._path is not None and self._path.exists():
            return self._path.stat().st_size
        return len(self.read())

    def read(self) -> bytes:
        """Return the full byte content."""
        if self._content is None:
            self._content = self._load()
        return self._content

    def open(self) -> BinaryIO:
        """Return a fresh binary stream over the content."""
        return BytesIO(self.read())

    def is_empty(self) -> bool:
        if self._file is None:
            return True
        if self._path is not None and self._content is None:
            return not self._path.exists() or self._path.stat().st_size == 0
        return len(self.read()) == 0

    def _load(self) -> bytes:
        if self._path is not None:
            with open(self._path, "rb") as f:
                return f.read()

        file = self._file
        if hasattr(file, "seek"):
            try:
                file.seek(0)
            except (OSError, ValueError):
                # Non-seekable streams are read from their current position
                pass
        data = file.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        return bytes(data)
