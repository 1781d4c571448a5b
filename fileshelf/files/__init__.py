"""
File normalization helpers.
"""

from fileshelf.files.sanitized import SanitizedFile, detect_content_type, sanitize_filename

__all__ = [
    "SanitizedFile",
    "detect_content_type",
    "sanitize_filename",
]
