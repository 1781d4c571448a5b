"""
Media processing helpers for deriving versions.
"""

from fileshelf.media.processor import (
    MediaProcessingError,
    convert,
    resize_to_fill,
    resize_to_fit,
    resize_to_limit,
)

__all__ = [
    "MediaProcessingError",
    "convert",
    "resize_to_fill",
    "resize_to_fit",
    "resize_to_limit",
]
