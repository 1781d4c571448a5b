"""
Image processors for use as version processors.

Each factory returns a callable taking a SanitizedFile and returning the
encoded bytes of the processed image, in the source format unless stated
otherwise.
"""

import logging
from io import BytesIO
from typing import Callable, Optional, Tuple

from PIL import Image, ImageOps

from fileshelf.errors import FileshelfError
from fileshelf.files.sanitized import SanitizedFile

logger = logging.getLogger(__name__)

ImageProcessor = Callable[[SanitizedFile], bytes]

# Formats that cannot carry an alpha channel
OPAQUE_FORMATS = {"JPEG", "BMP"}


class MediaProcessingError(FileshelfError):
    """Exception raised during media processing."""
    pass


def load_image(file: SanitizedFile) -> Image.Image:
    """
    Decode an image file.

    Raises:
        MediaProcessingError: If the content is not a readable image
    """
    try:
        image = Image.open(BytesIO(file.read()))
        image.load()
        return image
    except (OSError, ValueError) as e:
        raise MediaProcessingError(f"Failed to open image {file.filename}: {e}") from e


def encode_image(image: Image.Image, format: str, **options) -> bytes:
    """Encode an image, dropping alpha for formats that cannot store it."""
    format = format.upper()
    if format == "JPG":
        format = "JPEG"
    if format in OPAQUE_FORMATS and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = BytesIO()
    try:
        image.save(buffer, format=format, **options)
    except (OSError, ValueError, KeyError) as e:
        raise MediaProcessingError(f"Failed to encode image as {format}: {e}") from e
    return buffer.getvalue()


def _fit_size(size: Tuple[int, int], width: int, height: int) -> Tuple[int, int]:
    ratio = min(width / size[0], height / size[1])
    return (max(1, round(size[0] * ratio)), max(1, round(size[1] * ratio)))


def resize_to_fit(width: int, height: int) -> ImageProcessor:
    """
    Scale (up or down) to fit within width x height, keeping aspect ratio.
    """
    def process(file: SanitizedFile) -> bytes:
        image = load_image(file)
        format = image.format or "PNG"
        resized = image.resize(_fit_size(image.size, width, height), Image.Resampling.LANCZOS)
        return encode_image(resized, format)

    process.__name__ = f"resize_to_fit_{width}x{height}"
    return process


def resize_to_limit(width: int, height: int) -> ImageProcessor:
    """
    Shrink to fit within width x height; smaller images are left as they are.
    """
    def process(file: SanitizedFile) -> bytes:
        image = load_image(file)
        format = image.format or "PNG"
        image.thumbnail((width, height), Image.Resampling.LANCZOS)
        return encode_image(image, format)

    process.__name__ = f"resize_to_limit_{width}x{height}"
    return process


def resize_to_fill(width: int, height: int, centering: Tuple[float, float] = (0.5, 0.5)) -> ImageProcessor:
    """
    Resize and crop to exactly width x height.
    """
    def process(file: SanitizedFile) -> bytes:
        image = load_image(file)
        format = image.format or "PNG"
        filled = ImageOps.fit(image, (width, height), Image.Resampling.LANCZOS, centering=centering)
        return encode_image(filled, format)

    process.__name__ = f"resize_to_fill_{width}x{height}"
    return process


def convert(format: str, quality: Optional[int] = None) -> ImageProcessor:
    """
    Re-encode in another format (e.g. 'JPEG', 'PNG', 'WEBP').
    """
    def process(file: SanitizedFile) -> bytes:
        options = {"quality": quality} if quality is not None else {}
        return encode_image(load_image(file), format, **options)

    process.__name__ = f"convert_{format.lower()}"
    return process
