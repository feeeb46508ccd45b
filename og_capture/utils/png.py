"""PNG inspection helpers."""

import struct
from io import BytesIO
from typing import Tuple

from PIL import Image, UnidentifiedImageError

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class InvalidPngError(ValueError):
    """Raised when bytes are not a complete PNG image."""

    pass


def png_dimensions(data: bytes) -> Tuple[int, int]:
    """
    Validate PNG bytes and return their pixel size.

    Args:
        data: Encoded image

    Returns:
        Tuple of (width, height)

    Raises:
        InvalidPngError: If the data is not a decodable, non-empty PNG
    """
    if not data.startswith(PNG_SIGNATURE):
        raise InvalidPngError("Missing PNG signature")

    try:
        with Image.open(BytesIO(data)) as image:
            image.verify()
            width, height = image.size
    except (UnidentifiedImageError, OSError, SyntaxError, struct.error) as e:
        raise InvalidPngError(f"Corrupt PNG data: {e}")

    if width == 0 or height == 0:
        raise InvalidPngError(f"Empty PNG: {width}x{height}")

    return width, height
