"""
Image loading and conversion utilities.
"""

import io
from pathlib import Path

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from skinscreen.core.errors import ImageDecodeError, InvalidImageGeometry


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode image bytes into a BGR array.

    Pillow handles formats OpenCV's reader misses (WebP, palette PNGs, ...).

    Args:
        data: Raw image bytes

    Returns:
        BGR image as numpy array (OpenCV format)

    Raises:
        ImageDecodeError: If the bytes are not a supported image
        InvalidImageGeometry: If the decoded image has zero area
    """
    if not data:
        raise ImageDecodeError("Empty image data")

    try:
        pil_image = Image.open(io.BytesIO(data))
        pil_image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise ImageDecodeError(f"Cannot decode image: {e}") from e

    # Convert to RGB if necessary
    if pil_image.mode != "RGB":
        pil_image = pil_image.convert("RGB")

    rgb_array = np.array(pil_image)
    if rgb_array.ndim != 3 or rgb_array.shape[0] == 0 or rgb_array.shape[1] == 0:
        raise InvalidImageGeometry(f"Decoded image has zero area: {rgb_array.shape}")

    # Convert RGB to BGR for OpenCV
    return rgb_to_bgr(rgb_array)


def load_image_from_path(path: str | Path) -> np.ndarray:
    """
    Load image from file path.

    Raises:
        ImageDecodeError: If the file cannot be read or decoded
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ImageDecodeError(f"Cannot read {path}: {e}") from e
    return decode_image(data)


def bgr_to_rgb(image: np.ndarray) -> np.ndarray:
    """Convert BGR (OpenCV) to RGB (PIL)."""
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def rgb_to_bgr(image: np.ndarray) -> np.ndarray:
    """Convert RGB to BGR (OpenCV)."""
    return cv2.cvtColor(image, cv2.COLOR_RGB2BGR)


def encode_image_to_bytes(image: np.ndarray, format: str = "PNG") -> bytes:
    """
    Encode image to bytes.

    Args:
        image: BGR image
        format: Output format (PNG, JPEG)

    Returns:
        Encoded image bytes
    """
    pil_image = Image.fromarray(bgr_to_rgb(image))

    buffer = io.BytesIO()
    pil_image.save(buffer, format=format)
    return buffer.getvalue()
