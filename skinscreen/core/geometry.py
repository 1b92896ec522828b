"""
Coordinate mapping between original image pixels and the square detector canvas.
"""

from dataclasses import dataclass

import cv2
import numpy as np

from skinscreen.core.errors import InvalidImageGeometry
from skinscreen.core.models import BoundingBox


@dataclass(frozen=True)
class LetterboxGeometry:
    """
    Scale and padding that place an image on an S x S detector canvas.

    In letterbox mode the image keeps its aspect ratio (scale_x == scale_y)
    and is centered with symmetric padding. In stretch mode each axis is
    scaled independently and there is no padding.
    """
    width: int
    height: int
    size: int
    scale_x: float
    scale_y: float
    pad_top: int = 0
    pad_bottom: int = 0
    pad_left: int = 0
    pad_right: int = 0
    letterbox: bool = True

    @classmethod
    def fit(cls, width: int, height: int, size: int = 640, letterbox: bool = True) -> "LetterboxGeometry":
        """
        Compute the canvas geometry for an image.

        Args:
            width: Original image width in pixels
            height: Original image height in pixels
            size: Side of the square detector canvas
            letterbox: Preserve aspect ratio and pad (True) or stretch (False)

        Returns:
            LetterboxGeometry for the image

        Raises:
            InvalidImageGeometry: If width or height is not positive
        """
        if width <= 0 or height <= 0:
            raise InvalidImageGeometry(f"Image has zero area: {width}x{height}")
        if size <= 0:
            raise InvalidImageGeometry(f"Canvas size must be positive, got {size}")

        if not letterbox:
            return cls(
                width=width,
                height=height,
                size=size,
                scale_x=size / width,
                scale_y=size / height,
                letterbox=False,
            )

        scale = min(size / width, size / height)
        new_w = max(1, int(width * scale))
        new_h = max(1, int(height * scale))

        delta_w = size - new_w
        delta_h = size - new_h
        top = delta_h // 2
        left = delta_w // 2

        return cls(
            width=width,
            height=height,
            size=size,
            scale_x=scale,
            scale_y=scale,
            pad_top=top,
            pad_bottom=delta_h - top,
            pad_left=left,
            pad_right=delta_w - left,
            letterbox=True,
        )

    @property
    def scaled_size(self) -> tuple[int, int]:
        """(width, height) of the image content on the canvas."""
        return (
            self.size - self.pad_left - self.pad_right,
            self.size - self.pad_top - self.pad_bottom,
        )

    @property
    def padding(self) -> tuple[int, int, int, int]:
        """(top, bottom, left, right)"""
        return (self.pad_top, self.pad_bottom, self.pad_left, self.pad_right)

    def to_original(self, box: BoundingBox) -> BoundingBox:
        """Map a canvas-space box back to original image pixels, clamped to the image."""
        x1 = (box.x1 - self.pad_left) / self.scale_x
        y1 = (box.y1 - self.pad_top) / self.scale_y
        x2 = (box.x2 - self.pad_left) / self.scale_x
        y2 = (box.y2 - self.pad_top) / self.scale_y

        return BoundingBox(
            x1=_clamp(x1, 0.0, float(self.width)),
            y1=_clamp(y1, 0.0, float(self.height)),
            x2=_clamp(x2, 0.0, float(self.width)),
            y2=_clamp(y2, 0.0, float(self.height)),
        )

    def to_canvas(self, box: BoundingBox) -> BoundingBox:
        """Map an original-image box onto the detector canvas."""
        return BoundingBox(
            x1=box.x1 * self.scale_x + self.pad_left,
            y1=box.y1 * self.scale_y + self.pad_top,
            x2=box.x2 * self.scale_x + self.pad_left,
            y2=box.y2 * self.scale_y + self.pad_top,
        )

    def prepare(self, image: np.ndarray, padding_color: int = 114) -> np.ndarray:
        """
        Resize (and pad) a BGR image to the S x S canvas.

        Args:
            image: BGR image matching this geometry's width/height
            padding_color: Gray level of the letterbox border

        Returns:
            BGR uint8 canvas of shape (S, S, 3)
        """
        h, w = image.shape[:2]
        if (w, h) != (self.width, self.height):
            raise InvalidImageGeometry(
                f"Image is {w}x{h} but geometry was fitted for {self.width}x{self.height}"
            )

        if not self.letterbox:
            return cv2.resize(image, (self.size, self.size), interpolation=cv2.INTER_LINEAR)

        new_w, new_h = self.scaled_size
        resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)
        color = (padding_color, padding_color, padding_color)
        return cv2.copyMakeBorder(
            resized,
            self.pad_top,
            self.pad_bottom,
            self.pad_left,
            self.pad_right,
            cv2.BORDER_CONSTANT,
            value=color,
        )

    def to_blob(self, image: np.ndarray, padding_color: int = 114) -> np.ndarray:
        """Build the float32 [1, 3, S, S] RGB input tensor, scaled to [0, 1]."""
        canvas = self.prepare(image, padding_color)
        rgb = cv2.cvtColor(canvas, cv2.COLOR_BGR2RGB).astype(np.float32) / 255.0
        # HWC -> CHW, add batch dimension
        return np.ascontiguousarray(rgb.transpose(2, 0, 1)[np.newaxis, ...])


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
