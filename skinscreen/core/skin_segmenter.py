"""
Skin segmentation module.
Creates binary masks of skin-toned pixels in the YCrCb color space.
"""

from dataclasses import dataclass

import cv2
import numpy as np
from skimage.measure import label
from skimage.morphology import disk

from skinscreen.config import ScreeningConfig


@dataclass(frozen=True)
class SkinSegmentation:
    """Transient segmentation output; masks are not kept beyond one analysis."""
    ycrcb: np.ndarray
    primary_mask: np.ndarray  # bool, narrow chroma range
    extended_mask: np.ndarray  # bool, wide chroma range
    total_pixels: int
    primary_pixels: int
    extended_pixels: int

    @property
    def primary_ratio(self) -> float:
        return self.primary_pixels / self.total_pixels if self.total_pixels > 0 else 0.0

    @property
    def extended_ratio(self) -> float:
        return self.extended_pixels / self.total_pixels if self.total_pixels > 0 else 0.0

    @property
    def cr_channel(self) -> np.ndarray:
        return self.ycrcb[:, :, 1]

    @property
    def cb_channel(self) -> np.ndarray:
        return self.ycrcb[:, :, 2]


class SkinSegmenter:
    """Threshold chroma channels to find skin-toned pixels."""

    def __init__(self, config: ScreeningConfig | None = None):
        self.config = config or ScreeningConfig()
        self._primary_kernel = disk(self.config.primary_kernel_radius).astype(np.uint8)
        self._extended_kernel = disk(self.config.extended_kernel_radius).astype(np.uint8)

    def segment(self, image: np.ndarray) -> SkinSegmentation:
        """
        Create the primary and extended skin masks.

        Args:
            image: BGR image

        Returns:
            SkinSegmentation with both masks and pixel counts
        """
        h, w = image.shape[:2]
        total_pixels = h * w

        if total_pixels == 0:
            empty = np.zeros((h, w), dtype=bool)
            return SkinSegmentation(
                ycrcb=np.zeros((h, w, 3), dtype=np.uint8),
                primary_mask=empty,
                extended_mask=empty,
                total_pixels=0,
                primary_pixels=0,
                extended_pixels=0,
            )

        # Step 1: Convert to YCrCb
        ycrcb = cv2.cvtColor(image, cv2.COLOR_BGR2YCrCb)

        # Step 2: Narrow range, opening then closing
        primary = cv2.inRange(
            ycrcb, np.array(self.config.skin_lower), np.array(self.config.skin_upper)
        )
        primary = cv2.morphologyEx(primary, cv2.MORPH_OPEN, self._primary_kernel)
        primary = cv2.morphologyEx(primary, cv2.MORPH_CLOSE, self._primary_kernel)

        # Step 3: Wide range, opening only
        extended = cv2.inRange(
            ycrcb, np.array(self.config.extended_lower), np.array(self.config.extended_upper)
        )
        extended = cv2.morphologyEx(extended, cv2.MORPH_OPEN, self._extended_kernel)

        primary_mask = primary > 0
        extended_mask = extended > 0

        return SkinSegmentation(
            ycrcb=ycrcb,
            primary_mask=primary_mask,
            extended_mask=extended_mask,
            total_pixels=total_pixels,
            primary_pixels=int(np.count_nonzero(primary_mask)),
            extended_pixels=int(np.count_nonzero(extended_mask)),
        )


def count_regions(mask: np.ndarray) -> tuple[int, float]:
    """
    Count 8-connected skin regions.

    Returns:
        Tuple of (region count, average region size in pixels)
    """
    if mask.size == 0 or not mask.any():
        return 0, 0.0
    labels, count = label(mask, connectivity=2, return_num=True)
    return int(count), float(np.count_nonzero(labels)) / count
