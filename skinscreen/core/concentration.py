"""
Entropy-based concentration of chroma histograms.

A histogram piled into a few bins has low entropy and a concentration near 1;
a flat histogram has maximal entropy and a concentration near 0.
"""

import math

import cv2
import numpy as np

from skinscreen.core.models import HISTOGRAM_BINS, ChannelHistogram

MAX_ENTROPY = math.log2(HISTOGRAM_BINS)


def channel_histogram(channel: np.ndarray, mask: np.ndarray) -> ChannelHistogram:
    """
    Build a normalized 256-bin histogram over masked pixels only.

    Args:
        channel: Single 8-bit channel (e.g. Cr or Cb)
        mask: Boolean or 0/255 mask of the same size

    Returns:
        ChannelHistogram summing to 1.0, or all zeros if the mask is empty
    """
    if channel.shape[:2] != mask.shape[:2]:
        raise ValueError(f"Channel {channel.shape[:2]} and mask {mask.shape[:2]} differ in size")

    mask_u8 = (np.asarray(mask) > 0).astype(np.uint8)
    if channel.size == 0 or not mask_u8.any():
        return ChannelHistogram(tuple([0.0] * HISTOGRAM_BINS))

    hist = cv2.calcHist(
        [np.ascontiguousarray(channel, dtype=np.uint8)],
        [0],
        mask_u8,
        [HISTOGRAM_BINS],
        [0, 256],
    ).flatten().astype(np.float64)

    total = hist.sum()
    return ChannelHistogram(tuple(hist / total))


def shannon_entropy(histogram: ChannelHistogram) -> float:
    """Entropy in bits over the non-zero bins."""
    p = np.asarray(histogram.bins, dtype=np.float64)
    p = p[p > 0]
    if p.size == 0:
        return 0.0
    return float(-(p * np.log2(p)).sum())


def concentration(histogram: ChannelHistogram) -> float:
    """1 - entropy / log2(256), clamped to [0, 1]. Zero for an empty histogram."""
    if histogram.is_empty:
        return 0.0
    score = 1.0 - shannon_entropy(histogram) / MAX_ENTROPY
    return max(0.0, min(1.0, score))
