"""
Skin-color analysis.

Combines the skin masks with per-channel concentration scores into a
SkinAnalysisRecord and a judgment label. The judgment is a separate
heuristic from the fusion risk tier and is never overwritten by it.
"""

import logging
from collections.abc import Iterable

import numpy as np

from skinscreen.config import ScreeningConfig
from skinscreen.core.concentration import channel_histogram, concentration
from skinscreen.core.models import SkinAnalysisRecord, SkinJudgment, ThresholdResult
from skinscreen.core.skin_segmenter import SkinSegmenter, count_regions

logger = logging.getLogger(__name__)


def determine_judgment(
    skin_ratio: float,
    cr_concentration: float,
    cb_concentration: float,
    config: ScreeningConfig | None = None,
) -> SkinJudgment:
    """
    Label an image from its skin ratio and chroma concentrations.

    Above the upper pass line, both channels must reach the "detected"
    concentration for SKIN_DETECTED, otherwise the image is SKIN_SUSPECTED.
    Between the pass lines, either channel reaching the "suspected"
    concentration gives SKIN_SUSPECTED. All comparisons are inclusive.
    """
    config = config or ScreeningConfig()

    if skin_ratio >= config.upper_pass_line:
        if (cr_concentration >= config.detected_concentration
                and cb_concentration >= config.detected_concentration):
            return SkinJudgment.SKIN_DETECTED
        return SkinJudgment.SKIN_SUSPECTED

    if skin_ratio >= config.lower_pass_line:
        if (cr_concentration >= config.suspected_concentration
                or cb_concentration >= config.suspected_concentration):
            return SkinJudgment.SKIN_SUSPECTED
        return SkinJudgment.NO_SKIN

    return SkinJudgment.NO_SKIN


def threshold_flags(skin_ratio: float, pass_lines: Iterable[float]) -> dict[float, bool]:
    return {float(line): skin_ratio >= line for line in pass_lines}


def evaluate_thresholds(
    record: SkinAnalysisRecord,
    thresholds: Iterable[float],
) -> tuple[ThresholdResult, ...]:
    """Check the primary skin ratio against arbitrary cut lines."""
    return tuple(
        ThresholdResult(threshold=float(t), passes=record.total_skin_ratio >= t)
        for t in thresholds
    )


class SkinAnalyzer:
    """Compute skin ratios, chroma concentration and the judgment label."""

    def __init__(self, config: ScreeningConfig | None = None):
        self.config = config or ScreeningConfig()
        self.segmenter = SkinSegmenter(self.config)

    def analyze(self, image: np.ndarray) -> SkinAnalysisRecord:
        """
        Analyze skin-toned pixels of an image.

        Args:
            image: BGR image

        Returns:
            SkinAnalysisRecord with ratios as fractions of the image area
        """
        # Step 1: Segment
        seg = self.segmenter.segment(image)

        # Step 2: Histograms and concentration over skin pixels only
        cr_hist = channel_histogram(seg.cr_channel, seg.primary_mask)
        cb_hist = channel_histogram(seg.cb_channel, seg.primary_mask)
        cr_conc = concentration(cr_hist)
        cb_conc = concentration(cb_hist)

        # Step 3: Mean chroma of skin pixels
        if seg.primary_pixels > 0:
            cr_mean = float(seg.cr_channel[seg.primary_mask].mean()) / 255.0
            cb_mean = float(seg.cb_channel[seg.primary_mask].mean()) / 255.0
        else:
            cr_mean = cb_mean = 0.0

        regions, avg_region = count_regions(seg.primary_mask)

        # Step 4: Cut lines and judgment
        ratio = seg.primary_ratio
        judgment = determine_judgment(ratio, cr_conc, cb_conc, self.config)

        logger.debug(
            f"Skin ratio {ratio:.3f} (extended {seg.extended_ratio:.3f}), "
            f"Cr {cr_conc:.3f}, Cb {cb_conc:.3f} -> {judgment.value}"
        )

        return SkinAnalysisRecord(
            total_skin_ratio=ratio,
            extended_skin_ratio=seg.extended_ratio,
            cr_concentration=cr_conc,
            cb_concentration=cb_conc,
            threshold_flags=threshold_flags(ratio, self.config.pass_lines),
            judgment=judgment,
            cr_histogram=cr_hist,
            cb_histogram=cb_hist,
            skin_pixel_count=seg.primary_pixels,
            extended_pixel_count=seg.extended_pixels,
            total_pixel_count=seg.total_pixels,
            cr_mean=cr_mean,
            cb_mean=cb_mean,
            skin_region_count=regions,
            average_region_size=avg_region,
        )
