"""
Per-image screening pipeline.

Decodes an image, runs object detection and skin analysis concurrently,
and fuses both into a verdict. Every recoverable failure is turned into a
failed ImageAnalysis so one bad image never aborts a batch.
"""

import logging
import time
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

import numpy as np

from skinscreen.config import ScreeningConfig
from skinscreen.core.detector import ObjectDetector
from skinscreen.core.engine import InferenceEngine
from skinscreen.core.errors import AnalysisTimeoutError, InvalidImageGeometry, ScreeningError
from skinscreen.core.fusion import fuse
from skinscreen.core.models import AnalysisStatus, ImageAnalysis
from skinscreen.core.skin_analyzer import SkinAnalyzer, evaluate_thresholds
from skinscreen.utils.image_utils import decode_image

logger = logging.getLogger(__name__)


class ScreeningPipeline:
    """Screen images for explicit content."""

    def __init__(
        self,
        engine: InferenceEngine,
        config: ScreeningConfig | None = None,
        thresholds: Iterable[float] = (),
    ):
        self.config = config or ScreeningConfig()
        self.engine = engine
        self.detector = ObjectDetector(engine, self.config)
        self.skin_analyzer = SkinAnalyzer(self.config)
        self.thresholds = tuple(thresholds)
        # Decode, detection and skin stages; two per image at a time plus slack
        self._stages = ThreadPoolExecutor(
            max_workers=2 * self.config.max_workers + 2,
            thread_name_prefix="stage",
        )

    def use_model(self, model_path: str) -> None:
        """Swap the detector model if it differs from the active one."""
        self.engine.ensure_model(model_path, timeout=self.config.timeout_seconds)

    def analyze(
        self,
        data: bytes,
        image_name: str = "unknown",
        timeout: float | None = None,
    ) -> ImageAnalysis:
        """
        Screen encoded image bytes.

        Args:
            data: Raw image bytes
            image_name: Name of the image for reporting
            timeout: Seconds allowed for the whole image (defaults to config)

        Returns:
            ImageAnalysis, flagged as failed on any recoverable error
        """
        start_time = time.time()
        deadline = self._deadline(timeout)

        try:
            image = self._await(self._stages.submit(decode_image, data), deadline, "image decode")
            return self._screen(image, image_name, deadline, start_time)
        except ScreeningError as e:
            return self.failure_record(image_name, e, start_time)

    def analyze_image(
        self,
        image: np.ndarray,
        image_name: str = "unknown",
        timeout: float | None = None,
    ) -> ImageAnalysis:
        """Screen an already decoded BGR image."""
        start_time = time.time()
        try:
            return self._screen(image, image_name, self._deadline(timeout), start_time)
        except ScreeningError as e:
            return self.failure_record(image_name, e, start_time)

    def _screen(
        self,
        image: np.ndarray,
        image_name: str,
        deadline: float,
        start_time: float,
    ) -> ImageAnalysis:
        h, w = image.shape[:2]
        if h == 0 or w == 0:
            raise InvalidImageGeometry(f"Image has zero area: {w}x{h}")

        # Both signal paths read the same pixels and share no state
        detection_future = self._stages.submit(self.detector.detect, image, self._remaining(deadline))
        skin_future = self._stages.submit(self.skin_analyzer.analyze, image)

        try:
            detections = self._await(detection_future, deadline, "object detection")
        except ScreeningError:
            skin_future.cancel()
            raise
        skin = self._await(skin_future, deadline, "skin analysis")

        verdict = fuse(detections, skin, self.config)
        threshold_results = evaluate_thresholds(skin, self.thresholds) if self.thresholds else ()

        processing_time = (time.time() - start_time) * 1000
        logger.info(
            f"{image_name}: {verdict.recommendation.value} "
            f"(score {verdict.combined_score:.3f}, {len(detections)} detections, "
            f"{skin.judgment.value}) in {processing_time:.0f} ms"
        )

        return ImageAnalysis(
            image_name=image_name,
            status=AnalysisStatus.OK,
            width=w,
            height=h,
            detections=detections,
            skin=skin,
            verdict=verdict,
            threshold_results=threshold_results,
            processing_time_ms=processing_time,
            config_used=self._config_to_dict(),
        )

    def failure_record(self, image_name: str, error: ScreeningError, start_time: float) -> ImageAnalysis:
        """Log a recovered error and build the failed record for it."""
        logger.warning(f"{image_name}: {error.kind.value}: {error.message}")
        return ImageAnalysis.failed(
            image_name=image_name,
            kind=error.kind,
            message=error.message,
            processing_time_ms=(time.time() - start_time) * 1000,
            config_used=self._config_to_dict(),
        )

    def _deadline(self, timeout: float | None) -> float:
        if timeout is None:
            timeout = self.config.timeout_seconds
        return time.monotonic() + timeout

    @staticmethod
    def _remaining(deadline: float) -> float:
        return max(0.0, deadline - time.monotonic())

    def _await(self, future: Future, deadline: float, what: str):
        remaining = self._remaining(deadline)
        try:
            return future.result(timeout=remaining)
        except FutureTimeout as e:
            if future.done():
                # Raised by the stage itself
                raise
            future.cancel()
            raise AnalysisTimeoutError(f"{what} did not finish in time") from e

    def _config_to_dict(self) -> dict:
        """Convert config to dictionary for reporting."""
        return {
            "model_path": self.engine.model_path,
            "confidence_floor": self.config.confidence_floor,
            "iou_threshold": self.config.iou_threshold,
            "input_size": self.config.input_size,
            "letterbox": self.config.letterbox,
            "pass_lines": list(self.config.pass_lines),
            "detection_weight": self.config.detection_weight,
            "skin_weight": self.config.skin_weight,
        }

    def close(self):
        """Release resources."""
        self._stages.shutdown(wait=False, cancel_futures=True)
        self.engine.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
