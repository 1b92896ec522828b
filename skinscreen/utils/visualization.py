"""
Visualization utilities for drawing annotations on images.
"""

import cv2
import numpy as np

from skinscreen.config import COLORS
from skinscreen.core.models import DetectionSet, ImageAnalysis


def draw_detection_annotations(
    image: np.ndarray,
    detections: DetectionSet,
    draw_labels: bool = True,
) -> np.ndarray:
    """
    Draw bounding boxes and labels for detections.

    Args:
        image: BGR image to annotate
        detections: Detections in original image coordinates
        draw_labels: Whether to draw "CLASS (xx.x%)" captions

    Returns:
        Annotated image copy
    """
    annotated = image.copy()

    for det in detections:
        color = _get_class_color(det.class_name)
        x1, y1, x2, y2 = (int(round(v)) for v in det.box.as_tuple())
        cv2.rectangle(annotated, (x1, y1), (x2, y2), color, 2)

        if draw_labels:
            label = det.display_text
            font = cv2.FONT_HERSHEY_SIMPLEX
            font_scale = 0.5
            thickness = 1

            (text_w, text_h), baseline = cv2.getTextSize(
                label, font, font_scale, thickness
            )

            label_x = x1
            label_y = y1 - 5

            # Ensure label is within image bounds
            if label_y - text_h < 0:
                label_y = y2 + text_h + 5

            cv2.rectangle(
                annotated,
                (label_x, label_y - text_h - 2),
                (label_x + text_w + 4, label_y + 2),
                color,
                -1,
            )
            cv2.putText(
                annotated,
                label,
                (label_x + 2, label_y),
                font,
                font_scale,
                (0, 0, 0),  # Black text
                thickness,
            )

    return annotated


def create_skin_overlay(image: np.ndarray, skin_mask: np.ndarray, alpha: float = 0.3) -> np.ndarray:
    """Tint skin pixels green."""
    overlay = np.zeros_like(image)
    overlay[skin_mask > 0] = COLORS["debug_skin"]
    return cv2.addWeighted(image, 1.0 - alpha, overlay, alpha, 0)


def draw_verdict_banner(image: np.ndarray, analysis: ImageAnalysis) -> np.ndarray:
    """Write the verdict and skin judgment across the top of the image."""
    annotated = image.copy()
    if analysis.verdict is None or analysis.skin is None:
        text = f"FAILED: {analysis.error_kind.value if analysis.error_kind else 'unknown'}"
    else:
        text = (
            f"{analysis.verdict.recommendation.value} "
            f"({analysis.verdict.risk_tier.value}, {analysis.verdict.combined_score:.2f}) | "
            f"{analysis.skin.judgment.value}"
        )

    cv2.rectangle(annotated, (0, 0), (annotated.shape[1], 28), (0, 0, 0), -1)
    cv2.putText(
        annotated,
        text,
        (8, 20),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.6,
        (255, 255, 255),
        1,
    )
    return annotated


def _get_class_color(class_name: str) -> tuple[int, int, int]:
    """Get BGR color for a detection class."""
    return COLORS.get(class_name, COLORS["default"])
