"""
Data models for screening results.

All records are frozen: derived fields are computed once in __post_init__
and never mutated afterwards.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from skinscreen.config import CLASS_NAMES
from skinscreen.core.errors import ErrorKind


HISTOGRAM_BINS = 256


class SkinJudgment(Enum):
    """Skin-color heuristic label."""
    SKIN_DETECTED = "skin detected"
    SKIN_SUSPECTED = "skin suspected"
    NO_SKIN = "no skin"


class RiskTier(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Recommendation(Enum):
    ALLOW = "ALLOW"
    REVIEW = "REVIEW"
    BLOCK = "BLOCK"


class AnalysisStatus(Enum):
    OK = "ok"
    FAILED = "failed"


@dataclass(frozen=True)
class BoundingBox:
    """Corner-form box (x1, y1, x2, y2)."""
    x1: float
    y1: float
    x2: float
    y2: float

    def __post_init__(self):
        if self.x1 > self.x2 or self.y1 > self.y2:
            raise ValueError(
                f"Box corners out of order: ({self.x1}, {self.y1}, {self.x2}, {self.y2})"
            )

    @classmethod
    def from_center(cls, cx: float, cy: float, w: float, h: float) -> "BoundingBox":
        """Build a box from center/width/height form."""
        w = max(w, 0.0)
        h = max(h, 0.0)
        return cls(cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2)

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)

    def to_dict(self) -> dict:
        return {
            "x1": round(self.x1, 1),
            "y1": round(self.y1, 1),
            "x2": round(self.x2, 1),
            "y2": round(self.y2, 1),
        }


@dataclass(frozen=True)
class DetectionCandidate:
    """A single (class, confidence, box) proposal from the detector."""
    class_id: int
    class_name: str
    confidence: float
    box: BoundingBox

    @property
    def confidence_percent(self) -> float:
        return self.confidence * 100.0

    @property
    def display_text(self) -> str:
        return f"{self.class_name} ({self.confidence_percent:.1f}%)"

    def to_dict(self) -> dict:
        return {
            "class_id": self.class_id,
            "class_name": self.class_name,
            "confidence": round(self.confidence, 4),
            "box": self.box.to_dict(),
        }


@dataclass(frozen=True)
class DetectionSet:
    """
    Detections surviving suppression, in suppression order.

    Index 0 is the highest-confidence detection when the set is non-empty.
    """
    detections: tuple[DetectionCandidate, ...] = ()
    highest_index: int | None = field(init=False, default=None)
    max_confidence: float = field(init=False, default=0.0)
    class_max_confidences: Mapping[str, float] = field(init=False, default_factory=dict)
    detected_classes: tuple[str, ...] = field(init=False, default=())

    def __post_init__(self):
        # Single reduction pass for every aggregate
        object.__setattr__(self, "detections", tuple(self.detections))
        class_max = {name: 0.0 for name in CLASS_NAMES.values()}
        seen: list[str] = []
        best_index = None
        best_confidence = 0.0

        for i, det in enumerate(self.detections):
            if best_index is None or det.confidence > best_confidence:
                best_index = i
                best_confidence = det.confidence
            class_max[det.class_name] = max(class_max.get(det.class_name, 0.0), det.confidence)
            if det.class_name not in seen:
                seen.append(det.class_name)

        object.__setattr__(self, "highest_index", best_index)
        object.__setattr__(self, "max_confidence", best_confidence)
        object.__setattr__(self, "class_max_confidences", MappingProxyType(class_max))
        object.__setattr__(self, "detected_classes", tuple(seen))

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)

    def __getitem__(self, index: int) -> DetectionCandidate:
        return self.detections[index]

    @property
    def highest(self) -> DetectionCandidate | None:
        if self.highest_index is None:
            return None
        return self.detections[self.highest_index]

    def to_dict(self) -> dict:
        highest = self.highest
        return {
            "count": len(self.detections),
            "detected_classes": list(self.detected_classes),
            "max_confidence": round(self.max_confidence, 4),
            "highest": highest.to_dict() if highest else None,
            "class_max_confidences": {
                name: round(conf, 4) for name, conf in self.class_max_confidences.items()
            },
            "detections": [det.to_dict() for det in self.detections],
        }


@dataclass(frozen=True)
class ChannelHistogram:
    """256-bin probability distribution of one chroma channel over skin pixels."""
    bins: tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, "bins", tuple(float(b) for b in self.bins))
        if len(self.bins) != HISTOGRAM_BINS:
            raise ValueError(f"Histogram must have {HISTOGRAM_BINS} bins, got {len(self.bins)}")

    @property
    def total(self) -> float:
        return float(sum(self.bins))

    @property
    def is_empty(self) -> bool:
        return not any(self.bins)

    @property
    def peak_index(self) -> int:
        peak = 0
        for i, value in enumerate(self.bins):
            if value > self.bins[peak]:
                peak = i
        return peak

    def value_at(self, index: int) -> float:
        if 0 <= index < len(self.bins):
            return self.bins[index]
        return 0.0

    def to_dict(self) -> dict:
        return {
            "peak_index": self.peak_index,
            "bins": [round(b, 6) for b in self.bins],
        }


@dataclass(frozen=True)
class ThresholdResult:
    """Pass/fail of the skin ratio against one cut line."""
    threshold: float
    passes: bool

    def to_dict(self) -> dict:
        return {"threshold": self.threshold, "passes": self.passes}


@dataclass(frozen=True)
class SkinAnalysisRecord:
    """Skin-color analysis of one image. Ratios and concentrations are fractions."""
    total_skin_ratio: float
    extended_skin_ratio: float
    cr_concentration: float
    cb_concentration: float
    threshold_flags: Mapping[float, bool]
    judgment: SkinJudgment
    cr_histogram: ChannelHistogram
    cb_histogram: ChannelHistogram
    skin_pixel_count: int = 0
    extended_pixel_count: int = 0
    total_pixel_count: int = 0
    cr_mean: float = 0.0  # Mean Cr of skin pixels, normalized to [0, 1]
    cb_mean: float = 0.0
    skin_region_count: int = 0
    average_region_size: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "threshold_flags", MappingProxyType(dict(self.threshold_flags)))

    @property
    def lower_line_pass(self) -> bool:
        """Ratio clears the lower pass line (0.25 by default)."""
        lines = sorted(self.threshold_flags)
        return bool(lines) and self.threshold_flags[lines[0]]

    @property
    def upper_line_pass(self) -> bool:
        """Ratio clears the upper pass line (0.40 by default)."""
        lines = sorted(self.threshold_flags)
        return bool(lines) and self.threshold_flags[lines[-1]]

    @property
    def compactness(self) -> float:
        """Mean of the two channel concentrations."""
        return (self.cr_concentration + self.cb_concentration) / 2.0

    @property
    def summary(self) -> str:
        return (
            f"skin {self.total_skin_ratio * 100:.1f}%, "
            f"Cr {self.cr_concentration * 100:.1f}%, "
            f"Cb {self.cb_concentration * 100:.1f}%, "
            f"{self.judgment.value}"
        )

    def to_dict(self, include_histograms: bool = False) -> dict:
        data = {
            "total_skin_ratio": round(self.total_skin_ratio, 4),
            "extended_skin_ratio": round(self.extended_skin_ratio, 4),
            "cr_concentration": round(self.cr_concentration, 4),
            "cb_concentration": round(self.cb_concentration, 4),
            "threshold_flags": {
                f"{line:.2f}": passed for line, passed in sorted(self.threshold_flags.items())
            },
            "judgment": self.judgment.value,
            "skin_pixel_count": self.skin_pixel_count,
            "extended_pixel_count": self.extended_pixel_count,
            "total_pixel_count": self.total_pixel_count,
            "cr_mean": round(self.cr_mean, 3),
            "cb_mean": round(self.cb_mean, 3),
            "skin_region_count": self.skin_region_count,
            "average_region_size": round(self.average_region_size, 1),
        }
        if include_histograms:
            data["cr_histogram"] = self.cr_histogram.to_dict()
            data["cb_histogram"] = self.cb_histogram.to_dict()
        return data


@dataclass(frozen=True)
class FusionVerdict:
    """Combined detector + skin verdict."""
    combined_score: float
    risk_tier: RiskTier
    recommendation: Recommendation

    def to_dict(self) -> dict:
        return {
            "combined_score": round(self.combined_score, 4),
            "risk_tier": self.risk_tier.value,
            "recommendation": self.recommendation.value,
        }


@dataclass(frozen=True)
class ImageAnalysis:
    """Complete screening result for a single image."""
    image_name: str
    status: AnalysisStatus
    width: int = 0
    height: int = 0
    detections: DetectionSet | None = None
    skin: SkinAnalysisRecord | None = None
    verdict: FusionVerdict | None = None
    threshold_results: tuple[ThresholdResult, ...] = ()
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    processing_time_ms: float = 0.0
    config_used: dict[str, Any] = field(default_factory=dict)
    source: str | None = None  # Path the image was read from, None for in-memory bytes

    @classmethod
    def failed(
        cls,
        image_name: str,
        kind: ErrorKind,
        message: str,
        processing_time_ms: float = 0.0,
        config_used: dict | None = None,
    ) -> "ImageAnalysis":
        return cls(
            image_name=image_name,
            status=AnalysisStatus.FAILED,
            error_kind=kind,
            error_message=message,
            processing_time_ms=processing_time_ms,
            config_used=config_used or {},
        )

    @property
    def ok(self) -> bool:
        return self.status is AnalysisStatus.OK

    @property
    def heuristics_agree(self) -> bool | None:
        """
        Whether the skin judgment and the fusion tier point the same way.

        "skin detected" pairs with HIGH, "skin suspected" with MEDIUM and
        "no skin" with LOW. None for failed images.
        """
        if self.skin is None or self.verdict is None:
            return None
        expected = {
            SkinJudgment.SKIN_DETECTED: RiskTier.HIGH,
            SkinJudgment.SKIN_SUSPECTED: RiskTier.MEDIUM,
            SkinJudgment.NO_SKIN: RiskTier.LOW,
        }
        return expected[self.skin.judgment] is self.verdict.risk_tier

    def to_dict(self, include_histograms: bool = False) -> dict:
        return {
            "image_name": self.image_name,
            "status": self.status.value,
            "width": self.width,
            "height": self.height,
            "detections": self.detections.to_dict() if self.detections else None,
            "skin": self.skin.to_dict(include_histograms) if self.skin else None,
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "agreement": self.heuristics_agree,
            "threshold_results": [t.to_dict() for t in self.threshold_results],
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_message": self.error_message,
            "processing_time_ms": round(self.processing_time_ms, 2),
            "config_used": self.config_used,
            "source": self.source,
        }


@dataclass
class BatchReport:
    """Outcome of one batch run."""
    timestamp: str
    results: list[ImageAnalysis]
    skipped: list[str] = field(default_factory=list)
    cancelled: bool = False

    @classmethod
    def create(
        cls,
        results: list[ImageAnalysis],
        skipped: list[str] | None = None,
        cancelled: bool = False,
    ) -> "BatchReport":
        return cls(
            timestamp=datetime.now().isoformat(),
            results=results,
            skipped=skipped or [],
            cancelled=cancelled,
        )

    @property
    def successful_images(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed_images(self) -> int:
        return len(self.results) - self.successful_images

    def to_dict(self, include_histograms: bool = False) -> dict:
        return {
            "timestamp": self.timestamp,
            "total_images": len(self.results) + len(self.skipped),
            "successful_images": self.successful_images,
            "failed_images": self.failed_images,
            "cancelled": self.cancelled,
            "skipped": self.skipped,
            "results": [r.to_dict(include_histograms) for r in self.results],
        }
