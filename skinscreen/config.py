"""
Configuration parameters for explicit-content screening.
All thresholds are tunable from the command line or SKINSCREEN_* env vars.
"""

import os
from dataclasses import asdict, dataclass, fields

from dotenv import load_dotenv


# Detector class table (class id -> label), fixed by the trained model
CLASS_NAMES: dict[int, str] = {
    0: "EXPOSED_BREAST_F",
    1: "EXPOSED_BREAST_M",
    2: "EXPOSED_BUTTOCKS",
    3: "EXPOSED_GENITALIA_F",
    4: "EXPOSED_GENITALIA_M",
}


@dataclass
class ScreeningConfig:
    """Tunable screening parameters."""

    # Object detection
    model_path: str = "models/best_640n_0522.onnx"
    confidence_floor: float = 0.5
    iou_threshold: float = 0.4
    input_size: int = 640
    letterbox: bool = True  # False = stretch to square, independent X/Y scale
    padding_color: int = 114  # Gray letterbox border

    # Skin color detection (YCrCb color space, Y/Cr/Cb order)
    skin_lower: tuple[int, int, int] = (0, 133, 77)
    skin_upper: tuple[int, int, int] = (255, 173, 127)
    extended_lower: tuple[int, int, int] = (0, 120, 70)
    extended_upper: tuple[int, int, int] = (255, 180, 135)

    # Morphological operations (disk radius in pixels)
    primary_kernel_radius: int = 1
    extended_kernel_radius: int = 2

    # Skin ratio pass lines (fraction of image area)
    pass_lines: tuple[float, ...] = (0.25, 0.40)

    # Judgment concentration cut lines
    detected_concentration: float = 0.3  # Both channels, above upper pass line
    suspected_concentration: float = 0.4  # Either channel, between pass lines

    # Fusion weights
    detection_weight: float = 0.6
    skin_weight: float = 0.4

    # Risk tier cut lines on the combined score
    high_risk_line: float = 0.7
    medium_risk_line: float = 0.4

    # Batch processing
    max_workers: int = 4
    timeout_seconds: float = 30.0

    def __post_init__(self):
        if not 0.0 <= self.confidence_floor <= 1.0:
            raise ValueError(f"confidence_floor must be in [0, 1], got {self.confidence_floor}")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError(f"iou_threshold must be in [0, 1], got {self.iou_threshold}")
        if self.input_size <= 0:
            raise ValueError(f"input_size must be positive, got {self.input_size}")
        if len(self.pass_lines) != 2 or self.pass_lines[0] > self.pass_lines[1]:
            raise ValueError(f"pass_lines must be (lower, upper), got {self.pass_lines}")
        if self.medium_risk_line > self.high_risk_line:
            raise ValueError("medium_risk_line must not exceed high_risk_line")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")

    @property
    def lower_pass_line(self) -> float:
        return self.pass_lines[0]

    @property
    def upper_pass_line(self) -> float:
        return self.pass_lines[1]

    def to_dict(self) -> dict:
        """Convert config to dictionary for reporting."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, tuple):
                data[key] = list(value)
        return data

    @classmethod
    def from_env(cls, **overrides) -> "ScreeningConfig":
        """
        Build a config from SKINSCREEN_* environment variables.

        A .env file in the working directory is loaded first. Explicit
        keyword overrides win over the environment.

        Args:
            **overrides: Field values that take precedence

        Returns:
            ScreeningConfig instance
        """
        load_dotenv()

        values = {}
        for f in fields(cls):
            raw = os.environ.get(f"SKINSCREEN_{f.name.upper()}")
            if raw is None:
                continue
            default = getattr(cls, f.name, None)
            values[f.name] = _parse_env_value(raw, default)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _parse_env_value(raw: str, default):
    """Coerce an environment string to the type of the field default."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, tuple):
        parts = [p.strip() for p in raw.split(",") if p.strip()]
        cast = type(default[0]) if default else float
        return tuple(cast(p) for p in parts)
    return raw


# Default configuration instance
DEFAULT_CONFIG = ScreeningConfig()


# Visualization colors (BGR format for OpenCV)
COLORS = {
    "EXPOSED_BREAST_F": (0, 0, 255),
    "EXPOSED_BREAST_M": (0, 128, 255),
    "EXPOSED_BUTTOCKS": (0, 255, 255),
    "EXPOSED_GENITALIA_F": (255, 0, 255),
    "EXPOSED_GENITALIA_M": (255, 0, 128),
    "default": (0, 255, 0),
    "debug_skin": (0, 255, 0),
}
