from __future__ import annotations

import threading
import time

import numpy as np
import pytest

from skinscreen.config import ScreeningConfig
from skinscreen.core.concentration import channel_histogram
from skinscreen.core.engine import InferenceEngine
from skinscreen.core.models import SkinAnalysisRecord, SkinJudgment
from skinscreen.core.pipeline import ScreeningPipeline
from skinscreen.utils.image_utils import encode_image_to_bytes

# RGB (220, 170, 140) lands at roughly Y 181, Cr 155, Cb 105
SKIN_BGR = (140, 170, 220)
BLUE_BGR = (255, 0, 0)
NUM_OUTPUTS = 9  # 4 box params + 5 classes


class FakeEngine(InferenceEngine):
    """In-memory engine returning a canned output tensor."""

    def __init__(self, output=None, delay: float = 0.0):
        super().__init__()
        self.output = output
        self.delay = delay
        self.loaded_paths: list[str] = []
        self.calls = 0
        self.threads: set[str] = set()
        self.tensor_shapes: list[tuple] = []
        self.started = threading.Event()
        self.running = threading.Event()

    def _load(self, model_path: str) -> None:
        self.loaded_paths.append(model_path)

    def _run(self, tensor: np.ndarray) -> np.ndarray:
        self.calls += 1
        self.threads.add(threading.current_thread().name)
        self.tensor_shapes.append(tensor.shape)
        self.started.set()
        self.running.set()
        try:
            if self.delay:
                time.sleep(self.delay)
        finally:
            self.running.clear()
        if callable(self.output):
            return self.output(tensor)
        if self.output is None:
            return np.zeros((1, NUM_OUTPUTS, 0), dtype=np.float32)
        return self.output


def make_output(rows) -> np.ndarray:
    """Engine output [1, 9, N] from prediction rows [cx, cy, w, h, c0..c4]."""
    if not rows:
        return np.zeros((1, NUM_OUTPUTS, 0), dtype=np.float32)
    return np.asarray(rows, dtype=np.float32).T[np.newaxis, ...]


def solid_image(color, width: int = 64, height: int = 64) -> np.ndarray:
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :] = color
    return image


@pytest.fixture
def config() -> ScreeningConfig:
    return ScreeningConfig(max_workers=2, timeout_seconds=5.0)


@pytest.fixture
def fake_engine():
    engine = FakeEngine()
    engine.load_model("models/fake.onnx")
    yield engine
    engine.close()


@pytest.fixture
def engine_factory():
    created = []

    def factory(output=None, delay: float = 0.0, load: bool = True) -> FakeEngine:
        engine = FakeEngine(output=output, delay=delay)
        if load:
            engine.load_model("models/fake.onnx")
        created.append(engine)
        return engine

    yield factory
    for engine in created:
        engine.close()


@pytest.fixture
def pipeline_factory(config):
    created = []

    def factory(engine: InferenceEngine, **kwargs) -> ScreeningPipeline:
        pipeline = ScreeningPipeline(engine, kwargs.pop("config", config), **kwargs)
        created.append(pipeline)
        return pipeline

    yield factory
    for pipeline in created:
        pipeline.close()


@pytest.fixture
def skin_image() -> np.ndarray:
    return solid_image(SKIN_BGR)


@pytest.fixture
def blue_image() -> np.ndarray:
    return solid_image(BLUE_BGR)


@pytest.fixture
def half_skin_image() -> np.ndarray:
    image = solid_image(BLUE_BGR, 64, 64)
    image[:, :32] = SKIN_BGR
    return image


@pytest.fixture
def skin_png(skin_image) -> bytes:
    return encode_image_to_bytes(skin_image)


@pytest.fixture
def blue_png(blue_image) -> bytes:
    return encode_image_to_bytes(blue_image)


@pytest.fixture
def skin_record():
    """Factory for SkinAnalysisRecord with a given skin ratio."""

    def factory(
        ratio: float = 0.0,
        judgment: SkinJudgment = SkinJudgment.NO_SKIN,
    ) -> SkinAnalysisRecord:
        empty = channel_histogram(
            np.zeros((1, 1), dtype=np.uint8), np.zeros((1, 1), dtype=bool)
        )
        return SkinAnalysisRecord(
            total_skin_ratio=ratio,
            extended_skin_ratio=ratio,
            cr_concentration=0.0,
            cb_concentration=0.0,
            threshold_flags={0.25: ratio >= 0.25, 0.40: ratio >= 0.40},
            judgment=judgment,
            cr_histogram=empty,
            cb_histogram=empty,
        )

    return factory
