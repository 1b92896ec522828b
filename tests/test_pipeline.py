from __future__ import annotations

import threading
import time

import numpy as np
import pytest

from conftest import make_output
from skinscreen.core import pipeline as pipeline_module
from skinscreen.core.errors import ErrorKind
from skinscreen.core.models import (
    AnalysisStatus,
    Recommendation,
    RiskTier,
    SkinJudgment,
)
from skinscreen.utils.image_utils import decode_image

# One confident EXPOSED_BREAST_F box in the middle of a 64x64 image
CONFIDENT_HIT = make_output([[320, 320, 200, 200, 0.95, 0, 0, 0, 0]])


def test_skin_image_with_detection_is_blocked(engine_factory, pipeline_factory, skin_png):
    pipeline = pipeline_factory(engine_factory(CONFIDENT_HIT))
    result = pipeline.analyze(skin_png, "skin.png")

    assert result.ok
    assert (result.width, result.height) == (64, 64)
    assert result.detections.max_confidence == pytest.approx(0.95)
    assert result.skin.judgment is SkinJudgment.SKIN_DETECTED
    assert result.verdict.combined_score == pytest.approx(0.6 * 0.95 + 0.4 * 1.0)
    assert result.verdict.recommendation is Recommendation.BLOCK
    assert result.heuristics_agree is True
    assert result.error_kind is None


def test_clean_image_is_allowed(fake_engine, pipeline_factory, blue_png):
    result = pipeline_factory(fake_engine).analyze(blue_png, "blue.png")

    assert result.ok
    assert len(result.detections) == 0
    assert result.verdict.combined_score == 0.0
    assert result.verdict.risk_tier is RiskTier.LOW
    assert result.verdict.recommendation is Recommendation.ALLOW
    assert result.heuristics_agree is True


def test_detection_box_in_original_coordinates(engine_factory, pipeline_factory, skin_png):
    pipeline = pipeline_factory(engine_factory(CONFIDENT_HIT))
    box = pipeline.analyze(skin_png).detections[0].box
    # 64 px image scaled by 10 onto the canvas
    assert box.as_tuple() == pytest.approx((22, 22, 42, 42))


@pytest.mark.parametrize("data", [b"", b"not an image at all"])
def test_undecodable_bytes(fake_engine, pipeline_factory, data):
    result = pipeline_factory(fake_engine).analyze(data, "bad.png")

    assert result.status is AnalysisStatus.FAILED
    assert result.error_kind is ErrorKind.IMAGE_DECODE
    assert result.verdict is None
    assert result.detections is None
    assert result.heuristics_agree is None
    assert fake_engine.calls == 0


def test_schema_mismatch(engine_factory, pipeline_factory, skin_png):
    pipeline = pipeline_factory(engine_factory(np.zeros((1, 7, 10), dtype=np.float32)))
    result = pipeline.analyze(skin_png, "skin.png")

    assert not result.ok
    assert result.error_kind is ErrorKind.SCHEMA_MISMATCH
    assert "[1, 9, N]" in result.error_message


def test_no_model_loaded(engine_factory, pipeline_factory, skin_png):
    result = pipeline_factory(engine_factory(load=False)).analyze(skin_png)
    assert result.error_kind is ErrorKind.MODEL_LOAD


def test_timeout_produces_failed_result(engine_factory, pipeline_factory, skin_png):
    pipeline = pipeline_factory(engine_factory(delay=0.5))
    result = pipeline.analyze(skin_png, "slow.png", timeout=0.1)

    assert result.status is AnalysisStatus.FAILED
    assert result.error_kind is ErrorKind.TIMEOUT
    assert result.verdict is None


def test_zero_area_image(fake_engine, pipeline_factory):
    result = pipeline_factory(fake_engine).analyze_image(np.zeros((0, 10, 3), dtype=np.uint8))
    assert result.error_kind is ErrorKind.INVALID_IMAGE_GEOMETRY


def test_threshold_results_reported(fake_engine, pipeline_factory, skin_image):
    pipeline = pipeline_factory(fake_engine, thresholds=(0.5, 1.0))
    result = pipeline.analyze_image(skin_image, "skin")
    assert [(t.threshold, t.passes) for t in result.threshold_results] == [(0.5, True), (1.0, True)]


def test_use_model_swaps_engine_model(fake_engine, pipeline_factory):
    pipeline = pipeline_factory(fake_engine)
    pipeline.use_model("models/other.onnx")
    pipeline.use_model("models/other.onnx")
    assert fake_engine.loaded_paths == ["models/fake.onnx", "models/other.onnx"]


def test_result_serializes(engine_factory, pipeline_factory, skin_png):
    result = pipeline_factory(engine_factory(CONFIDENT_HIT)).analyze(skin_png, "skin.png")
    data = result.to_dict()
    assert data["status"] == "ok"
    assert data["verdict"]["recommendation"] == "BLOCK"
    assert data["skin"]["judgment"] == "skin detected"
    assert data["agreement"] is True
    assert data["config_used"]["model_path"] == "models/fake.onnx"


def test_failed_result_serializes(fake_engine, pipeline_factory):
    data = pipeline_factory(fake_engine).analyze(b"", "empty").to_dict()
    assert data["status"] == "failed"
    assert data["error_kind"] == "ImageDecodeError"
    assert data["verdict"] is None
    assert data["agreement"] is None


def test_skin_analysis_runs_while_inference_is_busy(engine_factory, pipeline_factory, skin_png, monkeypatch):
    engine = engine_factory(CONFIDENT_HIT, delay=0.5)
    pipeline = pipeline_factory(engine)
    analyze_skin = pipeline.skin_analyzer.analyze
    seen = []

    def watched(image):
        started = engine.started.wait(2)
        record = analyze_skin(image)
        seen.append((started, engine.running.is_set(), threading.current_thread().name))
        return record

    monkeypatch.setattr(pipeline.skin_analyzer, "analyze", watched)
    result = pipeline.analyze(skin_png, "skin.png")

    assert result.ok
    assert result.verdict.recommendation is Recommendation.BLOCK
    [(started, inference_busy, thread)] = seen
    assert started and inference_busy
    assert not thread.startswith("inference")


def test_decode_timeout(fake_engine, pipeline_factory, skin_png, monkeypatch):
    def slow_decode(data):
        time.sleep(0.5)
        return decode_image(data)

    monkeypatch.setattr(pipeline_module, "decode_image", slow_decode)
    result = pipeline_factory(fake_engine).analyze(skin_png, "slow.png", timeout=0.1)

    assert result.error_kind is ErrorKind.TIMEOUT
    assert "image decode" in result.error_message
    assert result.processing_time_ms < 500
    assert fake_engine.calls == 0
