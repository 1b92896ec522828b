from __future__ import annotations

import pytest

from skinscreen.config import CLASS_NAMES, ScreeningConfig
from skinscreen.core.fusion import classify_risk, combined_score, fuse, recommend
from skinscreen.core.models import (
    BoundingBox,
    DetectionCandidate,
    DetectionSet,
    Recommendation,
    RiskTier,
)


def detections_with(confidence: float) -> DetectionSet:
    return DetectionSet((
        DetectionCandidate(0, CLASS_NAMES[0], confidence, BoundingBox(0, 0, 10, 10)),
    ))


def test_nothing_found_is_allowed(skin_record):
    verdict = fuse(DetectionSet(), skin_record(0.0))
    assert verdict.combined_score == 0.0
    assert verdict.risk_tier is RiskTier.LOW
    assert verdict.recommendation is Recommendation.ALLOW


def test_strong_detection_is_blocked(skin_record):
    verdict = fuse(detections_with(0.95), skin_record(0.5))
    assert verdict.combined_score == pytest.approx(0.77)
    assert verdict.risk_tier is RiskTier.HIGH
    assert verdict.recommendation is Recommendation.BLOCK


def test_moderate_signal_goes_to_review(skin_record):
    verdict = fuse(detections_with(0.5), skin_record(0.3))
    assert verdict.combined_score == pytest.approx(0.42)
    assert verdict.recommendation is Recommendation.REVIEW


@pytest.mark.parametrize(
    "score,tier",
    [(0.0, RiskTier.LOW), (0.399, RiskTier.LOW), (0.4, RiskTier.MEDIUM),
     (0.699, RiskTier.MEDIUM), (0.7, RiskTier.HIGH), (1.0, RiskTier.HIGH)],
)
def test_tier_boundaries(score, tier):
    assert classify_risk(score) is tier


def test_recommendation_mapping():
    assert recommend(RiskTier.HIGH) is Recommendation.BLOCK
    assert recommend(RiskTier.MEDIUM) is Recommendation.REVIEW
    assert recommend(RiskTier.LOW) is Recommendation.ALLOW


def test_score_is_clamped():
    config = ScreeningConfig(detection_weight=1.0, skin_weight=1.0)
    assert combined_score(1.0, 1.0, config) == 1.0


def test_weights_come_from_config(skin_record):
    config = ScreeningConfig(detection_weight=0.0, skin_weight=1.0)
    verdict = fuse(detections_with(0.99), skin_record(0.5), config)
    assert verdict.combined_score == pytest.approx(0.5)
    assert verdict.risk_tier is RiskTier.MEDIUM
