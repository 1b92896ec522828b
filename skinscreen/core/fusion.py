"""
Fusion of detector confidence and skin ratio into a risk verdict.
"""

from skinscreen.config import ScreeningConfig
from skinscreen.core.models import (
    DetectionSet,
    FusionVerdict,
    Recommendation,
    RiskTier,
    SkinAnalysisRecord,
)

RECOMMENDATIONS = {
    RiskTier.HIGH: Recommendation.BLOCK,
    RiskTier.MEDIUM: Recommendation.REVIEW,
    RiskTier.LOW: Recommendation.ALLOW,
}


def combined_score(
    max_confidence: float,
    skin_ratio: float,
    config: ScreeningConfig | None = None,
) -> float:
    """Weighted sum of detector confidence and skin ratio, clamped to [0, 1]."""
    config = config or ScreeningConfig()
    score = config.detection_weight * max_confidence + config.skin_weight * skin_ratio
    return max(0.0, min(1.0, score))


def classify_risk(score: float, config: ScreeningConfig | None = None) -> RiskTier:
    config = config or ScreeningConfig()
    if score >= config.high_risk_line:
        return RiskTier.HIGH
    elif score >= config.medium_risk_line:
        return RiskTier.MEDIUM
    else:
        return RiskTier.LOW


def recommend(tier: RiskTier) -> Recommendation:
    return RECOMMENDATIONS[tier]


def fuse(
    detections: DetectionSet,
    skin: SkinAnalysisRecord,
    config: ScreeningConfig | None = None,
) -> FusionVerdict:
    """
    Combine both signals into a verdict.

    Args:
        detections: Suppressed detections (max confidence is 0 when empty)
        skin: Skin analysis record (ratio as a fraction)
        config: Weights and risk cut lines

    Returns:
        FusionVerdict
    """
    config = config or ScreeningConfig()
    score = combined_score(detections.max_confidence, skin.total_skin_ratio, config)
    tier = classify_risk(score, config)
    return FusionVerdict(
        combined_score=score,
        risk_tier=tier,
        recommendation=recommend(tier),
    )
