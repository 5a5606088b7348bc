# =============================================================================
# L4 Moving Objects - Confidence Scoring
# =============================================================================
# The scorer is injectable: any callable
#   scorer(obj, config, dt, seen_width_old, transform_status) -> float
# Its result is clamped to [0, 1] before the min_confidence gate.
# =============================================================================

import math
from typing import Callable

from .config import (
    BankConfig,
    CONFIDENCE_WIDTH_WEIGHT,
    CONFIDENCE_TIMING_WEIGHT,
    CONFIDENCE_TRANSFORM_WEIGHT,
)
from .types import MovingObject, TransformStatus

ConfidenceScorer = Callable[[MovingObject, BankConfig, float, float, TransformStatus], float]


def width_similarity(width_a: float, width_b: float) -> float:
    """Ratio of the smaller to the larger width, 1.0 if both are zero."""
    larger = max(width_a, width_b)
    if larger <= 0.0:
        return 1.0
    return min(width_a, width_b) / larger


def default_confidence(obj: MovingObject, config: BankConfig, dt: float,
                       seen_width_old: float, transform_status: TransformStatus) -> float:
    """
    Heuristic confidence of a tracked object.

    Sum of:
    - config.base_confidence
    - agreement of the seen widths at the old and new time
    - a bonus if the tracked scans are separated by a positive time span
    - the fraction of the six transform lookups that succeeded
    """
    confidence = config.base_confidence
    confidence += CONFIDENCE_WIDTH_WEIGHT * width_similarity(obj.seen_width, seen_width_old)
    if dt > 0.0:
        confidence += CONFIDENCE_TIMING_WEIGHT
    confidence += CONFIDENCE_TRANSFORM_WEIGHT * transform_status.success_count / 6.0
    return confidence


def clamp_confidence(value: float) -> float:
    """Clamp to [0, 1]; NaN counts as no confidence."""
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, float(value)))


def score(scorer: ConfidenceScorer, obj: MovingObject, config: BankConfig,
          seen_width_old: float, transform_status: TransformStatus) -> float:
    """Run the scorer for obj and clamp the result."""
    return clamp_confidence(scorer(obj, config, obj.dt, seen_width_old, transform_status))
