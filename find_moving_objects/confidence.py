# =============================================================================
# Moving Objects - Confidence
# =============================================================================
# Scoring functions deciding how much a tracked object is believed to be a
# real moving object. Any callable with the ConfidenceFunction signature can
# be handed to the detector; its result is clamped to [0, 1].
#
#   fn(obj, config, dt, seen_width_old, transform_success) -> float
# =============================================================================

import math
from typing import Callable, Dict

from .config import BankConfiguration
from .types import Frame, TrackedObject, TRANSFORMED_FRAMES

ConfidenceFunction = Callable[
    [TrackedObject, BankConfiguration, float, float, Dict[Frame, bool]], float]

# Weights of the default confidence function
WIDTH_CONSISTENCY_WEIGHT = 0.4
PROXIMITY_WEIGHT = 0.2
TRANSFORM_WEIGHT = 0.1


def clamp_confidence(value: float) -> float:
    """Bound a raw confidence to [0, 1]. Non-finite values count as 0."""
    if not math.isfinite(value):
        return 0.0
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return float(value)


def default_confidence(obj: TrackedObject,
                       config: BankConfiguration,
                       dt: float,
                       seen_width_old: float,
                       transform_success: Dict[Frame, bool]) -> float:
    """
    Base confidence plus three bonuses:
    - the object has kept its width between the old and the new scan
    - the object is close to the sensor
    - transforms were available, so frame velocities are meaningful
    """
    confidence = config.base_confidence

    widest = max(obj.seen_width, seen_width_old)
    if widest > 0.0:
        confidence += WIDTH_CONSISTENCY_WEIGHT * min(obj.seen_width, seen_width_old) / widest

    if config.max_distance > 0.0:
        closeness = 1.0 - min(obj.distance / config.max_distance, 1.0)
        confidence += PROXIMITY_WEIGHT * closeness

    available = sum(1 for frame in TRANSFORMED_FRAMES if transform_success.get(frame))
    confidence += TRANSFORM_WEIGHT * available / len(TRANSFORMED_FRAMES)

    return confidence


def constant_confidence(value: float) -> ConfidenceFunction:
    """Confidence function that ignores the object and returns `value`."""
    def confidence(obj, config, dt, seen_width_old, transform_success):
        return value
    return confidence
