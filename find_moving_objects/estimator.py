# =============================================================================
# Moving Objects - Kinematics Estimator
# =============================================================================
# Turns a candidate and its oldest matching segment into a TrackedObject:
# - positions at the new and the old stamp in the sensor frame
# - the same positions in the map, fixed and base frames when transforms are
#   available, the sensor coordinates otherwise
# - velocity, speed and direction per frame
# - clamped confidence from the pluggable confidence function
# =============================================================================

import logging
from typing import Optional, Tuple

import numpy as np

from .config import BankConfiguration
from .confidence import ConfidenceFunction, clamp_confidence, default_confidence
from .errors import TransformUnavailableError
from .transforms import (
    NullTransformService,
    RigidTransform,
    TransformService,
    chord_width,
    index_to_angle,
    polar_to_cartesian,
)
from .types import (
    Candidate,
    Frame,
    FrameKinematics,
    OldSegment,
    TrackedObject,
    TRANSFORMED_FRAMES,
)

logger = logging.getLogger(__name__)


def velocity_components(new_position: np.ndarray, old_position: np.ndarray,
                        dt: float) -> Tuple[np.ndarray, float, np.ndarray]:
    """
    Returns:
        Tuple (velocity, speed, normalized velocity). The normalized velocity
        is the zero vector when the speed is 0.
    """
    velocity = (new_position - old_position) / dt
    speed = float(np.linalg.norm(velocity))
    if 0.0 < speed:
        normalized = velocity / speed
    else:
        normalized = np.zeros(3)
    return velocity, speed, normalized


class KinematicsEstimator:
    """
    Computes position, velocity and confidence of tracked candidates.
    """

    def __init__(self, config: BankConfiguration,
                 transform_service: Optional[TransformService] = None,
                 confidence_function: ConfidenceFunction = default_confidence):
        self.config = config
        self.transform_service = transform_service or NullTransformService()
        self.confidence_function = confidence_function

    def frame_id(self, frame: Frame) -> str:
        return {
            Frame.SENSOR: self.config.sensor_frame,
            Frame.MAP: self.config.map_frame,
            Frame.FIXED: self.config.fixed_frame,
            Frame.BASE: self.config.base_frame,
        }[frame]

    def _lookup(self, frame: Frame, stamp: float) -> Optional[RigidTransform]:
        target = self.frame_id(frame)
        try:
            return self.transform_service.lookup_transform(
                target, self.config.sensor_frame, stamp, self.config.transform_timeout)
        except TransformUnavailableError as exc:
            logger.warning("Cannot determine transform to %s frame at time %.3f: %s",
                           frame.value, stamp, exc)
            return None

    def lookup_transform_pair(self, frame: Frame, old_stamp: float,
                              new_stamp: float) -> Optional[Tuple[RigidTransform, RigidTransform]]:
        """Transforms at the old and the new stamp, or None if either is missing."""
        if frame == Frame.SENSOR:
            identity = RigidTransform.identity()
            return identity, identity
        old_transform = self._lookup(frame, old_stamp)
        new_transform = self._lookup(frame, new_stamp)
        if old_transform is None or new_transform is None:
            return None
        return old_transform, new_transform

    def measure(self, candidate: Candidate, old: OldSegment,
                new_stamp: float, old_stamp: float) -> TrackedObject:
        """
        Geometry and kinematics of a tracked candidate in every frame.

        The confidence of the returned object is not set.
        """
        config = self.config
        dt = new_stamp - old_stamp

        angle_begin = index_to_angle(candidate.index_min, config.angle_min, config.angle_increment)
        angle_end = index_to_angle(candidate.index_max, config.angle_min, config.angle_increment)
        angle_closest = index_to_angle(candidate.closest_index, config.angle_min,
                                       config.angle_increment)

        new_point = polar_to_cartesian(candidate.distance, (angle_begin + angle_end) / 2.0)
        closest_point = polar_to_cartesian(candidate.closest_range, angle_closest)

        old_angle = index_to_angle((old.index_min + old.index_max) / 2.0,
                                   config.angle_min, config.angle_increment)
        old_point = polar_to_cartesian(old.distance, old_angle)
        seen_width_old = chord_width(old.range_at_index_min, old.range_at_index_max,
                                     old.width * config.angle_increment)

        obj = TrackedObject(
            stamp=new_stamp,
            old_stamp=old_stamp,
            sensor_frame=config.sensor_frame,
            angle_begin=angle_begin,
            angle_end=angle_end,
            distance_at_angle_begin=candidate.range_at_index_min,
            distance_at_angle_end=candidate.range_at_index_max,
            distance=candidate.distance,
            seen_width=candidate.seen_width,
            angle_for_closest_distance=angle_closest,
            closest_distance=candidate.closest_range,
            index_min=candidate.index_min,
            index_max=candidate.index_max,
            index_min_old=old.index_min,
            index_max_old=old.index_max,
            seen_width_old=seen_width_old,
        )

        for frame in (Frame.SENSOR,) + TRANSFORMED_FRAMES:
            pair = self.lookup_transform_pair(frame, old_stamp, new_stamp)
            if pair is None:
                # Fall back to the untransformed sensor coordinates
                old_transform = new_transform = RigidTransform.identity()
            else:
                old_transform, new_transform = pair

            position = new_transform.apply(new_point)
            old_position = old_transform.apply(old_point)
            velocity, speed, normalized = velocity_components(position, old_position, dt)

            obj.transform_success[frame] = pair is not None
            obj.frames[frame] = FrameKinematics(
                frame_id=self.frame_id(frame),
                position=position,
                old_position=old_position,
                closest_point=new_transform.apply(closest_point),
                velocity=velocity,
                speed=speed,
                velocity_normalized=normalized,
                transformed=pair is not None and frame != Frame.SENSOR,
            )

        return obj

    def score(self, obj: TrackedObject) -> float:
        """Clamped confidence of a measured object."""
        raw = self.confidence_function(obj, self.config, obj.dt,
                                       obj.seen_width_old, dict(obj.transform_success))
        return clamp_confidence(raw)

    def estimate(self, candidate: Candidate, old: OldSegment,
                 new_stamp: float, old_stamp: float) -> Optional[TrackedObject]:
        """
        Measure a tracked candidate and decide whether to report it.

        Returns:
            The object if it moves fast enough in at least one frame and its
            confidence reaches min_confidence, None otherwise
        """
        if new_stamp - old_stamp <= 0.0:
            logger.warning("Non-increasing stamps %.3f -> %.3f, skipping object",
                           old_stamp, new_stamp)
            return None

        obj = self.measure(candidate, old, new_stamp, old_stamp)
        if not obj.is_moving(self.config.min_speed):
            return None

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Moving object:\n%s", describe(obj))

        obj.confidence = self.score(obj)
        if obj.confidence < self.config.min_confidence:
            logger.debug("Dropping object [%d, %d] with confidence %.2f",
                         obj.index_min, obj.index_max, obj.confidence)
            return None
        return obj


def describe(obj: TrackedObject) -> str:
    """Multi-line position/velocity summary, one pair of lines per frame."""
    lines = []
    for frame, kin in obj.frames.items():
        x, y, z = kin.position
        vx, vy, vz = kin.velocity
        lines.append(f"  ({frame.value:<6})  x={x:<12.4f} y={y:<12.4f} z={z:<12.4f}")
        lines.append(f"            vx={vx:<11.4f} vy={vy:<11.4f} vz={vz:<11.4f} "
                     f"speed={kin.speed:.4f}")
    return "\n".join(lines)
