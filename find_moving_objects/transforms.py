# =============================================================================
# Moving Objects - Geometry and Coordinate Transforms
# =============================================================================
# Polar/Cartesian conversion, law-of-cosines widths, rigid transforms and
# the transform service used to express objects in the map, fixed and base
# frames.
# =============================================================================

import bisect
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from .errors import TransformUnavailableError

logger = logging.getLogger(__name__)


def rotation_matrix_2d(theta: float) -> np.ndarray:
    """
    Creates a 2D rotation matrix.

    Args:
        theta: Rotation angle in radians

    Returns:
        2x2 rotation matrix
    """
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, -s], [s, c]])


def polar_to_cartesian(distance: float, angle: float) -> np.ndarray:
    """
    Point in the sensor plane.

    Sensor frame convention: x forward, y left, z up.

    Returns:
        Position [x, y, 0]
    """
    return np.array([distance * np.cos(angle), distance * np.sin(angle), 0.0])


def chord_width(range_a: float, range_b: float, angle: float) -> float:
    """
    Distance between two range readings separated by an angle.

    Law of cosines: w^2 = a^2 + b^2 - 2ab cos(angle)
    """
    squared = range_a * range_a + range_b * range_b - \
        2.0 * range_a * range_b * np.cos(angle)
    # Rounding can leave a tiny negative value for identical points
    return float(np.sqrt(max(squared, 0.0)))


def index_to_angle(index: float, angle_min: float, angle_increment: float) -> float:
    return index * angle_increment + angle_min


# =============================================================================
# Rigid Transforms
# =============================================================================

class RigidTransform:
    """
    Rotation followed by a translation, mapping points of a source frame into
    a target frame.
    """

    def __init__(self, rotation: Optional[np.ndarray] = None,
                 translation: Optional[np.ndarray] = None):
        self.rotation = np.eye(3) if rotation is None else np.asarray(rotation, dtype=float)
        self.translation = (np.zeros(3) if translation is None
                            else np.asarray(translation, dtype=float))
        if self.rotation.shape != (3, 3) or self.translation.shape != (3,):
            raise ValueError("Expected a 3x3 rotation and a 3-vector translation")

    @classmethod
    def identity(cls) -> "RigidTransform":
        return cls()

    @classmethod
    def from_yaw(cls, x: float, y: float, yaw: float, z: float = 0.0) -> "RigidTransform":
        """Planar pose: translation (x, y, z) and heading yaw (radians)."""
        rotation = np.eye(3)
        rotation[:2, :2] = rotation_matrix_2d(yaw)
        return cls(rotation, np.array([x, y, z]))

    @classmethod
    def from_quaternion(cls, translation, quaternion) -> "RigidTransform":
        """
        Args:
            translation: [x, y, z]
            quaternion: [x, y, z, w]
        """
        rotation = Rotation.from_quat(quaternion).as_matrix()
        return cls(rotation, np.asarray(translation, dtype=float))

    def apply(self, point: np.ndarray) -> np.ndarray:
        return self.rotation @ np.asarray(point, dtype=float) + self.translation

    def __mul__(self, other: "RigidTransform") -> "RigidTransform":
        return RigidTransform(self.rotation @ other.rotation,
                              self.rotation @ other.translation + self.translation)

    def inverse(self) -> "RigidTransform":
        rotation_t = self.rotation.T
        return RigidTransform(rotation_t, -rotation_t @ self.translation)

    def yaw(self) -> float:
        return float(Rotation.from_matrix(self.rotation).as_euler("zyx")[0])

    def __repr__(self):
        return (f"RigidTransform(translation={self.translation.tolist()}, "
                f"yaw={self.yaw():.3f})")


# =============================================================================
# Transform Services
# =============================================================================

class TransformService(ABC):
    """Source of transforms between named frames."""

    @abstractmethod
    def lookup_transform(self, target_frame: str, source_frame: str,
                         stamp: float, timeout: float) -> RigidTransform:
        """
        Transform mapping points in source_frame at time stamp into
        target_frame.

        Raises:
            TransformUnavailableError: no transform within the timeout
        """


class NullTransformService(TransformService):
    """Service without any transforms. Every frame falls back to the sensor."""

    def lookup_transform(self, target_frame, source_frame, stamp, timeout):
        raise TransformUnavailableError(
            f"No transform from {source_frame} to {target_frame}")


class TransformBuffer(TransformService):
    """
    In-memory store of stamped transforms.

    A lookup returns the transform stored at the closest stamp, provided it
    lies within `tolerance` seconds. Static transforms are valid at any time.
    Lookups between identical frames always return the identity.
    """

    def __init__(self, tolerance: float = 0.05):
        self.tolerance = tolerance
        self._stamps: Dict[Tuple[str, str], List[float]] = {}
        self._transforms: Dict[Tuple[str, str], List[RigidTransform]] = {}
        self._static: Dict[Tuple[str, str], RigidTransform] = {}

    def set_transform(self, target_frame: str, source_frame: str,
                      stamp: float, transform: RigidTransform):
        key = (target_frame, source_frame)
        stamps = self._stamps.setdefault(key, [])
        transforms = self._transforms.setdefault(key, [])
        pos = bisect.bisect_left(stamps, stamp)
        if pos < len(stamps) and stamps[pos] == stamp:
            transforms[pos] = transform
        else:
            stamps.insert(pos, stamp)
            transforms.insert(pos, transform)

    def set_static_transform(self, target_frame: str, source_frame: str,
                             transform: RigidTransform):
        self._static[(target_frame, source_frame)] = transform

    def lookup_transform(self, target_frame, source_frame, stamp, timeout):
        if target_frame == source_frame:
            return RigidTransform.identity()

        key = (target_frame, source_frame)
        if key in self._static:
            return self._static[key]

        stamps = self._stamps.get(key)
        if not stamps:
            raise TransformUnavailableError(
                f"No transform from {source_frame} to {target_frame}")

        pos = bisect.bisect_left(stamps, stamp)
        best = None
        for i in (pos - 1, pos):
            if 0 <= i < len(stamps):
                if best is None or abs(stamps[i] - stamp) < abs(stamps[best] - stamp):
                    best = i

        if abs(stamps[best] - stamp) > self.tolerance:
            raise TransformUnavailableError(
                f"Cannot determine transform from {source_frame} to "
                f"{target_frame} at time {stamp:.3f}")
        if stamps[best] != stamp:
            logger.debug("Transform %s -> %s at %.3f used for time %.3f",
                         source_frame, target_frame, stamps[best], stamp)
        return self._transforms[key][best]

    def clear(self):
        self._stamps.clear()
        self._transforms.clear()
        self._static.clear()
