# =============================================================================
# Moving Objects - Types and Data Structures
# =============================================================================
# Sensor messages, per-scan candidates and tracked moving objects.
# =============================================================================

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum


# =============================================================================
# Enumerations
# =============================================================================

class Frame(Enum):
    """Reference frames in which positions and velocities are expressed."""
    SENSOR = "sensor"
    MAP = "map"
    FIXED = "fixed"
    BASE = "base"


# Frames reached through the transform service
TRANSFORMED_FRAMES = (Frame.MAP, Frame.FIXED, Frame.BASE)


class PointFieldType:
    """Datatype codes of point cloud fields (sensor_msgs/PointField)."""
    INT8 = 1
    UINT8 = 2
    INT16 = 3
    UINT16 = 4
    INT32 = 5
    UINT32 = 6
    FLOAT32 = 7
    FLOAT64 = 8


# =============================================================================
# Sensor Messages
# =============================================================================

@dataclass
class LaserScan:
    """Ordered range array of a planar laser scanner."""
    stamp: float                # Acquisition time (s)
    frame_id: str               # Sensor frame
    angle_min: float            # Angle of the first range (radians)
    angle_max: float            # Angle of the last range (radians)
    angle_increment: float      # Angle between two ranges (radians)
    ranges: np.ndarray          # Ranges (meters)
    range_min: float = 0.0
    range_max: float = float("inf")
    time_increment: float = 0.0
    scan_time: float = 0.0
    intensities: Optional[np.ndarray] = None


@dataclass
class PointField:
    """Layout of one field inside a point cloud point."""
    name: str
    offset: int                 # Byte offset from the start of the point
    datatype: int               # One of PointFieldType
    count: int = 1


@dataclass
class PointCloud:
    """Unordered 3-D points packed into a byte buffer."""
    stamp: float
    frame_id: str
    height: int                 # Number of rows
    width: int                  # Points per row
    fields: List[PointField]
    is_bigendian: bool
    point_step: int             # Bytes per point
    row_step: int               # Bytes per row
    data: bytes


# =============================================================================
# Detection Structures
# =============================================================================

@dataclass
class Candidate:
    """Contiguous run of consistent ranges in the newest scan."""
    index_min: int
    index_max: int
    range_sum: float
    closest_range: float
    closest_index: int
    farthest_range: float
    farthest_index: int
    range_at_index_min: float
    range_at_index_max: float
    seen_width: float           # Law-of-cosines chord between the run ends

    @property
    def nr_points(self) -> int:
        return self.index_max - self.index_min + 1

    @property
    def index_mean(self) -> int:
        return (self.index_min + self.index_max) // 2

    @property
    def distance(self) -> float:
        """Average range of the object."""
        return self.range_sum / self.nr_points


@dataclass
class LevelSegment:
    """Segment found around a seed index in one bank slot."""
    index_min: int
    index_max: int
    range_sum: float
    range_at_index_min: float
    range_at_index_max: float

    @property
    def width(self) -> int:
        return self.index_max - self.index_min + 1

    @property
    def index_mean(self) -> int:
        return (self.index_min + self.index_max) // 2

    @property
    def distance(self) -> float:
        return self.range_sum / self.width


@dataclass
class OldSegment(LevelSegment):
    """Oldest segment reached when following a candidate through the bank."""
    age: int = 0                # Age of the slot the segment was found in
    misses: int = 0             # Levels that failed the match gate


@dataclass
class FrameKinematics:
    """Position and motion of an object expressed in one frame."""
    frame_id: str
    position: np.ndarray                # At the newest stamp
    old_position: np.ndarray            # At the old stamp
    closest_point: np.ndarray           # At the newest stamp
    velocity: np.ndarray
    speed: float
    velocity_normalized: np.ndarray
    transformed: bool                   # False if sensor coordinates were used


@dataclass
class TrackedObject:
    """
    Moving object found in the newest scan and followed back in time.

    This is the structure emitted for every detection cycle.
    """
    stamp: float
    old_stamp: float
    sensor_frame: str
    angle_begin: float
    angle_end: float
    distance_at_angle_begin: float
    distance_at_angle_end: float
    distance: float
    seen_width: float
    angle_for_closest_distance: float
    closest_distance: float
    index_min: int
    index_max: int
    index_min_old: int
    index_max_old: int
    seen_width_old: float
    frames: Dict[Frame, FrameKinematics] = field(default_factory=dict)
    transform_success: Dict[Frame, bool] = field(default_factory=dict)
    confidence: float = 0.0

    @property
    def dt(self) -> float:
        return self.stamp - self.old_stamp

    @property
    def angle_mean(self) -> float:
        return (self.angle_begin + self.angle_end) / 2.0

    # Sensor frame shortcuts
    @property
    def position(self) -> np.ndarray:
        return self.frames[Frame.SENSOR].position

    @property
    def velocity(self) -> np.ndarray:
        return self.frames[Frame.SENSOR].velocity

    @property
    def speed(self) -> float:
        return self.frames[Frame.SENSOR].speed

    def max_speed(self) -> float:
        """Largest speed over all frames."""
        return max(k.speed for k in self.frames.values())

    def is_moving(self, min_speed: float) -> bool:
        return any(min_speed <= k.speed for k in self.frames.values())


@dataclass
class MovingObjectArray:
    """Result of one detection cycle."""
    seq: int
    stamp: float
    origin: str
    objects: List[TrackedObject] = field(default_factory=list)

    def __len__(self):
        return len(self.objects)

    def __iter__(self):
        return iter(self.objects)
