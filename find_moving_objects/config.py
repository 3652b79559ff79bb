# =============================================================================
# Moving Objects - Configuration
# =============================================================================
# All configurable parameters for the scan bank, the object thresholds and
# the reference frames. Module constants are the defaults; a
# BankConfiguration collects one value per parameter and is validated once
# before the bank is used.
# =============================================================================

import logging
import math
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# =============================================================================
# SCAN BANK CONFIGURATION
# =============================================================================
# EMA weighting coefficient for the newest scan, in [0, 1].
# 1.0 disables smoothing.
BANK_EMA_ALPHA = 1.0

# Number of scans kept in the bank (at least 2 to compute velocities)
BANK_NR_SCANS = 11

# Number of angular bins per scan
BANK_POINTS_PER_SCAN = 360

# Angular span covered by the bank (radians)
BANK_ANGLE_MIN = -math.pi
BANK_ANGLE_MAX = math.pi

# Slack on the [-PI, PI] bounds for sensors reporting single precision angles
ANGLE_BOUND_TOLERANCE = 1e-6

# =============================================================================
# OBJECT THRESHOLDS
# =============================================================================
# Maximum range difference between two neighbouring points of one object (m)
OBJECT_EDGE_MAX_DELTA_RANGE = 0.15

# Minimum number of points for an object
OBJECT_MIN_NR_POINTS = 5

# Objects further away than this are not tracked (m)
OBJECT_MAX_DISTANCE = 6.5

# Minimum speed in at least one frame to report an object (m/s)
OBJECT_MIN_SPEED = 0.03

# Maximum change in object width between two scans (points)
OBJECT_MAX_DELTA_WIDTH_IN_POINTS = 5

# Minimum confidence to report an object
OBJECT_MIN_CONFIDENCE = 0.67

# Maximum change of the mean object range between two scans (m)
OBJECT_BANK_TRACKING_MAX_DELTA_DISTANCE = 0.2

# Number of scans in which an object may fail to match before tracking
# gives up. 0 allows no misses.
OBJECT_MAX_TRACKING_MISSES = 0

# =============================================================================
# CONFIDENCE CONFIGURATION
# =============================================================================
# Starting value of the default confidence function
CONFIDENCE_BASE = 0.3

# =============================================================================
# FRAME CONFIGURATION
# =============================================================================
FRAME_MAP = "map"
FRAME_FIXED = "odom"
FRAME_BASE = "base_link"

# Timeout for a single transform lookup (s)
TRANSFORM_TIMEOUT = 1.0

# =============================================================================
# POINT CLOUD CONFIGURATION
# =============================================================================
PC2_X_FIELD = "x"
PC2_Y_FIELD = "y"
PC2_Z_FIELD = "z"

# Width covered by one point when projected onto the angular bins (m)
PC2_VOXEL_LEAF_SIZE = 0.02

# Height band of points considered (m)
PC2_Z_MIN = 0.1
PC2_Z_MAX = 1.0

# Range bounds used for point clouds, which carry no sensor metadata (m)
PC2_RANGE_MIN = 0.01

# Added to max_distance to mark bins without any point (m)
SENTINEL_RANGE_MARGIN = 10.0


@dataclass(frozen=True)
class BankConfiguration:
    """
    Parameters of the bank and of the object detection.

    The sensor metadata (frame, angle increment, range bounds) is filled in
    from the first message via for_laser_scan() or for_point_cloud().
    """
    ema_alpha: float = BANK_EMA_ALPHA
    nr_scans_in_bank: int = BANK_NR_SCANS
    points_per_scan: int = BANK_POINTS_PER_SCAN
    angle_min: float = BANK_ANGLE_MIN
    angle_max: float = BANK_ANGLE_MAX

    edge_max_delta_range: float = OBJECT_EDGE_MAX_DELTA_RANGE
    min_nr_points: int = OBJECT_MIN_NR_POINTS
    max_distance: float = OBJECT_MAX_DISTANCE
    min_speed: float = OBJECT_MIN_SPEED
    max_delta_width_in_points: int = OBJECT_MAX_DELTA_WIDTH_IN_POINTS
    min_confidence: float = OBJECT_MIN_CONFIDENCE
    bank_tracking_max_delta_distance: float = OBJECT_BANK_TRACKING_MAX_DELTA_DISTANCE
    max_tracking_misses: int = OBJECT_MAX_TRACKING_MISSES
    base_confidence: float = CONFIDENCE_BASE

    map_frame: str = FRAME_MAP
    fixed_frame: str = FRAME_FIXED
    base_frame: str = FRAME_BASE
    sensor_frame: str = ""
    transform_timeout: float = TRANSFORM_TIMEOUT

    # Sensor metadata
    angle_increment: float = 0.0
    time_increment: float = 0.0
    scan_time: float = 0.0
    range_min: float = 0.0
    range_max: float = OBJECT_MAX_DISTANCE

    pc2_x_field: str = PC2_X_FIELD
    pc2_y_field: str = PC2_Y_FIELD
    pc2_z_field: str = PC2_Z_FIELD
    pc2_voxel_leaf_size: float = PC2_VOXEL_LEAF_SIZE
    pc2_z_min: float = PC2_Z_MIN
    pc2_z_max: float = PC2_Z_MAX

    @property
    def capacity(self) -> int:
        return self.nr_scans_in_bank

    @property
    def tracking_range_max(self) -> float:
        """Upper range bound used when following objects through the bank."""
        return min(self.range_max, self.max_distance)

    @property
    def sentinel_range(self) -> float:
        return self.max_distance + SENTINEL_RANGE_MARGIN

    # =========================================================================
    # Validation
    # =========================================================================

    def check(self):
        """
        Validate the general parameters.

        Raises:
            ConfigurationError: on the first invalid value
        """
        _require(0.0 <= self.ema_alpha <= 1.0,
                 "The EMA weighting coefficient must be a value in [0,1].")
        _require(2 <= self.nr_scans_in_bank,
                 "There must be at least 2 scans in the bank. "
                 "Otherwise, velocities cannot be calculated.")
        _require(1 <= self.points_per_scan,
                 "There must be at least 1 point per scan.")
        _require(-math.pi - ANGLE_BOUND_TOLERANCE <= self.angle_min <= self.angle_max,
                 "Please specify a valid angle_min in the range [-PI, angle_max].")
        _require(self.angle_min <= self.angle_max <= math.pi + ANGLE_BOUND_TOLERANCE,
                 "Please specify a valid angle_max in the range [angle_min, PI].")
        _require(0.0 <= self.edge_max_delta_range,
                 "edge_max_delta_range cannot be negative.")
        _require(1 <= self.min_nr_points,
                 "An object must consist of at least 1 point.")
        _require(0.0 <= self.max_distance,
                 "max_distance cannot be negative.")
        _require(0.0 <= self.min_speed,
                 "min_speed cannot be negative.")
        _require(0 <= self.max_delta_width_in_points,
                 "max_delta_width_in_points cannot be negative.")
        _require(0.0 <= self.min_confidence <= 1.0,
                 "min_confidence must be a value in [0,1].")
        _require(0.0 <= self.bank_tracking_max_delta_distance,
                 "bank_tracking_max_delta_distance cannot be negative.")
        _require(0 <= self.max_tracking_misses,
                 "max_tracking_misses cannot be negative.")
        _require(0.0 < self.transform_timeout,
                 "transform_timeout must be positive.")
        _require(self.map_frame != "", "Please specify map frame.")
        _require(self.fixed_frame != "", "Please specify fixed frame.")
        _require(self.base_frame != "", "Please specify base frame.")

    def check_point_cloud(self):
        """Validate the point cloud specific parameters."""
        _require(self.pc2_x_field != "",
                 "Please specify a field name for x coordinates.")
        _require(self.pc2_y_field != "",
                 "Please specify a field name for y coordinates.")
        _require(self.pc2_z_field != "",
                 "Please specify a field name for z coordinates.")
        _require(0.0 <= self.pc2_voxel_leaf_size,
                 "pc2_voxel_leaf_size cannot be negative.")
        _require(self.pc2_z_min <= self.pc2_z_max,
                 "pc2_z_min must not be larger than pc2_z_max.")

    # =========================================================================
    # Sensor binding
    # =========================================================================

    def for_laser_scan(self, scan) -> "BankConfiguration":
        """Copy of this configuration bound to the geometry of a laser scan."""
        return replace(
            self,
            sensor_frame=scan.frame_id,
            points_per_scan=len(scan.ranges),
            angle_min=scan.angle_min,
            angle_max=scan.angle_max,
            angle_increment=scan.angle_increment,
            time_increment=scan.time_increment,
            scan_time=scan.scan_time,
            range_min=scan.range_min,
            range_max=scan.range_max,
        )

    def for_point_cloud(self, cloud) -> "BankConfiguration":
        """Copy of this configuration bound to a point cloud sensor."""
        if self.points_per_scan <= 1:
            angle_increment = 0.0
        else:
            angle_increment = ((self.angle_max - self.angle_min) /
                               (self.points_per_scan - 1))
        return replace(
            self,
            sensor_frame=cloud.frame_id,
            angle_increment=angle_increment,
            time_increment=0.0,
            scan_time=0.0,
            range_min=PC2_RANGE_MIN,
            range_max=self.max_distance,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _require(condition: bool, message: str):
    if not condition:
        raise ConfigurationError(message)


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Dict[str, Any]] = None) -> BankConfiguration:
    """
    Load a BankConfiguration from a YAML file.

    Args:
        config_path: Path to the YAML file. If None, looks for config.yaml in
                     the current directory. The parameters may be given at the
                     top level or nested under a 'find_moving_objects' key.
        overrides: Values applied on top of the file

    Returns:
        BankConfiguration with defaults for everything not given

    Raises:
        ConfigurationError: unknown parameter or unreadable file
    """
    if config_path is None and os.path.exists("config.yaml"):
        config_path = "config.yaml"

    values: Dict[str, Any] = {}
    if config_path is not None:
        try:
            with open(config_path, "r") as f:
                loaded = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Cannot read {config_path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"{config_path} does not hold a mapping")
        values.update(loaded.get("find_moving_objects", loaded))
        logger.info("Loaded config from %s", config_path)

    if overrides:
        values.update(overrides)

    known = {f.name for f in fields(BankConfiguration)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown parameters: {', '.join(unknown)}")

    return BankConfiguration(**values)
