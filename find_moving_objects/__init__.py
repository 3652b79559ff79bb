# =============================================================================
# Find Moving Objects Package
# =============================================================================
# Detection of moving objects in the scans of a single range sensor.
#
# Responsibilities:
# - Laser scan and point cloud ingestion
# - Bank of EMA-smoothed scans
# - Segmentation of the newest scan into candidate objects
# - Re-identification of candidates in older scans
# - Position, velocity and confidence in sensor, map, fixed and base frames
#
# Usage:
#   from find_moving_objects import MovingObjectDetector, BankConfiguration
#   detector = MovingObjectDetector(BankConfiguration(nr_scans_in_bank=5))
#   objects = detector.process_laser_scan(scan)
# =============================================================================

# Configuration and errors
from .config import BankConfiguration, load_config
from .errors import (
    MovingObjectsError,
    ConfigurationError,
    BankNotInitializedError,
    IngestionError,
    TransformUnavailableError
)

# Types
from .types import (
    Frame,
    LaserScan,
    PointField,
    PointFieldType,
    PointCloud,
    Candidate,
    LevelSegment,
    OldSegment,
    FrameKinematics,
    TrackedObject,
    MovingObjectArray
)

# Core components
from .transforms import (
    RigidTransform,
    TransformService,
    TransformBuffer,
    NullTransformService
)
from .bank import ScanBank
from .segmenter import ScanSegmenter
from .tracker import CrossScanTracker, extend_segment
from .confidence import clamp_confidence, default_confidence, constant_confidence
from .estimator import KinematicsEstimator
from .detector import MovingObjectDetector

__all__ = [
    # Configuration
    'BankConfiguration',
    'load_config',

    # Errors
    'MovingObjectsError',
    'ConfigurationError',
    'BankNotInitializedError',
    'IngestionError',
    'TransformUnavailableError',

    # Types
    'Frame',
    'LaserScan',
    'PointField',
    'PointFieldType',
    'PointCloud',
    'Candidate',
    'LevelSegment',
    'OldSegment',
    'FrameKinematics',
    'TrackedObject',
    'MovingObjectArray',

    # Transforms
    'RigidTransform',
    'TransformService',
    'TransformBuffer',
    'NullTransformService',

    # Components
    'ScanBank',
    'ScanSegmenter',
    'CrossScanTracker',
    'extend_segment',
    'clamp_confidence',
    'default_confidence',
    'constant_confidence',
    'KinematicsEstimator',

    # Complete detector
    'MovingObjectDetector',
]

__version__ = '1.0.0'
