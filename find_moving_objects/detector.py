# =============================================================================
# Moving Objects - Detector
# =============================================================================
# Complete detection cycle, run once per incoming message:
#   ingest -> bank insert -> [bank filled?] -> segment newest scan
#          -> track each candidate -> estimate kinematics -> report
# =============================================================================

import logging
from typing import List, Optional

import numpy as np

from .bank import ScanBank
from .config import BankConfiguration
from .confidence import ConfidenceFunction, default_confidence
from .errors import IngestionError
from .estimator import KinematicsEstimator
from .segmenter import ScanSegmenter
from .tracker import CrossScanTracker
from .transforms import TransformService
from .types import LaserScan, MovingObjectArray, PointCloud, TrackedObject

logger = logging.getLogger(__name__)

# Intensity marking the points of reported objects in ema_scan()
OBJECT_INTENSITY = 300.0


class MovingObjectDetector:
    """
    Finds moving objects in a stream of scans from one sensor.

    The bank is initialized from the first message, which fixes the sensor
    frame and the scan geometry. Every later message is smoothed into the
    bank; once the bank is filled each message triggers a detection cycle.

    Processing is synchronous: a message is handled completely before the
    next one is accepted.
    """

    def __init__(self, config: Optional[BankConfiguration] = None,
                 transform_service: Optional[TransformService] = None,
                 confidence_function: ConfidenceFunction = default_confidence,
                 name: str = "find_moving_objects"):
        """
        Initialize the detector.

        Args:
            config: Parameters; sensor metadata is taken from the first message
            transform_service: Source of map/fixed/base transforms
            confidence_function: Scoring function for tracked objects
            name: Origin reported in every MovingObjectArray

        Raises:
            ConfigurationError: invalid configuration
        """
        self.base_config = config if config is not None else BankConfiguration()
        self.base_config.check()
        self.transform_service = transform_service
        self.confidence_function = confidence_function
        self.name = name

        self.bank = ScanBank()
        self.segmenter: Optional[ScanSegmenter] = None
        self.tracker: Optional[CrossScanTracker] = None
        self.estimator: Optional[KinematicsEstimator] = None

        self.seq = 0
        self.dropped_messages = 0
        self.last_candidates = 0
        self.last_tracked = 0
        self._last_objects: List[TrackedObject] = []

    @property
    def config(self) -> BankConfiguration:
        return self.bank.config if self.bank.initialized else self.base_config

    @property
    def initialized(self) -> bool:
        return self.bank.initialized

    def _initialize(self, config: BankConfiguration):
        self.bank.initialize(config)
        self.segmenter = ScanSegmenter(config)
        self.tracker = CrossScanTracker(self.bank, config)
        self.estimator = KinematicsEstimator(config, self.transform_service,
                                             self.confidence_function)

    # =========================================================================
    # Message Handling
    # =========================================================================

    def process_laser_scan(self, scan: LaserScan) -> MovingObjectArray:
        """
        Insert a laser scan and report the moving objects.

        Returns:
            Moving objects of this cycle (empty while the bank fills up or
            when the message is dropped)
        """
        if not self.initialized:
            self._initialize(self.base_config.for_laser_scan(scan))

        try:
            self.bank.insert_laser_scan(scan)
        except IngestionError as exc:
            return self._drop(scan.stamp, exc)

        return self.find_moving_objects()

    def process_point_cloud(self, cloud: PointCloud) -> MovingObjectArray:
        """
        Project a point cloud into the bank and report the moving objects.

        A cloud without usable points is dropped; the next one is inserted in
        its place.
        """
        if not self.initialized:
            config = self.base_config.for_point_cloud(cloud)
            config.check_point_cloud()
            self._initialize(config)

        try:
            self.bank.insert_point_cloud(cloud)
        except IngestionError as exc:
            return self._drop(cloud.stamp, exc)

        return self.find_moving_objects()

    def _drop(self, stamp: float, exc: IngestionError) -> MovingObjectArray:
        self.dropped_messages += 1
        logger.warning("Dropping message at %.3f: %s", stamp, exc)
        return MovingObjectArray(seq=self.seq, stamp=stamp, origin=self.name)

    # =========================================================================
    # Detection
    # =========================================================================

    def find_moving_objects(self) -> MovingObjectArray:
        """
        Run one detection cycle over the current content of the bank.
        """
        if not self.initialized or not self.bank.filled:
            logger.warning("Bank is not filled yet - cannot report objects")
            stamp = self.bank.stamp(0) if self.initialized and not self.bank.empty else 0.0
            return MovingObjectArray(seq=self.seq, stamp=stamp, origin=self.name)

        config = self.config
        new_stamp = self.bank.stamp(0)
        candidates = self.segmenter.segment(self.bank.newest())

        objects = []
        tracked = 0
        for candidate in candidates:
            old = self.tracker.track(candidate, config.range_min, config.tracking_range_max)
            if old is None:
                continue
            tracked += 1
            obj = self.estimator.estimate(candidate, old, new_stamp, self.bank.stamp(old.age))
            if obj is not None:
                objects.append(obj)

        self.seq += 1
        self.last_candidates = len(candidates)
        self.last_tracked = tracked
        self._last_objects = objects
        logger.debug("Cycle %d: %d candidates, %d tracked, %d moving",
                     self.seq, len(candidates), tracked, len(objects))
        return MovingObjectArray(seq=self.seq, stamp=new_stamp, origin=self.name,
                                 objects=objects)

    # =========================================================================
    # Query Methods
    # =========================================================================

    def ema_scan(self) -> LaserScan:
        """
        The newest smoothed scan, with intensities marking the points of the
        objects reported in the last cycle.
        """
        config = self.config
        ranges = np.array(self.bank.newest())
        intensities = np.zeros_like(ranges)
        for obj in self._last_objects:
            intensities[obj.index_min:obj.index_max + 1] = OBJECT_INTENSITY

        return LaserScan(
            stamp=self.bank.stamp(0),
            frame_id=config.sensor_frame,
            angle_min=config.angle_min,
            angle_max=config.angle_max,
            angle_increment=config.angle_increment,
            ranges=ranges,
            range_min=config.range_min,
            range_max=config.range_max,
            time_increment=config.time_increment,
            scan_time=config.scan_time,
            intensities=intensities,
        )

    def get_objects(self) -> List[TrackedObject]:
        """Objects reported in the last cycle."""
        return list(self._last_objects)

    def reset(self):
        """Empty the bank. The configuration of the bank is kept."""
        self.bank.reset()
        self.seq = 0
        self.dropped_messages = 0
        self.last_candidates = 0
        self.last_tracked = 0
        self._last_objects = []

    def get_statistics(self) -> dict:
        """Get detection statistics."""
        objects = self._last_objects
        return {
            "cycles": self.seq,
            "bank_filled": self.bank.filled,
            "insertions": self.bank.nr_insertions,
            "dropped_messages": self.dropped_messages,
            "candidates": self.last_candidates,
            "tracked": self.last_tracked,
            "moving_objects": len(objects),
            "average_confidence": float(np.mean([o.confidence for o in objects])) if objects else 0.0,
        }
