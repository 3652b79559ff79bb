# =============================================================================
# Moving Objects - Scan Bank
# =============================================================================
# Fixed-capacity circular history of EMA-smoothed range scans.
#
# Cursors:
# - put:    slot written by the next insertion (the oldest scan once filled)
# - newest: slot written by the last insertion, always (put - 1) mod capacity
# =============================================================================

import logging
from typing import Optional

import numpy as np

from .config import BankConfiguration
from .errors import BankNotInitializedError, IngestionError
from .ingestion import (
    decode_points,
    laser_scan_ranges,
    parse_point_fields,
    project_points,
)
from .types import LaserScan, PointCloud

logger = logging.getLogger(__name__)


class ScanBank:
    """
    Ring of `nr_scans_in_bank` smoothed scans plus their timestamps.

    The buffer is allocated once by initialize() and never resized. Slots are
    only ever overwritten, the oldest one first.
    """

    def __init__(self):
        self.config: Optional[BankConfiguration] = None
        self._ranges: Optional[np.ndarray] = None
        self._stamps: Optional[np.ndarray] = None
        self._put = -1
        self._newest = -1
        self._filled = False
        self._nr_insertions = 0

    def initialize(self, config: BankConfiguration):
        """
        Validate the configuration and allocate the buffer.

        Does nothing if the bank is already initialized.

        Raises:
            ConfigurationError: invalid configuration
        """
        if self.initialized:
            return

        config.check()
        self.config = config
        self._ranges = np.zeros((config.nr_scans_in_bank, config.points_per_scan),
                                dtype=np.float64)
        self._stamps = np.zeros(config.nr_scans_in_bank, dtype=np.float64)
        self._put = -1
        self._newest = -1
        self._filled = False
        self._nr_insertions = 0
        logger.info("Bank initialized: %d scans x %d points, alpha=%.3f",
                    config.nr_scans_in_bank, config.points_per_scan, config.ema_alpha)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def initialized(self) -> bool:
        return self.config is not None

    @property
    def capacity(self) -> int:
        self._require_initialized()
        return self.config.nr_scans_in_bank

    @property
    def points_per_scan(self) -> int:
        self._require_initialized()
        return self.config.points_per_scan

    @property
    def put_index(self) -> int:
        return self._put

    @property
    def newest_index(self) -> int:
        return self._newest

    @property
    def filled(self) -> bool:
        """True once every slot has been written at least once."""
        return self._filled

    @property
    def empty(self) -> bool:
        return self._newest < 0

    @property
    def nr_insertions(self) -> int:
        return self._nr_insertions

    # =========================================================================
    # Insertion
    # =========================================================================

    def insert(self, ranges: np.ndarray, stamp: float):
        """
        Insert one scan.

        The first scan is stored as it is. Every following scan is smoothed
        against the newest one: alpha * incoming + (1 - alpha) * newest.

        Raises:
            BankNotInitializedError: initialize() was not called
            IngestionError: the scan has the wrong number of points
        """
        self._require_initialized()
        ranges = np.asarray(ranges, dtype=np.float64)
        if ranges.shape != (self.config.points_per_scan,):
            raise IngestionError(
                f"Expected {self.config.points_per_scan} ranges, got {ranges.size}")

        if self.empty:
            self._ranges[0] = ranges
            self._stamps[0] = stamp
            self._put = 1
            self._newest = 0
            self._filled = False
        else:
            self._ranges[self._put] = self._smooth(ranges, self._ranges[self._newest])
            self._stamps[self._put] = stamp
            self._advance()

        self._nr_insertions += 1

    def insert_laser_scan(self, scan: LaserScan):
        self._require_initialized()
        self.insert(laser_scan_ranges(scan, self.config.points_per_scan), scan.stamp)

    def insert_point_cloud(self, cloud: PointCloud) -> int:
        """
        Project a point cloud onto the angular bins and insert it.

        Returns:
            Number of points inside the height band

        Raises:
            IngestionError: the message cannot be decoded or holds no usable
                            point; the bank is left unchanged
        """
        self._require_initialized()
        layout = parse_point_fields(cloud, self.config.pc2_x_field,
                                    self.config.pc2_y_field, self.config.pc2_z_field)
        x, y, z = decode_points(cloud, layout)
        ranges, added = project_points(x, y, z, self.config)
        if added == 0:
            raise IngestionError(
                f"No points within z=[{self.config.pc2_z_min}, {self.config.pc2_z_max}] "
                f"in message at {cloud.stamp:.3f}")

        self.insert(ranges, cloud.stamp)
        return added

    def _smooth(self, ranges: np.ndarray, newest: np.ndarray) -> np.ndarray:
        """
        EMA of an incoming scan against the newest one.

        Alpha 1 copies the incoming scan and alpha 0 the newest one. In
        between, a bin where either reading is inf or nan takes the incoming
        reading, so a missing return never sticks to a bin.
        """
        alpha = self.config.ema_alpha
        if alpha == 1.0:
            return ranges
        if alpha == 0.0:
            return newest
        mixed = alpha * ranges + (1.0 - alpha) * newest
        return np.where(np.isfinite(ranges) & np.isfinite(newest), mixed, ranges)

    def _advance(self):
        capacity = self.config.nr_scans_in_bank
        self._put = (self._put + 1) % capacity
        self._newest = (self._newest + 1) % capacity
        if self._put < self._newest:
            self._filled = True

    # =========================================================================
    # Access
    # =========================================================================

    def slot_index(self, age: int) -> int:
        """Buffer index of the scan inserted `age` insertions ago."""
        self._require_initialized()
        capacity = self.config.nr_scans_in_bank
        if not 0 <= age < capacity:
            raise IndexError(f"age must be in [0, {capacity - 1}], got {age}")
        if self.empty:
            raise IndexError("The bank holds no scans")
        return (self._newest - age) % capacity

    def slot(self, age: int) -> np.ndarray:
        """Read-only view of a scan by age (0 = newest, capacity - 1 = oldest)."""
        view = self._ranges[self.slot_index(age)].view()
        view.flags.writeable = False
        return view

    def newest(self) -> np.ndarray:
        return self.slot(0)

    def oldest(self) -> np.ndarray:
        return self.slot(self.capacity - 1)

    def stamp(self, age: int) -> float:
        return float(self._stamps[self.slot_index(age)])

    def reset(self):
        """Forget all scans but keep the configuration and the buffer."""
        if not self.initialized:
            return
        self._ranges.fill(0.0)
        self._stamps.fill(0.0)
        self._put = -1
        self._newest = -1
        self._filled = False
        self._nr_insertions = 0

    def _require_initialized(self):
        if not self.initialized:
            raise BankNotInitializedError("The bank has not been initialized")

    def __repr__(self):
        if not self.initialized:
            return "ScanBank(uninitialized)"
        return (f"ScanBank(capacity={self.capacity}, put={self._put}, "
                f"newest={self._newest}, filled={self._filled})")
