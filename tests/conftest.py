"""
Shared fixtures for the moving object tests.
"""
import math

import numpy as np
import pytest

from find_moving_objects import BankConfiguration, LaserScan, PointCloud, PointField, PointFieldType


# Five beams from -90 to +90 degrees, 45 degrees apart
SCAN_ANGLE_MIN = -math.pi / 2
SCAN_ANGLE_INCREMENT = math.pi / 4


@pytest.fixture
def make_scan():
    """Factory building a LaserScan from a list of ranges."""
    def _make_scan(ranges, stamp, range_min=0.1, range_max=5.0, frame_id="laser"):
        ranges = np.asarray(ranges, dtype=float)
        increment = SCAN_ANGLE_INCREMENT * 4 / max(len(ranges) - 1, 1)
        return LaserScan(stamp=stamp,
                         frame_id=frame_id,
                         angle_min=SCAN_ANGLE_MIN,
                         angle_max=SCAN_ANGLE_MIN + increment * (len(ranges) - 1),
                         angle_increment=increment,
                         ranges=ranges,
                         range_min=range_min,
                         range_max=range_max)
    return _make_scan


@pytest.fixture
def scenario_config():
    """Small bank with thresholds open wide, no smoothing."""
    return BankConfiguration(
        ema_alpha=1.0,
        nr_scans_in_bank=3,
        points_per_scan=5,
        edge_max_delta_range=0.5,
        min_nr_points=2,
        max_distance=5.0,
        min_speed=0.01,
        max_delta_width_in_points=5,
        min_confidence=0.0,
        bank_tracking_max_delta_distance=1.0,
    )


@pytest.fixture
def bound_config(scenario_config, make_scan):
    """Scenario configuration bound to the five beam laser."""
    return scenario_config.for_laser_scan(make_scan([9, 9, 9, 9, 9], 0.0))


@pytest.fixture
def make_cloud():
    """Factory packing (x, y, z) points into a PointCloud message."""
    def _make_cloud(points, stamp=0.0, big_endian=False, kind="f4",
                    datatype=PointFieldType.FLOAT32, point_step=None, frame_id="lidar"):
        order = ">" if big_endian else "<"
        width = np.dtype(kind).itemsize
        point_step = point_step or 4 * width
        dtype = np.dtype({
            "names": ["x", "y", "z"],
            "formats": [order + kind] * 3,
            "offsets": [0, width, 2 * width],
            "itemsize": point_step,
        })
        packed = np.zeros(len(points), dtype=dtype)
        for i, (x, y, z) in enumerate(points):
            packed[i] = (x, y, z)
        fields = [PointField("x", 0, datatype),
                  PointField("y", width, datatype),
                  PointField("z", 2 * width, datatype)]
        return PointCloud(stamp=stamp,
                          frame_id=frame_id,
                          height=1,
                          width=len(points),
                          fields=fields,
                          is_bigendian=big_endian,
                          point_step=point_step,
                          row_step=point_step * len(points),
                          data=packed.tobytes())
    return _make_cloud
