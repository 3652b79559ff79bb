# =============================================================================
# Moving Objects - Scan Ingestion
# =============================================================================
# Turns sensor messages into flat per-angle range arrays:
# - Laser scans are copied as they are
# - Point clouds are decoded field by field and projected onto angular bins,
#   keeping the closest point per bin
# =============================================================================

import logging
import sys
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from .config import BankConfiguration
from .errors import IngestionError
from .types import LaserScan, PointCloud, PointFieldType

logger = logging.getLogger(__name__)

MACHINE_IS_LITTLE_ENDIAN = sys.byteorder == "little"

# Datatype code -> (numpy kind, width in bytes)
POINT_FIELD_FORMATS: Dict[int, Tuple[str, int]] = {
    PointFieldType.INT8: ("i", 1),
    PointFieldType.UINT8: ("u", 1),
    PointFieldType.INT16: ("i", 2),
    PointFieldType.UINT16: ("u", 2),
    PointFieldType.INT32: ("i", 4),
    PointFieldType.UINT32: ("u", 4),
    PointFieldType.FLOAT32: ("f", 4),
    PointFieldType.FLOAT64: ("f", 8),
}

VALID_FIELD_WIDTHS = (1, 2, 4, 8)


@dataclass(frozen=True)
class FieldDescriptor:
    """Where and how one coordinate is stored inside a point."""
    name: str
    offset: int
    width: int
    kind: str

    def dtype(self, big_endian: bool) -> np.dtype:
        order = ">" if big_endian else "<"
        return np.dtype(f"{order}{self.kind}{self.width}")


@dataclass(frozen=True)
class PointCloudLayout:
    x: FieldDescriptor
    y: FieldDescriptor
    z: FieldDescriptor


# =============================================================================
# Laser Scans
# =============================================================================

def laser_scan_ranges(scan: LaserScan, points_per_scan: int) -> np.ndarray:
    """
    Ranges of a laser scan as a float array.

    Raises:
        IngestionError: the scan does not have points_per_scan ranges
    """
    ranges = np.asarray(scan.ranges, dtype=np.float64)
    if ranges.shape != (points_per_scan,):
        raise IngestionError(
            f"Expected {points_per_scan} ranges, got {ranges.size}")
    return ranges


# =============================================================================
# Point Clouds
# =============================================================================

def parse_point_fields(cloud: PointCloud, x_name: str, y_name: str,
                       z_name: str) -> PointCloudLayout:
    """
    Find the coordinate fields of a point cloud.

    Raises:
        IngestionError: a field is missing or has an unsupported datatype
    """
    found = {}
    for point_field in cloud.fields:
        if point_field.name not in (x_name, y_name, z_name):
            continue
        if point_field.datatype not in POINT_FIELD_FORMATS:
            raise IngestionError(
                f"Cannot determine number of bytes for field '{point_field.name}' "
                f"(datatype {point_field.datatype})")
        kind, width = POINT_FIELD_FORMATS[point_field.datatype]
        if width not in VALID_FIELD_WIDTHS:
            raise IngestionError(f"Unsupported field width {width}")
        if point_field.offset < 0 or point_field.offset + width > cloud.point_step:
            raise IngestionError(
                f"Field '{point_field.name}' lies outside the point "
                f"(offset {point_field.offset}, point_step {cloud.point_step})")
        found[point_field.name] = FieldDescriptor(
            point_field.name, point_field.offset, width, kind)

    missing = [name for name in (x_name, y_name, z_name) if name not in found]
    if missing:
        raise IngestionError(f"Missing point fields: {', '.join(missing)}")

    return PointCloudLayout(found[x_name], found[y_name], found[z_name])


def decode_points(cloud: PointCloud,
                  layout: PointCloudLayout) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Read the x, y and z coordinates of every point.

    Returns:
        Tuple (x, y, z) of float64 arrays
    """
    if cloud.point_step <= 0:
        raise IngestionError("point_step must be positive")
    if len(cloud.data) < cloud.height * cloud.row_step:
        raise IngestionError(
            f"Point cloud holds {len(cloud.data)} bytes, "
            f"expected {cloud.height * cloud.row_step}")

    must_reverse_bytes = cloud.is_bigendian == MACHINE_IS_LITTLE_ENDIAN
    if must_reverse_bytes:
        logger.debug("Point cloud byte order differs from this machine")

    point_dtype = np.dtype({
        "names": ["x", "y", "z"],
        "formats": [layout.x.dtype(cloud.is_bigendian),
                    layout.y.dtype(cloud.is_bigendian),
                    layout.z.dtype(cloud.is_bigendian)],
        "offsets": [layout.x.offset, layout.y.offset, layout.z.offset],
        "itemsize": cloud.point_step,
    })

    points_per_row = cloud.row_step // cloud.point_step
    if cloud.height == 0 or points_per_row == 0:
        return np.empty(0), np.empty(0), np.empty(0)

    rows = [np.frombuffer(cloud.data, dtype=point_dtype, count=points_per_row,
                          offset=row * cloud.row_step)
            for row in range(cloud.height)]
    points = np.concatenate(rows)
    # astype to the native float64 performs the byte swap when needed
    return (points["x"].astype(np.float64),
            points["y"].astype(np.float64),
            points["z"].astype(np.float64))


def project_points(x: np.ndarray, y: np.ndarray, z: np.ndarray,
                   config: BankConfiguration) -> Tuple[np.ndarray, int]:
    """
    Build an angular range array from 3-D points.

    Every point inside the height band covers the bins spanned by a segment
    of length pc2_voxel_leaf_size centered on the point, perpendicular to the
    x axis. Each bin keeps the smallest range written to it; bins without a
    point keep the sentinel range.

    Returns:
        Tuple (ranges, number of points inside the height band)
    """
    n = config.points_per_scan
    ranges = np.full(n, config.sentinel_range, dtype=np.float64)

    in_band = ((config.pc2_z_min <= z) & (z <= config.pc2_z_max) &
               np.isfinite(x) & np.isfinite(y))
    x, y, z = x[in_band], y[in_band], z[in_band]
    added = int(x.size)
    if added == 0:
        return ranges, 0

    view_angle = config.angle_max - config.angle_min
    if view_angle <= 0.0:
        # Degenerate span, everything lands in bin 0
        np.minimum.at(ranges, np.zeros(added, dtype=int), np.sqrt(x * x + y * y + z * z))
        return ranges, added

    inverted_resolution = n / view_angle
    half_leaf = config.pc2_voxel_leaf_size / 2.0
    point_range = np.sqrt(x * x + y * y + z * z)
    angle_lo = np.arctan2(y - half_leaf, x)
    angle_hi = np.arctan2(y + half_leaf, x)
    # Points straddling the +-PI cut only cover the bin at their own angle
    wrapped = (angle_hi - angle_lo) > np.pi
    if wrapped.any():
        center = np.arctan2(y[wrapped], x[wrapped])
        angle_lo[wrapped] = center
        angle_hi[wrapped] = center

    index_lo = np.maximum(0.0, (angle_lo - config.angle_min) * inverted_resolution)
    index_hi = np.minimum(n - 1.0, (angle_hi - config.angle_min) * inverted_resolution)
    # Truncate like an integer cast
    index_lo = np.trunc(index_lo).astype(int)
    index_hi = np.trunc(index_hi).astype(int)

    spans = index_hi - index_lo
    if spans.max() >= 0:
        for step in range(int(spans.max()) + 1):
            covered = step <= spans
            np.minimum.at(ranges, index_lo[covered] + step, point_range[covered])

    logger.debug("Projected %d points onto %d bins", added, n)
    return ranges, added
