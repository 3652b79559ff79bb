# =============================================================================
# Moving Objects - Cross-Scan Tracker
# =============================================================================
# Follows a candidate of the newest scan back through progressively older
# bank slots. At every level the segment around the previous mean index is
# re-grown and compared with the segment of the level before; the oldest
# segment reached is what the velocity is computed from.
# =============================================================================

import logging
from typing import Optional

import numpy as np

from .bank import ScanBank
from .config import BankConfiguration
from .types import Candidate, LevelSegment, OldSegment

logger = logging.getLogger(__name__)


def extend_segment(ranges: np.ndarray, seed: int, range_min: float,
                   range_max: float, edge_max_delta_range: float) -> Optional[LevelSegment]:
    """
    Grow a segment left and right from a seed index.

    Returns:
        The segment, or None if the range at the seed itself is out of range
    """
    seed_range = float(ranges[seed])
    if not range_min <= seed_range <= range_max:
        return None

    range_sum = seed_range

    left = seed
    prev_range = seed_range
    for i in range(seed - 1, -1, -1):
        value = float(ranges[i])
        if not (range_min <= value <= range_max and
                abs(value - prev_range) <= edge_max_delta_range):
            break
        left = i
        prev_range = value
        range_sum += value
    range_at_left = prev_range

    right = seed
    prev_range = seed_range
    for i in range(seed + 1, len(ranges)):
        value = float(ranges[i])
        if not (range_min <= value <= range_max and
                abs(value - prev_range) <= edge_max_delta_range):
            break
        right = i
        prev_range = value
        range_sum += value
    range_at_right = prev_range

    return LevelSegment(index_min=left,
                        index_max=right,
                        range_sum=range_sum,
                        range_at_index_min=range_at_left,
                        range_at_index_max=range_at_right)


class CrossScanTracker:
    """
    Re-identifies candidates in older scans.

    The search visits ages 1, 2, ..., capacity - 1 in order, so it never runs
    more than capacity - 1 levels. A level that fails the match gate counts as
    a miss; the search continues on the unmatched segment while the number of
    misses stays within max_tracking_misses.
    """

    def __init__(self, bank: ScanBank, config: Optional[BankConfiguration] = None):
        self.bank = bank
        self.config = config if config is not None else bank.config
        self.last_search_depth = 0

    def matches(self, segment: LevelSegment, expected_width: int,
                expected_range_sum: float) -> bool:
        """Match gate between a segment and the one found one level newer."""
        width = segment.width
        if width < self.config.min_nr_points:
            return False
        if self.config.max_delta_width_in_points < abs(width - expected_width):
            return False
        delta_distance = abs(segment.range_sum / width - expected_range_sum / expected_width)
        return delta_distance <= self.config.bank_tracking_max_delta_distance

    def track(self, candidate: Candidate, range_min: float,
              range_max: float) -> Optional[OldSegment]:
        """
        Follow a candidate to the oldest scan in the bank.

        Args:
            candidate: Object found in the newest scan
            range_min: Lower range bound
            range_max: Upper range bound

        Returns:
            Segment in the oldest slot, or None if the object was lost
        """
        capacity = self.bank.capacity
        edge_delta = self.config.edge_max_delta_range
        tolerance = self.config.max_tracking_misses

        seed = candidate.index_mean
        expected_width = candidate.nr_points
        expected_range_sum = candidate.range_sum
        misses = 0
        found = None

        self.last_search_depth = 0
        for age in range(1, capacity):
            self.last_search_depth += 1
            segment = extend_segment(self.bank.slot(age), seed, range_min,
                                     range_max, edge_delta)
            if segment is None:
                logger.debug("Lost object [%d, %d] at age %d: seed %d out of range",
                             candidate.index_min, candidate.index_max, age, seed)
                return None

            if not self.matches(segment, expected_width, expected_range_sum):
                misses += 1
                if tolerance < misses:
                    logger.debug("Lost object [%d, %d] at age %d after %d misses",
                                 candidate.index_min, candidate.index_max, age, misses)
                    return None

            found = OldSegment(index_min=segment.index_min,
                               index_max=segment.index_max,
                               range_sum=segment.range_sum,
                               range_at_index_min=segment.range_at_index_min,
                               range_at_index_max=segment.range_at_index_max,
                               age=age,
                               misses=misses)
            seed = segment.index_mean
            expected_width = segment.width
            expected_range_sum = segment.range_sum

        return found
