# =============================================================================
# Moving Objects - Scan Segmenter
# =============================================================================
# Splits the newest smoothed scan into candidate objects: runs of valid
# ranges whose neighbouring values differ by at most edge_max_delta_range.
# =============================================================================

import logging
from typing import List, Optional

import numpy as np

from .config import BankConfiguration
from .transforms import chord_width
from .types import Candidate

logger = logging.getLogger(__name__)


class ScanSegmenter:
    """
    Single left-to-right pass over a range array.

    A run starts at the first in-range value and grows while the next value
    is in range and close to the previous one. Runs with fewer than
    min_nr_points points are discarded. Scanning resumes right after a run.
    """

    def __init__(self, config: BankConfiguration,
                 range_min: Optional[float] = None,
                 range_max: Optional[float] = None):
        """
        Args:
            config: Bank configuration (thresholds and angle increment)
            range_min: Lower range bound, defaults to the sensor's
            range_max: Upper range bound, defaults to the sensor's
        """
        self.config = config
        self.range_min = config.range_min if range_min is None else range_min
        self.range_max = config.range_max if range_max is None else range_max

    def _in_range(self, value: float) -> bool:
        return self.range_min <= value <= self.range_max

    def segment(self, ranges: np.ndarray) -> List[Candidate]:
        """
        Find the candidate objects of one scan.

        Args:
            ranges: Range array (e.g. the newest bank slot)

        Returns:
            Candidates ordered by index
        """
        max_delta = self.config.edge_max_delta_range
        n = len(ranges)
        candidates = []

        i = 0
        while i < n:
            range_i = float(ranges[i])
            if not self._in_range(range_i):
                i += 1
                continue

            nr_points = 1
            range_sum = range_i
            closest_range = farthest_range = range_i
            closest_index = farthest_index = i
            prev_range = range_i

            for j in range(i + 1, n):
                range_j = float(ranges[j])
                if not (self._in_range(range_j) and abs(prev_range - range_j) <= max_delta):
                    break
                nr_points += 1
                range_sum += range_j
                if range_j < closest_range:
                    closest_range = range_j
                    closest_index = j
                elif farthest_range < range_j:
                    farthest_range = range_j
                    farthest_index = j
                prev_range = range_j

            if self.config.min_nr_points <= nr_points:
                candidates.append(Candidate(
                    index_min=i,
                    index_max=i + nr_points - 1,
                    range_sum=range_sum,
                    closest_range=closest_range,
                    closest_index=closest_index,
                    farthest_range=farthest_range,
                    farthest_index=farthest_index,
                    range_at_index_min=range_i,
                    range_at_index_max=prev_range,
                    seen_width=chord_width(range_i, prev_range,
                                           self.config.angle_increment * nr_points),
                ))

            i += nr_points

        logger.debug("Segmented %d candidates", len(candidates))
        return candidates
